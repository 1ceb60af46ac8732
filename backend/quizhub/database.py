# SQLAlchemy engine/session setup and DB dependency.
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from quizhub.config import get_settings

DATABASE_URL = get_settings().database_url


def _connect_args(url: str) -> dict:
    # Sync routes and the profile loader run on worker threads.
    if url.startswith("sqlite"):
        return {"check_same_thread": False}
    return {}


engine = create_engine(DATABASE_URL, future=True, connect_args=_connect_args(DATABASE_URL))
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()

# Provide a SQLAlchemy session for request-scoped usage.
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
