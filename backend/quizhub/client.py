# Backend client: one place that wires the database to the auth and profile handles.
import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import sessionmaker

from quizhub.auth import AuthProvider, GoogleTokenVerifier, GoogleVerifier
from quizhub.config import Settings
from quizhub.profiles import ProfileStore
from quizhub.session import SessionRegistry

logger = logging.getLogger("quizhub.client")


@dataclass
class BackendClient:
    settings: Settings
    db: sessionmaker
    auth: AuthProvider
    profiles: ProfileStore
    sessions: SessionRegistry

    def close(self) -> None:
        self.sessions.shutdown()


def create_backend_client(
    settings: Settings,
    session_factory: sessionmaker,
    google_verifier: Optional[GoogleVerifier] = None,
) -> BackendClient:
    auth = AuthProvider(
        session_factory,
        google_verifier=google_verifier or GoogleTokenVerifier(settings.google_client_id),
    )
    profiles = ProfileStore(session_factory)
    sessions = SessionRegistry(
        auth,
        profiles,
        profile_load_timeout=settings.profile_load_timeout,
        max_sessions=settings.session_cache_size,
    )
    logger.info("Backend client ready")
    return BackendClient(
        settings=settings,
        db=session_factory,
        auth=auth,
        profiles=profiles,
        sessions=sessions,
    )
