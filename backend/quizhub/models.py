import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.types import JSON

from quizhub.database import Base


def _uuid_str():
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


class Account(Base):
    __tablename__ = "accounts"

    id = Column(String(36), primary_key=True, default=_uuid_str)
    email = Column(String(320), unique=True, index=True)
    display_name = Column(String(255))
    google_subject = Column(String(255), unique=True)
    password_hash = Column(String(255))
    password_salt = Column(String(255))
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)


class AuthSession(Base):
    __tablename__ = "auth_sessions"

    token = Column(String(64), primary_key=True)
    account_id = Column(String(36), ForeignKey("accounts.id"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    revoked_at = Column(DateTime(timezone=True))


class Profile(Base):
    __tablename__ = "profiles"

    id = Column(String(36), ForeignKey("accounts.id"), primary_key=True)
    display_name = Column(String(255), nullable=False)
    email = Column(String(320))
    xp = Column(Integer, nullable=False, default=0)
    streak = Column(Integer, nullable=False, default=0)
    last_active = Column(DateTime(timezone=True), nullable=False)
    quizzes_created = Column(Integer, nullable=False, default=0)
    quizzes_completed = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (CheckConstraint("xp >= 0", name="profiles_xp_check"),)


class Quiz(Base):
    __tablename__ = "quizzes"

    id = Column(String(36), primary_key=True, default=_uuid_str)
    title = Column(Text, nullable=False)
    creator_id = Column(String(36), ForeignKey("accounts.id"), nullable=False)
    creator_name = Column(String(255), nullable=False)
    question_count = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    is_public = Column(Boolean, nullable=False, default=True)
    questions = Column(JSON().with_variant(JSONB, "postgresql"), nullable=False)

    __table_args__ = (
        CheckConstraint("question_count > 0", name="quizzes_question_count_check"),
        Index("quizzes_created_idx", "created_at"),
        Index("quizzes_creator_created_idx", "creator_id", "created_at"),
    )
