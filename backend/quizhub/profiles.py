# Profile records: load-or-create on sign-in and XP updates.
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from quizhub.auth import Identity
from quizhub.errors import PersistenceError
from quizhub.models import Profile, utcnow

logger = logging.getLogger("quizhub.profiles")

DEFAULT_DISPLAY_NAME = "Learner"


@dataclass(frozen=True)
class ProfileData:
    uid: str
    display_name: str
    email: Optional[str]
    xp: int
    streak: int
    last_active: datetime
    quizzes_created: int
    quizzes_completed: int
    created_at: datetime


def _snapshot(row: Profile) -> ProfileData:
    return ProfileData(
        uid=row.id,
        display_name=row.display_name,
        email=row.email,
        xp=row.xp,
        streak=row.streak,
        last_active=row.last_active,
        quizzes_created=row.quizzes_created,
        quizzes_completed=row.quizzes_completed,
        created_at=row.created_at,
    )


# Identity name, else the local part of the email, else a fixed label.
def default_display_name(identity: Identity) -> str:
    if identity.display_name and identity.display_name.strip():
        return identity.display_name.strip()
    if identity.email and identity.email.split("@")[0]:
        return identity.email.split("@")[0]
    return DEFAULT_DISPLAY_NAME


class ProfileStore:
    def __init__(
        self,
        session_factory: sessionmaker,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock

    # Creates a default profile on first sign-in; an existing one gets its last-active stamp.
    def load_or_create(self, identity: Identity) -> ProfileData:
        now = self._clock()
        with self._session_factory() as db:
            try:
                row = db.get(Profile, identity.uid)
                if row:
                    row.last_active = now
                else:
                    row = Profile(
                        id=identity.uid,
                        display_name=default_display_name(identity),
                        email=identity.email,
                        xp=0,
                        streak=0,
                        last_active=now,
                        quizzes_created=0,
                        quizzes_completed=0,
                        created_at=now,
                    )
                    db.add(row)
                    logger.info("Profile created for %s", identity.uid)
                db.commit()
                db.refresh(row)
                return _snapshot(row)
            except SQLAlchemyError as exc:
                db.rollback()
                logger.exception("Loading profile for %s failed", identity.uid)
                raise PersistenceError("could not load profile") from exc

    def get(self, uid: str) -> Optional[ProfileData]:
        with self._session_factory() as db:
            try:
                row = db.get(Profile, uid)
            except SQLAlchemyError as exc:
                logger.exception("Reading profile %s failed", uid)
                raise PersistenceError("could not load profile") from exc
            return _snapshot(row) if row else None

    # Adds to the stored total in one UPDATE so concurrent awards are not lost.
    def add_experience(self, uid: str, amount: int) -> int:
        with self._session_factory() as db:
            try:
                result = db.execute(
                    update(Profile)
                    .where(Profile.id == uid)
                    .values(xp=Profile.xp + amount)
                )
                if result.rowcount == 0:
                    db.rollback()
                    raise PersistenceError(f"profile {uid} does not exist")
                db.commit()
                return db.get(Profile, uid).xp
            except SQLAlchemyError as exc:
                db.rollback()
                logger.exception("Adding %s XP to %s failed", amount, uid)
                raise PersistenceError("could not update experience") from exc
