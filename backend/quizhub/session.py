# Per-client session objects: identity, cached profile, draft and attempts, keyed by token.
import logging
import threading
from collections import OrderedDict
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import replace
from typing import Optional

from quizhub.auth import AuthProvider, Identity, SignInResult
from quizhub.authoring import QuizDraft
from quizhub.errors import AuthError, AuthFailure, NotFoundError, PersistenceError
from quizhub.profiles import ProfileData, ProfileStore
from quizhub.quiz_session import QuizAttempt

logger = logging.getLogger("quizhub.session")

MAX_ATTEMPTS_PER_SESSION = 20
MAX_SESSIONS = 1000


class SessionManager:
    def __init__(
        self,
        auth: AuthProvider,
        profiles: ProfileStore,
        executor: ThreadPoolExecutor,
        profile_load_timeout: float = 1.5,
        max_attempts: int = MAX_ATTEMPTS_PER_SESSION,
    ) -> None:
        self._auth = auth
        self._profiles = profiles
        self._executor = executor
        self._max_attempts = max_attempts
        self._profile_load_timeout = profile_load_timeout
        self._lock = threading.RLock()
        self.token: Optional[str] = None
        self.identity: Optional[Identity] = None
        self.profile: Optional[ProfileData] = None
        self.loading = True
        self.draft = QuizDraft()
        self.attempts: "OrderedDict[str, QuizAttempt]" = OrderedDict()

    def sign_in_google(self, id_token: Optional[str]) -> Identity:
        return self._signed_in(self._auth.sign_in_with_google(id_token))

    def sign_in_email(self, email: str, password: str) -> Identity:
        return self._signed_in(self._auth.sign_in_with_email(email, password))

    def sign_up(self, email: str, password: str, display_name: Optional[str] = None) -> Identity:
        return self._signed_in(
            self._auth.create_user_with_email(email, password, display_name)
        )

    # Rebuild this session from a token issued earlier.
    def restore(self, token: str) -> Identity:
        identity = self._auth.resolve(token)
        if identity is None:
            raise AuthError(AuthFailure.SESSION_EXPIRED)
        self.token = token
        self._identity_changed(identity)
        return identity

    def sign_out(self) -> None:
        if self.token:
            self._auth.sign_out(self.token)
        self.token = None
        self._identity_changed(None)

    def require_identity(self) -> Identity:
        if self.identity is None:
            raise AuthError(AuthFailure.SESSION_EXPIRED)
        return self.identity

    def refresh_profile(self) -> Optional[ProfileData]:
        if self.identity is not None:
            self._identity_changed(self.identity)
        return self.profile

    # Add XP to the signed-in user's profile and return the new total. No-op when signed out.
    def award_experience(self, amount: int) -> Optional[int]:
        if isinstance(amount, bool) or not isinstance(amount, int) or amount < 0:
            raise ValueError("experience award must be a non-negative integer")
        identity = self.identity
        if identity is None:
            return None
        total = self._profiles.add_experience(identity.uid, amount)
        with self._lock:
            if self.profile is not None and self.profile.uid == identity.uid:
                self.profile = replace(self.profile, xp=total)
        logger.info("Awarded %s XP to %s (total %s)", amount, identity.uid, total)
        return total

    # Keeps the most recent attempts; the oldest is dropped past the cap.
    def start_attempt(self, quiz_id: str, fetch) -> QuizAttempt:
        attempt = QuizAttempt(quiz_id, on_finished=self.award_experience)
        attempt.load(fetch)
        with self._lock:
            self.attempts[attempt.id] = attempt
            while len(self.attempts) > self._max_attempts:
                dropped, _ = self.attempts.popitem(last=False)
                logger.debug("Dropped attempt %s", dropped)
        return attempt

    def get_attempt(self, attempt_id: str) -> QuizAttempt:
        attempt = self.attempts.get(attempt_id)
        if attempt is None:
            raise NotFoundError("attempt not found")
        return attempt

    def discard_attempt(self, attempt_id: str) -> None:
        with self._lock:
            if self.attempts.pop(attempt_id, None) is None:
                raise NotFoundError("attempt not found")

    def _signed_in(self, result: SignInResult) -> Identity:
        self.token = result.token
        self._identity_changed(result.identity)
        return result.identity

    def _identity_changed(self, identity: Optional[Identity]) -> None:
        with self._lock:
            previous = self.identity
            self.identity = identity
            if identity is None or (previous and previous.uid != identity.uid):
                self.profile = None
                self.draft = QuizDraft()
                self.attempts.clear()
        if identity is None:
            self.loading = False
            return

        self.loading = True
        future = self._executor.submit(self._profiles.load_or_create, identity)
        future.add_done_callback(lambda done: self._profile_loaded(identity, done))
        try:
            profile = future.result(timeout=self._profile_load_timeout)
        except FutureTimeout:
            logger.warning(
                "Profile for %s not loaded after %.1fs; continuing without it",
                identity.uid,
                self._profile_load_timeout,
            )
        except PersistenceError:
            logger.warning("Continuing without a profile for %s", identity.uid)
        else:
            self._apply_profile(identity, profile)
        finally:
            self.loading = False

    # Runs on the worker thread, possibly after the caller stopped waiting.
    # Only fills in a missing profile.
    def _profile_loaded(self, identity: Identity, future: Future) -> None:
        if future.cancelled() or future.exception() is not None:
            return
        with self._lock:
            if self.profile is None:
                self._apply_profile(identity, future.result())

    def _apply_profile(self, identity: Identity, profile: ProfileData) -> None:
        with self._lock:
            if self.identity is not None and self.identity.uid == identity.uid:
                self.profile = profile


class SessionRegistry:
    def __init__(
        self,
        auth: AuthProvider,
        profiles: ProfileStore,
        profile_load_timeout: float = 1.5,
        max_workers: int = 4,
        max_sessions: int = MAX_SESSIONS,
    ) -> None:
        self._auth = auth
        self._profiles = profiles
        self._profile_load_timeout = profile_load_timeout
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="profile-loader"
        )
        self._max_sessions = max_sessions
        self._sessions: "OrderedDict[str, SessionManager]" = OrderedDict()
        self._lock = threading.Lock()

    # A fresh, signed-out session object; register it once it has a token.
    def open(self) -> SessionManager:
        return SessionManager(
            self._auth,
            self._profiles,
            self._executor,
            profile_load_timeout=self._profile_load_timeout,
        )

    def register(self, session: SessionManager) -> SessionManager:
        if not session.token:
            raise ValueError("only signed-in sessions can be registered")
        with self._lock:
            self._sessions[session.token] = session
            self._sessions.move_to_end(session.token)
            while len(self._sessions) > self._max_sessions:
                evicted, _ = self._sessions.popitem(last=False)
                logger.debug("Evicted idle session %s...", evicted[:8])
        return session

    # Least recently used sessions are evicted past the cap. An evicted token
    # stays valid and is rebuilt here on its next request.
    def get(self, token: str) -> SessionManager:
        with self._lock:
            session = self._sessions.get(token)
            if session is not None:
                self._sessions.move_to_end(token)
        if session is not None:
            return session
        session = self.open()
        session.restore(token)
        return self.register(session)

    def close(self, token: str) -> None:
        with self._lock:
            session = self._sessions.pop(token, None)
        if session is None:
            session = self.open()
            session.token = token
        session.sign_out()

    def shutdown(self) -> None:
        with self._lock:
            self._sessions.clear()
        self._executor.shutdown(wait=False)
