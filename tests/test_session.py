# Session manager and profile store tests.
import threading
from concurrent.futures import ThreadPoolExecutor

import pytest


@pytest.fixture()
def executor():
    pool = ThreadPoolExecutor(max_workers=2)
    yield pool
    pool.shutdown(wait=True)


@pytest.fixture()
def make_session(db_factory, executor, fake_google_verifier):
    from quizhub.auth import AuthProvider
    from quizhub.profiles import ProfileStore
    from quizhub.session import SessionManager

    def _make(profiles=None, timeout=5.0, max_attempts=20):
        auth = AuthProvider(db_factory, google_verifier=fake_google_verifier)
        return SessionManager(
            auth,
            profiles or ProfileStore(db_factory),
            executor,
            profile_load_timeout=timeout,
            max_attempts=max_attempts,
        )

    return _make


class SlowProfiles:
    def __init__(self, release):
        self.release = release

    def load_or_create(self, identity):
        from quizhub.profiles import ProfileData
        from quizhub.models import utcnow

        self.release.wait(5)
        now = utcnow()
        return ProfileData(identity.uid, "late", identity.email, 0, 0, now, 0, 0, now)


class BrokenProfiles:
    def load_or_create(self, identity):
        from quizhub.errors import PersistenceError

        raise PersistenceError("database unavailable")


def test_default_display_name_rules():
    from quizhub.auth import Identity
    from quizhub.profiles import default_display_name

    assert default_display_name(Identity("1", "Ada L", "ada@example.com")) == "Ada L"
    assert default_display_name(Identity("2", None, "grace@example.com")) == "grace"
    assert default_display_name(Identity("3", "  ", None)) == "Learner"


def test_award_without_identity_is_a_no_op(make_session):
    session = make_session()

    assert session.award_experience(50) is None
    assert session.profile is None


def test_award_rejects_negative_amounts(make_session):
    session = make_session()
    session.sign_up("neg@example.com", "secret1")

    with pytest.raises(ValueError):
        session.award_experience(-5)
    with pytest.raises(ValueError):
        session.award_experience(True)


def test_award_updates_store_and_cache(make_session, db_factory):
    from quizhub.profiles import ProfileStore

    session = make_session()
    identity = session.sign_up("xp@example.com", "secret1")

    assert session.award_experience(30) == 30
    assert session.award_experience(100) == 130
    assert session.profile.xp == 130
    assert ProfileStore(db_factory).get(identity.uid).xp == 130


def test_awards_from_two_sessions_are_not_lost(make_session):
    first = make_session()
    identity = first.sign_up("twice@example.com", "secret1")
    second = make_session()
    second.sign_in_email("twice@example.com", "secret1")

    first.award_experience(10)
    second.award_experience(20)

    assert second.profile.xp == 30
    assert first.refresh_profile().xp == 30
    assert first.identity.uid == identity.uid


def test_refresh_restamps_last_active(make_session):
    session = make_session()
    session.sign_up("fresh@example.com", "secret1")
    before = session.profile.last_active

    refreshed = session.refresh_profile()

    assert refreshed.last_active >= before
    assert refreshed.created_at == session.profile.created_at


def test_slow_profile_load_stops_waiting_then_applies_late_result(make_session):
    release = threading.Event()
    session = make_session(profiles=SlowProfiles(release), timeout=0.05)

    session.sign_up("slow@example.com", "secret1")

    assert session.identity is not None
    assert session.loading is False
    assert session.profile is None

    release.set()
    for _ in range(100):
        if session.profile is not None:
            break
        threading.Event().wait(0.02)
    assert session.profile.display_name == "late"


def test_profile_failure_degrades_to_no_profile(make_session):
    session = make_session(profiles=BrokenProfiles())

    identity = session.sign_up("broken@example.com", "secret1")

    assert session.identity == identity
    assert session.profile is None
    assert session.loading is False


def test_sign_out_clears_cached_state(make_session):
    from quizhub.errors import AuthError

    session = make_session()
    session.sign_up("bye@example.com", "secret1")
    token = session.token
    session.draft.add_question()

    session.sign_out()

    assert session.identity is None
    assert session.profile is None
    assert session.token is None
    assert len(session.draft.questions) == 1
    assert session.attempts == {}
    with pytest.raises(AuthError):
        make_session().restore(token)


def test_restore_rejects_unknown_token(make_session):
    from quizhub.errors import AuthError, AuthFailure

    with pytest.raises(AuthError) as excinfo:
        make_session().restore("not-a-token")

    assert excinfo.value.reason is AuthFailure.SESSION_EXPIRED


def test_oldest_attempts_are_dropped_past_the_cap(make_session):
    from quizhub.errors import NotFoundError
    from quizhub.questions import MultipleChoiceQuestion, QuizContent

    question = MultipleChoiceQuestion(text="Q", options=("a", "b", "c", "d"), correct_answer="a")
    content = QuizContent(title="Capped", questions=(question,))
    session = make_session(max_attempts=2)
    session.sign_up("capped@example.com", "secret1")

    first, second, third = (session.start_attempt("quiz-1", lambda _: content) for _ in range(3))

    assert list(session.attempts) == [second.id, third.id]
    with pytest.raises(NotFoundError):
        session.get_attempt(first.id)


def test_registry_evicts_least_recently_used_and_rebuilds_from_token(db_factory, fake_google_verifier):
    from quizhub.auth import AuthProvider
    from quizhub.profiles import ProfileStore
    from quizhub.session import SessionRegistry

    registry = SessionRegistry(
        AuthProvider(db_factory, google_verifier=fake_google_verifier),
        ProfileStore(db_factory),
        profile_load_timeout=5.0,
        max_sessions=2,
    )
    try:
        tokens = []
        for name in ("ann", "ben", "cal"):
            session = registry.open()
            session.sign_up(f"{name}@example.com", "secret1")
            registry.register(session)
            tokens.append(session.token)
            if name == "ben":
                kept = registry.get(tokens[0])

        assert list(registry._sessions) == [tokens[0], tokens[2]]
        assert registry.get(tokens[0]) is kept

        rebuilt = registry.get(tokens[1])

        assert rebuilt.identity.email == "ben@example.com"
        assert len(registry._sessions) == 2
        assert tokens[2] not in registry._sessions
    finally:
        registry.shutdown()
