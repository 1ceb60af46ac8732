# Pytest fixtures and test database setup.
import importlib
import sys

import pytest
from fastapi.testclient import TestClient

APP_MODULES = (
    "quizhub.config",
    "quizhub.database",
    "quizhub.models",
    "quizhub.auth",
    "quizhub.profiles",
    "quizhub.quizzes",
    "quizhub.session",
    "quizhub.client",
    "quizhub.main",
)


# Point the app at a throwaway database and reload modules bound to the old engine.
@pytest.fixture()
def database_url(tmp_path, monkeypatch):
    url = f"sqlite:///{tmp_path / 'quizhub_test.db'}"
    monkeypatch.setenv("DATABASE_URL", url)
    monkeypatch.setenv("PROFILE_LOAD_TIMEOUT", "5")
    for name in APP_MODULES:
        if name in sys.modules:
            importlib.reload(sys.modules[name])
    return url


# Provide a fresh schema and session factory without the HTTP layer.
@pytest.fixture()
def db_factory(database_url):
    from quizhub.database import Base, SessionLocal, engine  # noqa: E402
    import quizhub.models  # noqa: F401,E402

    Base.metadata.create_all(bind=engine)
    yield SessionLocal
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


# Google token verifier that trusts tokens of the form "google:<sub>:<email>:<name>".
@pytest.fixture()
def fake_google_verifier():
    def _verify(token):
        parts = token.split(":")
        if len(parts) != 4 or parts[0] != "google":
            raise ValueError("Wrong number of segments in token")
        _, sub, email, name = parts
        return {"sub": sub, "email": email or None, "name": name or None}

    return _verify


# Provide a FastAPI test client backed by a temporary test database.
@pytest.fixture()
def client(db_factory, fake_google_verifier):
    from quizhub.main import app  # noqa: E402

    with TestClient(app) as test_client:
        app.state.backend.auth.google_verifier = fake_google_verifier
        yield test_client


# Sign up a user and return auth headers for later requests.
@pytest.fixture()
def signup(client):
    def _signup(email="alice@example.com", password="secret1", display_name=None):
        payload = {"email": email, "password": password}
        if display_name is not None:
            payload["display_name"] = display_name
        response = client.post("/auth/signup", json=payload)
        assert response.status_code == 201, response.text
        body = response.json()
        return {"Authorization": f"Bearer {body['token']}"}, body

    return _signup


# Authoring form payloads with known answers.
@pytest.fixture()
def sample_quiz_payload():
    return {
        "title": "  Mixed Basics  ",
        "questions": [
            {
                "type": "multiple_choice",
                "text": "What is 2 + 2?",
                "options": ["3", "4", "5", "6"],
                "correct_index": 1,
            },
            {
                "type": "type_in",
                "text": "What is the capital of France?",
                "answer": "Paris",
            },
            {
                "type": "multiple_choice",
                "text": "Which planet is known as the Red Planet?",
                "options": ["Mars", "Venus", "Jupiter", "Mercury"],
                "correct_index": 0,
            },
        ],
    }


@pytest.fixture()
def build_quiz_payload():
    # Construct a multiple-choice quiz whose correct option is always "Option A".
    def _build(title: str, question_count: int = 5):
        questions = []
        for idx in range(1, question_count + 1):
            questions.append(
                {
                    "type": "multiple_choice",
                    "text": f"{title} question {idx}?",
                    "options": ["Option A", "Option B", "Option C", "Option D"],
                    "correct_index": 0,
                }
            )
        return {"title": title, "questions": questions}

    return _build
