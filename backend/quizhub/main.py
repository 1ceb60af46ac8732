# FastAPI app, routes, and quiz flow handlers.
from contextlib import asynccontextmanager
from dataclasses import asdict
from datetime import datetime, timezone
from typing import Dict, List, Optional

import logging

from fastapi import Depends, FastAPI, Query, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from quizhub import authoring, quizzes
from quizhub.authoring import MultipleChoiceDraft, QuestionDraft, TypeInDraft
from quizhub.client import BackendClient, create_backend_client
from quizhub.config import get_settings
from quizhub.database import Base, SessionLocal, engine, get_db
from quizhub.errors import (
    AuthError,
    AuthFailure,
    InvalidTransition,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from quizhub.logging_config import configure_logging
from quizhub.models import Quiz
from quizhub.profiles import ProfileData
from quizhub.questions import QuizContent, public_question, questions_from_documents
from quizhub.quiz_session import AttemptState, QuestionPhase, QuizAttempt
from quizhub.schemas import (
    AnswerIn,
    AttemptOut,
    DraftOut,
    DraftQuestionUpdate,
    DraftSubmit,
    DraftTitle,
    GoogleSignInIn,
    IdentityOut,
    MeOut,
    MultipleChoiceDraftIn,
    ProfileOut,
    QuizCreate,
    QuizSummaryOut,
    QuizTakeOut,
    SessionOut,
    SignInIn,
    SignUpIn,
)
from quizhub.session import SessionManager

settings = get_settings()
logger = configure_logging(settings.log_level)


# Create database tables and the backend client on app startup.
@asynccontextmanager
async def lifespan(app: FastAPI):
    Base.metadata.create_all(bind=engine)
    app.state.backend = create_backend_client(settings, SessionLocal)
    yield
    app.state.backend.close()


app = FastAPI(title="Quiz Hub API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

bearer = HTTPBearer(auto_error=False)

GENERIC_FAILURE = "something went wrong, please try again"


@app.exception_handler(AuthError)
def handle_auth_error(request: Request, exc: AuthError):
    if exc.reason is AuthFailure.EMAIL_ALREADY_IN_USE:
        status_code = status.HTTP_409_CONFLICT
    elif exc.reason is AuthFailure.NETWORK_REQUEST_FAILED:
        status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    else:
        status_code = status.HTTP_401_UNAUTHORIZED
    logger.info("Auth failure on %s: %s", request.url.path, exc.reason.value)
    return JSONResponse(
        status_code=status_code,
        content={"detail": str(exc), "reason": exc.reason.value},
    )


@app.exception_handler(ValidationError)
def handle_validation_error(request: Request, exc: ValidationError):
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": exc.message, "position": exc.position},
    )


@app.exception_handler(NotFoundError)
def handle_not_found(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})


@app.exception_handler(InvalidTransition)
def handle_invalid_transition(request: Request, exc: InvalidTransition):
    return JSONResponse(status_code=status.HTTP_409_CONFLICT, content={"detail": str(exc)})


@app.exception_handler(PersistenceError)
def handle_persistence_error(request: Request, exc: PersistenceError):
    logger.error("Persistence failure on %s: %s", request.url.path, exc)
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": GENERIC_FAILURE},
    )


def get_backend(request: Request) -> BackendClient:
    return request.app.state.backend


# Resolve the bearer token to its live session, or None when signed out.
def optional_session(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
    backend: BackendClient = Depends(get_backend),
) -> Optional[SessionManager]:
    if credentials is None:
        return None
    try:
        return backend.sessions.get(credentials.credentials)
    except AuthError as exc:
        if exc.reason is AuthFailure.SESSION_EXPIRED:
            return None
        raise


def current_session(
    session: Optional[SessionManager] = Depends(optional_session),
) -> SessionManager:
    if session is None or session.identity is None:
        raise AuthError(AuthFailure.SESSION_EXPIRED, "sign in required")
    return session


# Format datetimes as ISO-8601 strings with UTC fallback.
def to_iso(dt: datetime) -> str:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.isoformat()


def profile_out(profile: Optional[ProfileData]) -> Optional[ProfileOut]:
    if profile is None:
        return None
    return ProfileOut(
        display_name=profile.display_name,
        email=profile.email,
        xp=profile.xp,
        streak=profile.streak,
        last_active=to_iso(profile.last_active),
        quizzes_created=profile.quizzes_created,
        quizzes_completed=profile.quizzes_completed,
        created_at=to_iso(profile.created_at),
    )


def session_out(session: SessionManager) -> SessionOut:
    return SessionOut(
        token=session.token,
        identity=IdentityOut(**asdict(session.identity)),
        profile=profile_out(session.profile),
    )


def quiz_summary(quiz: Quiz) -> QuizSummaryOut:
    return QuizSummaryOut(
        id=quiz.id,
        title=quiz.title,
        creator_id=quiz.creator_id,
        creator_name=quiz.creator_name,
        question_count=quiz.question_count,
        created_at=to_iso(quiz.created_at),
    )


def quiz_take(quiz: Quiz) -> QuizTakeOut:
    return QuizTakeOut(
        id=quiz.id,
        title=quiz.title,
        creator_name=quiz.creator_name,
        question_count=quiz.question_count,
        created_at=to_iso(quiz.created_at),
        questions=[public_question(q) for q in questions_from_documents(quiz.questions)],
    )


def draft_payload(draft: QuestionDraft) -> Dict:
    payload = asdict(draft)
    payload["type"] = draft.type
    return payload


def draft_out(session: SessionManager) -> DraftOut:
    return DraftOut(
        title=session.draft.title,
        questions=[draft_payload(item) for item in session.draft.questions],
    )


def attempt_out(attempt: QuizAttempt) -> AttemptOut:
    payload = AttemptOut(
        id=attempt.id,
        quiz_id=attempt.quiz_id,
        title=attempt.title,
        state=attempt.state.value,
        question_count=attempt.question_count,
        index=attempt.index,
        score=attempt.score,
    )
    if attempt.state is AttemptState.IN_PROGRESS:
        question = attempt.current_question
        payload.phase = attempt.phase.value
        payload.question = public_question(question)
        payload.selected_option = attempt.selected_option
        payload.typed_answer = attempt.typed_answer
        if attempt.phase is QuestionPhase.REVEALED:
            payload.last_correct = attempt.last_correct
            payload.correct_answer = question.correct_answer
    elif attempt.state is AttemptState.FINISHED:
        payload.percentage = int(attempt.score * 100 / attempt.question_count + 0.5)
        payload.reward = attempt.reward
    return payload


def to_drafts(questions: List) -> List[QuestionDraft]:
    drafts: List[QuestionDraft] = []
    for item in questions:
        if isinstance(item, MultipleChoiceDraftIn):
            drafts.append(
                MultipleChoiceDraft(
                    text=item.text,
                    options=list(item.options),
                    correct_index=item.correct_index,
                )
            )
        else:
            drafts.append(TypeInDraft(text=item.text, answer=item.answer))
    return drafts


def fetch_quiz_content(db: Session):
    # Quiz rows become immutable question tuples for the attempt.
    def _fetch(quiz_id: str) -> QuizContent:
        quiz = quizzes.get_quiz(db, quiz_id)
        return QuizContent.from_documents(quiz.title, quiz.questions)

    return _fetch


# Create an email account and sign it in.
@app.post("/auth/signup", response_model=SessionOut, status_code=status.HTTP_201_CREATED)
def sign_up(payload: SignUpIn, backend: BackendClient = Depends(get_backend)):
    session = backend.sessions.open()
    session.sign_up(payload.email, payload.password, payload.display_name)
    backend.sessions.register(session)
    return session_out(session)

# Sign in with email and password.
@app.post("/auth/login", response_model=SessionOut)
def sign_in(payload: SignInIn, backend: BackendClient = Depends(get_backend)):
    session = backend.sessions.open()
    session.sign_in_email(payload.email, payload.password)
    backend.sessions.register(session)
    return session_out(session)

# Sign in with a Google ID token obtained by the client.
@app.post("/auth/google", response_model=SessionOut)
def sign_in_google(payload: GoogleSignInIn, backend: BackendClient = Depends(get_backend)):
    session = backend.sessions.open()
    session.sign_in_google(payload.id_token)
    backend.sessions.register(session)
    return session_out(session)

# Revoke the token and drop the session's cached state.
@app.post("/auth/logout", status_code=status.HTTP_204_NO_CONTENT)
def sign_out(
    session: SessionManager = Depends(current_session),
    backend: BackendClient = Depends(get_backend),
):
    backend.sessions.close(session.token)
    return Response(status_code=status.HTTP_204_NO_CONTENT)

# Return the signed-in identity and its cached profile.
@app.get("/me", response_model=MeOut)
def read_me(session: SessionManager = Depends(current_session)):
    return MeOut(
        identity=IdentityOut(**asdict(session.identity)),
        profile=profile_out(session.profile),
        loading=session.loading,
    )

# Reload the profile from the database.
@app.post("/me/refresh", response_model=MeOut)
def refresh_me(session: SessionManager = Depends(current_session)):
    session.refresh_profile()
    return read_me(session)

# Newest quizzes from everyone.
@app.get("/quizzes", response_model=List[QuizSummaryOut])
def list_public_quizzes(
    limit: Optional[int] = Query(None, ge=1, le=100),
    session: SessionManager = Depends(current_session),
    backend: BackendClient = Depends(get_backend),
    db: Session = Depends(get_db),
):
    cap = limit or backend.settings.public_quiz_limit
    return [quiz_summary(quiz) for quiz in quizzes.list_public(db, cap)]

# Quizzes authored by the signed-in user.
@app.get("/quizzes/mine", response_model=List[QuizSummaryOut])
def list_my_quizzes(
    session: SessionManager = Depends(current_session),
    db: Session = Depends(get_db),
):
    return [quiz_summary(quiz) for quiz in quizzes.list_by_creator(db, session.identity.uid)]

# Quizzes authored by any user.
@app.get("/users/{creator_id}/quizzes", response_model=List[QuizSummaryOut])
def list_creator_quizzes(
    creator_id: str,
    session: SessionManager = Depends(current_session),
    db: Session = Depends(get_db),
):
    return [quiz_summary(quiz) for quiz in quizzes.list_by_creator(db, creator_id)]

# Validate and store a complete authoring form.
@app.post("/quizzes", response_model=QuizSummaryOut, status_code=status.HTTP_201_CREATED)
def create_quiz(
    payload: QuizCreate,
    session: SessionManager = Depends(current_session),
    db: Session = Depends(get_db),
):
    quiz = authoring.submit(db, session, payload.title, to_drafts(payload.questions))
    return quiz_summary(quiz)

# Return a quiz without its answers.
@app.get("/quizzes/{quiz_id}", response_model=QuizTakeOut)
def get_quiz(
    quiz_id: str,
    session: SessionManager = Depends(current_session),
    db: Session = Depends(get_db),
):
    return quiz_take(quizzes.get_quiz(db, quiz_id))

# Return the session's authoring draft.
@app.get("/draft", response_model=DraftOut)
def read_draft(session: SessionManager = Depends(current_session)):
    return draft_out(session)

@app.patch("/draft", response_model=DraftOut)
def rename_draft(payload: DraftTitle, session: SessionManager = Depends(current_session)):
    session.draft.title = payload.title
    return draft_out(session)

@app.post("/draft/questions", response_model=DraftOut, status_code=status.HTTP_201_CREATED)
def add_draft_question(session: SessionManager = Depends(current_session)):
    session.draft.add_question()
    return draft_out(session)

@app.patch("/draft/questions/{index}", response_model=DraftOut)
def update_draft_question(
    index: int,
    payload: DraftQuestionUpdate,
    session: SessionManager = Depends(current_session),
):
    session.draft.update_question(
        index,
        text=payload.text,
        options=payload.options,
        correct_index=payload.correct_index,
        answer=payload.answer,
    )
    return draft_out(session)

@app.delete("/draft/questions/{index}", response_model=DraftOut)
def remove_draft_question(index: int, session: SessionManager = Depends(current_session)):
    session.draft.remove_question(index)
    return draft_out(session)

@app.post("/draft/questions/{index}/toggle", response_model=DraftOut)
def toggle_draft_question(index: int, session: SessionManager = Depends(current_session)):
    session.draft.toggle_type(index)
    return draft_out(session)

# Submit the session's draft and start a fresh one.
@app.post("/draft/submit", response_model=QuizSummaryOut, status_code=status.HTTP_201_CREATED)
def submit_draft(
    payload: DraftSubmit,
    session: SessionManager = Depends(current_session),
    db: Session = Depends(get_db),
):
    draft = session.draft
    title = payload.title if payload.title is not None else draft.title
    quiz = authoring.submit(db, session, title, draft.questions)
    session.draft = authoring.QuizDraft()
    return quiz_summary(quiz)

# Start an attempt at a quiz.
@app.post(
    "/quizzes/{quiz_id}/attempts",
    response_model=AttemptOut,
    status_code=status.HTTP_201_CREATED,
)
def start_attempt(
    quiz_id: str,
    session: SessionManager = Depends(current_session),
    db: Session = Depends(get_db),
):
    attempt = session.start_attempt(quiz_id, fetch_quiz_content(db))
    if attempt.state is AttemptState.NOT_FOUND:
        session.discard_attempt(attempt.id)
        raise NotFoundError("quiz not found")
    return attempt_out(attempt)

@app.get("/attempts/{attempt_id}", response_model=AttemptOut)
def read_attempt(attempt_id: str, session: SessionManager = Depends(current_session)):
    return attempt_out(session.get_attempt(attempt_id))

# Record the pending answer for the current question.
@app.post("/attempts/{attempt_id}/answer", response_model=AttemptOut)
def answer_question(
    attempt_id: str,
    payload: AnswerIn,
    session: SessionManager = Depends(current_session),
):
    attempt = session.get_attempt(attempt_id)
    if payload.option_index is not None:
        attempt.select_option(payload.option_index)
    elif payload.text is not None:
        attempt.type_answer(payload.text)
    else:
        raise ValidationError("provide option_index or text")
    return attempt_out(attempt)

@app.post("/attempts/{attempt_id}/check", response_model=AttemptOut)
def check_answer(attempt_id: str, session: SessionManager = Depends(current_session)):
    attempt = session.get_attempt(attempt_id)
    attempt.check()
    return attempt_out(attempt)

# Move to the next question, or finish and award XP after the last one.
@app.post("/attempts/{attempt_id}/continue", response_model=AttemptOut)
def continue_attempt(attempt_id: str, session: SessionManager = Depends(current_session)):
    attempt = session.get_attempt(attempt_id)
    attempt.advance()
    return attempt_out(attempt)

@app.post("/attempts/{attempt_id}/retry", response_model=AttemptOut)
def retry_attempt(attempt_id: str, session: SessionManager = Depends(current_session)):
    attempt = session.get_attempt(attempt_id)
    attempt.retry()
    return attempt_out(attempt)

@app.delete("/attempts/{attempt_id}", status_code=status.HTTP_204_NO_CONTENT)
def discard_attempt(attempt_id: str, session: SessionManager = Depends(current_session)):
    session.discard_attempt(attempt_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)

# Login view; signed-in users go home.
@app.get("/views/login")
def login_view(session: Optional[SessionManager] = Depends(optional_session)):
    if session is not None:
        return RedirectResponse("/views/home", status_code=status.HTTP_303_SEE_OTHER)
    return {"view": "login"}

# Home view with the explore and mine tabs.
@app.get("/views/home")
def home_view(
    tab: str = Query("explore", pattern="^(explore|mine)$"),
    session: Optional[SessionManager] = Depends(optional_session),
    backend: BackendClient = Depends(get_backend),
    db: Session = Depends(get_db),
):
    if session is None:
        return RedirectResponse("/views/login", status_code=status.HTTP_303_SEE_OTHER)
    if tab == "mine":
        items = quizzes.list_by_creator(db, session.identity.uid)
    else:
        items = quizzes.list_public(db, backend.settings.public_quiz_limit)
    return {
        "view": "home",
        "tab": tab,
        "loading": session.loading,
        "profile": profile_out(session.profile),
        "quizzes": [quiz_summary(quiz) for quiz in items],
    }

@app.get("/views/create")
def create_view(session: Optional[SessionManager] = Depends(optional_session)):
    if session is None:
        return RedirectResponse("/views/login", status_code=status.HTTP_303_SEE_OTHER)
    return {"view": "create", "draft": draft_out(session)}

@app.get("/views/quiz/{quiz_id}")
def quiz_view(
    quiz_id: str,
    session: Optional[SessionManager] = Depends(optional_session),
    db: Session = Depends(get_db),
):
    if session is None:
        return RedirectResponse("/views/login", status_code=status.HTTP_303_SEE_OTHER)
    return {"view": "quiz", "quiz": quiz_take(quizzes.get_quiz(db, quiz_id))}
