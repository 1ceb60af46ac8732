# Quiz repository access: list, create and fetch quiz rows.
import logging
from typing import Any, Dict, List, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from quizhub.errors import NotFoundError, PersistenceError
from quizhub.models import Quiz, utcnow

logger = logging.getLogger("quizhub.quizzes")


# Newest public quizzes first, capped at limit.
def list_public(db: Session, limit: int) -> List[Quiz]:
    try:
        return (
            db.query(Quiz)
            .filter(Quiz.is_public.is_(True))
            .order_by(Quiz.created_at.desc())
            .limit(limit)
            .all()
        )
    except SQLAlchemyError as exc:
        logger.exception("Listing public quizzes failed")
        raise PersistenceError("could not list quizzes") from exc


# All quizzes authored by one identity, newest first.
def list_by_creator(db: Session, creator_id: str) -> List[Quiz]:
    try:
        return (
            db.query(Quiz)
            .filter(Quiz.creator_id == creator_id)
            .order_by(Quiz.created_at.desc())
            .all()
        )
    except SQLAlchemyError as exc:
        logger.exception("Listing quizzes for creator %s failed", creator_id)
        raise PersistenceError("could not list quizzes") from exc


# Persist a new quiz. Profile counters are left untouched.
def create_quiz(
    db: Session,
    title: str,
    creator_id: str,
    creator_name: str,
    questions: Sequence[Dict[str, Any]],
) -> Quiz:
    quiz = Quiz(
        title=title,
        creator_id=creator_id,
        creator_name=creator_name,
        question_count=len(questions),
        created_at=utcnow(),
        is_public=True,
        questions=list(questions),
    )
    db.add(quiz)
    try:
        db.commit()
        db.refresh(quiz)
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Saving quiz %r failed", title)
        raise PersistenceError("could not save quiz") from exc
    logger.info("Quiz %s created by %s", quiz.id, creator_id)
    return quiz


def get_quiz(db: Session, quiz_id: str) -> Quiz:
    try:
        quiz = db.query(Quiz).filter(Quiz.id == quiz_id).first()
    except SQLAlchemyError as exc:
        logger.exception("Fetching quiz %s failed", quiz_id)
        raise PersistenceError("could not load quiz") from exc
    if not quiz:
        raise NotFoundError("quiz not found")
    return quiz
