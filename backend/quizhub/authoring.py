# Quiz authoring: an editable list of question drafts and its submission.
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, List, Optional, Sequence, Union

from sqlalchemy.orm import Session

from quizhub import quizzes
from quizhub.errors import ValidationError
from quizhub.models import Quiz
from quizhub.questions import (
    OPTION_COUNT,
    MultipleChoiceQuestion,
    Question,
    TypeInQuestion,
    question_to_document,
)

if TYPE_CHECKING:
    from quizhub.session import SessionManager

ANONYMOUS_CREATOR = "Anonymous"


def _empty_options() -> List[str]:
    return [""] * OPTION_COUNT


@dataclass
class MultipleChoiceDraft:
    text: str = ""
    options: List[str] = field(default_factory=_empty_options)
    correct_index: int = 0

    type = "multiple_choice"


@dataclass
class TypeInDraft:
    text: str = ""
    answer: str = ""

    type = "type_in"


QuestionDraft = Union[MultipleChoiceDraft, TypeInDraft]


# In-progress quiz form. Always holds at least one question draft.
class QuizDraft:
    def __init__(self, title: str = "") -> None:
        self.title = title
        self.questions: List[QuestionDraft] = [MultipleChoiceDraft()]

    def _draft_at(self, index: int) -> QuestionDraft:
        if not 0 <= index < len(self.questions):
            raise ValidationError(f"Question {index + 1} does not exist", index + 1)
        return self.questions[index]

    def add_question(self) -> QuestionDraft:
        draft = MultipleChoiceDraft()
        self.questions.append(draft)
        return draft

    def remove_question(self, index: int) -> None:
        self._draft_at(index)
        if len(self.questions) == 1:
            raise ValidationError("A quiz needs at least one question", index + 1)
        del self.questions[index]

    # Switch between variants; only the question text survives.
    def toggle_type(self, index: int) -> QuestionDraft:
        current = self._draft_at(index)
        if isinstance(current, MultipleChoiceDraft):
            replacement: QuestionDraft = TypeInDraft(text=current.text)
        else:
            replacement = MultipleChoiceDraft(text=current.text)
        self.questions[index] = replacement
        return replacement

    def update_question(
        self,
        index: int,
        text: Optional[str] = None,
        options: Optional[Sequence[str]] = None,
        correct_index: Optional[int] = None,
        answer: Optional[str] = None,
    ) -> QuestionDraft:
        draft = self._draft_at(index)
        position = index + 1
        if isinstance(draft, MultipleChoiceDraft):
            if answer is not None:
                raise ValidationError(
                    f"Question {position} is multiple choice; pick a correct option instead",
                    position,
                )
            if options is not None:
                if len(options) != OPTION_COUNT:
                    raise ValidationError(
                        f"Question {position} needs exactly {OPTION_COUNT} options", position
                    )
                draft.options = list(options)
            if correct_index is not None:
                if not 0 <= correct_index < OPTION_COUNT:
                    raise ValidationError(
                        f"Question {position} correct option must be 1-{OPTION_COUNT}",
                        position,
                    )
                draft.correct_index = correct_index
        else:
            if options is not None or correct_index is not None:
                raise ValidationError(
                    f"Question {position} is a typed answer and has no options", position
                )
            if answer is not None:
                draft.answer = answer
        if text is not None:
            draft.text = text
        return draft


# Check a title and drafts, stopping at the first problem. Returns the trimmed title.
def validate_submission(title: str, drafts: Sequence[QuestionDraft]) -> str:
    cleaned = (title or "").strip()
    if not cleaned:
        raise ValidationError("Please enter a quiz title")
    if not drafts:
        raise ValidationError("A quiz needs at least one question")
    for position, draft in enumerate(drafts, start=1):
        if not draft.text.strip():
            raise ValidationError(f"Question {position} is empty", position)
        if isinstance(draft, MultipleChoiceDraft):
            if len(draft.options) != OPTION_COUNT or any(
                not option.strip() for option in draft.options
            ):
                raise ValidationError(f"Question {position} has empty options", position)
            if not 0 <= draft.correct_index < OPTION_COUNT:
                raise ValidationError(
                    f"Question {position} correct option must be 1-{OPTION_COUNT}",
                    position,
                )
        elif not draft.answer.strip():
            raise ValidationError(f"Question {position} needs an answer", position)
    return cleaned


# The stored multiple-choice answer is the option text, not its index.
def build_question(draft: QuestionDraft) -> Question:
    if isinstance(draft, MultipleChoiceDraft):
        return MultipleChoiceQuestion(
            text=draft.text,
            options=tuple(draft.options),
            correct_answer=draft.options[draft.correct_index],
        )
    return TypeInQuestion(text=draft.text, correct_answer=draft.answer)


# Nothing is written when validation fails. The creator name is a snapshot of
# the cached profile display name.
def submit(
    db: Session,
    session: "SessionManager",
    title: str,
    drafts: Sequence[QuestionDraft],
) -> Quiz:
    identity = session.require_identity()
    cleaned_title = validate_submission(title, drafts)
    profile = session.profile
    creator_name = profile.display_name if profile and profile.display_name else ANONYMOUS_CREATOR
    documents = [question_to_document(build_question(draft)) for draft in drafts]
    quiz = quizzes.create_quiz(
        db,
        title=cleaned_title,
        creator_id=identity.uid,
        creator_name=creator_name,
        questions=documents,
    )
    session.refresh_profile()
    return quiz
