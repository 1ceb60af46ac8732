# Question variants stored on a quiz and their answer checks.
from dataclasses import dataclass
from typing import Any, Dict, List, Sequence, Tuple, Union

MULTIPLE_CHOICE = "multiple_choice"
TYPE_IN = "type_in"
OPTION_COUNT = 4


@dataclass(frozen=True)
class MultipleChoiceQuestion:
    text: str
    options: Tuple[str, ...]
    correct_answer: str

    type = MULTIPLE_CHOICE

    # Correct only when the chosen option's text is exactly the stored answer.
    def is_correct(self, option_index: int) -> bool:
        if not 0 <= option_index < len(self.options):
            return False
        return self.options[option_index] == self.correct_answer


@dataclass(frozen=True)
class TypeInQuestion:
    text: str
    correct_answer: str

    type = TYPE_IN

    def is_correct(self, answer: str) -> bool:
        return answer.strip().lower() == self.correct_answer.strip().lower()


Question = Union[MultipleChoiceQuestion, TypeInQuestion]


# Build a question from its stored JSON form.
def question_from_document(data: Dict[str, Any]) -> Question:
    kind = data.get("type")
    if kind == MULTIPLE_CHOICE:
        return MultipleChoiceQuestion(
            text=data["text"],
            options=tuple(data["options"]),
            correct_answer=data["correct_answer"],
        )
    if kind == TYPE_IN:
        return TypeInQuestion(text=data["text"], correct_answer=data["correct_answer"])
    raise ValueError(f"unknown question type: {kind!r}")


# Serialize a question to the JSON form stored on the quiz row.
def question_to_document(question: Question) -> Dict[str, Any]:
    if isinstance(question, MultipleChoiceQuestion):
        return {
            "type": MULTIPLE_CHOICE,
            "text": question.text,
            "options": list(question.options),
            "correct_answer": question.correct_answer,
        }
    return {
        "type": TYPE_IN,
        "text": question.text,
        "correct_answer": question.correct_answer,
    }


def questions_from_documents(items: Sequence[Dict[str, Any]]) -> List[Question]:
    return [question_from_document(item) for item in items]


# Strip answers for the payload shown while a quiz is being taken.
def public_question(question: Question) -> Dict[str, Any]:
    payload = question_to_document(question)
    payload.pop("correct_answer", None)
    return payload


# What a quiz attempt needs from a stored quiz.
@dataclass(frozen=True)
class QuizContent:
    title: str
    questions: Tuple[Question, ...]

    @classmethod
    def from_documents(cls, title: str, items: Sequence[Dict[str, Any]]) -> "QuizContent":
        return cls(title=title, questions=tuple(questions_from_documents(items)))
