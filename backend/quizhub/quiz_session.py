# State machine for one attempt at a quiz: loading, not_found or in_progress, then finished.
import logging
import threading
import uuid
from enum import Enum
from typing import Callable, List, Optional

from quizhub.errors import InvalidTransition, NotFoundError, PersistenceError
from quizhub.questions import MultipleChoiceQuestion, Question, QuizContent

logger = logging.getLogger("quizhub.quiz_session")

POINTS_PER_CORRECT = 10
PERFECT_BONUS = 50


class AttemptState(str, Enum):
    LOADING = "loading"
    NOT_FOUND = "not_found"
    IN_PROGRESS = "in_progress"
    FINISHED = "finished"


class QuestionPhase(str, Enum):
    ANSWERING = "answering"
    REVEALED = "revealed"


def experience_reward(score: int, question_count: int) -> int:
    bonus = PERFECT_BONUS if score == question_count else 0
    return score * POINTS_PER_CORRECT + bonus


class QuizAttempt:
    def __init__(
        self,
        quiz_id: str,
        on_finished: Optional[Callable[[int], None]] = None,
    ) -> None:
        self.id = str(uuid.uuid4())
        self.quiz_id = quiz_id
        self.title: Optional[str] = None
        self.questions: List[Question] = []
        self.state = AttemptState.LOADING
        self.phase = QuestionPhase.ANSWERING
        self.index = 0
        self.score = 0
        self.selected_option: Optional[int] = None
        self.typed_answer = ""
        self.last_correct: Optional[bool] = None
        self.xp_awarded: Optional[int] = None
        self._on_finished = on_finished
        self._lock = threading.Lock()

    # A quiz that cannot be retrieved is treated the same as one that does not exist.
    def load(self, fetch: Callable[[str], QuizContent]) -> AttemptState:
        with self._lock:
            return self._load(fetch)

    def _load(self, fetch: Callable[[str], QuizContent]) -> AttemptState:
        if self.state is not AttemptState.LOADING:
            raise InvalidTransition("attempt already loaded")
        try:
            quiz = fetch(self.quiz_id)
        except NotFoundError:
            self.state = AttemptState.NOT_FOUND
            return self.state
        except PersistenceError:
            logger.warning("Quiz %s could not be fetched; reporting not found", self.quiz_id)
            self.state = AttemptState.NOT_FOUND
            return self.state
        self.title = quiz.title
        self.questions = list(quiz.questions)
        if not self.questions:
            self.state = AttemptState.NOT_FOUND
            return self.state
        self._reset()
        return self.state

    @property
    def question_count(self) -> int:
        return len(self.questions)

    @property
    def current_question(self) -> Question:
        self._require(AttemptState.IN_PROGRESS)
        return self.questions[self.index]

    @property
    def has_answer(self) -> bool:
        question = self.current_question
        if isinstance(question, MultipleChoiceQuestion):
            return self.selected_option is not None
        return bool(self.typed_answer.strip())

    def select_option(self, option_index: int) -> None:
        with self._lock:
            question = self._answering()
            if not isinstance(question, MultipleChoiceQuestion):
                raise InvalidTransition("this question takes a typed answer")
            if not 0 <= option_index < len(question.options):
                raise InvalidTransition(f"option {option_index + 1} does not exist")
            self.selected_option = option_index

    def type_answer(self, text: str) -> None:
        with self._lock:
            question = self._answering()
            if isinstance(question, MultipleChoiceQuestion):
                raise InvalidTransition("this question takes a selected option")
            self.typed_answer = text

    # answering -> revealed
    def check(self) -> bool:
        with self._lock:
            question = self._answering()
            if not self.has_answer:
                raise InvalidTransition("provide an answer before checking")
            if isinstance(question, MultipleChoiceQuestion):
                correct = question.is_correct(self.selected_option)
            else:
                correct = question.is_correct(self.typed_answer)
            if correct:
                self.score += 1
            self.last_correct = correct
            self.phase = QuestionPhase.REVEALED
            return correct

    # revealed -> next question, or finished after the last one
    def advance(self) -> AttemptState:
        with self._lock:
            self._require(AttemptState.IN_PROGRESS)
            if self.phase is not QuestionPhase.REVEALED:
                raise InvalidTransition("check the answer before continuing")
            self._clear_answer()
            if self.index + 1 < self.question_count:
                self.index += 1
                return self.state
            self.state = AttemptState.FINISHED
            self._award()
            return self.state

    # finished -> first question, same quiz, score reset
    def retry(self) -> AttemptState:
        with self._lock:
            self._require(AttemptState.FINISHED)
            self._reset()
            return self.state

    @property
    def reward(self) -> Optional[int]:
        if self.state is not AttemptState.FINISHED:
            return None
        return experience_reward(self.score, self.question_count)

    def _award(self) -> None:
        reward = experience_reward(self.score, self.question_count)
        self.xp_awarded = reward
        if self._on_finished is None:
            return
        try:
            self._on_finished(reward)
        except PersistenceError:
            logger.exception("Awarding %s XP for quiz %s failed", reward, self.quiz_id)

    def _reset(self) -> None:
        self.state = AttemptState.IN_PROGRESS
        self.index = 0
        self.score = 0
        self.xp_awarded = None
        self._clear_answer()

    def _clear_answer(self) -> None:
        self.phase = QuestionPhase.ANSWERING
        self.selected_option = None
        self.typed_answer = ""
        self.last_correct = None

    def _answering(self) -> Question:
        question = self.current_question
        if self.phase is not QuestionPhase.ANSWERING:
            raise InvalidTransition("answer already checked")
        return question

    def _require(self, state: AttemptState) -> None:
        if self.state is not state:
            raise InvalidTransition(f"attempt is {self.state.value}, expected {state.value}")

