# Quiz attempt state machine tests.
import threading
import time

import pytest

from quizhub.errors import InvalidTransition, NotFoundError, PersistenceError
from quizhub.questions import MultipleChoiceQuestion, QuizContent, TypeInQuestion
from quizhub.quiz_session import (
    AttemptState,
    QuestionPhase,
    QuizAttempt,
    experience_reward,
)


def _mc(text, correct="Paris"):
    return MultipleChoiceQuestion(
        text=text, options=("Paris", "paris", "Lyon", "Nice"), correct_answer=correct
    )


def _content(*questions):
    return QuizContent(title="Sample", questions=tuple(questions))


class CountingFetch:
    def __init__(self, content=None, error=None):
        self.content = content
        self.error = error
        self.calls = 0

    def __call__(self, quiz_id):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.content


def _loaded(*questions, awards=None):
    hook = awards.append if awards is not None else None
    attempt = QuizAttempt("quiz-1", on_finished=hook)
    attempt.load(CountingFetch(_content(*questions)))
    return attempt


def _answer_all(attempt, answers):
    for answer in answers:
        if isinstance(answer, int):
            attempt.select_option(answer)
        else:
            attempt.type_answer(answer)
        attempt.check()
        attempt.advance()


@pytest.mark.parametrize(
    "score, total, expected",
    [(5, 5, 100), (3, 5, 30), (0, 5, 0), (0, 0, 50), (1, 1, 60)],
)
def test_experience_reward(score, total, expected):
    assert experience_reward(score, total) == expected


def test_load_starts_at_first_question():
    attempt = _loaded(_mc("Q1"))

    assert attempt.state is AttemptState.IN_PROGRESS
    assert attempt.phase is QuestionPhase.ANSWERING
    assert (attempt.index, attempt.score) == (0, 0)
    assert attempt.title == "Sample"


@pytest.mark.parametrize("error", [NotFoundError("quiz not found"), PersistenceError("down")])
def test_missing_or_unreachable_quiz_is_not_found(error):
    attempt = QuizAttempt("quiz-1")

    assert attempt.load(CountingFetch(error=error)) is AttemptState.NOT_FOUND
    with pytest.raises(InvalidTransition):
        attempt.select_option(0)


def test_multiple_choice_compares_option_text_exactly():
    attempt = _loaded(_mc("Q1"), _mc("Q2"))

    attempt.select_option(1)
    assert attempt.check() is False
    attempt.advance()
    attempt.select_option(0)
    assert attempt.check() is True

    assert attempt.score == 1


def test_type_in_ignores_case_and_surrounding_space():
    attempt = _loaded(TypeInQuestion(text="Capital?", correct_answer="paris "))

    attempt.type_answer(" Paris ")

    assert attempt.check() is True
    assert attempt.score == 1


def test_type_in_mismatch_scores_nothing():
    attempt = _loaded(TypeInQuestion(text="Capital?", correct_answer="Paris"))

    attempt.type_answer("Lyon")

    assert attempt.check() is False
    assert attempt.score == 0
    assert attempt.last_correct is False


def test_check_needs_an_answer():
    attempt = _loaded(_mc("Q1"), TypeInQuestion(text="Q2", correct_answer="x"))

    with pytest.raises(InvalidTransition):
        attempt.check()
    attempt.select_option(0)
    attempt.check()
    attempt.advance()
    attempt.type_answer("   ")
    with pytest.raises(InvalidTransition):
        attempt.check()


def test_answer_kind_must_match_question():
    attempt = _loaded(_mc("Q1"))

    with pytest.raises(InvalidTransition):
        attempt.type_answer("Paris")
    with pytest.raises(InvalidTransition):
        attempt.select_option(4)


def test_cannot_change_answer_once_revealed():
    attempt = _loaded(_mc("Q1"), _mc("Q2"))
    attempt.select_option(0)
    attempt.check()

    with pytest.raises(InvalidTransition):
        attempt.select_option(1)
    with pytest.raises(InvalidTransition):
        attempt.check()


def test_advance_clears_pending_answer():
    attempt = _loaded(_mc("Q1"), _mc("Q2"))
    attempt.select_option(2)
    attempt.check()

    attempt.advance()

    assert attempt.index == 1
    assert attempt.selected_option is None
    assert attempt.phase is QuestionPhase.ANSWERING


def test_finishing_awards_once():
    awards = []
    attempt = _loaded(_mc("Q1"), _mc("Q2"), _mc("Q3"), awards=awards)

    _answer_all(attempt, [0, 0, 2])

    assert attempt.state is AttemptState.FINISHED
    assert attempt.score == 2
    assert attempt.reward == 20
    assert awards == [20]
    with pytest.raises(InvalidTransition):
        attempt.advance()
    assert awards == [20]


def test_retry_resets_without_refetching():
    awards = []
    fetch = CountingFetch(_content(_mc("Q1"), _mc("Q2")))
    attempt = QuizAttempt("quiz-1", on_finished=awards.append)
    attempt.load(fetch)
    _answer_all(attempt, [0, 0])

    attempt.retry()

    assert fetch.calls == 1
    assert attempt.state is AttemptState.IN_PROGRESS
    assert (attempt.index, attempt.score) == (0, 0)
    assert awards == [70]

    _answer_all(attempt, [0, 1])
    assert awards == [70, 10]


def test_retry_only_from_finished():
    attempt = _loaded(_mc("Q1"))

    with pytest.raises(InvalidTransition):
        attempt.retry()


def test_failed_award_does_not_block_finishing():
    def failing_award(amount):
        raise PersistenceError("write failed")

    attempt = QuizAttempt("quiz-1", on_finished=failing_award)
    attempt.load(CountingFetch(_content(_mc("Q1"))))
    attempt.select_option(0)
    attempt.check()

    assert attempt.advance() is AttemptState.FINISHED
    assert attempt.reward == 60


class SlowClearAttempt(QuizAttempt):
    # Widens the window between the phase check and the phase reset.
    def _clear_answer(self):
        time.sleep(0.05)
        super()._clear_answer()


def _race(action, count=2):
    start = threading.Barrier(count)
    outcomes = []

    def _run():
        start.wait()
        try:
            outcomes.append(action())
        except InvalidTransition:
            outcomes.append("rejected")

    threads = [threading.Thread(target=_run) for _ in range(count)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(5)
    return outcomes


def test_concurrent_continue_on_last_question_awards_once():
    awards = []
    attempt = SlowClearAttempt("quiz-1", on_finished=awards.append)
    attempt.load(CountingFetch(_content(_mc("Q1"))))
    attempt.select_option(0)
    attempt.check()

    outcomes = _race(attempt.advance)

    assert sorted(outcomes, key=str) == [AttemptState.FINISHED, "rejected"]
    assert awards == [60]
    assert attempt.xp_awarded == 60


def test_concurrent_check_scores_once():
    attempt = _loaded(_mc("Q1"), _mc("Q2"))
    attempt.select_option(0)

    outcomes = _race(attempt.check)

    assert sorted(outcomes, key=str) == [True, "rejected"]
    assert attempt.score == 1
