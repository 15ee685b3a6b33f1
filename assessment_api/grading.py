"""Scoring rules for auto-gradable question types.

Everything here is pure: callers pass in the question, its options, the
stored response and the test's marking policy (ORM rows or any objects with
the same attributes) and get back a score. ``None`` means the response must
stay unevaluated and wait for a human grader.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Protocol

from assessment_api.models import QuestionType

ZERO = Decimal("0")

AUTO_GRADABLE_TYPES = frozenset(
    {
        QuestionType.SINGLE_CHOICE.value,
        QuestionType.MULTI_CHOICE.value,
        QuestionType.NUMERICAL.value,
    }
)


class GradableQuestion(Protocol):
    type: str
    ans: str | None
    max_score: Decimal
    negative_score: Decimal
    partial_marking: bool


class GradableOption(Protocol):
    id: int
    is_correct: bool
    weight: Decimal


class GradableResponse(Protocol):
    selected_option_ids: Sequence[int] | None
    answer_text: str | None


@dataclass(frozen=True)
class MarkingPolicy:
    allow_negative_marking: bool = False
    allow_partial_marking: bool = False

    @classmethod
    def from_test(cls, test: Any) -> "MarkingPolicy":
        return cls(
            allow_negative_marking=bool(test.allow_negative_marking),
            allow_partial_marking=bool(test.allow_partial_marking),
        )


def is_auto_gradable(question_type: str) -> bool:
    return question_type in AUTO_GRADABLE_TYPES


def _decimal(value: Any) -> Decimal:
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def _parse_number(raw: str | None) -> float | None:
    if raw is None:
        return None
    text = raw.strip()
    if not text:
        return None
    try:
        return float(text)
    except ValueError:
        return None


def grade_single_choice(
    question: GradableQuestion, options: Iterable[GradableOption], selected: Sequence[int]
) -> Decimal:
    correct = next((option for option in options if option.is_correct), None)
    if len(selected) == 1 and correct is not None and selected[0] == correct.id:
        return _decimal(question.max_score)
    if selected:
        return _decimal(question.negative_score)
    return ZERO


def grade_multi_choice(
    question: GradableQuestion,
    options: Iterable[GradableOption],
    selected: Sequence[int],
    policy: MarkingPolicy,
) -> Decimal:
    correct_by_id = {option.id: option for option in options if option.is_correct}
    chosen = set(selected)

    if policy.allow_partial_marking and question.partial_marking:
        max_score = _decimal(question.max_score)
        return sum(
            (_decimal(correct_by_id[option_id].weight) * max_score for option_id in chosen & correct_by_id.keys()),
            ZERO,
        )

    # All-or-nothing: duplicates in the payload count as an over-specified answer.
    if len(selected) == len(chosen) and chosen == correct_by_id.keys():
        return _decimal(question.max_score)
    if selected:
        return _decimal(question.negative_score)
    return ZERO


def grade_numerical(question: GradableQuestion, answer_text: str | None) -> Decimal | None:
    given = _parse_number(answer_text)
    expected = _parse_number(question.ans)
    if given is None or expected is None:
        return None
    if given == expected:
        return _decimal(question.max_score)
    return _decimal(question.negative_score)


def grade_response(
    question: GradableQuestion,
    options: Iterable[GradableOption],
    response: GradableResponse,
    policy: MarkingPolicy,
) -> Decimal | None:
    """Score one response.

    Single-choice: exact hit scores ``max_score``, any other selection scores
    ``negative_score`` (a flat value, not subtracted), nothing selected scores 0.
    Multi-choice: weighted sum over correctly chosen options when both the
    test and the question allow partial marking, all-or-nothing otherwise.
    Numerical: float equality; unparseable input returns ``None``.
    Other types always return ``None``.
    """
    selected = list(response.selected_option_ids or [])

    if question.type == QuestionType.SINGLE_CHOICE.value:
        return grade_single_choice(question, options, selected)
    if question.type == QuestionType.MULTI_CHOICE.value:
        return grade_multi_choice(question, options, selected, policy)
    if question.type == QuestionType.NUMERICAL.value:
        return grade_numerical(question, response.answer_text)
    return None
