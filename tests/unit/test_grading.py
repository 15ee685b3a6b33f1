from __future__ import annotations

from decimal import Decimal
from types import SimpleNamespace

import pytest

from assessment_api.grading import MarkingPolicy, grade_response, is_auto_gradable


def _question(type_: str, *, ans=None, max_score="2", negative_score="0.5", partial_marking=False) -> SimpleNamespace:
    return SimpleNamespace(
        type=type_,
        ans=ans,
        max_score=Decimal(max_score),
        negative_score=Decimal(negative_score),
        partial_marking=partial_marking,
    )


def _option(option_id: int, is_correct: bool, weight: str = "0") -> SimpleNamespace:
    return SimpleNamespace(id=option_id, is_correct=is_correct, weight=Decimal(weight))


def _answer(selected=None, text=None) -> SimpleNamespace:
    return SimpleNamespace(selected_option_ids=selected, answer_text=text)


SINGLE_OPTIONS = [_option(1, False), _option(2, True), _option(3, False)]
MULTI_OPTIONS = [_option(10, True, "0.6"), _option(11, True, "0.4"), _option(12, False), _option(13, False)]
PARTIAL = MarkingPolicy(allow_partial_marking=True)
NO_PARTIAL = MarkingPolicy()


@pytest.mark.parametrize(
    ("selected", "expected"),
    [
        ([2], Decimal("2")),
        ([1], Decimal("0.5")),
        ([2, 1], Decimal("0.5")),
        ([2, 2], Decimal("0.5")),
        ([], Decimal("0")),
        (None, Decimal("0")),
    ],
)
def test_single_choice_scores(selected, expected) -> None:
    score = grade_response(_question("scmcq"), SINGLE_OPTIONS, _answer(selected), NO_PARTIAL)
    assert score == expected


def test_single_choice_without_configured_correct_option_treats_selection_as_wrong() -> None:
    options = [_option(1, False), _option(2, False)]
    assert grade_response(_question("scmcq"), options, _answer([1]), NO_PARTIAL) == Decimal("0.5")


def test_negative_score_is_assigned_not_subtracted() -> None:
    question = _question("scmcq", max_score="4", negative_score="1")
    assert grade_response(question, SINGLE_OPTIONS, _answer([3]), NO_PARTIAL) == Decimal("1")


@pytest.mark.parametrize(
    ("selected", "expected"),
    [
        ([10, 11], Decimal("2")),
        ([11, 10], Decimal("2")),
        ([10], Decimal("0.5")),
        ([10, 11, 12], Decimal("0.5")),
        ([10, 10, 11], Decimal("0.5")),
        ([12], Decimal("0.5")),
        ([], Decimal("0")),
    ],
)
def test_multi_choice_all_or_nothing(selected, expected) -> None:
    question = _question("mcmcq", partial_marking=True)
    assert grade_response(question, MULTI_OPTIONS, _answer(selected), NO_PARTIAL) == expected


def test_multi_choice_all_or_nothing_when_question_has_not_opted_in() -> None:
    question = _question("mcmcq", partial_marking=False)
    assert grade_response(question, MULTI_OPTIONS, _answer([10]), PARTIAL) == Decimal("0.5")


@pytest.mark.parametrize(
    ("selected", "expected"),
    [
        ([10], Decimal("6.0")),
        ([10, 12], Decimal("6.0")),
        ([10, 11], Decimal("10.0")),
        ([10, 11, 12, 13], Decimal("10.0")),
        ([12, 13], Decimal("0")),
        ([], Decimal("0")),
        ([10, 10], Decimal("6.0")),
    ],
)
def test_multi_choice_partial_marking_ignores_wrong_selections(selected, expected) -> None:
    question = _question("mcmcq", max_score="10", negative_score="3", partial_marking=True)
    assert grade_response(question, MULTI_OPTIONS, _answer(selected), PARTIAL) == expected


def test_partial_marking_sums_exactly_in_decimal() -> None:
    options = [_option(i, True, "0.1") for i in range(1, 11)]
    question = _question("mcmcq", max_score="3", partial_marking=True)
    score = grade_response(question, options, _answer(list(range(1, 11))), PARTIAL)
    assert isinstance(score, Decimal)
    assert score == Decimal("3")


@pytest.mark.parametrize(
    ("ans", "text", "expected"),
    [
        ("3.14", "3.14", Decimal("2")),
        ("3.14", "3.140", Decimal("2")),
        ("42", " 42 ", Decimal("2")),
        ("1e3", "1000", Decimal("2")),
        ("3.14", "3.15", Decimal("0.5")),
        ("3.14", "pi", None),
        ("3.14", "", None),
        ("3.14", None, None),
        (None, "3.14", None),
        ("about three", "3", None),
    ],
)
def test_numerical_scores_or_defers(ans, text, expected) -> None:
    question = _question("numerical", ans=ans)
    assert grade_response(question, [], _answer(text=text), NO_PARTIAL) == expected


@pytest.mark.parametrize("type_", ["text", "file_upload"])
def test_manual_types_are_never_auto_graded(type_: str) -> None:
    question = _question(type_, ans="anything")
    assert grade_response(question, SINGLE_OPTIONS, _answer([2], "anything"), PARTIAL) is None
    assert not is_auto_gradable(type_)


def test_auto_gradable_types() -> None:
    assert all(is_auto_gradable(type_) for type_ in ("scmcq", "mcmcq", "numerical"))


def test_marking_policy_reads_test_flags() -> None:
    policy = MarkingPolicy.from_test(SimpleNamespace(allow_negative_marking=True, allow_partial_marking=False))
    assert policy == MarkingPolicy(allow_negative_marking=True, allow_partial_marking=False)
