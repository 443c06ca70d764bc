from __future__ import annotations

import math
from typing import Any, List, Sequence

from .models import Question, QuestionType

Answer = Any  # int index, free text, slider number or an ordering of options


def evaluate_answer(question: Question, answer: Answer) -> bool:
    """Return whether ``answer`` is correct for ``question``.

    Pure: depends only on the two arguments. An answer of the wrong shape for
    the question type is simply incorrect.
    """
    if question.type in (QuestionType.MULTIPLE_CHOICE, QuestionType.TRUE_FALSE):
        return _is_index(answer) and answer == question.correct_index
    if question.type == QuestionType.TYPE_ANSWER:
        return _matches_accepted(question.options, answer)
    if question.type == QuestionType.SLIDER:
        return _within_slider_range(question.options, answer)
    if question.type == QuestionType.PUZZLE:
        return _is_canonical_order(question.options, answer)
    return False


def slider_bounds(options: Sequence[str]) -> tuple[float, float]:
    # [min, max, step, correct_low, correct_high]
    return float(options[3]), float(options[4])


def _is_index(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _matches_accepted(accepted: List[str], answer: Any) -> bool:
    if not isinstance(answer, str):
        return False
    given = answer.strip().lower()
    return bool(given) and any(given == a.strip().lower() for a in accepted)


def _within_slider_range(options: List[str], answer: Any) -> bool:
    if isinstance(answer, bool) or not isinstance(answer, (int, float, str)):
        return False
    try:
        value = float(answer)
        low, high = slider_bounds(options)
    except (ValueError, IndexError):
        return False
    if math.isnan(value):
        return False
    return low <= value <= high


def _is_canonical_order(options: List[str], answer: Any) -> bool:
    if isinstance(answer, (str, bytes)) or not isinstance(answer, Sequence):
        return False
    return list(answer) == list(options)
