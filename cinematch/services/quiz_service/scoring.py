# services/quiz_service/scoring.py
"""
Converts a completed answer set into a ranked category breakdown.

Rounding: percentages are rounded half away from zero to one decimal
(count / total * 1000, rounded to an integer, then / 10). Counts are never
negative so this equals half-up. `decimal` keeps it exact, e.g. 1/8 = 12.5%
and 1/16 = 6.25% -> 6.3%.
"""

from __future__ import annotations
from collections import Counter
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, List, Optional, Sequence

from cinematch.errors import IncompleteAnswerError
from . import catalog
from .models import BreakdownEntry, QuizResult, Session


def percentage_of(count: int, total: int) -> float:
    """count/total as a percentage with one decimal, half away from zero."""
    if total <= 0:
        return 0.0
    permille = (Decimal(count) * 1000 / Decimal(total)).quantize(Decimal(1), rounding=ROUND_HALF_UP)
    return float(permille / 10)


def _count_answers(answers: Sequence[Optional[str]]) -> Dict[str, int]:
    counts: Counter = Counter()
    for i, category_id in enumerate(answers):
        if category_id is None or category_id == "":
            raise IncompleteAnswerError(
                "Answer every question before continuing.",
                {"missing_index": i},
            )
        catalog.get_category(category_id)
        counts[category_id] += 1
    return counts


def build_breakdown(counts: Dict[str, int], total: int) -> List[BreakdownEntry]:
    """
    One entry per catalog category with a non-zero count, sorted by
    percentage descending. sorted() is stable and the input is in catalog
    order, so ties keep declaration order.
    """
    entries = []
    for category in catalog.list_categories():
        count = int(counts.get(category.id, 0))
        if count <= 0:
            continue
        entries.append(BreakdownEntry(category, count, percentage_of(count, total)))
    return sorted(entries, key=lambda e: e.percentage, reverse=True)


def tally(answers: Sequence[Optional[str]]) -> QuizResult:
    """Score a bare answer list. Used server-side when a submission carries no breakdown."""
    counts = _count_answers(answers)
    total = len(answers)
    breakdown = build_breakdown(counts, total)
    return QuizResult(answers=tuple(answers), breakdown=tuple(breakdown), total_answers=total)


def score(session: Session, answers: Sequence[Optional[str]]) -> QuizResult:
    """
    Score a completed session.

    Raises IncompleteAnswerError if the answer count does not match the
    session or any answer is missing, UnknownCategoryError for ids outside
    the catalog.
    """
    if len(answers) != len(session.questions):
        raise IncompleteAnswerError(
            "Answer every question before continuing.",
            {"answered": len(answers), "total_questions": len(session.questions)},
        )
    return tally(answers)
