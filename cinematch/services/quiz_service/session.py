# services/quiz_service/session.py
"""
Draws a randomized subset of catalog questions for one quiz attempt.
"""

from __future__ import annotations
import random
from typing import List, Optional, Sequence

from . import catalog
from .models import Question, Session

DEFAULT_SESSION_SIZE = 10


def shuffle_questions(questions: Sequence[Question], rng: Optional[random.Random] = None) -> List[Question]:
    """Fisher-Yates shuffle on a copy: walk i from len-1 down to 1, swap with uniform j in [0, i]."""
    rng = rng or random.Random()
    pool = list(questions)
    for i in range(len(pool) - 1, 0, -1):
        j = rng.randint(0, i)
        pool[i], pool[j] = pool[j], pool[i]
    return pool


def start_session(desired_count: int = DEFAULT_SESSION_SIZE, rng: Optional[random.Random] = None) -> Session:
    """
    Start a quiz attempt with min(desired_count, catalog size) distinct questions.
    A non-positive count yields an empty session.
    """
    if desired_count <= 0:
        return Session(())
    shuffled = shuffle_questions(catalog.list_questions(), rng)
    return Session(tuple(shuffled[:desired_count]))
