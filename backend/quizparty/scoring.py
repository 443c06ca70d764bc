from __future__ import annotations

import math
import random
from typing import List

from .models import Player


CORRECT_BASE_POINTS = 100
TIME_BONUS_PER_SECOND = 10
BOT_BONUS_RANGE = (0, 49)

# Bots answer correctly more often when the local player submits than when
# the clock runs out.
BOT_ACCURACY_ON_SUBMIT = 0.6
BOT_ACCURACY_ON_TIMEOUT = 0.5


def human_points(is_correct: bool, time_left: float) -> int:
    if not is_correct:
        return 0
    return CORRECT_BASE_POINTS + math.floor(max(time_left, 0) * TIME_BONUS_PER_SECOND)


def bot_points(is_correct: bool, rng: random.Random) -> int:
    if not is_correct:
        return 0
    return CORRECT_BASE_POINTS + rng.randint(*BOT_BONUS_RANGE)


def apply_result(player: Player, is_correct: bool, points: int) -> Player:
    """Return a copy of ``player`` with one answer's outcome applied.

    Scores never go down; a miss only resets the streak.
    """
    return player.model_copy(
        update={
            "score": player.score + max(points, 0),
            "last_answer_correct": is_correct,
            "streak": player.streak + 1 if is_correct else 0,
        }
    )


def resolve_bots(players: List[Player], accuracy: float, rng: random.Random) -> List[Player]:
    """Draw an independent answer for every bot and score it."""
    resolved = []
    for p in players:
        if p.is_bot:
            is_correct = rng.random() < accuracy
            p = apply_result(p, is_correct, bot_points(is_correct, rng))
        resolved.append(p)
    return resolved
