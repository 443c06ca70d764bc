import logging
import time
from typing import List

from .models import Player


def now_ts() -> float:
    return time.time()


def sort_leaderboard(players: List[Player]) -> List[Player]:
    return sorted(players, key=lambda p: (-p.score, p.name.lower()))


def configure_logging(level: str = "INFO") -> logging.Logger:
    logger = logging.getLogger("backend.quizparty")
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
        logger.addHandler(handler)
    logger.setLevel(level.upper())
    return logger
