from __future__ import annotations

import logging
import random
from typing import List, Optional, Sequence

from .catalog import CATEGORIES
from .models import Category, RoundConfig
from .provider import QuestionProvider

logger = logging.getLogger(__name__)


def pick_categories(
    rounds: int, rng: random.Random, catalog: Sequence[Category] = CATEGORIES
) -> List[Category]:
    """Choose one category per round, without repeats while the catalog lasts."""
    picked = rng.sample(list(catalog), min(rounds, len(catalog)))
    while len(picked) < rounds:
        picked.append(rng.choice(catalog))
    return picked


async def build_rounds_config(
    provider: QuestionProvider,
    rounds: int,
    questions_per_round: int,
    rng: random.Random,
    catalog: Sequence[Category] = CATEGORIES,
) -> List[RoundConfig]:
    """Assemble the full round plan before play begins.

    Nothing is returned until every round has its questions, so a failure
    part way through leaves the caller's existing plan untouched.
    """
    if rounds < 1 or questions_per_round < 1:
        raise ValueError("rounds and questions_per_round must be at least 1")

    plan: List[RoundConfig] = []
    for number, category in enumerate(pick_categories(rounds, rng, catalog), start=1):
        questions = await provider.generate(category.name, questions_per_round)
        if len(questions) != questions_per_round:
            raise ValueError(
                f"Provider returned {len(questions)} questions for {category.name}, "
                f"expected {questions_per_round}"
            )
        plan.append(RoundConfig(round_number=number, category=category, questions=questions))
    return plan


async def regenerate_question(
    rounds_config: List[RoundConfig],
    provider: QuestionProvider,
    category_id: str,
    index: int,
) -> Optional[List[RoundConfig]]:
    """Swap one question for a freshly generated one.

    Returns the updated plan, or ``None`` when nothing changed; failures are
    logged and never raised so the review screen stays usable.
    """
    round_idx = next(
        (i for i, rc in enumerate(rounds_config) if rc.category.id == category_id), None
    )
    if round_idx is None:
        logger.warning("Regenerate: no round uses category %s", category_id)
        return None

    target = rounds_config[round_idx]
    if not 0 <= index < len(target.questions):
        logger.warning("Regenerate: question %d out of range for %s", index, category_id)
        return None

    try:
        fresh = await provider.generate(target.category.name, 1)
    except Exception:
        logger.exception("Regenerate: provider failed for %s", category_id)
        return None
    if not fresh:
        logger.warning("Regenerate: provider returned nothing for %s", category_id)
        return None

    questions = list(target.questions)
    questions[index] = fresh[0]
    updated = list(rounds_config)
    updated[round_idx] = target.model_copy(update={"questions": questions})
    return updated
