from __future__ import annotations

import asyncio
import json
import logging
import re
import uuid
from typing import Any, List, Optional

from openai import OpenAI

from .db import settings
from .models import Question, QuestionType

logger = logging.getLogger(__name__)

_FENCE = re.compile(r"```(?:json)?\s*([\s\S]*?)```")

SYSTEM_PROMPT = (
    "You write questions for a party trivia game. "
    "Reply with a JSON array only, no prose."
)


def build_prompt(category: str, count: int) -> str:
    return (
        f'Generate {count} trivia questions about "{category}".\n'
        "The questions should be challenging but fun.\n"
        "Provide 4 options for each question.\n"
        "Indicate the index (0-3) of the correct answer.\n"
        "Also provide a short fun fact explanation.\n\n"
        "Return a JSON array of objects with the keys:\n"
        "- text: the question text\n"
        "- options: array of 4 string options\n"
        "- correctIndex: number 0-3 indicating the correct answer\n"
        "- explanation: short explanation"
    )


def mock_questions(category: str, count: int, start: int = 0) -> List[Question]:
    slug = category.lower().replace(" ", "-")
    return [
        Question(
            id=f"mock-{slug}-{i}",
            category=category,
            text=f"This is a mock question #{i + 1} about {category} because the API key is missing or failed.",
            options=["Option A", "Option B", "Option C", "Option D"],
            correct_index=0,
            explanation="This is a fallback explanation.",
        )
        for i in range(start, start + count)
    ]


def parse_questions(raw: str, category: str) -> List[Question]:
    """Turn a model reply into questions. Raises ValueError on malformed output."""
    match = _FENCE.search(raw)
    payload = json.loads((match.group(1) if match else raw).strip())
    if not isinstance(payload, list):
        raise ValueError("Response is not a JSON array")

    questions = []
    for item in payload:
        if not isinstance(item, dict):
            continue
        options = item.get("options")
        if not isinstance(options, list) or len(options) < 2:
            options = ["A", "B", "C", "D"]
        options = [str(o) for o in options]
        correct = item.get("correctIndex")
        if not isinstance(correct, int) or not 0 <= correct < len(options):
            correct = 0
        questions.append(
            Question(
                id=f"{category.lower().replace(' ', '-')}-{uuid.uuid4().hex[:12]}",
                category=category,
                text=str(item.get("text") or "Unknown Question"),
                options=options,
                correct_index=correct,
                explanation=str(item.get("explanation") or "No explanation provided."),
                type=QuestionType.MULTIPLE_CHOICE,
            )
        )
    return questions


class QuestionProvider:
    """Generates trivia questions with an OpenAI chat model.

    ``generate`` never raises: a missing key, an API error or an unusable
    reply all fall back to deterministic mock questions, and the result always
    holds exactly ``count`` items.
    """

    def __init__(self, client: Optional[Any] = None, model: Optional[str] = None):
        if client is None and settings.OPENAI_API_KEY:
            client = OpenAI(api_key=settings.OPENAI_API_KEY)
        self._client = client
        self._model = model or settings.AI_MODEL

    def _complete(self, category: str, count: int) -> str:
        resp = self._client.chat.completions.create(
            model=self._model,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": build_prompt(category, count)},
            ],
            temperature=0.8,
        )
        content = resp.choices[0].message.content
        if not content:
            raise ValueError("Empty response from model")
        return content

    async def generate(self, category: str, count: int) -> List[Question]:
        if count <= 0:
            return []
        if self._client is None:
            logger.warning("No API key configured, using mock questions for %s", category)
            return mock_questions(category, count)

        try:
            raw = await asyncio.to_thread(self._complete, category, count)
            questions = parse_questions(raw, category)
        except Exception:
            logger.exception("Question generation failed for %s, using mock questions", category)
            return mock_questions(category, count)

        if len(questions) < count:
            logger.warning("Model returned %d of %d questions for %s", len(questions), count, category)
            questions += mock_questions(category, count - len(questions), start=len(questions))
        return questions[:count]
