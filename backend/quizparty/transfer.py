"""CSV import and export of question sets, plus Google Sheet download."""

from __future__ import annotations

import csv
import io
import logging
import re
from typing import Dict, List, Optional

import httpx
from pydantic import BaseModel, Field

from .catalog import find_category
from .models import Category, Question, QuestionType, RoundConfig

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = ("category", "question", "option1", "correctanswer")
OPTION_COLUMNS = ("option1", "option2", "option3", "option4", "option5")
EXPORT_HEADER = [
    "type", "category", "question",
    "option1", "option2", "option3", "option4", "option5",
    "correctAnswer", "explanation",
]

SHEET_ID_RE = re.compile(r"spreadsheets/d/([a-zA-Z0-9_-]+)")
GID_RE = re.compile(r"gid=([0-9]+)")
SHEET_TIMEOUT_SEC = 10.0


class ImportFormatError(ValueError):
    pass


class CategoryContent(BaseModel):
    category: Category
    questions: List[Question] = Field(default_factory=list)


def _category_for(name: str) -> Category:
    return find_category(name) or Category(
        id=name.lower().replace(" ", ""),
        name=name,
        icon="❓",
        color="bg-slate-500",
    )


def _row_to_question(row: Dict[str, str], row_number: int) -> Question | None:
    category = row.get("category", "")
    text = row.get("question", "")
    answer = row.get("correctanswer", "")
    options = [row[c] for c in OPTION_COLUMNS if row.get(c)]
    explanation = row.get("explanation") or "No explanation provided."

    if not category or not text or not options or not answer:
        logger.warning("Skipping incomplete row %d", row_number)
        return None

    type_name = row.get("type", "").upper()
    if type_name in QuestionType.__members__:
        qtype = QuestionType[type_name]
    elif not type_name and len(options) == 2 and {o.lower() for o in options} == {"true", "false"}:
        qtype = QuestionType.TRUE_FALSE
    else:
        qtype = QuestionType.MULTIPLE_CHOICE

    correct_index = 0
    if qtype == QuestionType.TRUE_FALSE:
        options = ["True", "False"]
        correct_index = 0 if answer.lower() == "true" else 1
    elif qtype == QuestionType.SLIDER:
        options = options[:5]
        try:
            [float(o) for o in options]
        except ValueError:
            logger.warning("Skipping slider row %d with non-numeric options", row_number)
            return None
        if len(options) != 5:
            logger.warning("Skipping slider row %d: expected min, max, step, low, high", row_number)
            return None
    elif qtype == QuestionType.MULTIPLE_CHOICE:
        lowered = [o.lower() for o in options]
        if answer.lower() in lowered:
            correct_index = lowered.index(answer.lower())
        else:
            logger.warning(
                'Correct answer "%s" not found in options for row %d. Defaulting to first option.',
                answer,
                row_number,
            )
    # TYPE_ANSWER keeps every option as an accepted answer, PUZZLE keeps them in order.

    return Question(
        id=f"import-{category}-{row_number}",
        category=category,
        text=text,
        options=options,
        correct_index=correct_index,
        explanation=explanation,
        type=qtype,
    )


def parse_import_data(csv_data: str) -> Dict[str, CategoryContent]:
    """Parse CSV question data grouped by category id, in order of first appearance.

    Raises ImportFormatError when the header lacks a required column or no
    row yields a usable question; incomplete rows are skipped.
    """
    rows = [r for r in csv.reader(io.StringIO(csv_data.strip()), skipinitialspace=True) if any(r)]
    if len(rows) < 2:
        raise ImportFormatError("Import data must have a header and at least one question row.")

    header = ["".join(h.lower().split()) for h in rows[0]]
    for col in REQUIRED_COLUMNS:
        if col not in header:
            raise ImportFormatError(f"Missing required column: {col}. Please check your file header.")

    grouped: Dict[str, CategoryContent] = {}
    for row_number, values in enumerate(rows[1:], start=2):
        row = {name: (values[i].strip() if i < len(values) else "") for i, name in enumerate(header)}
        question = _row_to_question(row, row_number)
        if question is None:
            continue
        category = _category_for(question.category)
        grouped.setdefault(category.id, CategoryContent(category=category)).questions.append(question)

    if not grouped:
        raise ImportFormatError("No valid questions could be parsed from the data.")
    return grouped


def sheet_export_url(url: str) -> str:
    """Map a Google Sheet share link to its CSV export link."""
    if "docs.google.com/spreadsheets/d/" not in url:
        raise ImportFormatError("Invalid Google Sheet URL.")
    sheet_id = SHEET_ID_RE.search(url)
    if sheet_id is None:
        raise ImportFormatError("Could not extract Sheet ID from the URL.")
    gid = GID_RE.search(url)
    return (
        f"https://docs.google.com/spreadsheets/d/{sheet_id.group(1)}"
        f"/export?format=csv&gid={gid.group(1) if gid else '0'}"
    )


async def fetch_google_sheet(url: str, client: Optional[httpx.AsyncClient] = None) -> str:
    """Download a public Google Sheet as CSV text.

    Raises ImportFormatError for a malformed link, a non-OK status or a
    network failure.
    """
    export_url = sheet_export_url(url)
    try:
        if client is None:
            async with httpx.AsyncClient(timeout=SHEET_TIMEOUT_SEC, follow_redirects=True) as own:
                response = await own.get(export_url)
        else:
            response = await client.get(export_url)
    except httpx.HTTPError as exc:
        logger.warning("Fetching sheet %s failed: %s", export_url, exc)
        raise ImportFormatError(f"Failed to fetch from Google Sheet: {exc}") from exc

    if not response.is_success:
        raise ImportFormatError(
            f"Failed to fetch from Google Sheet. Status: {response.status_code}. "
            "Make sure the sheet is public ('Anyone with the link can view')."
        )
    return response.text


def _correct_answer_text(q: Question) -> str:
    if q.type == QuestionType.SLIDER:
        return f"{q.options[3]}-{q.options[4]}"
    if q.type == QuestionType.TYPE_ANSWER:
        return q.options[0]
    if q.type == QuestionType.PUZZLE:
        return "|".join(q.options)
    return q.options[q.correct_index]


def export_rounds_to_csv(rounds_config: List[RoundConfig]) -> str:
    out = io.StringIO()
    writer = csv.writer(out, lineterminator="\n")
    writer.writerow(EXPORT_HEADER)
    for rc in rounds_config:
        for q in rc.questions:
            options = (list(q.options) + [""] * 5)[:5]
            writer.writerow(
                [q.type.value, rc.category.name, q.text, *options, _correct_answer_text(q), q.explanation]
            )
    return out.getvalue().rstrip("\n")
