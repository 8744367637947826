"""Bulk import of questions from spreadsheets or a human-friendly text file.

Spreadsheet layout (.xlsx, first sheet, first row is a header):

    | Question | Answer 1 | Answer 2 | Answer 3 | Answer 4 | Correct (1-4) | Explanation |

The explanation column is optional.

Text layout (repeat blocks separated by blank lines or '---'):

    Q: Question text. Additional lines until the next marker are treated as
       part of the question.
    A: First answer
    B: Second answer
    C: Third answer
    D: Fourth answer
    CORRECT: A|B|C|D
    EXPLANATION: optional text shown after the attempt

Both parsers produce ImportedQuestionRow values; mapping the 1-based correct
index onto the stored correct/wrong answers happens in the catalog.
"""

from __future__ import annotations

from dataclasses import dataclass
from io import BytesIO
import logging
from pathlib import Path
from typing import Any
from zipfile import BadZipFile

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from quiz_platform.core.errors import QuestionImportError
from quiz_platform.core.models import ImportedQuestionRow

logger = logging.getLogger(__name__)

_OPTION_ORDER = ["A", "B", "C", "D"]
_WORKBOOK_SUFFIXES = {".xlsx", ".xlsm"}
_TEXT_SUFFIXES = {".txt"}


@dataclass(slots=True)
class ImportedBank:
    """Container for the parsed rows and where they came from."""

    source_name: str
    rows: list[ImportedQuestionRow]


def parse_upload(filename: str, content: bytes) -> ImportedBank:
    """Parse an uploaded import file, choosing the format from its extension."""
    suffix = Path(filename).suffix.lower()
    if suffix in _WORKBOOK_SUFFIXES:
        rows = _parse_workbook(content)
    elif suffix in _TEXT_SUFFIXES:
        try:
            text = content.decode("utf-8-sig")
        except UnicodeDecodeError as exc:
            raise QuestionImportError("Text files must be UTF-8 encoded.") from exc
        rows = _parse_quiz_text(text)
    elif suffix == ".xls":
        raise QuestionImportError("Legacy .xls workbooks are not supported; save the file as .xlsx.")
    else:
        raise QuestionImportError(f"Unsupported file type '{suffix or filename}'. Use .xlsx or .txt.")

    if not rows:
        raise QuestionImportError("Import file did not contain any questions.")
    logger.info("Parsed %d question(s) from %s", len(rows), filename)
    return ImportedBank(source_name=filename, rows=rows)


# --- Spreadsheets ---


def _parse_workbook(content: bytes) -> list[ImportedQuestionRow]:
    try:
        workbook = load_workbook(BytesIO(content), read_only=True, data_only=True)
    except (BadZipFile, InvalidFileException, KeyError, OSError, ValueError) as exc:
        raise QuestionImportError("File is not a readable .xlsx workbook.") from exc

    try:
        sheet = workbook.active
        rows: list[ImportedQuestionRow] = []
        header_seen = False
        for row_number, values in enumerate(sheet.iter_rows(values_only=True), start=1):
            cells = [_cell_text(value) for value in values]
            if not any(cells):
                continue
            if not header_seen:
                header_seen = True
                continue
            rows.append(_parse_sheet_row(row_number, cells))
        return rows
    finally:
        workbook.close()


def _parse_sheet_row(row_number: int, cells: list[str]) -> ImportedQuestionRow:
    cells = cells + [""] * (7 - len(cells))
    question_text = cells[0]
    answers = tuple(cells[1:5])
    if not question_text:
        raise QuestionImportError(f"Row {row_number}: question text is empty.")
    if any(not answer for answer in answers):
        raise QuestionImportError(f"Row {row_number}: all four answers are required.")
    correct_index = _parse_correct_index(row_number, cells[5])
    return ImportedQuestionRow(
        question_text=question_text,
        answers=answers,  # type: ignore[arg-type]
        correct_index=correct_index,
        explanation=cells[6] or None,
    )


def _parse_correct_index(row_number: int, raw_value: str) -> int:
    if raw_value.upper() in _OPTION_ORDER:
        return _OPTION_ORDER.index(raw_value.upper()) + 1
    try:
        value = int(float(raw_value))
    except ValueError as exc:
        raise QuestionImportError(f"Row {row_number}: correct answer must be a number from 1 to 4.") from exc
    if not 1 <= value <= 4:
        raise QuestionImportError(f"Row {row_number}: correct answer must be a number from 1 to 4.")
    return value


def _cell_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


# --- Text format ---


def _parse_quiz_text(text: str) -> list[ImportedQuestionRow]:
    blocks: list[str] = []
    current_block: list[str] = []
    for raw_line in text.splitlines():
        stripped = raw_line.strip()
        if stripped == "---":
            if current_block:
                blocks.append("\n".join(current_block).strip())
                current_block = []
            continue
        if stripped:
            current_block.append(raw_line)
        elif current_block:
            blocks.append("\n".join(current_block).strip())
            current_block = []
    if current_block:
        blocks.append("\n".join(current_block).strip())

    return [_parse_block(number, block) for number, block in enumerate(blocks, start=1) if block]


def _parse_block(number: int, block: str) -> ImportedQuestionRow:
    question_lines: list[str] = []
    explanation_lines: list[str] = []
    options: dict[str, str] = {}
    correct_letter: str | None = None
    current_section: str | None = None

    for raw_line in block.splitlines():
        line = raw_line.strip()
        if not line:
            continue

        upper = line.upper()
        if upper.startswith("Q:"):
            question_lines = [line[2:].strip()]
            current_section = "Q"
            continue

        if upper.startswith("CORRECT:"):
            correct_letter = line.split(":", 1)[1].strip().upper()
            current_section = None
            continue

        if upper.startswith("EXPLANATION:"):
            explanation_lines = [line.split(":", 1)[1].strip()]
            current_section = "EXPLANATION"
            continue

        if len(line) > 2 and line[0].upper() in _OPTION_ORDER and line[1] == ":":
            letter = line[0].upper()
            options[letter] = line[2:].strip()
            current_section = letter
            continue

        if current_section == "Q":
            question_lines.append(line)
        elif current_section == "EXPLANATION":
            explanation_lines.append(line)
        elif current_section in _OPTION_ORDER:
            options[current_section] = options[current_section] + f"\n{line}"
        else:
            raise QuestionImportError(
                f"Question {number}: text outside of a known section: '{line}'."
            )

    question_text = "\n".join(question_lines).strip()
    if not question_text:
        raise QuestionImportError(f"Question {number}: question text missing (Q: ...).")
    if len(options) != 4:
        raise QuestionImportError(f"Question {number}: exactly four answers (A-D) are required.")

    answers = tuple(options[letter].strip() for letter in _OPTION_ORDER)
    if any(not answer for answer in answers):
        raise QuestionImportError(f"Question {number}: answer text cannot be empty.")
    if correct_letter is None:
        raise QuestionImportError(f"Question {number}: CORRECT is required.")
    if correct_letter not in _OPTION_ORDER:
        raise QuestionImportError(f"Question {number}: CORRECT must be one of A, B, C, or D.")

    explanation = "\n".join(explanation_lines).strip()
    return ImportedQuestionRow(
        question_text=question_text,
        answers=answers,  # type: ignore[arg-type]
        correct_index=_OPTION_ORDER.index(correct_letter) + 1,
        explanation=explanation or None,
    )
