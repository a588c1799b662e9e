"""
Parse bulk-intake tables into candidate rows.

Input is CSV pasted by an operator or produced by an assistant (which likes
to wrap it in markdown fences), or a list of dicts from manual table edits.
"""

import csv
import io
import json
import re
from typing import Any

from core.config import REQUIRED_HEADERS, TAG_SEPARATORS, TRUTHY_VALUES
from core.errors import InvalidIntake
from models.entries import CandidateRow, ref_from_fields

FENCE_RE = re.compile(r"^\s*```[\w-]*\s*$")

# Lowercased header -> canonical field name
HEADER_ALIASES = {
    "id": "id",
    "entryid": "id",
    "description": "description",
    "start": "start",
    "end": "end",
    "projectid": "projectId",
    "projectname": "projectName",
    "project": "projectName",
    "taskid": "taskId",
    "taskname": "taskName",
    "task": "taskName",
    "tags": "tags",
    "tagids": "tagIds",
    "billable": "billable",
    "userid": "userId",
}


def strip_code_fences(text: str) -> str:
    lines = text.strip().splitlines()
    if lines and FENCE_RE.match(lines[0]):
        lines = lines[1:]
    if lines and FENCE_RE.match(lines[-1]):
        lines = lines[:-1]
    return "\n".join(lines)


def _canonical(header: str) -> str | None:
    key = re.sub(r"[\s_-]", "", (header or "").strip().lower())
    return HEADER_ALIASES.get(key)


def _text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def parse_list(value: Any) -> list[str] | None:
    """Tags cell: a JSON list, or labels split on ',', ';' or '|'."""
    if value is None:
        return None
    if isinstance(value, (list, tuple)):
        items = [str(v).strip() for v in value]
    else:
        text = str(value).strip()
        if not text:
            return None
        items = None
        if text.startswith("["):
            try:
                decoded = json.loads(text)
            except json.JSONDecodeError:
                decoded = None
            if isinstance(decoded, list):
                items = [str(v).strip() for v in decoded]
        if items is None:
            items = [part.strip() for part in re.split(TAG_SEPARATORS, text)]
    return [item for item in items if item]


def parse_bool(value: Any) -> bool | None:
    if value is None or isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if not text:
        return None
    return text in TRUTHY_VALUES


def row_from_mapping(index: int, mapping: dict[str, Any]) -> CandidateRow:
    fields: dict[str, Any] = {}
    for header, value in mapping.items():
        name = _canonical(header)
        if name and name not in fields:
            fields[name] = value

    return CandidateRow(
        index=index,
        description=_text(fields.get("description")),
        start=_text(fields.get("start")),
        end=_text(fields.get("end")),
        project=ref_from_fields(_text(fields.get("projectId")), _text(fields.get("projectName"))),
        task=ref_from_fields(_text(fields.get("taskId")), _text(fields.get("taskName"))),
        tags=parse_list(fields.get("tags")),
        tag_ids=parse_list(fields.get("tagIds")),
        billable=parse_bool(fields.get("billable")),
        user_id=_text(fields.get("userId")),
        entry_id=_text(fields.get("id")),
    )


def _is_blank(mapping: dict[str, Any]) -> bool:
    return all(_text(v) is None for k, v in mapping.items() if k is not None)


def parse_csv(text: str) -> list[CandidateRow]:
    """
    Parse a CSV table with a header row into candidate rows.

    Rows are numbered from 1 in data order; blank lines are skipped and do
    not consume a number.

    Raises:
        InvalidIntake: empty input or a required column is missing.
    """
    body = strip_code_fences(text or "")
    if not body.strip():
        raise InvalidIntake("CSV input is empty")

    reader = csv.DictReader(io.StringIO(body), skipinitialspace=True)
    headers = {_canonical(h) for h in reader.fieldnames or []}
    missing = [h for h in REQUIRED_HEADERS if h not in headers]
    if missing:
        raise InvalidIntake(
            f"CSV is missing required columns: {', '.join(missing)}",
            {"missing": missing, "found": list(reader.fieldnames or [])},
        )

    rows = []
    for record in reader:
        if _is_blank(record):
            continue
        rows.append(row_from_mapping(len(rows) + 1, record))
    return rows


def rows_from_records(records: list[dict[str, Any]]) -> list[CandidateRow]:
    """Same mapping as parse_csv for rows already in dict form."""
    rows = []
    for record in records:
        if not isinstance(record, dict):
            raise InvalidIntake(f"Expected a mapping per row, got {type(record).__name__}")
        if _is_blank(record):
            continue
        rows.append(row_from_mapping(len(rows) + 1, record))
    return rows
