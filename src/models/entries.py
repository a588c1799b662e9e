"""
Data models for time entries, intake rows and directory references.

Engine-side shapes are dataclasses; what goes over the wire to the upstream
API is described with TypedDict.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, TypedDict


class ReferenceKind(str, Enum):
    PROJECT = "project"
    TASK = "task"
    TAG = "tag"


# =============================================================================
# REFERENCES
# =============================================================================


@dataclass(frozen=True)
class ById:
    """A reference the caller already knows the upstream ID of."""

    id: str


@dataclass(frozen=True)
class ByName:
    """A reference given as a human-readable name, resolved later."""

    name: str


RefSpec = ById | ByName


def ref_from_fields(id_value: str | None, name_value: str | None) -> RefSpec | None:
    """Build a RefSpec from an (id, name) column pair. The ID wins if both are set."""
    if id_value and str(id_value).strip():
        return ById(str(id_value).strip())
    if name_value and str(name_value).strip():
        return ByName(str(name_value).strip())
    return None


def normalize_name(name: str) -> str:
    """Matching key for directory names: trimmed, case-folded."""
    return name.strip().lower()


@dataclass(frozen=True)
class Reference:
    """A Project, Task or Tag that exists upstream."""

    id: str
    name: str
    parent_id: str | None = None

    @classmethod
    def from_api(cls, data: dict[str, Any], parent_id: str | None = None) -> "Reference":
        return cls(id=data["id"], name=data.get("name", ""), parent_id=data.get("projectId") or parent_id)


@dataclass(frozen=True)
class ResolveResult:
    """Outcome of checking a batch of names against the directory."""

    existing: tuple[Reference, ...] = ()
    missing: tuple[str, ...] = ()

    @property
    def ok(self) -> bool:
        return not self.missing

    def id_for(self, name: str) -> str | None:
        key = normalize_name(name)
        for ref in self.existing:
            if normalize_name(ref.name) == key:
                return ref.id
        return None

    def summary(self) -> str:
        if not self.missing:
            return f"validated: {len(self.existing)}"
        return f"validated: {len(self.existing)}, missing: [{', '.join(self.missing)}]"


# Per-stage verification snapshot in the bulk-intake workflow
VerificationState = ResolveResult


# =============================================================================
# TIME ENTRIES
# =============================================================================


@dataclass
class TimeEntry:
    """A time entry as held by the upstream service."""

    id: str
    start: datetime
    end: datetime | None = None
    description: str | None = None
    project_id: str | None = None
    task_id: str | None = None
    tag_ids: list[str] = field(default_factory=list)
    billable: bool = False
    user_id: str | None = None

    @property
    def is_running(self) -> bool:
        return self.end is None

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "TimeEntry":
        interval = data.get("timeInterval") or {}
        start = interval.get("start") or data.get("start")
        end = interval.get("end") or data.get("end")
        return cls(
            id=data["id"],
            start=_parse_wire_instant(start),
            end=_parse_wire_instant(end) if end else None,
            description=data.get("description") or None,
            project_id=data.get("projectId"),
            task_id=data.get("taskId"),
            tag_ids=list(data.get("tagIds") or []),
            billable=bool(data.get("billable", False)),
            user_id=data.get("userId"),
        )


def _parse_wire_instant(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


@dataclass
class CandidateRow:
    """
    Pre-validated intake row.

    start/end may still be naive local strings; project/task may be names;
    tags may be free-text labels. Never sent upstream in this form.
    """

    index: int
    description: str | None = None
    start: str | datetime | None = None
    end: str | datetime | None = None
    project: RefSpec | None = None
    task: RefSpec | None = None
    tags: list[str] | None = None
    tag_ids: list[str] | None = None
    billable: bool | None = None
    user_id: str | None = None
    entry_id: str | None = None

    @property
    def is_new(self) -> bool:
        return not self.entry_id

    @property
    def project_name(self) -> str | None:
        return self.project.name if isinstance(self.project, ByName) else None

    @property
    def task_name(self) -> str | None:
        return self.task.name if isinstance(self.task, ByName) else None

    def with_changes(self, **changes) -> "CandidateRow":
        return replace(self, **changes)


class TimeEntryPayload(TypedDict, total=False):
    """Body accepted by the upstream time-entry endpoints."""

    id: str
    description: str
    start: str
    end: str
    projectId: str
    taskId: str
    tagIds: list[str]
    billable: bool
    type: str


@dataclass(frozen=True)
class Progress:
    """Reported to on_progress callbacks after each row or batch."""

    completed: int
    total: int
    last_error: str | None = None
