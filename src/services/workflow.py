"""
Bulk-intake verification workflow.

Stages run in a fixed order, each one started by the operator:

    Parsed -> ProjectsVerified -> TasksVerified -> PreviewReady -> Committed

A stage that finds missing references keeps the workflow where it is and
carries the check result, so the operator can create the missing objects
(or edit rows) and verify again. Rows are never dropped: a row that cannot
be resolved stays in the working set with its problem flagged.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable

from core.config import PREVIEW_ROWS
from core.errors import (
    InvalidTimestamp,
    RateLimited,
    RemoteApiError,
    TimeOrderingError,
    UnresolvedReference,
    WorkflowStateError,
)
from core.timezones import format_instant, get_zone, to_instant
from models.entries import (
    ById,
    ByName,
    CandidateRow,
    Progress,
    Reference,
    ReferenceKind,
    ResolveResult,
    VerificationState,
    normalize_name,
)
from services.resolver import ReferenceResolver, distinct_names
from services.time_entries import TimeEntryService, row_to_fields

logger = logging.getLogger(__name__)

# Failures that belong to one row; anything else aborts the commit
ROW_ERRORS = (InvalidTimestamp, TimeOrderingError, UnresolvedReference, RemoteApiError)


# =============================================================================
# STATES
# =============================================================================


@dataclass(frozen=True)
class TaskBucket:
    """Task names checked under one project (or under no project at all)."""

    project_name: str | None
    project_id: str | None
    result: ResolveResult

    @property
    def label(self) -> str:
        return self.project_name or self.project_id or "(no project)"


@dataclass(frozen=True)
class PreviewRow:
    """One row as it would be sent, with anything unresolved flagged."""

    index: int
    description: str | None
    start: str | None
    end: str | None
    project_id: str | None
    task_id: str | None
    tag_ids: tuple[str, ...]
    billable: bool
    is_new: bool
    problems: tuple[str, ...] = ()

    @property
    def ok(self) -> bool:
        return not self.problems


@dataclass
class CommitTally:
    created: list[tuple[int, str]] = field(default_factory=list)
    updated: list[tuple[int, str]] = field(default_factory=list)
    failed: list[tuple[int, str]] = field(default_factory=list)
    skipped: list[int] = field(default_factory=list)

    @property
    def attempted(self) -> int:
        return len(self.created) + len(self.updated) + len(self.failed)

    def summary(self) -> str:
        text = f"created: {len(self.created)}, updated: {len(self.updated)}, failed: {len(self.failed)}"
        if self.failed:
            reasons = "; ".join(f"row {i}: {reason}" for i, reason in self.failed)
            text += f" ({reasons})"
        if self.skipped:
            text += f", skipped: {len(self.skipped)}"
        return text


def _tasks_summary(tasks: tuple[TaskBucket, ...]) -> str:
    missing = [f"{name} ({b.label})" for b in tasks for name in b.result.missing]
    validated = sum(len(b.result.existing) for b in tasks)
    if not missing:
        return f"tasks validated: {validated}"
    return f"tasks validated: {validated}, missing: [{', '.join(missing)}]"


@dataclass(frozen=True)
class Parsed:
    rows: tuple[CandidateRow, ...]
    projects: VerificationState | None = None

    def summary(self) -> str:
        text = f"parsed: {len(self.rows)} rows"
        if self.projects is not None:
            text += f"; projects {self.projects.summary()}"
        return text


@dataclass(frozen=True)
class ProjectsVerified:
    rows: tuple[CandidateRow, ...]
    projects: VerificationState
    tasks: tuple[TaskBucket, ...] | None = None

    def summary(self) -> str:
        text = f"projects {self.projects.summary()}"
        if self.tasks is not None:
            text += f"; {_tasks_summary(self.tasks)}"
        return text


@dataclass(frozen=True)
class TasksVerified:
    rows: tuple[CandidateRow, ...]
    projects: VerificationState
    tasks: tuple[TaskBucket, ...]

    def summary(self) -> str:
        return f"projects {self.projects.summary()}; {_tasks_summary(self.tasks)}"


@dataclass(frozen=True)
class PreviewReady:
    rows: tuple[CandidateRow, ...]
    projects: VerificationState
    tasks: tuple[TaskBucket, ...]
    tags: VerificationState
    preview: tuple[PreviewRow, ...]

    @property
    def ready(self) -> bool:
        return self.tags.ok

    def summary(self) -> str:
        flagged = sum(1 for p in self.preview if not p.ok)
        return (
            f"tags {self.tags.summary()}; preview: {len(self.preview)} rows"
            f" ({flagged} flagged)"
        )


@dataclass(frozen=True)
class Committed:
    rows: tuple[CandidateRow, ...]
    tally: CommitTally

    def summary(self) -> str:
        return self.tally.summary()


WorkflowState = Parsed | ProjectsVerified | TasksVerified | PreviewReady | Committed


@dataclass
class CreationReport:
    created: list[Reference] = field(default_factory=list)
    skipped: list[tuple[str, str]] = field(default_factory=list)

    def summary(self) -> str:
        text = f"created: {len(self.created)}"
        if self.skipped:
            text += f", skipped: [{', '.join(f'{n} ({why})' for n, why in self.skipped)}]"
        return text


# =============================================================================
# WORKFLOW
# =============================================================================


class BulkIntakeWorkflow:
    """
    Drives parsed rows through verification and commit.

    Usage:
        workflow = BulkIntakeWorkflow(rows, resolver, entries, "Europe/Berlin")
        await workflow.verify_projects()
        await workflow.verify_tasks()
        await workflow.verify_tags()
        tally = await workflow.commit()
    """

    def __init__(
        self,
        rows: list[CandidateRow],
        resolver: ReferenceResolver,
        entries: TimeEntryService,
        timezone: str,
        preview_size: int = PREVIEW_ROWS,
        skip_resolution: bool = False,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.time,
    ):
        get_zone(timezone)
        self.resolver = resolver
        self.entries = entries
        self.timezone = timezone
        self.preview_size = preview_size
        self.skip_resolution = skip_resolution
        self._sleep = sleep
        self._clock = clock
        self._listeners: list[Callable[[WorkflowState], None]] = []
        self._cancelled = False
        self._state: WorkflowState = Parsed(tuple(rows))

    @property
    def state(self) -> WorkflowState:
        return self._state

    @property
    def rows(self) -> tuple[CandidateRow, ...]:
        return self._state.rows

    def subscribe(self, callback: Callable[[WorkflowState], None]) -> Callable[[], None]:
        """Call `callback` with every new state. Returns an unsubscribe function."""
        self._listeners.append(callback)

        def unsubscribe():
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def _set_state(self, state: WorkflowState):
        self._state = state
        logger.info("%s: %s", type(state).__name__, state.summary())
        for listener in list(self._listeners):
            listener(state)

    def _require(self, action: str, *allowed: type):
        if not isinstance(self._state, allowed):
            names = ", ".join(t.__name__ for t in allowed)
            raise WorkflowStateError(
                f"Cannot {action} in state {type(self._state).__name__} (needs {names})",
                {"state": type(self._state).__name__, "action": action},
            )

    # =========================================================================
    # PROJECTS
    # =========================================================================

    def project_names(self) -> list[str]:
        return distinct_names(r.project_name for r in self.rows)

    async def verify_projects(self) -> VerificationState:
        """
        Check every distinct project name. Advances to ProjectsVerified only
        when none are missing; re-running replaces the previous result.
        """
        self._require("verify projects", Parsed, ProjectsVerified, TasksVerified, PreviewReady)
        result = await self.resolver.resolve(ReferenceKind.PROJECT, self.project_names(), refresh=True)
        if result.ok:
            self._set_state(ProjectsVerified(self.rows, result))
        else:
            self._set_state(Parsed(self.rows, result))
        return result

    reverify_projects = verify_projects

    async def create_missing_projects(self) -> CreationReport:
        self._require("create projects", Parsed)
        check = self._state.projects
        if check is None:
            raise WorkflowStateError("Verify projects before creating missing ones")
        created = await self.resolver.create_missing(ReferenceKind.PROJECT, check.missing)
        result = await self.resolver.resolve(ReferenceKind.PROJECT, self.project_names())
        self._set_state(Parsed(self.rows, result))
        return CreationReport(created=created)

    # =========================================================================
    # TASKS
    # =========================================================================

    def _project_buckets(self, projects: ResolveResult) -> list[tuple[str | None, str | None, list[str]]]:
        """
        (project name, project ID, task names) per project the rows use.

        Rows naming the same project by ID or by differently cased names share
        one bucket; unresolved names are grouped case-insensitively.
        """
        buckets: dict[tuple[str, str] | None, tuple[str | None, str | None, list[str]]] = {}
        for row in self.rows:
            if not isinstance(row.task, ByName):
                continue
            if isinstance(row.project, ById):
                name, project_id = None, row.project.id
            elif isinstance(row.project, ByName):
                name, project_id = row.project.name.strip(), projects.id_for(row.project.name)
            else:
                name, project_id = None, None

            if project_id is not None:
                key = ("id", project_id)
            elif name is not None:
                key = ("name", normalize_name(name))
            else:
                key = None
            bucket_name, _, names = buckets.setdefault(key, (name, project_id, []))
            if bucket_name is None and name is not None:
                buckets[key] = (name, project_id, names)
            names.append(row.task.name)
        return list(buckets.values())

    async def _check_tasks(self, projects: ResolveResult, refresh: bool) -> tuple[TaskBucket, ...]:
        buckets = self._project_buckets(projects)
        results = await asyncio.gather(
            *(
                self.resolver.resolve(ReferenceKind.TASK, names, scope=project_id, refresh=refresh)
                for _, project_id, names in buckets
            )
        )
        return tuple(
            TaskBucket(name, project_id, result) for (name, project_id, _), result in zip(buckets, results)
        )

    async def verify_tasks(self) -> tuple[TaskBucket, ...]:
        """
        Check task names per project. Tasks on rows without a project, or
        under a project that did not resolve, are always reported missing.
        """
        self._require("verify tasks", ProjectsVerified, TasksVerified, PreviewReady)
        projects = self._state.projects
        tasks = await self._check_tasks(projects, refresh=True)
        if all(b.result.ok for b in tasks):
            self._set_state(TasksVerified(self.rows, projects, tasks))
        else:
            self._set_state(ProjectsVerified(self.rows, projects, tasks))
        return tasks

    async def create_missing_tasks(self) -> CreationReport:
        """Create missing tasks where the project is known; report the rest."""
        self._require("create tasks", ProjectsVerified)
        state = self._state
        if state.tasks is None:
            raise WorkflowStateError("Verify tasks before creating missing ones")

        report = CreationReport()
        for bucket in state.tasks:
            if not bucket.result.missing:
                continue
            if not bucket.project_id:
                reason = "no project" if bucket.project_name is None else f"project {bucket.project_name!r} not found"
                report.skipped.extend((name, reason) for name in bucket.result.missing)
                continue
            created = await self.resolver.create_missing(
                ReferenceKind.TASK, bucket.result.missing, scope=bucket.project_id
            )
            report.created.extend(created)

        tasks = await self._check_tasks(state.projects, refresh=False)
        self._set_state(ProjectsVerified(self.rows, state.projects, tasks))
        return report

    # =========================================================================
    # TAGS & PREVIEW
    # =========================================================================

    def tag_names(self) -> list[str]:
        return distinct_names(tag for row in self.rows for tag in (row.tags or []))

    async def verify_tags(self) -> VerificationState:
        """
        Check the union of all row tags, then build the preview. The preview
        is produced even when tags are missing; commit stays blocked.
        """
        self._require("verify tags", TasksVerified, PreviewReady)
        state = self._state
        tags = await self.resolver.resolve(ReferenceKind.TAG, self.tag_names(), refresh=True)
        preview = self.build_preview(state.projects, state.tasks, tags)
        self._set_state(PreviewReady(self.rows, state.projects, state.tasks, tags, preview))
        return tags

    async def create_missing_tags(self) -> CreationReport:
        self._require("create tags", PreviewReady)
        state = self._state
        created = await self.resolver.create_missing(ReferenceKind.TAG, state.tags.missing)
        tags = await self.resolver.resolve(ReferenceKind.TAG, self.tag_names())
        preview = self.build_preview(state.projects, state.tasks, tags)
        self._set_state(PreviewReady(self.rows, state.projects, state.tasks, tags, preview))
        return CreationReport(created=created)

    def _preview_row(
        self,
        row: CandidateRow,
        projects: ResolveResult,
        tasks: tuple[TaskBucket, ...],
        tags: ResolveResult,
    ) -> PreviewRow:
        problems: list[str] = []

        start = end = None
        try:
            start_at = to_instant(row.start, self.timezone) if row.start is not None else None
            if start_at is None and row.is_new:
                problems.append("start: missing")
        except InvalidTimestamp as e:
            start_at = None
            problems.append(f"start: {e}")
        try:
            end_at = to_instant(row.end, self.timezone) if row.end is not None else None
        except InvalidTimestamp as e:
            end_at = None
            problems.append(f"end: {e}")
        if start_at is not None and end_at is not None and start_at >= end_at:
            problems.append(str(TimeOrderingError(start_at, end_at)))
        if start_at is not None:
            start = format_instant(start_at)
        if end_at is not None:
            end = format_instant(end_at)

        project_id = None
        if isinstance(row.project, ById):
            project_id = row.project.id
        elif isinstance(row.project, ByName):
            project_id = projects.id_for(row.project.name)
            if project_id is None:
                problems.append(f"project {row.project.name!r} not found")

        task_id = None
        if isinstance(row.task, ById):
            task_id = row.task.id
        elif isinstance(row.task, ByName):
            for bucket in tasks:
                if bucket.project_id == project_id and bucket.project_id is not None:
                    task_id = bucket.result.id_for(row.task.name)
                    break
            if task_id is None:
                problems.append(f"task {row.task.name!r} not found")

        tag_ids = list(row.tag_ids or [])
        for tag in row.tags or []:
            tag_id = tags.id_for(tag)
            if tag_id is None:
                problems.append(f"tag {tag!r} not found")
            elif tag_id not in tag_ids:
                tag_ids.append(tag_id)

        return PreviewRow(
            index=row.index,
            description=row.description,
            start=start,
            end=end,
            project_id=project_id,
            task_id=task_id,
            tag_ids=tuple(tag_ids),
            billable=bool(row.billable),
            is_new=row.is_new,
            problems=tuple(problems),
        )

    def build_preview(
        self,
        projects: ResolveResult,
        tasks: tuple[TaskBucket, ...],
        tags: ResolveResult,
    ) -> tuple[PreviewRow, ...]:
        return tuple(
            self._preview_row(row, projects, tasks, tags) for row in self.rows[: self.preview_size]
        )

    # =========================================================================
    # COMMIT
    # =========================================================================

    def cancel(self):
        """Stop a running commit before its next row."""
        self._cancelled = True

    def abandon(self):
        """Drop all verification results and go back to Parsed."""
        self._require("abandon", Parsed, ProjectsVerified, TasksVerified, PreviewReady)
        self._set_state(Parsed(self.rows))

    def update_row(self, index: int, **changes) -> CandidateRow:
        """Edit one row; verification starts over."""
        self._require("edit rows", Parsed, ProjectsVerified, TasksVerified, PreviewReady)
        rows = list(self.rows)
        for position, row in enumerate(rows):
            if row.index == index:
                rows[position] = row.with_changes(**changes)
                self._set_state(Parsed(tuple(rows)))
                return rows[position]
        raise ValueError(f"No row with index {index}")

    def _check_committable(self):
        state = self._state
        if isinstance(state, Committed):
            raise WorkflowStateError("Rows have already been committed")
        if self.skip_resolution:
            return
        if not isinstance(state, PreviewReady):
            raise WorkflowStateError(
                f"Cannot commit in state {type(state).__name__} (needs PreviewReady)",
                {"state": type(state).__name__, "action": "commit"},
            )
        if not state.ready:
            raise WorkflowStateError(
                f"Cannot commit while tags are missing: [{', '.join(state.tags.missing)}]",
                {"missing": list(state.tags.missing)},
            )

    async def _wait_for(self, error: RateLimited):
        delay = max(0.0, error.reset_at - self._clock())
        logger.warning("Rate limited, pausing %.1fs", delay)
        await self._sleep(delay)

    async def _attempt(self, operation: Callable[[], Awaitable]):
        """Run one upstream operation, waiting out rate limits and retrying."""
        while True:
            try:
                return await operation()
            except RateLimited as e:
                await self._wait_for(e)

    async def commit(
        self,
        on_progress: Callable[[Progress], None] | None = None,
        bulk_update_existing: bool = False,
    ) -> CommitTally:
        """
        Send every row upstream: create for new rows, update for rows that
        carry an entry ID. One row failing never stops the others.
        """
        self._check_committable()
        self._cancelled = False
        rows = list(self.rows)
        tally = CommitTally()
        total = len(rows)
        done = 0

        def report(last_error: str | None = None):
            if on_progress:
                on_progress(Progress(completed=done, total=total, last_error=last_error))

        pending_updates: list[CandidateRow] = []
        for position, row in enumerate(rows):
            if self._cancelled:
                tally.skipped.extend(r.index for r in rows[position:])
                break

            if not row.is_new and bulk_update_existing:
                pending_updates.append(row)
                continue

            last_error = None
            try:
                if row.is_new:
                    entry = await self._attempt(lambda: self.entries.create(row))
                    tally.created.append((row.index, entry.id))
                else:
                    entry = await self._attempt(lambda: self.entries.update(row.entry_id, row))
                    tally.updated.append((row.index, entry.id))
            except ROW_ERRORS as e:
                last_error = str(e)
                tally.failed.append((row.index, last_error))
                logger.warning("Row %d failed: %s", row.index, last_error)
            done += 1
            report(last_error)

        if pending_updates:
            if self._cancelled:
                tally.skipped.extend(r.index for r in pending_updates)
            else:
                last_error = await self._commit_bulk_updates(pending_updates, tally)
                done += len(pending_updates)
                report(last_error)

        tally.skipped.sort()
        self._set_state(Committed(tuple(rows), tally))
        return tally

    async def _commit_bulk_updates(self, rows: list[CandidateRow], tally: CommitTally) -> str | None:
        """Prepare each row on its own, then send the ones that made it in one call."""
        last_error = None
        valid: list[CandidateRow] = []
        prepared = []
        for row in rows:
            try:
                payload = await self._attempt(lambda: self.entries.prepare(row_to_fields(row), is_new=False))
            except ROW_ERRORS as e:
                last_error = str(e)
                tally.failed.append((row.index, last_error))
                logger.warning("Row %d failed: %s", row.index, last_error)
                continue
            valid.append(row)
            prepared.append((row.entry_id, payload))
        if not valid:
            return last_error

        try:
            updated = await self._attempt(lambda: self.entries.send_bulk_update(prepared))
        except ROW_ERRORS as e:
            last_error = str(e)
            tally.failed.extend((r.index, last_error) for r in valid)
            logger.warning("Bulk update of %d rows failed: %s", len(valid), last_error)
            return last_error

        returned = {entry.id for entry in updated}
        for row in valid:
            if not returned or row.entry_id in returned:
                tally.updated.append((row.index, row.entry_id))
            else:
                tally.failed.append((row.index, "not returned by bulk update"))
        return last_error
