"""
Time entry operations against the upstream workspace.

Every mutating call normalizes wall times, resolves names to IDs and strips
client-only fields before anything goes over the wire. The upstream call
itself is left to ClockifyClient (rate limiting, error wrapping).
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Callable

from core.batching import BatchResult, run_batched
from core.clockify_client import ClockifyClient
from core.config import BATCH_DELAY_SECONDS, BATCH_SIZE, DEFAULT_ENTRY_TYPE
from core.errors import InvalidTimestamp, TimeOrderingError
from core.timezones import format_instant, get_zone, to_instant
from models.entries import (
    ById,
    ByName,
    CandidateRow,
    Progress,
    ReferenceKind,
    TimeEntry,
    TimeEntryPayload,
    ref_from_fields,
)
from services.resolver import ReferenceResolver

logger = logging.getLogger(__name__)

# Accepted on input, never transmitted
CLIENT_ONLY_FIELDS = ("projectName", "taskName", "tags")


def row_to_fields(row: CandidateRow) -> dict[str, Any]:
    """Patch-style dict holding only the fields the row actually sets."""
    fields: dict[str, Any] = {}
    if row.description is not None:
        fields["description"] = row.description
    if row.start is not None:
        fields["start"] = row.start
    if row.end is not None:
        fields["end"] = row.end
    if isinstance(row.project, ById):
        fields["projectId"] = row.project.id
    elif isinstance(row.project, ByName):
        fields["projectName"] = row.project.name
    if isinstance(row.task, ById):
        fields["taskId"] = row.task.id
    elif isinstance(row.task, ByName):
        fields["taskName"] = row.task.name
    if row.tags is not None:
        fields["tags"] = list(row.tags)
    if row.tag_ids is not None:
        fields["tagIds"] = list(row.tag_ids)
    if row.billable is not None:
        fields["billable"] = row.billable
    return fields


class TimeEntryService:
    """Create, update and delete time entries in one workspace."""

    def __init__(
        self,
        client: ClockifyClient,
        workspace_id: str,
        timezone: str,
        resolver: ReferenceResolver | None = None,
        user_id: str | None = None,
    ):
        get_zone(timezone)
        self.client = client
        self.workspace_id = workspace_id
        self.timezone = timezone
        self.resolver = resolver or ReferenceResolver(client, workspace_id)
        self.user_id = user_id

    async def current_user_id(self) -> str:
        if not self.user_id:
            user = await self.client.get_current_user()
            self.user_id = user["id"]
        return self.user_id

    # =========================================================================
    # NORMALIZATION
    # =========================================================================

    def normalize_interval(self, start, end) -> tuple[datetime | None, datetime | None]:
        """
        Convert start/end to UTC instants and enforce start < end.

        The ordering check runs on the converted instants, since a pair that
        looks ordered as wall time can flip across a DST fallback.
        """
        start_at = to_instant(start, self.timezone) if start is not None else None
        end_at = to_instant(end, self.timezone) if end is not None else None
        if start_at is not None and end_at is not None and start_at >= end_at:
            raise TimeOrderingError(start_at, end_at)
        return start_at, end_at

    async def prepare(self, fields: dict[str, Any], is_new: bool) -> TimeEntryPayload:
        """
        Build the wire payload for one entry from a patch-style dict.

        Only keys present in `fields` end up in the payload, plus the
        type/billable defaults for new entries.

        Raises:
            InvalidTimestamp, UnknownTimezone, TimeOrderingError,
            UnresolvedReference, RemoteApiError
        """
        if is_new and fields.get("start") is None:
            raise InvalidTimestamp(None, "start is required for a new entry")

        start_at, end_at = self.normalize_interval(fields.get("start"), fields.get("end"))
        payload: TimeEntryPayload = {}

        if "description" in fields:
            payload["description"] = fields["description"]
        if start_at is not None:
            payload["start"] = format_instant(start_at)
        if end_at is not None:
            payload["end"] = format_instant(end_at)

        project_id = None
        project_ref = ref_from_fields(fields.get("projectId"), fields.get("projectName"))
        if project_ref is not None:
            project_id = await self.resolver.resolve_ref(ReferenceKind.PROJECT, project_ref)
            payload["projectId"] = project_id

        task_ref = ref_from_fields(fields.get("taskId"), fields.get("taskName"))
        if task_ref is not None:
            payload["taskId"] = await self.resolver.resolve_ref(
                ReferenceKind.TASK, task_ref, scope=project_id, create=True
            )

        if "tags" in fields or "tagIds" in fields:
            tag_ids = [t for t in (fields.get("tagIds") or []) if t]
            for tag_id in await self.resolver.resolve_tag_ids(fields.get("tags") or []):
                if tag_id not in tag_ids:
                    tag_ids.append(tag_id)
            payload["tagIds"] = tag_ids

        if "billable" in fields:
            payload["billable"] = bool(fields["billable"])
        if "type" in fields:
            payload["type"] = fields["type"]

        if is_new:
            payload.setdefault("billable", False)
            payload.setdefault("type", DEFAULT_ENTRY_TYPE)

        return payload

    # =========================================================================
    # MUTATIONS
    # =========================================================================

    async def create(self, row: CandidateRow | dict[str, Any]) -> TimeEntry:
        if isinstance(row, CandidateRow):
            fields, user_id = row_to_fields(row), row.user_id
        else:
            fields, user_id = dict(row), row.get("userId")
        payload = await self.prepare(fields, is_new=True)
        raw = await self.client.create_time_entry(
            self.workspace_id, dict(payload), user_id=user_id or self.user_id
        )
        entry = TimeEntry.from_api(raw)
        logger.info("Created time entry %s", entry.id)
        return entry

    async def update(self, entry_id: str, patch: CandidateRow | dict[str, Any]) -> TimeEntry:
        fields = row_to_fields(patch) if isinstance(patch, CandidateRow) else dict(patch)
        payload = await self.prepare(fields, is_new=False)
        raw = await self.client.update_time_entry(self.workspace_id, entry_id, dict(payload))
        logger.info("Updated time entry %s", entry_id)
        return TimeEntry.from_api(raw)

    async def bulk_update(self, patches: list[tuple[str, CandidateRow | dict[str, Any]]]) -> list[TimeEntry]:
        """Update many entries with a single upstream call."""
        prepared = []
        for entry_id, patch in patches:
            fields = row_to_fields(patch) if isinstance(patch, CandidateRow) else dict(patch)
            prepared.append((entry_id, await self.prepare(fields, is_new=False)))
        return await self.send_bulk_update(prepared)

    async def send_bulk_update(self, prepared: list[tuple[str, TimeEntryPayload]]) -> list[TimeEntry]:
        """Single bulk PUT of payloads that already went through prepare()."""
        if not prepared:
            return []
        payloads = [{**payload, "id": entry_id} for entry_id, payload in prepared]
        user_id = await self.current_user_id()
        raw = await self.client.bulk_update_time_entries(self.workspace_id, user_id, payloads)
        logger.info("Bulk-updated %d time entries", len(payloads))
        return [TimeEntry.from_api(item) for item in raw or []]

    async def delete_one(self, entry_id: str) -> None:
        await self.client.delete_time_entry(self.workspace_id, entry_id)
        logger.info("Deleted time entry %s", entry_id)

    async def delete_many(
        self,
        entry_ids: list[str],
        batch_size: int = BATCH_SIZE,
        delay_seconds: float = BATCH_DELAY_SECONDS,
        on_progress: Callable[[Progress], None] | None = None,
    ) -> BatchResult[str]:
        if not entry_ids:
            raise ValueError("entry_ids must be a non-empty list")
        result = await run_batched(
            list(dict.fromkeys(entry_ids)),
            self.delete_one,
            batch_size=batch_size,
            delay_seconds=delay_seconds,
            on_progress=on_progress,
        )
        logger.info("Deleted time entries: %s", result.summary())
        return result

    # =========================================================================
    # LISTING
    # =========================================================================

    async def list_entries(
        self,
        start=None,
        end=None,
        project_id: str | None = None,
        user_id: str | None = None,
    ) -> list[TimeEntry]:
        """Entries for one user, optionally within [start, end) and one project."""
        start_at, end_at = self.normalize_interval(start, end)
        user_id = user_id or await self.current_user_id()
        raw = await self.client.list_time_entries(
            self.workspace_id, user_id, project_id=project_id, start=start_at, end=end_at
        )
        return [TimeEntry.from_api(item) for item in raw]

    async def list_entries_for_projects(
        self,
        project_ids: list[str],
        start=None,
        end=None,
        user_id: str | None = None,
    ) -> list[TimeEntry]:
        """Entries across several projects, fetched concurrently, oldest first."""
        user_id = user_id or await self.current_user_id()
        per_project = await asyncio.gather(
            *(
                self.list_entries(start, end, project_id=pid, user_id=user_id)
                for pid in dict.fromkeys(project_ids)
            )
        )
        seen: dict[str, TimeEntry] = {}
        for entries in per_project:
            for entry in entries:
                seen.setdefault(entry.id, entry)
        return sorted(seen.values(), key=lambda e: e.start)
