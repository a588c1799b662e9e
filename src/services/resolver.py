"""
Project/task/tag name resolution against the workspace directory.

Names match case-insensitively after trimming, exactly, with no fuzzy
matching. When the upstream listing holds duplicates the first one in
listing order wins.
"""

import asyncio
import logging

from core.clockify_client import ClockifyClient
from core.errors import RemoteApiError, UnresolvedReference
from models.entries import (
    ById,
    ByName,
    RefSpec,
    Reference,
    ReferenceKind,
    ResolveResult,
    normalize_name,
)

logger = logging.getLogger(__name__)


def distinct_names(names) -> list[str]:
    """Trimmed, non-blank names with case-insensitive duplicates removed (first spelling kept)."""
    seen: set[str] = set()
    result = []
    for name in names or []:
        if not isinstance(name, str) or not name.strip():
            continue
        key = normalize_name(name)
        if key in seen:
            continue
        seen.add(key)
        result.append(name.strip())
    return result


def first_match_index(directory: list[Reference]) -> dict[str, Reference]:
    index: dict[str, Reference] = {}
    for ref in directory:
        index.setdefault(normalize_name(ref.name), ref)
    return index


class ReferenceResolver:
    """Resolves names to directory IDs for one workspace, creating on request."""

    def __init__(self, client: ClockifyClient, workspace_id: str):
        self.client = client
        self.workspace_id = workspace_id
        self._cache: dict[tuple[ReferenceKind, str | None], list[Reference]] = {}
        self._create_lock = asyncio.Lock()

    async def list_directory(
        self, kind: ReferenceKind, scope: str | None = None, refresh: bool = False
    ) -> list[Reference]:
        """Directory listing in upstream order, cached per (kind, scope)."""
        key = (kind, scope)
        if refresh or key not in self._cache:
            if kind is ReferenceKind.PROJECT:
                raw = await self.client.list_projects(self.workspace_id)
                refs = [Reference.from_api(item) for item in raw]
            elif kind is ReferenceKind.TASK:
                if not scope:
                    raise ValueError("Listing tasks requires the owning project's ID")
                raw = await self.client.list_tasks(self.workspace_id, scope)
                refs = [Reference.from_api(item, scope) for item in raw]
            else:
                raw = await self.client.list_tags(self.workspace_id)
                refs = [Reference.from_api(item) for item in raw]
            self._cache[key] = refs
        return self._cache[key]

    def invalidate(self, kind: ReferenceKind | None = None):
        if kind is None:
            self._cache.clear()
            return
        for key in [k for k in self._cache if k[0] is kind]:
            del self._cache[key]

    async def resolve(
        self,
        kind: ReferenceKind,
        names,
        scope: str | None = None,
        refresh: bool = False,
    ) -> ResolveResult:
        """
        Split `names` into existing references and missing names.

        Tasks need `scope` (the project ID). Without it every task name is
        reported missing rather than matched against a guessed project.
        """
        wanted = distinct_names(names)
        if not wanted:
            return ResolveResult()
        if kind is ReferenceKind.TASK and not scope:
            return ResolveResult(missing=tuple(wanted))

        index = first_match_index(await self.list_directory(kind, scope, refresh))
        existing: list[Reference] = []
        seen_ids: set[str] = set()
        missing: list[str] = []
        for name in wanted:
            ref = index.get(normalize_name(name))
            if ref is None:
                missing.append(name)
            elif ref.id not in seen_ids:
                seen_ids.add(ref.id)
                existing.append(ref)
        return ResolveResult(tuple(existing), tuple(missing))

    async def _create(self, kind: ReferenceKind, name: str, scope: str | None) -> Reference:
        if kind is ReferenceKind.PROJECT:
            raw = await self.client.create_project(self.workspace_id, name)
        elif kind is ReferenceKind.TASK:
            raw = await self.client.create_task(self.workspace_id, scope, name)
        else:
            raw = await self.client.create_tag(self.workspace_id, name)
        return Reference.from_api({"name": name, **(raw or {})}, scope)

    async def create_missing(
        self, kind: ReferenceKind, names, scope: str | None = None
    ) -> list[Reference]:
        """
        Create one upstream object per missing name, in input order.

        Safe to re-run after a partial failure: the directory is re-read first,
        so names created by an earlier attempt are not created twice.

        Raises:
            RemoteApiError: a create failed and the name still does not exist.
        """
        if kind is ReferenceKind.TASK and not scope:
            raise ValueError("Creating tasks requires the owning project's ID")

        async with self._create_lock:
            check = await self.resolve(kind, names, scope, refresh=True)
            directory = self._cache[(kind, scope)] if check.missing else []
            created: list[Reference] = []

            for name in check.missing:
                try:
                    ref = await self._create(kind, name, scope)
                except RemoteApiError:
                    # Upstream may have created it anyway, or another client won the race
                    directory = await self.list_directory(kind, scope, refresh=True)
                    ref = first_match_index(directory).get(normalize_name(name))
                    if ref is None:
                        raise
                    logger.info("%s %r already existed after failed create", kind.value, name)
                else:
                    directory.append(ref)
                    logger.info("Created %s %r (%s)", kind.value, name, ref.id)
                created.append(ref)

            return created

    async def resolve_ref(
        self,
        kind: ReferenceKind,
        ref: RefSpec,
        scope: str | None = None,
        create: bool = False,
    ) -> str:
        """ID for a RefSpec. ById passes through untouched."""
        if isinstance(ref, ById):
            return ref.id
        if not isinstance(ref, ByName):
            raise TypeError(f"Expected ById or ByName, got {type(ref).__name__}")

        if kind is ReferenceKind.TASK and not scope:
            raise UnresolvedReference(kind.value, ref.name)

        result = await self.resolve(kind, [ref.name], scope)
        if result.existing:
            return result.existing[0].id
        if not create:
            raise UnresolvedReference(kind.value, ref.name, scope)
        created = await self.create_missing(kind, [ref.name], scope)
        return created[0].id

    async def resolve_tag_ids(self, tags, create: bool = True) -> list[str]:
        """Tag IDs for free-text labels, in input order, creating missing tags."""
        wanted = distinct_names(tags)
        if not wanted:
            return []

        result = await self.resolve(ReferenceKind.TAG, wanted)
        if result.missing:
            if not create:
                raise UnresolvedReference(ReferenceKind.TAG.value, result.missing[0])
            await self.create_missing(ReferenceKind.TAG, result.missing)
            result = await self.resolve(ReferenceKind.TAG, wanted)
            if result.missing:
                raise UnresolvedReference(ReferenceKind.TAG.value, result.missing[0])

        ids = []
        for name in wanted:
            tag_id = result.id_for(name)
            if tag_id and tag_id not in ids:
                ids.append(tag_id)
        return ids
