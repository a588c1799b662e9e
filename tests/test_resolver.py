"""
Tests for project/task/tag name resolution.
"""

import pytest

from conftest import WORKSPACE_ID
from core.errors import RemoteApiError, UnresolvedReference
from models.entries import ById, ByName, ReferenceKind
from services.resolver import ReferenceResolver, distinct_names


@pytest.fixture
def resolver(clockify_client):
    return ReferenceResolver(clockify_client, WORKSPACE_ID)


def test_distinct_names():
    assert distinct_names([" Alpha ", "alpha", "", None, "Beta", "  "]) == ["Alpha", "Beta"]


class TestResolve:
    @pytest.mark.asyncio
    async def test_case_insensitive_trimmed(self, resolver, fake_clockify):
        project = fake_clockify.add_project("Internal")
        result = await resolver.resolve(ReferenceKind.PROJECT, ["  internal ", "Missing"])
        assert [r.id for r in result.existing] == [project["id"]]
        assert result.missing == ("Missing",)
        assert not result.ok
        assert result.summary() == "validated: 1, missing: [Missing]"

    @pytest.mark.asyncio
    async def test_first_match_wins(self, resolver, fake_clockify):
        first = fake_clockify.add_project("Dup")
        fake_clockify.add_project("dup")
        result = await resolver.resolve(ReferenceKind.PROJECT, ["DUP"])
        assert result.existing[0].id == first["id"]

    @pytest.mark.asyncio
    async def test_idempotent(self, resolver, fake_clockify):
        fake_clockify.add_tag("urgent")
        names = ["urgent", "later", "URGENT"]
        first = await resolver.resolve(ReferenceKind.TAG, names)
        second = await resolver.resolve(ReferenceKind.TAG, names, refresh=True)
        assert first == second

    @pytest.mark.asyncio
    async def test_tasks_without_scope_all_missing(self, resolver, fake_clockify):
        result = await resolver.resolve(ReferenceKind.TASK, ["Design", "Review"])
        assert result.missing == ("Design", "Review")
        assert fake_clockify.calls == []

    @pytest.mark.asyncio
    async def test_tasks_are_scoped_to_project(self, resolver, fake_clockify):
        alpha = fake_clockify.add_project("Alpha")
        beta = fake_clockify.add_project("Beta")
        fake_clockify.add_task(alpha["id"], "Design")
        assert (await resolver.resolve(ReferenceKind.TASK, ["Design"], scope=alpha["id"])).ok
        assert not (await resolver.resolve(ReferenceKind.TASK, ["Design"], scope=beta["id"])).ok

    @pytest.mark.asyncio
    async def test_listing_cached(self, resolver, fake_clockify):
        fake_clockify.add_tag("a")
        await resolver.resolve(ReferenceKind.TAG, ["a"])
        await resolver.resolve(ReferenceKind.TAG, ["a"])
        assert fake_clockify.count("GET", "/tags") == 1

    @pytest.mark.asyncio
    async def test_listing_failure_propagates(self, resolver, fake_clockify):
        fake_clockify.fail("GET", f"/workspaces/{WORKSPACE_ID}/projects", 500, "down")
        with pytest.raises(RemoteApiError):
            await resolver.resolve(ReferenceKind.PROJECT, ["Alpha"])


class TestCreateMissing:
    @pytest.mark.asyncio
    async def test_creates_only_missing(self, resolver, fake_clockify):
        fake_clockify.add_tag("existing")
        created = await resolver.create_missing(ReferenceKind.TAG, ["existing", "new-one", "NEW-ONE"])
        assert [r.name for r in created] == ["new-one"]
        assert fake_clockify.count("POST", "/tags") == 1
        assert (await resolver.resolve(ReferenceKind.TAG, ["new-one"])).ok

    @pytest.mark.asyncio
    async def test_rerun_creates_nothing(self, resolver, fake_clockify):
        await resolver.create_missing(ReferenceKind.PROJECT, ["Alpha"])
        again = await resolver.create_missing(ReferenceKind.PROJECT, ["Alpha"])
        assert again == []
        assert len(fake_clockify.projects) == 1

    @pytest.mark.asyncio
    async def test_failed_create_falls_back_to_existing(self, resolver, fake_clockify):
        path = f"/workspaces/{WORKSPACE_ID}/tags"
        await resolver.resolve(ReferenceKind.TAG, ["race"])
        # Another client creates the tag between our listing and our create
        original = fake_clockify.handle

        def racing(request):
            if request.method == "POST":
                fake_clockify.add_tag("race")
                fake_clockify.fail("POST", path, 400, "Tag with that name already exists")
            return original(request)

        fake_clockify.handle = racing
        created = await resolver.create_missing(ReferenceKind.TAG, ["race"])
        assert created[0].id == fake_clockify.tags[0]["id"]

    @pytest.mark.asyncio
    async def test_failed_create_reraises_when_absent(self, resolver, fake_clockify):
        fake_clockify.fail("POST", f"/workspaces/{WORKSPACE_ID}/tags", 400, "Name too long")
        with pytest.raises(RemoteApiError, match="Name too long"):
            await resolver.create_missing(ReferenceKind.TAG, ["x" * 300])

    @pytest.mark.asyncio
    async def test_tasks_need_scope(self, resolver):
        with pytest.raises(ValueError):
            await resolver.create_missing(ReferenceKind.TASK, ["Design"])


class TestResolveRef:
    @pytest.mark.asyncio
    async def test_by_id_passes_through(self, resolver, fake_clockify):
        assert await resolver.resolve_ref(ReferenceKind.PROJECT, ById("p-99")) == "p-99"
        assert fake_clockify.calls == []

    @pytest.mark.asyncio
    async def test_unresolved_without_create(self, resolver):
        with pytest.raises(UnresolvedReference) as exc_info:
            await resolver.resolve_ref(ReferenceKind.PROJECT, ByName("Nope"))
        assert exc_info.value.details["kind"] == "project"

    @pytest.mark.asyncio
    async def test_task_without_project_unresolved(self, resolver):
        with pytest.raises(UnresolvedReference):
            await resolver.resolve_ref(ReferenceKind.TASK, ByName("Design"), create=True)

    @pytest.mark.asyncio
    async def test_create_on_demand(self, resolver, fake_clockify):
        project = fake_clockify.add_project("Alpha")
        task_id = await resolver.resolve_ref(ReferenceKind.TASK, ByName("Design"), scope=project["id"], create=True)
        assert fake_clockify.tasks[project["id"]][0]["id"] == task_id


class TestResolveTagIds:
    @pytest.mark.asyncio
    async def test_creates_and_preserves_order(self, resolver, fake_clockify):
        b = fake_clockify.add_tag("b")
        ids = await resolver.resolve_tag_ids(["new", "B", "new"])
        assert len(ids) == 2
        assert ids[1] == b["id"]
        assert fake_clockify.tags[-1]["name"] == "new"

    @pytest.mark.asyncio
    async def test_no_create(self, resolver):
        with pytest.raises(UnresolvedReference):
            await resolver.resolve_tag_ids(["absent"], create=False)

    @pytest.mark.asyncio
    async def test_empty(self, resolver, fake_clockify):
        assert await resolver.resolve_tag_ids([]) == []
        assert fake_clockify.calls == []
