"""
Bulk deletion of tags and tasks.
"""

import logging
from typing import Callable

from core.batching import BatchResult, run_batched
from core.clockify_client import ClockifyClient
from core.config import BATCH_DELAY_SECONDS, BATCH_SIZE
from models.entries import Progress

logger = logging.getLogger(__name__)


def _distinct_ids(ids, what: str) -> list[str]:
    if not isinstance(ids, (list, tuple)) or not ids:
        raise ValueError(f"{what} must be a non-empty list")
    return list(dict.fromkeys(str(i) for i in ids if i))


async def delete_tags(
    client: ClockifyClient,
    workspace_id: str,
    tag_ids: list[str],
    batch_size: int = BATCH_SIZE,
    delay_seconds: float = BATCH_DELAY_SECONDS,
    on_progress: Callable[[Progress], None] | None = None,
) -> BatchResult[str]:
    """Delete tags; IDs the workspace does not own are reported as skipped."""
    ids = _distinct_ids(tag_ids, "tag_ids")

    async def delete(tag_id: str):
        await client.delete_tag(workspace_id, tag_id)

    result = await run_batched(ids, delete, batch_size, delay_seconds, on_progress)
    logger.info("Tag bulk delete in %s: %s", workspace_id, result.summary())
    return result


async def delete_tasks(
    client: ClockifyClient,
    workspace_id: str,
    project_id: str,
    task_ids: list[str],
    batch_size: int = BATCH_SIZE,
    delay_seconds: float = BATCH_DELAY_SECONDS,
    on_progress: Callable[[Progress], None] | None = None,
) -> BatchResult[str]:
    """Delete tasks of one project; tasks from other projects are skipped."""
    if not project_id:
        raise ValueError("project_id is required")
    ids = _distinct_ids(task_ids, "task_ids")

    async def delete(task_id: str):
        await client.delete_task(workspace_id, project_id, task_id)

    result = await run_batched(ids, delete, batch_size, delay_seconds, on_progress)
    logger.info("Task bulk delete in project %s: %s", project_id, result.summary())
    return result
