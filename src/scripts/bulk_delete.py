#!/usr/bin/env python3
"""
Delete tags, tasks or time entries in batches.

Usage:
    uv run python src/scripts/bulk_delete.py tags TAG_ID [TAG_ID ...]
    uv run python src/scripts/bulk_delete.py tasks --project PROJECT_ID TASK_ID [...]
    uv run python src/scripts/bulk_delete.py entries --from 2024-03-01 --to 2024-03-31 --timezone Europe/Berlin
"""

import argparse
import asyncio
import sys
from datetime import datetime
from pathlib import Path

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from core.batching import BatchResult
from core.clockify_client import ClockifyClient
from core.config import BATCH_DELAY_SECONDS, BATCH_SIZE, CLOCKIFY_API_KEY, CLOCKIFY_WORKSPACE_ID, DEFAULT_TIMEZONE
from core.errors import SyncError
from core.timezones import day_range
from models.entries import Progress
from services.cleanup import delete_tags, delete_tasks
from services.time_entries import TimeEntryService


def print_progress(progress: Progress):
    print(f"  {progress.completed}/{progress.total} processed")


def print_result(result: BatchResult[str]):
    print(f"\n{result.summary()}")
    for failure in result.failed:
        print(f"  FAILED  {failure.item}: {failure.reason}")
    for skip in result.skipped:
        print(f"  SKIPPED {skip.item}: {skip.reason}")


async def run(args) -> int:
    async with ClockifyClient(args.api_key) as client:
        if args.kind == "tags":
            result = await delete_tags(
                client, args.workspace, args.ids, args.batch_size, args.delay, print_progress
            )
        elif args.kind == "tasks":
            result = await delete_tasks(
                client, args.workspace, args.project, args.ids, args.batch_size, args.delay, print_progress
            )
        else:
            service = TimeEntryService(client, args.workspace, args.timezone)
            start, end = day_range(
                datetime.strptime(args.date_from, "%Y-%m-%d").date(),
                datetime.strptime(args.date_to, "%Y-%m-%d").date(),
                args.timezone,
            )
            entries = await service.list_entries(start, end, project_id=args.project)
            print(f"Found {len(entries)} entries between {args.date_from} and {args.date_to}")
            if not entries:
                return 0
            result = await service.delete_many(
                [e.id for e in entries], args.batch_size, args.delay, print_progress
            )

    print_result(result)
    return 1 if result.failed else 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Batched deletes against Clockify")
    parser.add_argument("kind", choices=["tags", "tasks", "entries"])
    parser.add_argument("ids", nargs="*", help="Tag or task IDs")
    parser.add_argument("--project", help="Project ID (required for tasks, optional filter for entries)")
    parser.add_argument("--from", dest="date_from", help="First local date (YYYY-MM-DD) for entries")
    parser.add_argument("--to", dest="date_to", help="Last local date (YYYY-MM-DD) for entries")
    parser.add_argument("--timezone", default=DEFAULT_TIMEZONE)
    parser.add_argument("--workspace", default=CLOCKIFY_WORKSPACE_ID)
    parser.add_argument("--api-key", default=CLOCKIFY_API_KEY)
    parser.add_argument("--batch-size", type=int, default=BATCH_SIZE)
    parser.add_argument("--delay", type=float, default=BATCH_DELAY_SECONDS, help="Seconds between batches")
    args = parser.parse_args()

    if not args.api_key or not args.workspace:
        parser.error("an API key and workspace ID are required (flags or CLOCKIFY_* env vars)")
    if args.kind in ("tags", "tasks") and not args.ids:
        parser.error(f"at least one {args.kind[:-1]} ID is required")
    if args.kind == "tasks" and not args.project:
        parser.error("--project is required when deleting tasks")
    if args.kind == "entries" and not (args.date_from and args.date_to):
        parser.error("--from and --to are required when deleting entries")

    try:
        return asyncio.run(run(args))
    except SyncError as e:
        print(f"Error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
