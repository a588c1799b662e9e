#!/usr/bin/env python3
"""
Upload time entries from a CSV file to Clockify.

Walks the verification stages (projects, tasks, tags, preview) and prints
each stage's result. Nothing is written upstream unless --commit is given;
missing projects/tasks/tags are only created with --create-missing.

Usage:
    uv run python src/scripts/bulk_upload.py --csv entries.csv --timezone Europe/Berlin
    uv run python src/scripts/bulk_upload.py --csv entries.csv --create-missing --commit
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from core.clockify_client import ClockifyClient
from core.config import CLOCKIFY_API_KEY, CLOCKIFY_WORKSPACE_ID, DEFAULT_TIMEZONE
from core.errors import SyncError
from models.entries import Progress
from services.intake import parse_csv
from services.resolver import ReferenceResolver
from services.time_entries import TimeEntryService
from services.workflow import BulkIntakeWorkflow, PreviewReady, ProjectsVerified, TasksVerified


def print_progress(progress: Progress):
    line = f"  {progress.completed}/{progress.total}"
    if progress.last_error:
        line += f"  (last error: {progress.last_error})"
    print(line)


def print_preview(state: PreviewReady):
    print(f"\nPreview (first {len(state.preview)} rows):")
    for row in state.preview:
        marker = "OK " if row.ok else "!! "
        print(f"  {marker}#{row.index} {row.start} -> {row.end}  {row.description or ''}")
        for problem in row.problems:
            print(f"       - {problem}")


async def run(args) -> int:
    rows = parse_csv(Path(args.csv).read_text(encoding="utf-8"))
    print(f"Parsed {len(rows)} rows from {args.csv}")

    async with ClockifyClient(args.api_key) as client:
        resolver = ReferenceResolver(client, args.workspace)
        entries = TimeEntryService(client, args.workspace, args.timezone, resolver)
        workflow = BulkIntakeWorkflow(rows, resolver, entries, args.timezone)

        # 1. Projects
        print("\nVerifying projects...")
        result = await workflow.verify_projects()
        print(f"  {result.summary()}")
        if not result.ok and args.create_missing:
            report = await workflow.create_missing_projects()
            print(f"  Projects {report.summary()}")
            result = await workflow.verify_projects()
        if not isinstance(workflow.state, ProjectsVerified):
            print("Stopping: projects are missing (use --create-missing to create them)")
            return 1

        # 2. Tasks
        print("\nVerifying tasks...")
        await workflow.verify_tasks()
        print(f"  {workflow.state.summary()}")
        if not isinstance(workflow.state, TasksVerified) and args.create_missing:
            report = await workflow.create_missing_tasks()
            print(f"  Tasks {report.summary()}")
            await workflow.verify_tasks()
        if not isinstance(workflow.state, TasksVerified):
            print("Stopping: tasks are missing")
            return 1

        # 3. Tags + preview
        print("\nVerifying tags...")
        tags = await workflow.verify_tags()
        print(f"  {tags.summary()}")
        if not tags.ok and args.create_missing:
            report = await workflow.create_missing_tags()
            print(f"  Tags {report.summary()}")
        print_preview(workflow.state)

        if not args.commit:
            print("\nDry run complete (use --commit to upload)")
            return 0
        if not workflow.state.ready:
            print("Stopping: tags are missing")
            return 1

        # 4. Commit
        print(f"\nCommitting {len(rows)} rows...")
        tally = await workflow.commit(on_progress=print_progress, bulk_update_existing=args.bulk_update)
        print(f"\n{tally.summary()}")
        return 1 if tally.failed else 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Upload time entries from CSV to Clockify")
    parser.add_argument("--csv", required=True, help="CSV file with description,start,end columns")
    parser.add_argument("--workspace", default=CLOCKIFY_WORKSPACE_ID, help="Workspace ID")
    parser.add_argument("--timezone", default=DEFAULT_TIMEZONE, help="Zone the CSV wall times are in")
    parser.add_argument("--api-key", default=CLOCKIFY_API_KEY, help="Clockify API key (default: $CLOCKIFY_API_KEY)")
    parser.add_argument("--create-missing", action="store_true", help="Create missing projects, tasks and tags")
    parser.add_argument("--commit", action="store_true", help="Upload the rows (default is a dry run)")
    parser.add_argument("--bulk-update", action="store_true", help="Send rows with an id as one bulk update")
    args = parser.parse_args()

    if not args.api_key or not args.workspace:
        parser.error("an API key and workspace ID are required (flags or CLOCKIFY_* env vars)")

    try:
        return asyncio.run(run(args))
    except SyncError as e:
        print(f"Error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
