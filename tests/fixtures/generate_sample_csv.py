#!/usr/bin/env python3
"""
Generate a sample bulk-intake CSV of wall-clock time entries for one month.

The output feeds scripts/bulk_upload.py or POST /time-entries/bulk during
manual testing. Times are local to --timezone and carry no offset.
"""

import argparse
import csv
import io
import random
from datetime import date, datetime, timedelta
from pathlib import Path

from faker import Faker

fake = Faker()

OUTPUT_FILE = Path(__file__).parent / "sample_entries.csv"

COLUMNS = ["description", "start", "end", "projectName", "taskName", "tags", "billable"]

# Client projects are billable, internal ones are not
CLIENT_PROJECTS = ["Harbor Redesign", "Finn Residence", "Knight Offices", "Squeri Retail"]
INTERNAL_PROJECTS = ["Internal", "Business Development"]

TASKS = {
    "Design": ["Concept review", "Design direction meeting", "Revised floor plans"],
    "Drawings": ["Detail drawings", "Section development", "Construction document updates"],
    "Coordination": ["Contractor coordination call", "Consultant markups", "Schedule review"],
    "Meeting": ["Client meeting", "Team meeting", "Progress meeting"],
}

TAGS = ["meeting", "remote", "on-site", "review", "overtime"]


def workdays(year: int, month: int) -> list[date]:
    """All Monday-Friday dates in the month."""
    day = date(year, month, 1)
    days = []
    while day.month == month:
        if day.weekday() < 5:
            days.append(day)
        day += timedelta(days=1)
    return days


def wall_clock(day: date, hour: float) -> str:
    minutes = int(round(hour * 60))
    moment = datetime(day.year, day.month, day.day) + timedelta(minutes=minutes)
    return moment.strftime("%Y-%m-%dT%H:%M")


def generate_rows(year: int, month: int, max_per_day: int = 4) -> list[dict]:
    """Build rows with half-hour aligned blocks between 08:00 and 18:00."""
    rows = []
    for day in workdays(year, month):
        current = 8.0
        for _ in range(random.randint(1, max_per_day)):
            if current >= 17.5:
                break
            duration = random.choice([0.5, 1, 1.5, 2, 3])
            duration = min(duration, 18 - current)

            billable = random.random() < 0.75
            project = random.choice(CLIENT_PROJECTS if billable else INTERNAL_PROJECTS)
            task = random.choice(list(TASKS))
            description = random.choice(TASKS[task])
            if random.random() < 0.2:
                description = fake.sentence(nb_words=5).rstrip(".")

            tags = random.sample(TAGS, k=random.choice([0, 0, 1, 2]))
            if task == "Meeting" and "meeting" not in tags:
                tags.append("meeting")

            rows.append(
                {
                    "description": description,
                    "start": wall_clock(day, current),
                    "end": wall_clock(day, current + duration),
                    "projectName": project,
                    # Internal work is logged without a task
                    "taskName": task if billable else "",
                    "tags": ";".join(tags),
                    "billable": "yes" if billable else "no",
                }
            )
            current += duration + random.choice([0, 0.5])
    return rows


def to_csv(rows: list[dict]) -> str:
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=COLUMNS, lineterminator="\n")
    writer.writeheader()
    writer.writerows(rows)
    return buffer.getvalue()


def main():
    parser = argparse.ArgumentParser(description="Generate a sample time-entry CSV")
    parser.add_argument("--month", default="2025-11", help="Month to fill, YYYY-MM")
    parser.add_argument("--seed", type=int, help="Random seed for reproducible output")
    parser.add_argument("--output", type=Path, default=OUTPUT_FILE, help="Where to write the CSV")
    args = parser.parse_args()

    if args.seed is not None:
        random.seed(args.seed)
        Faker.seed(args.seed)

    year, month = (int(part) for part in args.month.split("-"))
    rows = generate_rows(year, month)
    args.output.write_text(to_csv(rows))

    projects: dict[str, int] = {}
    for row in rows:
        projects[row["projectName"]] = projects.get(row["projectName"], 0) + 1

    print(f"\nRows generated: {len(rows)}")
    print("\nRows by project:")
    for name, count in sorted(projects.items(), key=lambda item: -item[1]):
        print(f"  {name}: {count}")
    print(f"\nCSV saved to: {args.output}")


if __name__ == "__main__":
    main()
