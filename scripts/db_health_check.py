#!/usr/bin/env python
from __future__ import annotations

import json
from datetime import datetime, timezone

from sqlalchemy import create_engine, text

from timeclock.settings import get_settings


EXPECTED_HEAD = "0001_initial"
REQUIRED_TABLES = [
    "employees",
    "projects",
    "schedule_templates",
    "schedule_periods",
    "work_day_patterns",
    "time_slots",
    "time_entries",
    "workday_summaries",
]


def run() -> dict:
    engine = create_engine(get_settings().database_url)
    report: dict = {
        "generated_at_utc": datetime.now(timezone.utc).isoformat(),
        "checks": [],
    }

    def add(name: str, status: str, details: dict) -> None:
        report["checks"].append(
            {
                "name": name,
                "status": status,
                "details": details,
            }
        )

    with engine.connect() as conn:
        tables = set(
            conn.execute(
                text(
                    """
                    select table_name
                    from information_schema.tables
                    where table_schema='public'
                    """
                )
            ).scalars()
        )

        current_versions: list[str] = []
        if "alembic_version" in tables:
            current_versions = [
                row[0]
                for row in conn.execute(text("select version_num from alembic_version")).fetchall()
            ]
        add("alembic_version", "ok" if current_versions else "fail", {"current": current_versions})
        add(
            "migration_up_to_date",
            "ok" if EXPECTED_HEAD in current_versions else "warn",
            {"expected_head": EXPECTED_HEAD, "current": current_versions},
        )

        missing = [table for table in REQUIRED_TABLES if table not in tables]
        add("missing_tables", "fail" if missing else "ok", {"tables": missing})

        if "time_entries" in tables:
            orphan_entries = conn.execute(
                text(
                    """
                    select t.id
                    from time_entries t
                    left join employees e on e.id = t.employee_id
                    where e.id is null
                    limit 20
                    """
                )
            ).fetchall()
            add(
                "time_entry_orphan_employee",
                "fail" if orphan_entries else "ok",
                {"sample_ids": [row[0] for row in orphan_entries]},
            )

            detached_automatic_breaks = conn.execute(
                text(
                    """
                    select id
                    from time_entries
                    where is_automatic = true
                      and entry_type in ('BREAK_START', 'BREAK_END')
                      and automatic_break_slot_id is null
                      and is_cancelled = false
                    limit 20
                    """
                )
            ).fetchall()
            # Slot deleted after the break was inserted; the break is no longer paid.
            add(
                "automatic_break_without_slot",
                "warn" if detached_automatic_breaks else "ok",
                {"sample_ids": [row[0] for row in detached_automatic_breaks]},
            )

        if "workday_summaries" in tables:
            negative_summaries = conn.execute(
                text(
                    """
                    select id
                    from workday_summaries
                    where total_worked_minutes < 0
                       or total_break_minutes < 0
                       or paid_break_minutes < 0
                    limit 20
                    """
                )
            ).fetchall()
            add(
                "workday_summary_negative_minutes",
                "fail" if negative_summaries else "ok",
                {"sample_ids": [row[0] for row in negative_summaries]},
            )

    return report


if __name__ == "__main__":
    print(json.dumps(run(), ensure_ascii=False, indent=2))
