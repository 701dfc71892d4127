#!/usr/bin/env python
from __future__ import annotations

import json
from datetime import datetime, timezone

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.engine import Engine

from geopoint.settings import get_settings

EXPECTED_HEAD = "0001_initial"
REQUIRED_TABLES = ("users", "locations", "time_entries", "requests", "attachments", "audit_logs")


def run(engine: Engine | None = None) -> dict:
    settings = get_settings()
    engine = engine or create_engine(settings.database_url)
    report: dict = {
        "generated_at_utc": datetime.now(timezone.utc).isoformat(),
        "dialect": engine.dialect.name,
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

    tables = set(inspect(engine).get_table_names())
    with engine.connect() as conn:
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
        if missing:
            return report

        orphan_attachments = conn.execute(
            text(
                """
                select a.id
                from attachments a
                left join requests r on r.id = a.request_id
                where r.id is null
                limit 20
                """
            )
        ).fetchall()
        add(
            "attachment_orphan_request",
            "fail" if orphan_attachments else "ok",
            {"sample_ids": [row[0] for row in orphan_attachments]},
        )

        live_attachments_of_deleted = conn.execute(
            text(
                """
                select a.id
                from attachments a
                join requests r on r.id = a.request_id
                where r.is_deleted = true and a.is_deleted = false
                limit 20
                """
            )
        ).fetchall()
        add(
            "attachment_soft_delete_cascade",
            "fail" if live_attachments_of_deleted else "ok",
            {"sample_ids": [row[0] for row in live_attachments_of_deleted]},
        )

        over_pending_cap = conn.execute(
            text(
                """
                select requester_id, count(*)
                from requests
                where status = 'PENDING' and is_deleted = false
                group by requester_id
                having count(*) > :cap
                """
            ),
            {"cap": settings.max_pending_requests},
        ).fetchall()
        add(
            "pending_cap_exceeded",
            "fail" if over_pending_cap else "ok",
            {"rows": [list(row) for row in over_pending_cap]},
        )

        unreviewed_terminal = conn.execute(
            text(
                """
                select id
                from requests
                where status <> 'PENDING' and reviewer_id is null
                limit 20
                """
            )
        ).fetchall()
        add(
            "terminal_request_without_reviewer",
            "warn" if unreviewed_terminal else "ok",
            {"sample_ids": [row[0] for row in unreviewed_terminal]},
        )

    return report


if __name__ == "__main__":
    print(json.dumps(run(), ensure_ascii=False, indent=2))
