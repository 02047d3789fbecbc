"""
audit/store.py -- SQLAlchemy Core persistence for audit records.

Pattern: Repository + Data Mapper (same as auth/store.py). The table is
append-only: this module exposes insert and read queries, never update or
delete.

Ordering: newest first by timestamp, id as tie-break. Timestamps are written
with fixed microsecond precision so ISO strings sort chronologically.

metadata is stored as JSON text. Values that json cannot encode natively are
stringified rather than rejected -- an odd request body must not cost us the
record.

Security: all queries use bound parameters. No f-strings in SQL.
"""

from __future__ import annotations

import json
from dataclasses import replace
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, func, select
from sqlalchemy.engine import Engine

from audit.models import AuditRecord
from auth.store import make_engine

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_access_logs = Table(
    "access_logs",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer),  # snapshot, deliberately not a foreign key
    Column("email", String(255)),
    Column("action", String(255), nullable=False),
    Column("resource", Text),
    Column("ip_address", String(45)),
    Column("user_agent", Text),
    Column("success", Integer, nullable=False, server_default="1"),
    Column("timestamp", String(32), nullable=False, index=True),
    Column("metadata_json", Text),
)


def _iso(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).isoformat(timespec="microseconds")


class AuditStore:
    """Repository for AuditRecord entities.

    Usage:
        store = AuditStore("sqlite:///adminpanel.db")
        saved = store.insert(AuditRecord(action="LOGIN_SUCCESS", user_id=1))
        rows = store.list_page(offset=0, limit=50)
        store.close()
    """

    def __init__(self, db_url: str) -> None:
        self.engine: Engine = make_engine(db_url)
        _metadata.create_all(self.engine)

    def insert(self, record: AuditRecord) -> AuditRecord:
        """Append one record; returns a copy with id and timestamp filled in."""
        timestamp = _iso(datetime.now(timezone.utc))
        metadata_json = json.dumps(record.metadata, default=str) if record.metadata is not None else None
        with self.engine.begin() as conn:
            result = conn.execute(
                _access_logs.insert().values(
                    user_id=record.user_id,
                    email=record.email,
                    action=record.action,
                    resource=record.resource,
                    ip_address=record.ip_address,
                    user_agent=record.user_agent,
                    success=1 if record.success else 0,
                    timestamp=timestamp,
                    metadata_json=metadata_json,
                )
            )
            record_id = result.inserted_primary_key[0]
        return replace(record, id=record_id, timestamp=timestamp)

    def list_page(self, offset: int, limit: int) -> list[AuditRecord]:
        with self.engine.connect() as conn:
            rows = conn.execute(
                _access_logs.select()
                .order_by(_access_logs.c.timestamp.desc(), _access_logs.c.id.desc())
                .offset(offset)
                .limit(limit)
            ).fetchall()
        return [_row_to_record(r) for r in rows]

    def count(self) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(_access_logs)).scalar()
        return result or 0

    def count_since(
        self,
        since: datetime,
        action: str | None = None,
        action_prefix: str | None = None,
    ) -> int:
        """Count records at or after `since`, optionally filtered by action.

        action matches exactly; action_prefix is a prefix match (LIKE wildcards escaped).
        """
        query = select(func.count()).select_from(_access_logs).where(_access_logs.c.timestamp >= _iso(since))
        if action is not None:
            query = query.where(_access_logs.c.action == action)
        if action_prefix is not None:
            query = query.where(_access_logs.c.action.startswith(action_prefix, autoescape=True))
        with self.engine.connect() as conn:
            result = conn.execute(query).scalar()
        return result or 0

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_record(row) -> AuditRecord:
    return AuditRecord(
        id=row.id,
        user_id=row.user_id,
        email=row.email,
        action=row.action,
        resource=row.resource,
        ip_address=row.ip_address,
        user_agent=row.user_agent,
        success=bool(row.success),
        timestamp=row.timestamp,
        metadata=json.loads(row.metadata_json) if row.metadata_json else None,
    )
