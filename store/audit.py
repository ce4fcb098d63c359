"""
Upsert audit log.

One ChangeRecord is written per touched document: which fields changed and
their before/after values (both capped by the diff engine). Writes are
best-effort; callers catch and log failures.
"""

import json
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import Optional

from store.sqlite import connect

MAX_QUERY_LIMIT = 500
DEFAULT_QUERY_LIMIT = 100


@dataclass
class ChangeRecord:
    """Audit entry for one upserted document."""
    entity: str
    key: str
    op: str                      # 'insert' or 'update'
    run_tag: str
    changed_fields: list = field(default_factory=list)
    changes: dict = field(default_factory=dict)
    created_at: str = ''

    def to_dict(self) -> dict:
        return asdict(self)


class AuditSink:
    """
    sqlite-backed upsert log.

    Args:
        db_path: sqlite database file
    """

    def __init__(self, db_path: str):
        self.db_path = db_path
        with connect(self.db_path) as conn:
            conn.execute('''
                CREATE TABLE IF NOT EXISTS upsert_log (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    entity TEXT NOT NULL,
                    key TEXT NOT NULL,
                    op TEXT NOT NULL,
                    run_tag TEXT NOT NULL,
                    changed_fields TEXT NOT NULL,
                    changes TEXT NOT NULL,
                    created_at TEXT NOT NULL
                )
            ''')
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_upsert_log_entity_key ON upsert_log(entity, key)"
            )

    def record(self, rec: ChangeRecord) -> None:
        """Persist one ChangeRecord. Raises sqlite3.Error on failure."""
        if not rec.created_at:
            rec.created_at = datetime.now(timezone.utc).isoformat()
        with connect(self.db_path) as conn:
            conn.execute(
                "INSERT INTO upsert_log (entity, key, op, run_tag, changed_fields, changes, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?)",
                (
                    rec.entity,
                    str(rec.key),
                    rec.op,
                    rec.run_tag,
                    json.dumps(rec.changed_fields),
                    json.dumps(rec.changes, default=str),
                    rec.created_at,
                ),
            )

    def recent(
        self,
        entity: Optional[str] = None,
        key: Optional[str] = None,
        since: Optional[str] = None,
        limit: int = DEFAULT_QUERY_LIMIT,
    ) -> list[ChangeRecord]:
        """
        Newest-first audit entries.

        Args:
            entity: Restrict to one entity
            key: Restrict to one natural key
            since: ISO timestamp; only entries created at or after it
            limit: Max entries, clamped to 1..500
        """
        limit = max(1, min(MAX_QUERY_LIMIT, int(limit)))
        clauses = []
        params: list = []
        if entity:
            clauses.append("entity = ?")
            params.append(entity)
        if key:
            clauses.append("key = ?")
            params.append(str(key))
        if since:
            clauses.append("created_at >= ?")
            params.append(since)
        where = (' WHERE ' + ' AND '.join(clauses)) if clauses else ''
        params.append(limit)

        with connect(self.db_path) as conn:
            rows = conn.execute(
                f"SELECT * FROM upsert_log{where} ORDER BY id DESC LIMIT ?", params
            ).fetchall()

        return [
            ChangeRecord(
                entity=row['entity'],
                key=row['key'],
                op=row['op'],
                run_tag=row['run_tag'],
                changed_fields=json.loads(row['changed_fields']),
                changes=json.loads(row['changes']),
                created_at=row['created_at'],
            )
            for row in rows
        ]
