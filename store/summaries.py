"""
Persisted history of sync run summaries.
"""

import json
from typing import Optional

from store.sqlite import connect

MAX_LIST_LIMIT = 200
DEFAULT_LIST_LIMIT = 25


class SummaryRepository:
    """sqlite table of RunSummary dicts, newest first on read."""

    def __init__(self, db_path: str):
        self.db_path = db_path
        with connect(self.db_path) as conn:
            conn.execute('''
                CREATE TABLE IF NOT EXISTS sync_summaries (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    started_at TEXT NOT NULL,
                    ended_at TEXT,
                    success INTEGER NOT NULL,
                    data TEXT NOT NULL
                )
            ''')

    def save(self, summary: dict) -> int:
        """Store a summary and return its id."""
        with connect(self.db_path) as conn:
            cursor = conn.execute(
                "INSERT INTO sync_summaries (started_at, ended_at, success, data) VALUES (?, ?, ?, ?)",
                (
                    summary.get('start', ''),
                    summary.get('end'),
                    1 if summary.get('success') else 0,
                    json.dumps(summary, default=str),
                ),
            )
            return cursor.lastrowid

    def list(self, limit: int = DEFAULT_LIST_LIMIT) -> list[dict]:
        limit = max(1, min(MAX_LIST_LIMIT, int(limit)))
        with connect(self.db_path) as conn:
            rows = conn.execute(
                "SELECT id, data FROM sync_summaries ORDER BY id DESC LIMIT ?", (limit,)
            ).fetchall()
        return [dict(json.loads(row['data']), id=row['id']) for row in rows]

    def get(self, summary_id: int) -> Optional[dict]:
        with connect(self.db_path) as conn:
            row = conn.execute(
                "SELECT id, data FROM sync_summaries WHERE id = ?", (summary_id,)
            ).fetchone()
        if row is None:
            return None
        return dict(json.loads(row['data']), id=row['id'])
