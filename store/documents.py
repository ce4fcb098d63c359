"""
sqlite-backed JSON document store.

Each entity lives in its own table keyed by its natural key. The full
document is stored as JSON; deletedAt and lastSeenRun are mirrored into
columns so soft-delete filters run in SQL.

Filters accept a small subset of Mongo-style syntax on those two fields:

    {'deletedAt': None}                      -> deleted_at IS NULL
    {'lastSeenRun': {'$ne': tag}}            -> last_seen_run IS NULL OR != tag
    {'lastSeenRun': tag}                     -> last_seen_run = tag
"""

import json
from dataclasses import dataclass
from typing import Any, Optional, Union

from store.sqlite import connect, safe_identifier

Key = Union[str, int]

_FILTER_COLUMNS = {
    'deletedAt': 'deleted_at',
    'lastSeenRun': 'last_seen_run',
}


@dataclass
class UpsertResult:
    """What an upsert did to the stored document."""
    inserted: bool = False
    modified: bool = False
    before: Optional[dict] = None


def _build_where(filter: Optional[dict]) -> tuple[str, list]:
    if not filter:
        return '', []
    clauses = []
    params: list = []
    for field, condition in filter.items():
        column = _FILTER_COLUMNS.get(field)
        if column is None:
            raise ValueError(f"Unsupported filter field: {field}")
        if isinstance(condition, dict):
            if set(condition) != {'$ne'}:
                raise ValueError(f"Unsupported filter operator for {field}: {condition}")
            value = condition['$ne']
            if value is None:
                clauses.append(f"{column} IS NOT NULL")
            else:
                clauses.append(f"({column} IS NULL OR {column} != ?)")
                params.append(value)
        elif condition is None:
            clauses.append(f"{column} IS NULL")
        else:
            clauses.append(f"{column} = ?")
            params.append(condition)
    return ' WHERE ' + ' AND '.join(clauses), params


def _dumps(doc: dict) -> str:
    return json.dumps(doc, default=str)


class Collection:
    """
    One entity's documents.

    Args:
        db_path: sqlite database file
        name: Entity name, also the table name
        key_field: Natural key field inside each document
        numeric_key: Whether keys are integers (enables max_key)
    """

    def __init__(self, db_path: str, name: str, key_field: str, numeric_key: bool = False):
        self.db_path = db_path
        self.name = name
        self.table = safe_identifier(f"docs_{name}")
        self.key_field = key_field
        self.numeric_key = numeric_key
        self._ensure_schema()

    def _ensure_schema(self) -> None:
        with connect(self.db_path) as conn:
            conn.execute(f'''
                CREATE TABLE IF NOT EXISTS {self.table} (
                    key TEXT PRIMARY KEY,
                    num_key INTEGER,
                    doc TEXT NOT NULL,
                    deleted_at TEXT,
                    last_seen_run TEXT
                )
            ''')
            conn.execute(
                f"CREATE INDEX IF NOT EXISTS idx_{self.table}_num ON {self.table}(num_key)"
            )

    def _num(self, key: Key) -> Optional[int]:
        if not self.numeric_key:
            return None
        try:
            return int(key)
        except (TypeError, ValueError):
            return None

    def find_one(self, key: Key) -> Optional[dict]:
        """Return the stored document for key, or None."""
        with connect(self.db_path) as conn:
            row = conn.execute(
                f"SELECT doc FROM {self.table} WHERE key = ?", (str(key),)
            ).fetchone()
        return json.loads(row['doc']) if row else None

    def upsert(self, key: Key, set_fields: dict, insert_only: Optional[dict] = None) -> UpsertResult:
        """
        Insert or update the document for key.

        Args:
            key: Natural key
            set_fields: Fields written on every upsert
            insert_only: Fields written only when the document is new

        Returns:
            UpsertResult carrying the document as it was before the write
        """
        with connect(self.db_path) as conn:
            row = conn.execute(
                f"SELECT doc FROM {self.table} WHERE key = ?", (str(key),)
            ).fetchone()

            if row is None:
                doc = dict(insert_only or {})
                doc.update(set_fields)
                doc[self.key_field] = key
                conn.execute(
                    f"INSERT INTO {self.table} (key, num_key, doc, deleted_at, last_seen_run) "
                    f"VALUES (?, ?, ?, ?, ?)",
                    (str(key), self._num(key), _dumps(doc), doc.get('deletedAt'), doc.get('lastSeenRun')),
                )
                return UpsertResult(inserted=True, modified=False, before=None)

            before = json.loads(row['doc'])
            doc = dict(before)
            doc.update(set_fields)
            modified = doc != before
            if modified:
                conn.execute(
                    f"UPDATE {self.table} SET doc = ?, deleted_at = ?, last_seen_run = ? WHERE key = ?",
                    (_dumps(doc), doc.get('deletedAt'), doc.get('lastSeenRun'), str(key)),
                )
            return UpsertResult(inserted=False, modified=modified, before=before)

    def update_many(self, filter: dict, set_fields: dict) -> int:
        """
        Apply set_fields to every matching document.

        Returns:
            Number of documents modified
        """
        where, params = _build_where(filter)
        modified = 0
        with connect(self.db_path) as conn:
            rows = conn.execute(f"SELECT key, doc FROM {self.table}{where}", params).fetchall()
            for row in rows:
                doc = json.loads(row['doc'])
                updated = dict(doc)
                updated.update(set_fields)
                if updated == doc:
                    continue
                conn.execute(
                    f"UPDATE {self.table} SET doc = ?, deleted_at = ?, last_seen_run = ? WHERE key = ?",
                    (_dumps(updated), updated.get('deletedAt'), updated.get('lastSeenRun'), row['key']),
                )
                modified += 1
        return modified

    def count_documents(self, filter: Optional[dict] = None) -> int:
        where, params = _build_where(filter)
        with connect(self.db_path) as conn:
            row = conn.execute(f"SELECT COUNT(*) AS n FROM {self.table}{where}", params).fetchone()
        return int(row['n'])

    def max_key(self) -> int:
        """Highest numeric natural key stored, or 0."""
        if not self.numeric_key:
            return 0
        with connect(self.db_path) as conn:
            row = conn.execute(f"SELECT MAX(num_key) AS m FROM {self.table}").fetchone()
        return int(row['m']) if row and row['m'] is not None else 0


class DocumentStore:
    """
    Collection factory over a single sqlite file.

    Args:
        db_path: Path to the sqlite database (created on first use)
    """

    def __init__(self, db_path: str):
        self.db_path = db_path
        self._collections: dict[str, Collection] = {}

    def collection(self, name: str, key_field: str, numeric_key: bool = False) -> Collection:
        coll = self._collections.get(name)
        if coll is None:
            coll = Collection(self.db_path, name, key_field, numeric_key)
            self._collections[name] = coll
        return coll

    def stats(self) -> dict[str, Any]:
        """Active/deleted counts for every opened collection."""
        result = {}
        for name, coll in self._collections.items():
            result[name] = {
                'active': coll.count_documents({'deletedAt': None}),
                'deleted': coll.count_documents({'deletedAt': {'$ne': None}}),
            }
        return result
