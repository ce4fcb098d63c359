"""
Shared sqlite3 connection helper.

Every store opens a short-lived connection per operation, commits on success
and always closes. The status server reads the same database from another
thread, so long-lived shared connections are avoided.
"""

import os
import re
import sqlite3
from contextlib import contextmanager

_IDENTIFIER = re.compile(r'^[A-Za-z_][A-Za-z0-9_]*$')

# Seconds to wait on a locked database before raising
BUSY_TIMEOUT = 30.0


@contextmanager
def connect(db_path: str):
    """Open a connection with Row access; commit on success, close always."""
    directory = os.path.dirname(db_path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    conn = sqlite3.connect(db_path, timeout=BUSY_TIMEOUT)
    conn.row_factory = sqlite3.Row
    try:
        yield conn
        conn.commit()
    finally:
        conn.close()


def safe_identifier(name: str) -> str:
    """Validate a table name before interpolating it into SQL."""
    if not _IDENTIFIER.match(name):
        raise ValueError(f"Invalid identifier: {name!r}")
    return name
