"""
Durable key/value state for sync cursors and timestamps.

Keys in use:
    customers:lastPage            resume page for the customers traversal
    suppliers:lastPage            resume page for the suppliers traversal
    <entity>:lastMaxNumber        highest natural key seen by incremental entities
    incremental:lastFullRefreshTs epoch seconds of the last forced full refresh

Values live in state.json under the data directory, rewritten atomically on
every set() so a crash never leaves a half-written file.
"""

import json
import os
import threading
from typing import Any, Optional

from shared.log import create_logger

_, log_debug, _, log_warn, _ = create_logger("State")


class StateStore:
    """
    JSON-file backed key/value store.

    Args:
        data_dir: Directory holding state.json (created if missing)
    """

    STATE_FILE = 'state.json'

    def __init__(self, data_dir: str):
        self.data_dir = data_dir
        self.state_path = os.path.join(data_dir, self.STATE_FILE)
        self._lock = threading.Lock()

    def _load(self) -> dict:
        try:
            if os.path.exists(self.state_path):
                with open(self.state_path, 'r') as f:
                    data = json.load(f)
                if isinstance(data, dict):
                    return data
                log_warn(f"Ignoring non-object state file {self.state_path}")
        except json.JSONDecodeError as e:
            log_warn(f"Corrupt state file {self.state_path}, starting empty: {e}")
        return {}

    def get(self, key: str, default: Optional[Any] = None) -> Any:
        """Return the stored value for key, or default when absent."""
        with self._lock:
            return self._load().get(key, default)

    def set(self, key: str, value: Any) -> None:
        """
        Persist value under key.

        Raises:
            OSError: If the state file cannot be written
        """
        with self._lock:
            data = self._load()
            data[key] = value
            os.makedirs(self.data_dir, exist_ok=True)
            tmp_path = self.state_path + '.tmp'
            with open(tmp_path, 'w') as f:
                json.dump(data, f, indent=2, sort_keys=True)
            os.replace(tmp_path, self.state_path)
        log_debug(f"State {key} = {value}")

    def snapshot(self) -> dict:
        """All stored values (for the status endpoint)."""
        with self._lock:
            return dict(self._load())
