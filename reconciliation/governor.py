"""
Full-refresh governor for incremental entities.

Incremental entities normally stop at the first already-known record, so they
never notice upstream deletions. Once every full_refresh_hours the governor
forces a complete traversal, which makes soft-delete safe for them.

Uses a check-on-invocation pattern: the decision is made at the start of each
run from the persisted timestamp, no timers involved.
"""

import time
from dataclasses import dataclass
from typing import Optional

from shared.log import create_logger
from store.state import StateStore

_, log_debug, log_info, _, _ = create_logger("Governor")

LAST_FULL_REFRESH_KEY = 'incremental:lastFullRefreshTs'


@dataclass
class RefreshDecision:
    """Outcome of FullRefreshGovernor.decide()."""
    force_full_refresh: bool
    last_full_refresh: float
    elapsed_hours: float
    next_due: float


class FullRefreshGovernor:
    """
    Decides once per run whether incremental entities do a full traversal.

    Args:
        state: StateStore holding the last full-refresh timestamp
        interval_hours: Hours between forced full refreshes
    """

    def __init__(self, state: StateStore, interval_hours: float):
        self.state = state
        self.interval_hours = interval_hours

    @property
    def interval_seconds(self) -> float:
        return self.interval_hours * 3600.0

    def last_full_refresh(self) -> float:
        value = self.state.get(LAST_FULL_REFRESH_KEY, 0)
        try:
            return float(value or 0)
        except (TypeError, ValueError):
            return 0.0

    def decide(self, now: Optional[float] = None) -> RefreshDecision:
        """Check whether this run must force a full refresh.

        Args:
            now: Current time (default: time.time()). For testing.

        Returns:
            RefreshDecision with force_full_refresh set when elapsed >= interval
        """
        if now is None:
            now = time.time()
        last = self.last_full_refresh()
        elapsed = now - last
        force = elapsed >= self.interval_seconds
        decision = RefreshDecision(
            force_full_refresh=force,
            last_full_refresh=last,
            elapsed_hours=elapsed / 3600.0,
            next_due=now if force else last + self.interval_seconds,
        )
        if force:
            log_info(
                "Full refresh due for incremental entities",
                last_full_refresh=last, interval_hours=self.interval_hours,
            )
        else:
            log_debug(
                f"Full refresh not due, elapsed {decision.elapsed_hours:.1f}h of {self.interval_hours}h"
            )
        return decision

    def record_full_refresh(self, now: Optional[float] = None) -> float:
        """Persist a completed full refresh. Returns the next due time."""
        if now is None:
            now = time.time()
        self.state.set(LAST_FULL_REFRESH_KEY, now)
        return now + self.interval_seconds

    def next_due(self) -> float:
        return self.last_full_refresh() + self.interval_seconds
