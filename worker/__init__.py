"""
Background worker for periodic sync runs.

Exports SyncScheduler, the thread that triggers SyncOrchestrator.run_sync()
on a fixed interval.
"""

from worker.scheduler import SyncScheduler

__all__ = ['SyncScheduler']
