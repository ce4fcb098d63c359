"""
Soft-delete reconciliation.

After a traversal that provably covered an entity's whole upstream list,
every active document not stamped with the current run tag is gone upstream.
Those documents get deletedAt set; they are never removed or revived.
"""

from datetime import datetime, timezone
from typing import Optional

from shared.log import create_logger

_, log_debug, log_info, _, _ = create_logger("SoftDelete")


class SoftDeleteReconciler:
    """Marks documents missing from a completed traversal as deleted."""

    def reconcile(self, collection, run_tag: str, now: Optional[datetime] = None) -> int:
        """
        Soft-delete active documents not seen in this run.

        Args:
            collection: Collection to reconcile
            run_tag: Tag stamped on every document touched this run
            now: Deletion timestamp (default: current UTC time)

        Returns:
            Number of documents soft-deleted
        """
        if now is None:
            now = datetime.now(timezone.utc)
        stamp = now.isoformat()
        count = collection.update_many(
            {'deletedAt': None, 'lastSeenRun': {'$ne': run_tag}},
            {'deletedAt': stamp, 'updatedAt': stamp},
        )
        if count:
            log_info(f"Soft-deleted {count} {collection.name} not seen in run {run_tag}",
                     entity=collection.name, soft_deleted=count)
        else:
            log_debug(f"No {collection.name} to soft-delete", entity=collection.name)
        return count
