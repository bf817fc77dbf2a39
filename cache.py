"""Process-wide cache holding the latest published snapshot.

A single-writer / multi-reader cell. Publishing swaps one reference, so
readers see either the previous snapshot or the new one, never a mix.
Snapshots are frozen, which keeps that guarantee after publication too.
Only the latest snapshot is kept.
"""

import logging

from models.scoring import ScoredItem
from models.snapshot import IntelligenceSnapshot

logger = logging.getLogger(__name__)


class SnapshotCache:
    """Holds the current IntelligenceSnapshot, or None before the first run."""

    def __init__(self) -> None:
        self._snapshot: IntelligenceSnapshot | None = None

    def get(self) -> IntelligenceSnapshot | None:
        """Current snapshot; never blocks."""
        return self._snapshot

    def publish(self, snapshot: IntelligenceSnapshot) -> IntelligenceSnapshot | None:
        """Replace the current snapshot, returning the one it superseded."""
        previous, self._snapshot = self._snapshot, snapshot
        logger.info(
            "Snapshot published | run=%s items=%d replaced=%s",
            snapshot.run_id, len(snapshot.items), previous.run_id if previous is not None else "-",
        )
        return previous

    def find_item(self, item_id: str) -> ScoredItem | None:
        """Look up an item in the current snapshot only."""
        snapshot = self._snapshot
        return snapshot.find_item(item_id) if snapshot is not None else None
