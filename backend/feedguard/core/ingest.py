"""
Deduplicating ingestion queue.

Queue membership and order live in a single ``OrderedDict`` so they can
never disagree. Snapshots are kept separately and always hold the latest
capture of each id, queued or not.
"""
from __future__ import annotations

import logging
from collections import OrderedDict
from dataclasses import dataclass
from typing import Dict, Iterable, List, Set

from feedguard.config import MAX_PENDING
from feedguard.core.store import AnalysisStore
from feedguard.models import AnalysisResult, Post

logger = logging.getLogger(__name__)


@dataclass
class EnqueueStats:
    added: int = 0
    deduped: int = 0
    invalid: int = 0
    dropped: int = 0
    pending_count: int = 0


class IngestionQueue:
    """
    Ordered, deduplicated id queue plus the snapshot table.

    An id is in exactly one of these states: queued, in flight (taken into
    a batch, not yet finalized), finalized (has a result in the store), or
    idle (only a snapshot exists, e.g. after being dropped by the bound).
    """

    def __init__(self, store: AnalysisStore, max_pending: int = MAX_PENDING):
        self.store = store
        self.max_pending = max_pending
        self._order: "OrderedDict[str, None]" = OrderedDict()
        self._snapshots: Dict[str, Post] = {}
        self._in_flight: Set[str] = set()
        self._priority: Set[str] = set()
        # Bumped on reset so a pass started before it knows its results are stale
        self.generation = 0

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def pending_count(self) -> int:
        return len(self._order)

    @property
    def order(self) -> List[str]:
        return list(self._order)

    @property
    def snapshot_count(self) -> int:
        return len(self._snapshots)

    @property
    def priority_count(self) -> int:
        return len(self._priority)

    def snapshot(self, post_id: str) -> Post | None:
        return self._snapshots.get(post_id)

    def is_queued(self, post_id: str) -> bool:
        return post_id in self._order

    def is_priority(self, post_id: str) -> bool:
        return post_id in self._priority

    def is_finalized(self, post_id: str) -> bool:
        return post_id in self.store

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def enqueue(self, posts: Iterable[Post]) -> EnqueueStats:
        """
        Record snapshots and queue ids that are neither finalized nor pending.

        Args:
            posts: Captured posts, possibly repeating ids

        Returns:
            EnqueueStats with aggregate counts
        """
        stats = EnqueueStats()
        for post in posts:
            if not post.id:
                stats.invalid += 1
                continue

            # Latest capture always wins, even if the id is not requeued
            self._snapshots[post.id] = post

            if post.id in self.store or post.id in self._order or post.id in self._in_flight:
                stats.deduped += 1
                continue

            self._order[post.id] = None
            stats.added += 1

        stats.dropped = self._enforce_limit()
        stats.pending_count = len(self._order)
        logger.debug(
            "Enqueue: added=%d deduped=%d invalid=%d dropped=%d pending=%d",
            stats.added, stats.deduped, stats.invalid, stats.dropped, stats.pending_count,
        )
        return stats

    def _enforce_limit(self) -> int:
        dropped = 0
        while len(self._order) > self.max_pending:
            drop_id, _ = self._order.popitem(last=False)
            self._snapshots.pop(drop_id, None)
            dropped += 1
            logger.debug("Dropped oldest id %s (queue bound %d)", drop_id, self.max_pending)
        return dropped

    def prioritize(self, ids: Iterable[str]) -> int:
        """
        Mark ids as priority and move the unfinalized ones to the queue head.

        Only ids with a captured snapshot are queued; an unknown id just keeps
        its priority mark so a later enqueue escalates it.

        The given order is kept at the head: prioritizing ``[x, y]`` yields
        ``[x, y, ...rest]``.

        Returns:
            Number of pending ids afterwards
        """
        promote: List[str] = []
        for post_id in ids:
            if not post_id or post_id in promote:
                continue
            self._priority.add(post_id)
            if post_id in self.store or post_id in self._in_flight:
                continue
            if post_id not in self._snapshots:
                continue
            promote.append(post_id)

        for post_id in reversed(promote):
            if post_id not in self._order:
                self._order[post_id] = None
            self._order.move_to_end(post_id, last=False)

        return len(self._order)

    def take_batch(self, max_size: int) -> List[Post]:
        """
        Pop up to ``max_size`` posts from the queue head.

        Finalized ids are discarded without counting against the cap, and ids
        whose snapshot has gone missing are dropped. Returned ids are in
        flight until ``finalize`` or ``restore`` is called for them.
        """
        batch: List[Post] = []
        while self._order and len(batch) < max_size:
            post_id, _ = self._order.popitem(last=False)
            if post_id in self.store:
                continue
            post = self._snapshots.get(post_id)
            if post is None:
                logger.debug("No snapshot for queued id %s; dropping", post_id)
                continue
            self._in_flight.add(post_id)
            batch.append(post)
        return batch

    def finalize(self, results: Iterable[AnalysisResult]) -> int:
        """Publish results to the store and retire their ids from the queue."""
        count = 0
        for result in results:
            self.store.put(result)
            self._in_flight.discard(result.id)
            self._order.pop(result.id, None)
            count += 1
        return count

    def restore(self, ids: Iterable[str]) -> int:
        """
        Put in-flight ids that never got a result back at the queue head.

        Original order is kept. Ids finalized in the meantime are skipped.

        Returns:
            Number of ids restored
        """
        ids = list(ids)
        restored = [i for i in ids if i in self._in_flight and i not in self.store]
        for post_id in ids:
            self._in_flight.discard(post_id)
        for post_id in reversed(restored):
            self._order[post_id] = None
            self._order.move_to_end(post_id, last=False)
        return len(restored)

    def reset(self) -> None:
        """Clear queue, snapshots, priority marks and all finalized results."""
        self._order.clear()
        self._snapshots.clear()
        self._in_flight.clear()
        self._priority.clear()
        self.store.reset()
        self.generation += 1
