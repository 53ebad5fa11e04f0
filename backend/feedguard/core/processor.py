"""
Batch processor: one pass pulls a bounded batch, classifies it locally,
optionally escalates a subset to the remote classifier, and publishes
exactly one result per post.
"""
from __future__ import annotations

import logging
from typing import Callable, Dict, List, Optional, Sequence

from feedguard.config import CONTINUATION_DELAY_MS
from feedguard.core.classifier import LocalClassifier
from feedguard.core.ingest import IngestionQueue
from feedguard.core.scheduler import Scheduler
from feedguard.models import AnalysisResult, Outcome, Post
from feedguard.schemas import RuntimeConfig
from feedguard.services.remote import RemoteClassifier
from feedguard.utils import now_ms

logger = logging.getLogger(__name__)


def select_candidates(
    batch: Sequence[Post],
    local_results: Dict[str, AnalysisResult],
    queue: IngestionQueue,
    candidate_threshold: int,
) -> List[Post]:
    """
    Posts worth a remote opinion: prioritized ones, plus any whose local
    risk already meets the candidate threshold.
    """
    return [
        post for post in batch
        if queue.is_priority(post.id) or local_results[post.id].risk >= candidate_threshold
    ]


class BatchProcessor:
    """Runs analysis passes; at most one pass is active at a time."""

    def __init__(
        self,
        queue: IngestionQueue,
        classifier: LocalClassifier,
        remote: Optional[RemoteClassifier],
        get_config: Callable[[], RuntimeConfig],
        scheduler: Optional[Scheduler] = None,
        clock: Callable[[], int] = now_ms,
    ):
        self.queue = queue
        self.classifier = classifier
        self.remote = remote
        self.get_config = get_config
        self.scheduler = scheduler
        self.clock = clock
        self.busy = False
        self.last_dispatch_at = 0

    async def _escalate(
        self, batch: Sequence[Post], results: Dict[str, AnalysisResult], cfg: RuntimeConfig
    ) -> None:
        if self.remote is None:
            return
        candidates = select_candidates(batch, results, self.queue, cfg.remote.candidate_threshold)
        if not candidates:
            return

        try:
            outcome = await self.remote.classify(candidates, cfg.remote)
        except Exception as e:
            outcome = Outcome.failure(f"{type(e).__name__}: {e}")
        if not outcome.ok:
            logger.info(
                "Remote escalation unavailable (%s); keeping local results for %d posts",
                outcome.error, len(candidates),
            )
            return

        wanted = {p.id for p in candidates}
        for post_id, result in (outcome.value or {}).items():
            if post_id in wanted:
                results[post_id] = result

    async def run_tick(self, trigger: str = "timer") -> int:
        """
        Run one analysis pass.

        No-op when disabled, when another pass is running, or when nothing
        is queued. Ids taken into a pass that fails before publishing are
        put back at the queue head.

        Args:
            trigger: Label for logs ("timer", "tick", ...)

        Returns:
            Number of results published
        """
        cfg = self.get_config()
        if not cfg.enabled or self.busy or self.queue.pending_count == 0:
            return 0

        self.busy = True
        batch: List[Post] = []
        published = False
        generation = self.queue.generation
        try:
            batch = self.queue.take_batch(cfg.batch_size)
            if not batch:
                return 0

            self.last_dispatch_at = self.clock()
            logger.info(
                "Dispatch: trigger=%s count=%d pending_left=%d",
                trigger, len(batch), self.queue.pending_count,
            )

            # The local result is the floor for every post in the batch
            results: Dict[str, AnalysisResult] = {post.id: self.classifier.classify(post) for post in batch}

            if cfg.escalation_enabled:
                await self._escalate(batch, results, cfg)

            if self.queue.generation != generation:
                logger.info("State was reset during the pass; discarding %d results", len(results))
                published = True
                return 0

            self.queue.finalize(results.values())
            published = True
            return len(results)
        except Exception:
            logger.exception("Batch pass failed (trigger=%s)", trigger)
            return 0
        finally:
            if batch and not published:
                restored = self.queue.restore(p.id for p in batch)
                logger.info("Restored %d unfinished ids to the queue head", restored)
            self.busy = False
            if self.scheduler is not None and self.get_config().enabled and self.queue.pending_count:
                self.scheduler.schedule("continuation", CONTINUATION_DELAY_MS)
