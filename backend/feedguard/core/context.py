"""
Owned pipeline context.

All process state (queue, results, schedule flags, configuration) hangs
off one ``PipelineContext``. Its lifecycle is explicit:

* ``init()``  - load persisted configuration and the lexicon.
* ``reset()`` - drop all queue and analysis state, keep configuration.
* process restart - everything except configuration is gone; the
  scraper has to re-enqueue what it still sees.
"""
from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Iterable, Optional

from pydantic import ValidationError

from feedguard.config import ENQUEUE_DELAY_MS
from feedguard.core.classifier import LocalClassifier
from feedguard.core.ingest import EnqueueStats, IngestionQueue
from feedguard.core.lexicon import LexiconStore
from feedguard.core.processor import BatchProcessor
from feedguard.core.scheduler import Scheduler, TimerFactory, loop_timer
from feedguard.core.store import AnalysisStore
from feedguard.errors import ConfigurationError
from feedguard.models import AnalysisResult, Post
from feedguard.schemas import RuntimeConfig, wire_keys
from feedguard.services.config_store import ConfigStore
from feedguard.services.remote import RemoteClassifier
from feedguard.utils import deep_merge, mask_credential, now_ms

logger = logging.getLogger(__name__)


class PipelineContext:
    """Wires the ingestion queue, scheduler and batch processor together."""

    def __init__(
        self,
        lexicon_store: LexiconStore,
        config_store: Optional[ConfigStore] = None,
        remote: Optional[RemoteClassifier] = None,
        clock: Callable[[], int] = now_ms,
        timer: TimerFactory = loop_timer,
    ):
        self.lexicon_store = lexicon_store
        self.config_store = config_store
        self.remote = remote
        self.clock = clock
        self.config = RuntimeConfig()

        self.store = AnalysisStore()
        self.queue = IngestionQueue(self.store)
        self.classifier = LocalClassifier(lexicon_store)
        self.scheduler = Scheduler(self._on_timer, clock=clock, timer=timer)
        self.processor = BatchProcessor(
            self.queue,
            self.classifier,
            remote,
            lambda: self.config,
            scheduler=self.scheduler,
            clock=clock,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def init(self) -> None:
        if self.config_store is not None:
            self.config = self.config_store.load()
        self._apply_debug()
        await self.lexicon_store.load()
        self.schedule_regular("startup")

    async def shutdown(self) -> None:
        self.scheduler.cancel()
        await self.scheduler.drain()
        if self.remote is not None:
            await self.remote.aclose()

    def reset(self) -> None:
        """Clear all queue and analysis state."""
        self.scheduler.cancel()
        self.queue.reset()
        logger.info("Pipeline state reset")

    async def _on_timer(self) -> None:
        await self.processor.run_tick("timer")

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def _apply_debug(self) -> None:
        logging.getLogger("feedguard").setLevel(logging.DEBUG if self.config.debug else logging.NOTSET)

    def public_config(self) -> Dict[str, Any]:
        """Configuration snapshot with the credential masked."""
        data = self.config.to_wire()
        data["remote"]["credential"] = mask_credential(self.config.remote.credential)
        return data

    def update_config(self, patch: Dict[str, Any]) -> RuntimeConfig:
        """
        Merge a partial patch into the current configuration and persist it.

        An omitted or masked credential keeps the stored one. Keys may be
        given in camelCase or snake_case.

        Raises:
            ConfigurationError: If the merged config is invalid or persisting
                fails; the running config is unchanged
        """
        patch = wire_keys(RuntimeConfig, dict(patch or {}))
        remote_patch = patch.get("remote")
        if isinstance(remote_patch, dict) and "credential" in remote_patch:
            current_mask = mask_credential(self.config.remote.credential)
            if current_mask and remote_patch["credential"] == current_mask:
                remote_patch = {k: v for k, v in remote_patch.items() if k != "credential"}
                patch["remote"] = remote_patch

        was_enabled = self.config.enabled
        try:
            merged = RuntimeConfig.model_validate(deep_merge(self.config.to_wire(), patch))
        except ValidationError as e:
            first = e.errors()[0]
            field = ".".join(str(part) for part in first["loc"])
            raise ConfigurationError(f"Invalid config patch ({field}): {first['msg']}") from e
        if self.config_store is not None:
            self.config_store.save(merged)
        self.config = merged
        self._apply_debug()
        logger.info(
            "Config updated: enabled=%s mode=%s batch=%d interval=%dms",
            merged.enabled, merged.analysis_mode, merged.batch_size, merged.tick_interval_ms,
        )

        if merged.enabled and not was_enabled:
            self.schedule_regular("enabled")
        elif not merged.enabled:
            self.scheduler.cancel()
        return merged

    # ------------------------------------------------------------------
    # Scheduling policy
    # ------------------------------------------------------------------

    def interval_elapsed(self) -> bool:
        last = self.processor.last_dispatch_at
        return last == 0 or self.clock() >= last + self.config.tick_interval_ms

    def _regular_delay(self) -> int:
        last = self.processor.last_dispatch_at or self.clock()
        return max(0, last + self.config.tick_interval_ms - self.clock())

    def schedule_regular(self, reason: str) -> bool:
        """Arm for the regular interval if there is pending work."""
        if not self.config.enabled or self.queue.pending_count == 0:
            return False
        return self.scheduler.schedule(reason, self._regular_delay())

    def _schedule_after_enqueue(self) -> None:
        if not self.config.enabled or self.queue.pending_count == 0:
            return
        if self.queue.pending_count >= self.config.batch_size or self.interval_elapsed():
            self.scheduler.schedule("enqueue", ENQUEUE_DELAY_MS)
        else:
            self.scheduler.schedule("enqueue", self._regular_delay())

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def enqueue(self, posts: Iterable[Post]) -> EnqueueStats:
        stats = self.queue.enqueue(posts)
        if stats.added:
            self._schedule_after_enqueue()
        return stats

    def prioritize(self, ids: Iterable[str]) -> int:
        pending = self.queue.prioritize(ids)
        if pending:
            self._schedule_after_enqueue()
        return pending

    def get_analysis(self, ids: Iterable[str]) -> Dict[str, AnalysisResult]:
        return self.store.get(ids)

    def classify_local(self, text: str) -> AnalysisResult:
        return self.classifier.classify_text(text)

    async def tick(self) -> Dict[str, Any]:
        """
        External wake-up. Runs a pass now when the regular interval has
        elapsed or a full batch is waiting, otherwise arms the timer.
        """
        pending = self.queue.pending_count
        if not self.config.enabled:
            return {"action": "idle", "pending": pending}
        if pending == 0:
            return {"action": "idle", "pending": 0}

        if pending >= self.config.batch_size or self.interval_elapsed():
            await self.processor.run_tick("tick")
            return {"action": "dispatched", "pending": self.queue.pending_count}

        self.schedule_regular("tick")
        return {"action": "scheduled", "pending": pending, "scheduledAt": self.scheduler.scheduled_at}

    def stats(self) -> Dict[str, Any]:
        return {
            "pending": self.queue.pending_count,
            "analyzed": len(self.store),
            "snapshots": self.queue.snapshot_count,
            "priority": self.queue.priority_count,
            "busy": self.processor.busy,
            "scheduledAt": self.scheduler.scheduled_at,
            "lastDispatchAt": self.processor.last_dispatch_at,
            "lexiconReady": self.lexicon_store.ready,
        }
