"""Detector: evaluates a channel's related fragments and records accepted messages.

One evaluation cycle moves through ``EVALUATING_FULL`` and, when the full
aggregation falls short, ``EVALUATING_WINDOWS`` before settling on
``ACCEPTED`` or ``REJECTED``. Accepted results are merged into a recent
message with the same header (or a near-identical body) or inserted as a
new one, and every evaluated fragment set is remembered in the
processed-set cache.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from typing import Any

from eamwatch.detection.cache import REJECTED, ProcessedSetCache, ProcessedSetStore, cache_key
from eamwatch.detection.extractor import score_window
from eamwatch.detection.models import (
    DetectedMessage,
    DetectionOutcome,
    EvaluationState,
    MessageEvent,
    WindowEvaluation,
)
from eamwatch.ingestion.models import TranscriptFragment
from eamwatch.ingestion.preprocessor import normalize_cached
from eamwatch.ingestion.storage import MessageStore, StoreUnavailableError
from eamwatch.ingestion.windows import (
    WindowBuilder,
    build_sliding_windows,
    build_window,
    select_related,
)
from eamwatch.pipeline_config import DetectionConfig, MessageType

logger = logging.getLogger(__name__)

MessageListener = Callable[[MessageEvent], None]


class Detector:
    """Runs detection cycles against a :class:`MessageStore`.

    Args:
        store: Fragment and message storage.
        config: Detection policy; defaults to :class:`DetectionConfig`.
        cache: Processed-set cache; any object with ``get``/``put``.
        window_builder: Related-fragment retrieval; built from *store*
            and *config* when omitted.
    """

    def __init__(
        self,
        store: MessageStore,
        config: DetectionConfig | None = None,
        cache: ProcessedSetStore | None = None,
        window_builder: WindowBuilder | None = None,
    ) -> None:
        self._store = store
        self._config = config or DetectionConfig()
        self._cache = cache if cache is not None else ProcessedSetCache()
        self._windows = window_builder or WindowBuilder(
            store,
            radius_ms=self._config.related_radius_ms,
            max_fragments=self._config.max_related_fragments,
        )
        self._merge_lock = asyncio.Lock()
        self._listeners: list[MessageListener] = []
        self._stats: dict[str, Any] = {
            "total_detected": 0,
            "new_messages": 0,
            "repeat_merges": 0,
            "multi_segment": 0,
            "window_fallback_accepts": 0,
            "cache_hits": 0,
            "rejected": 0,
            "abandoned": 0,
            "last_detection_ms": None,
        }

    @property
    def config(self) -> DetectionConfig:
        return self._config

    @property
    def store(self) -> MessageStore:
        return self._store

    def add_listener(self, listener: MessageListener) -> None:
        """Register a callback for accepted-message events."""
        self._listeners.append(listener)

    def remove_listener(self, listener: MessageListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def stats(self) -> dict[str, Any]:
        stats = dict(self._stats)
        cache_stats = getattr(self._cache, "stats", None)
        if callable(cache_stats):
            stats["cache"] = cache_stats()
        return stats

    async def _call_store(self, func: Callable[..., Any], *args: Any, retry: bool = True) -> Any:
        """Run a blocking store call in a thread, bounded by the store timeout.

        Failed or timed-out calls are retried once when *retry* is set.

        Raises:
            StoreUnavailableError: When every attempt failed.
        """
        name = getattr(func, "__name__", repr(func))
        try:
            return await self._bounded(func, *args)
        except (asyncio.TimeoutError, StoreUnavailableError) as exc:
            if not retry:
                raise StoreUnavailableError(f"{name}: {str(exc) or 'timed out'}") from exc
            logger.warning("Store call %s failed (%s); retrying once", name, str(exc) or "timed out")
        try:
            return await self._bounded(func, *args)
        except (asyncio.TimeoutError, StoreUnavailableError) as exc:
            raise StoreUnavailableError(f"{name}: {str(exc) or 'timed out'}") from exc

    async def _bounded(self, func: Callable[..., Any], *args: Any) -> Any:
        return await asyncio.wait_for(
            asyncio.to_thread(func, *args), timeout=self._config.store_timeout_s
        )

    async def evaluate(self, fragment: TranscriptFragment) -> DetectionOutcome:
        """Run one detection cycle triggered by *fragment*.

        Never raises for store failures: the cycle is abandoned and a
        REJECTED outcome carrying ``error`` is returned without marking the
        fragment set as processed.
        """
        try:
            return await self._evaluate(fragment)
        except StoreUnavailableError as exc:
            self._stats["abandoned"] += 1
            logger.warning(
                "Abandoned evaluation of fragment %s on channel %s: %s",
                fragment.id,
                fragment.channel_id,
                exc,
            )
            return DetectionOutcome(
                state=EvaluationState.REJECTED,
                fragment_ids=(fragment.id,),
                error=str(exc),
            )

    async def _evaluate(self, fragment: TranscriptFragment) -> DetectionOutcome:
        channel_id = fragment.channel_id
        related = await self._call_store(
            self._windows.related_fragments, channel_id, fragment.start_time_ms
        )
        if all(f.id != fragment.id for f in related):
            related = select_related(
                [*related, fragment], fragment.start_time_ms, self._config.max_related_fragments
            )

        fragment_ids = tuple(f.id for f in related)
        full_key = cache_key(channel_id, fragment_ids)
        cached = self._cache.get(full_key)
        if cached is not None:
            self._stats["cache_hits"] += 1
            logger.debug("Cache hit for %s", full_key)
            return self._cached_outcome(cached, fragment_ids)

        # EVALUATING_FULL
        normalized = [normalize_cached(f) for f in related]
        full = score_window(build_window(normalized), self._config.weights)
        logger.debug(
            "Full aggregation of %d fragments on %s scored %d %s",
            len(normalized),
            channel_id,
            full.score,
            full.breakdown,
        )
        if self._acceptable(full):
            outcome = await self._accept(full)
            self._cache.put(full_key, outcome.message_id or REJECTED)
            return outcome

        # EVALUATING_WINDOWS
        if len(normalized) >= self._config.min_fallback_fragments:
            for window in build_sliding_windows(normalized, self._config.window_size):
                key = cache_key(channel_id, window.fragment_ids)
                cached = self._cache.get(key)
                if cached == REJECTED:
                    continue
                if cached is not None:
                    self._stats["cache_hits"] += 1
                    self._cache.put(full_key, cached)
                    return self._cached_outcome(cached, window.fragment_ids)

                evaluation = score_window(window, self._config.weights)
                if self._acceptable(evaluation):
                    self._stats["window_fallback_accepts"] += 1
                    outcome = await self._accept(evaluation)
                    self._cache.put(key, outcome.message_id or REJECTED)
                    self._cache.put(full_key, outcome.message_id or REJECTED)
                    return outcome

                logger.debug("Window %s scored %d", window.fragment_ids, evaluation.score)
                self._cache.put(key, REJECTED)

        self._stats["rejected"] += 1
        self._cache.put(full_key, REJECTED)
        return DetectionOutcome(
            state=EvaluationState.REJECTED,
            fragment_ids=fragment_ids,
            confidence_score=full.score,
        )

    def _acceptable(self, evaluation: WindowEvaluation) -> bool:
        return (
            evaluation.components.has_content(self._config.weights.body_partial_chars)
            and evaluation.score >= self._config.accept_threshold
        )

    @staticmethod
    def _cached_outcome(value: str, fragment_ids: tuple[str, ...]) -> DetectionOutcome:
        if value == REJECTED:
            return DetectionOutcome(
                state=EvaluationState.REJECTED, fragment_ids=fragment_ids, cached=True
            )
        return DetectionOutcome(
            state=EvaluationState.ACCEPTED,
            fragment_ids=fragment_ids,
            message_id=value,
            cached=True,
        )

    def _build_message(self, evaluation: WindowEvaluation) -> DetectedMessage:
        window = evaluation.window
        components = evaluation.components
        span_ms = window.span_ms
        return DetectedMessage(
            message_type=(
                MessageType.STRUCTURED
                if components.header or components.codeword
                else MessageType.UNKNOWN
            ),
            header=components.header,
            body=components.body,
            confidence_score=evaluation.score,
            recording_ids=list(window.fragment_ids),
            first_detected_at=window.first_start_ms or 0,
            last_detected_at=window.last_end_ms or 0,
            channel_id=window.fragments[0].fragment.channel_id,
            segment_count=window.segment_count,
            multi_segment=window.segment_count > 1,
            duration_seconds=round(span_ms / 1000) if span_ms > 0 else None,
            message_length=components.message_length,
            raw_text=" ".join(f.cleaned_text for f in window.fragments if f.cleaned_text),
            codeword=components.codeword,
            time_code=components.time_code,
            authentication=components.authentication,
        )

    async def _find_existing(self, evaluation: WindowEvaluation, now_ms: int) -> DetectedMessage | None:
        components = evaluation.components
        lookback = self._config.repeat_lookback_ms
        if components.header:
            return await self._call_store(
                self._store.find_recent_message_by_header, components.header, lookback, now_ms
            )
        if components.body:
            return await self._call_store(
                self._store.find_recent_message_by_body_similarity,
                components.body,
                lookback,
                now_ms,
                self._config.body_similarity_threshold,
            )
        return None

    async def _accept(self, evaluation: WindowEvaluation) -> DetectionOutcome:
        """Merge the accepted window into a recent message or insert a new one."""
        window = evaluation.window
        now_ms = window.last_end_ms or 0
        event: MessageEvent | None = None

        async with self._merge_lock:
            existing = await self._find_existing(evaluation, now_ms)
            message: DetectedMessage | None = None
            is_repeat = False

            if existing is not None and existing.id is not None:
                new_ids = [i for i in window.fragment_ids if i not in existing.recording_ids]
                if not new_ids:
                    message, is_repeat = existing, True
                else:
                    message = await self._call_store(
                        self._store.append_recording_ids, existing.id, new_ids, now_ms
                    )
                    if message is not None:
                        is_repeat = True
                        event = MessageEvent(message=message, is_repeat=True)
                        self._stats["repeat_merges"] += 1
                        logger.info(
                            "Repeat of message %s (header=%s): +%d recordings, repeat_count=%d",
                            message.id,
                            message.header,
                            len(new_ids),
                            message.repeat_count,
                        )

            if message is None:
                message = self._build_message(evaluation)
                # Inserts are not idempotent and are never retried
                message.id = await self._call_store(self._store.insert_message, message, retry=False)
                event = MessageEvent(message=message, is_repeat=False)
                self._stats["new_messages"] += 1
                if message.multi_segment:
                    self._stats["multi_segment"] += 1
                logger.info(
                    "New %s message %s (header=%s, confidence=%d, segments=%d)",
                    message.message_type.value,
                    message.id,
                    message.header,
                    message.confidence_score,
                    message.segment_count,
                )

        if event is not None:
            self._stats["total_detected"] += 1
            self._stats["last_detection_ms"] = int(time.time() * 1000)
            self._emit(event)

        return DetectionOutcome(
            state=EvaluationState.ACCEPTED,
            fragment_ids=window.fragment_ids,
            message_id=message.id,
            confidence_score=evaluation.score,
            is_repeat=is_repeat,
        )

    def _emit(self, event: MessageEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Message listener %r failed", listener)
