"""Fragment dispatch: one serialized detection worker per channel."""

from __future__ import annotations

import asyncio
import heapq
import itertools
import logging
from typing import Any

from eamwatch.detection.detector import Detector
from eamwatch.detection.models import DetectionOutcome
from eamwatch.ingestion.models import TranscriptFragment
from eamwatch.ingestion.preprocessor import normalize_cached

logger = logging.getLogger(__name__)

# (-local_confidence, start_time_ms, arrival_seq, fragment, future)
_QueueItem = tuple[int, int, int, TranscriptFragment, "asyncio.Future[DetectionOutcome]"]


class DispatcherClosedError(RuntimeError):
    """Raised when a fragment is submitted after shutdown started."""


class ChannelDispatcher:
    """Routes fragments to per-channel workers.

    Evaluations for one channel run one at a time, highest local confidence
    first (then oldest, then first arrived); different channels run
    concurrently. A channel's worker task is started on demand and exits
    once its queue drains.
    """

    def __init__(self, detector: Detector) -> None:
        self._detector = detector
        self._queues: dict[str, list[_QueueItem]] = {}
        self._workers: dict[str, asyncio.Task[None]] = {}
        self._seq = itertools.count()
        self._closed = False

    @property
    def detector(self) -> Detector:
        return self._detector

    @property
    def closed(self) -> bool:
        return self._closed

    def pending(self) -> int:
        return sum(len(q) for q in self._queues.values())

    def active_channels(self) -> list[str]:
        return sorted(ch for ch, task in self._workers.items() if not task.done())

    def submit(self, fragment: TranscriptFragment) -> asyncio.Future[DetectionOutcome]:
        """Queue *fragment* for evaluation on its channel's worker.

        Must be called from a running event loop.

        Returns:
            A future resolved with the cycle's :class:`DetectionOutcome`.

        Raises:
            DispatcherClosedError: If :meth:`close` has been called.
        """
        if self._closed:
            raise DispatcherClosedError("Dispatcher is shutting down")

        loop = asyncio.get_running_loop()
        future: asyncio.Future[DetectionOutcome] = loop.create_future()
        priority = normalize_cached(fragment).local_confidence
        channel_id = fragment.channel_id
        heapq.heappush(
            self._queues.setdefault(channel_id, []),
            (-priority, fragment.start_time_ms, next(self._seq), fragment, future),
        )

        worker = self._workers.get(channel_id)
        if worker is None or worker.done() or worker.get_loop() is not loop:
            self._workers[channel_id] = loop.create_task(
                self._run(channel_id), name=f"eamwatch-channel-{channel_id}"
            )
        return future

    async def process(self, fragment: TranscriptFragment) -> DetectionOutcome:
        """Submit *fragment* and wait for its outcome."""
        return await self.submit(fragment)

    async def _run(self, channel_id: str) -> None:
        queue = self._queues[channel_id]
        try:
            while queue:
                _, _, _, fragment, future = heapq.heappop(queue)
                if future.cancelled():
                    continue
                try:
                    outcome = await self._detector.evaluate(fragment)
                except Exception as exc:
                    logger.exception("Evaluation of fragment %s failed", fragment.id)
                    if not future.done():
                        future.set_exception(exc)
                else:
                    if not future.done():
                        future.set_result(outcome)
        finally:
            if self._workers.get(channel_id) is asyncio.current_task():
                del self._workers[channel_id]
            if not queue:
                self._queues.pop(channel_id, None)

    async def close(self) -> None:
        """Stop intake and wait for queued and in-flight evaluations to finish."""
        self._closed = True
        workers = [t for t in self._workers.values() if not t.done()]
        if workers:
            logger.info("Draining %d channel worker(s)", len(workers))
            await asyncio.gather(*workers, return_exceptions=True)

    def stats(self) -> dict[str, Any]:
        return {
            "pending": self.pending(),
            "active_channels": self.active_channels(),
            "closed": self._closed,
        }
