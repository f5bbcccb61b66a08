"""In-process MessageStore used by tests, the replay script and the ``memory`` backend."""

from __future__ import annotations

import bisect
import logging
import threading
import uuid
from dataclasses import replace
from typing import Any

from eamwatch.detection.models import DetectedMessage
from eamwatch.ingestion.models import TranscriptFragment
from eamwatch.ingestion.storage import best_body_match, summarize_messages
from eamwatch.pipeline_config import MessageType

logger = logging.getLogger(__name__)


class InMemoryStore:
    """Thread-safe :class:`~eamwatch.ingestion.storage.MessageStore`.

    Fragments are kept per channel in a list sorted by ``(start_time_ms, id)``
    so range queries are a bisect plus a slice. Returned messages are copies;
    callers cannot mutate stored state.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._fragments: dict[str, TranscriptFragment] = {}
        self._index: dict[str, list[tuple[int, str]]] = {}
        self._messages: dict[str, DetectedMessage] = {}

    def add_fragment(self, fragment: TranscriptFragment) -> None:
        with self._lock:
            previous = self._fragments.get(fragment.id)
            if previous is not None:
                self._index[previous.channel_id].remove((previous.start_time_ms, previous.id))
            self._fragments[fragment.id] = fragment
            bisect.insort(
                self._index.setdefault(fragment.channel_id, []),
                (fragment.start_time_ms, fragment.id),
            )

    def get_fragments_in_range(
        self, channel_id: str, start_ms: int, end_ms: int
    ) -> list[TranscriptFragment]:
        with self._lock:
            index = self._index.get(channel_id, [])
            lo = bisect.bisect_left(index, (start_ms, ""))
            hi = bisect.bisect_right(index, (end_ms, "\U0010ffff"))
            return [self._fragments[fid] for _, fid in index[lo:hi]]

    def _recent(self, lookback_ms: int, now_ms: int) -> list[DetectedMessage]:
        cutoff = now_ms - lookback_ms
        recent = [m for m in self._messages.values() if m.last_detected_at >= cutoff]
        recent.sort(key=lambda m: m.last_detected_at, reverse=True)
        return recent

    def find_recent_message_by_header(
        self, header: str, lookback_ms: int, now_ms: int
    ) -> DetectedMessage | None:
        with self._lock:
            for message in self._recent(lookback_ms, now_ms):
                if message.header == header:
                    return replace(message, recording_ids=list(message.recording_ids))
        return None

    def find_recent_message_by_body_similarity(
        self, body: str, lookback_ms: int, now_ms: int, threshold: float = 0.85
    ) -> DetectedMessage | None:
        with self._lock:
            match = best_body_match(body, self._recent(lookback_ms, now_ms), threshold)
            return replace(match, recording_ids=list(match.recording_ids)) if match else None

    def insert_message(self, message: DetectedMessage) -> str:
        with self._lock:
            message_id = message.id or uuid.uuid4().hex
            self._messages[message_id] = replace(
                message, id=message_id, recording_ids=list(message.recording_ids)
            )
        logger.debug("Inserted message %s (%d recordings)", message_id, len(message.recording_ids))
        return message_id

    def append_recording_ids(
        self, message_id: str, new_ids: list[str], detected_at_ms: int
    ) -> DetectedMessage | None:
        """Append ids not already present and update the repeat metadata.

        Returns the updated message, or ``None`` if *message_id* is unknown.
        With nothing new to add the stored record is returned unchanged.
        """
        with self._lock:
            message = self._messages.get(message_id)
            if message is None:
                return None
            known = set(message.recording_ids)
            added = [rid for rid in dict.fromkeys(new_ids) if rid not in known]
            if added:
                message.recording_ids.extend(added)
                message.repeat_count += 1
                message.last_detected_at = max(message.last_detected_at, detected_at_ms)
                message.segment_count = len(message.recording_ids)
                message.multi_segment = message.segment_count > 1
                span_ms = message.last_detected_at - message.first_detected_at
                message.duration_seconds = round(span_ms / 1000) if span_ms > 0 else None
            return replace(message, recording_ids=list(message.recording_ids))

    def get_message(self, message_id: str) -> DetectedMessage | None:
        with self._lock:
            message = self._messages.get(message_id)
            return replace(message, recording_ids=list(message.recording_ids)) if message else None

    def _snapshot(self) -> list[DetectedMessage]:
        with self._lock:
            messages = [replace(m, recording_ids=list(m.recording_ids)) for m in self._messages.values()]
        messages.sort(key=lambda m: m.first_detected_at, reverse=True)
        return messages

    def list_messages(
        self,
        message_type: MessageType | None = None,
        min_confidence: int = 0,
        limit: int = 50,
        offset: int = 0,
    ) -> list[DetectedMessage]:
        messages = [
            m
            for m in self._snapshot()
            if (message_type is None or m.message_type is message_type)
            and m.confidence_score >= min_confidence
        ]
        return messages[offset : offset + limit]

    def search_messages(self, query: str, limit: int = 50) -> list[DetectedMessage]:
        needle = query.upper()
        return [
            m for m in self._snapshot() if needle in m.body.upper() or needle in (m.header or "").upper()
        ][:limit]

    def messages_for_recording(self, fragment_id: str) -> list[DetectedMessage]:
        return [m for m in self._snapshot() if fragment_id in m.recording_ids]

    def statistics(self) -> dict[str, Any]:
        return summarize_messages(self._snapshot())

    def fragment_count(self) -> int:
        with self._lock:
            return len(self._fragments)
