"""Supabase storage for transcript fragments and detected messages."""

from __future__ import annotations

import logging
import uuid
from collections import Counter
from collections.abc import Iterable
from difflib import SequenceMatcher
from typing import Any, Protocol, cast

import httpx
from postgrest.exceptions import APIError
from supabase import Client, create_client

from eamwatch.config import get_settings
from eamwatch.detection.models import DetectedMessage
from eamwatch.ingestion.models import TranscriptFragment
from eamwatch.pipeline_config import MessageType

logger = logging.getLogger(__name__)

FRAGMENTS_TABLE = "transcript_fragments"
MESSAGES_TABLE = "detected_messages"
FRAGMENT_COLUMNS = "id,channel_id,start_time_ms,duration_ms,raw_text"

# Candidates fetched per body-similarity look-up
SIMILARITY_CANDIDATES = 50


class StoreUnavailableError(RuntimeError):
    """The backing store failed or timed out."""


class MessageStore(Protocol):
    """Storage collaborator used by the detection core."""

    def add_fragment(self, fragment: TranscriptFragment) -> None: ...

    def get_fragments_in_range(
        self, channel_id: str, start_ms: int, end_ms: int
    ) -> list[TranscriptFragment]: ...

    def find_recent_message_by_header(
        self, header: str, lookback_ms: int, now_ms: int
    ) -> DetectedMessage | None: ...

    def find_recent_message_by_body_similarity(
        self, body: str, lookback_ms: int, now_ms: int, threshold: float = 0.85
    ) -> DetectedMessage | None: ...

    def insert_message(self, message: DetectedMessage) -> str: ...

    def append_recording_ids(
        self, message_id: str, new_ids: list[str], detected_at_ms: int
    ) -> DetectedMessage | None: ...

    def get_message(self, message_id: str) -> DetectedMessage | None: ...

    def list_messages(
        self,
        message_type: MessageType | None = None,
        min_confidence: int = 0,
        limit: int = 50,
        offset: int = 0,
    ) -> list[DetectedMessage]: ...

    def search_messages(self, query: str, limit: int = 50) -> list[DetectedMessage]: ...

    def messages_for_recording(self, fragment_id: str) -> list[DetectedMessage]: ...

    def statistics(self) -> dict[str, Any]: ...


def body_similarity(a: str, b: str) -> float:
    """Similarity ratio (0-1) of two bodies, ignoring spacing and case."""
    left = a.replace(" ", "").upper()
    right = b.replace(" ", "").upper()
    if not left and not right:
        return 1.0
    return SequenceMatcher(None, left, right).ratio()


def best_body_match(
    body: str, candidates: Iterable[DetectedMessage], threshold: float
) -> DetectedMessage | None:
    """Most similar candidate at or above *threshold*, most recent first on ties."""
    best: DetectedMessage | None = None
    best_ratio = threshold
    for candidate in candidates:
        if not candidate.body:
            continue
        ratio = body_similarity(body, candidate.body)
        if ratio > best_ratio or (ratio == best_ratio and best is None):
            best, best_ratio = candidate, ratio
    return best


def summarize_messages(messages: list[DetectedMessage]) -> dict[str, Any]:
    """Aggregate statistics over detected messages."""
    total = len(messages)
    multi = [m for m in messages if m.multi_segment]
    return {
        "total": total,
        "average_confidence": round(sum(m.confidence_score for m in messages) / total) if total else 0,
        "most_recent_ms": max((m.first_detected_at for m in messages), default=None),
        "by_type": dict(Counter(m.message_type.value for m in messages)),
        "confidence_ranges": {
            "low": sum(1 for m in messages if m.confidence_score < 51),
            "medium": sum(1 for m in messages if 51 <= m.confidence_score <= 75),
            "high": sum(1 for m in messages if m.confidence_score > 75),
        },
        "multi_segment": {
            "total": len(multi),
            "average_segments": round(sum(m.segment_count for m in multi) / len(multi), 1) if multi else 0,
            "max_segments": max((m.segment_count for m in multi), default=0),
            "distribution": dict(sorted(Counter(m.segment_count for m in multi).items())),
        },
        "total_repeats": sum(m.repeat_count - 1 for m in messages),
    }


def get_supabase_client() -> Client:
    """Create and return a Supabase client from settings (env vars or .env)."""
    settings = get_settings()
    return create_client(settings.supabase_url, settings.supabase_key)


def _quote_filter_value(value: str) -> str:
    """Double-quote a PostgREST filter value so ``,`` ``(`` and ``)`` stay literal."""
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def _fragment_from_row(row: dict[str, Any]) -> TranscriptFragment:
    return TranscriptFragment(
        id=str(row["id"]),
        channel_id=row["channel_id"],
        start_time_ms=int(row["start_time_ms"]),
        duration_ms=int(row.get("duration_ms") or 0),
        raw_text=row.get("raw_text") or "",
    )


class SupabaseStore:
    """:class:`MessageStore` backed by the Supabase tables of the 001 migration.

    Every backend failure surfaces as :class:`StoreUnavailableError`.
    """

    def __init__(self, client: Client | None = None) -> None:
        self._client = client or get_supabase_client()

    def _execute(self, query: Any) -> list[dict[str, Any]]:
        try:
            result = query.execute()
        except (APIError, httpx.HTTPError) as exc:
            logger.warning("Supabase request failed: %s", exc)
            raise StoreUnavailableError(f"Supabase request failed: {exc}") from exc
        # Supabase .data is typed as JSON (broad union); cast to concrete type.
        return cast(list[dict[str, Any]], result.data or [])

    def _messages(self, rows: list[dict[str, Any]]) -> list[DetectedMessage]:
        return [DetectedMessage.from_row(r) for r in rows]

    def add_fragment(self, fragment: TranscriptFragment) -> None:
        self._execute(
            self._client.table(FRAGMENTS_TABLE).upsert(
                {
                    "id": fragment.id,
                    "channel_id": fragment.channel_id,
                    "start_time_ms": fragment.start_time_ms,
                    "duration_ms": fragment.duration_ms,
                    "raw_text": fragment.raw_text,
                }
            )
        )

    def get_fragments_in_range(
        self, channel_id: str, start_ms: int, end_ms: int
    ) -> list[TranscriptFragment]:
        """Range scan served by the ``(channel_id, start_time_ms)`` index."""
        rows = self._execute(
            self._client.table(FRAGMENTS_TABLE)
            .select(FRAGMENT_COLUMNS)
            .eq("channel_id", channel_id)
            .gte("start_time_ms", start_ms)
            .lte("start_time_ms", end_ms)
            .order("start_time_ms")
        )
        return [_fragment_from_row(r) for r in rows]

    def find_recent_message_by_header(
        self, header: str, lookback_ms: int, now_ms: int
    ) -> DetectedMessage | None:
        rows = self._execute(
            self._client.table(MESSAGES_TABLE)
            .select("*")
            .eq("header", header)
            .gte("last_detected_at_ms", now_ms - lookback_ms)
            .order("last_detected_at_ms", desc=True)
            .limit(1)
        )
        return DetectedMessage.from_row(rows[0]) if rows else None

    def find_recent_message_by_body_similarity(
        self, body: str, lookback_ms: int, now_ms: int, threshold: float = 0.85
    ) -> DetectedMessage | None:
        rows = self._execute(
            self._client.table(MESSAGES_TABLE)
            .select("*")
            .gte("last_detected_at_ms", now_ms - lookback_ms)
            .order("last_detected_at_ms", desc=True)
            .limit(SIMILARITY_CANDIDATES)
        )
        return best_body_match(body, self._messages(rows), threshold)

    def insert_message(self, message: DetectedMessage) -> str:
        row = message.to_row()
        row.pop("id", None)
        rows = self._execute(self._client.table(MESSAGES_TABLE).insert(row))
        if not rows:
            raise StoreUnavailableError("Insert returned no row")
        return str(rows[0]["id"])

    def append_recording_ids(
        self, message_id: str, new_ids: list[str], detected_at_ms: int
    ) -> DetectedMessage | None:
        """Atomic unique append via the ``append_recording_ids`` SQL function."""
        rows = self._execute(
            self._client.rpc(
                "append_recording_ids",
                {
                    "p_message_id": message_id,
                    "p_new_ids": list(new_ids),
                    "p_detected_at_ms": detected_at_ms,
                },
            )
        )
        return DetectedMessage.from_row(rows[0]) if rows else None

    def get_message(self, message_id: str) -> DetectedMessage | None:
        # ids are uuid columns; anything else cannot match a row
        try:
            uuid.UUID(message_id)
        except ValueError:
            return None
        rows = self._execute(self._client.table(MESSAGES_TABLE).select("*").eq("id", message_id))
        return DetectedMessage.from_row(rows[0]) if rows else None

    def list_messages(
        self,
        message_type: MessageType | None = None,
        min_confidence: int = 0,
        limit: int = 50,
        offset: int = 0,
    ) -> list[DetectedMessage]:
        query = self._client.table(MESSAGES_TABLE).select("*")
        if message_type is not None:
            query = query.eq("message_type", message_type.value)
        if min_confidence > 0:
            query = query.gte("confidence_score", min_confidence)
        query = query.order("first_detected_at_ms", desc=True).range(offset, offset + limit - 1)
        return self._messages(self._execute(query))

    def search_messages(self, query: str, limit: int = 50) -> list[DetectedMessage]:
        pattern = _quote_filter_value(f"%{query}%")
        rows = self._execute(
            self._client.table(MESSAGES_TABLE)
            .select("*")
            .or_(f"body.ilike.{pattern},header.ilike.{pattern}")
            .order("first_detected_at_ms", desc=True)
            .limit(limit)
        )
        return self._messages(rows)

    def messages_for_recording(self, fragment_id: str) -> list[DetectedMessage]:
        rows = self._execute(
            self._client.table(MESSAGES_TABLE)
            .select("*")
            .contains("recording_ids", [fragment_id])
            .order("first_detected_at_ms", desc=True)
        )
        return self._messages(rows)

    def statistics(self) -> dict[str, Any]:
        rows = self._execute(
            self._client.table(MESSAGES_TABLE).select(
                "id,message_type,confidence_score,first_detected_at_ms,last_detected_at_ms,"
                "segment_count,multi_segment,repeat_count"
            )
        )
        return summarize_messages(self._messages(rows))
