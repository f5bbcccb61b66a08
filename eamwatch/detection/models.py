"""Data models for detection results and persisted messages."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from eamwatch.ingestion.models import AggregationWindow
from eamwatch.pipeline_config import HeaderQuality, MessageType


class EvaluationState(StrEnum):
    """Detector states; ACCEPTED and REJECTED are terminal."""

    EVALUATING_FULL = "EVALUATING_FULL"
    EVALUATING_WINDOWS = "EVALUATING_WINDOWS"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"


@dataclass
class DetectedMessage:
    """A structured message reconstructed from one or more fragments.

    ``header``, ``body`` and ``confidence_score`` are fixed at creation;
    repeat merges only touch ``recording_ids`` and the repeat metadata.
    """

    message_type: MessageType
    header: str | None
    body: str
    confidence_score: int
    recording_ids: list[str]
    first_detected_at: int
    last_detected_at: int
    channel_id: str | None = None
    segment_count: int = 1
    multi_segment: bool = False
    duration_seconds: int | None = None
    message_length: int | None = None
    raw_text: str = ""
    repeat_count: int = 1
    codeword: str | None = None
    time_code: str | None = None
    authentication: str | None = None
    id: str | None = None

    def to_row(self) -> dict[str, Any]:
        """Column mapping used by the ``detected_messages`` table."""
        row: dict[str, Any] = {
            "message_type": self.message_type.value,
            "header": self.header,
            "body": self.body,
            "confidence_score": self.confidence_score,
            "recording_ids": list(self.recording_ids),
            "first_detected_at_ms": self.first_detected_at,
            "last_detected_at_ms": self.last_detected_at,
            "channel_id": self.channel_id,
            "segment_count": self.segment_count,
            "multi_segment": self.multi_segment,
            "duration_seconds": self.duration_seconds,
            "message_length": self.message_length,
            "raw_text": self.raw_text,
            "repeat_count": self.repeat_count,
            "codeword": self.codeword,
            "time_code": self.time_code,
            "authentication": self.authentication,
        }
        if self.id is not None:
            row["id"] = self.id
        return row

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> DetectedMessage:
        recording_ids = row.get("recording_ids") or []
        return cls(
            id=str(row["id"]) if row.get("id") is not None else None,
            message_type=MessageType(row.get("message_type", MessageType.UNKNOWN.value)),
            header=row.get("header"),
            body=row.get("body") or "",
            confidence_score=int(row.get("confidence_score") or 0),
            recording_ids=[str(r) for r in recording_ids],
            first_detected_at=int(row["first_detected_at_ms"]),
            last_detected_at=int(row["last_detected_at_ms"]),
            channel_id=row.get("channel_id"),
            segment_count=int(row.get("segment_count") or len(recording_ids) or 1),
            multi_segment=bool(row.get("multi_segment")),
            duration_seconds=row.get("duration_seconds"),
            message_length=row.get("message_length"),
            raw_text=row.get("raw_text") or "",
            repeat_count=int(row.get("repeat_count") or 1),
            codeword=row.get("codeword"),
            time_code=row.get("time_code"),
            authentication=row.get("authentication"),
        )


@dataclass(frozen=True)
class MessageComponents:
    """Structural pieces extracted from a window's normalized text."""

    header: str | None = None
    header_quality: HeaderQuality = HeaderQuality.NONE
    body: str = ""
    message_length: int | None = None
    say_again_count: int = 0
    codeword: str | None = None
    time_code: str | None = None
    authentication: str | None = None

    @property
    def body_chars(self) -> int:
        return len(self.body.replace(" ", ""))

    def has_content(self, min_body_chars: int = 1) -> bool:
        """A header, a Skyking codeword, or a body of at least *min_body_chars*."""
        return (
            self.header is not None
            or self.codeword is not None
            or self.body_chars >= max(1, min_body_chars)
        )


@dataclass(frozen=True)
class WindowEvaluation:
    """A scored window."""

    window: AggregationWindow
    components: MessageComponents
    score: int
    breakdown: dict[str, int] = field(default_factory=dict)
    indicator_hits: tuple[str, ...] = ()
    repeated_pattern: bool = False
    looping: bool = False


@dataclass(frozen=True)
class DetectionOutcome:
    """Result of one Detector evaluation cycle."""

    state: EvaluationState
    fragment_ids: tuple[str, ...] = ()
    message_id: str | None = None
    confidence_score: int | None = None
    cached: bool = False
    is_repeat: bool = False
    error: str | None = None

    @property
    def accepted(self) -> bool:
        return self.state is EvaluationState.ACCEPTED


@dataclass(frozen=True)
class MessageEvent:
    """Emitted once per new message and once per repeat merge."""

    message: DetectedMessage
    is_repeat: bool
