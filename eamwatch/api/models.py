"""Pydantic request/response schemas for the eamwatch API."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from eamwatch.detection.models import DetectedMessage, DetectionOutcome, EvaluationState
from eamwatch.ingestion.models import TranscriptFragment
from eamwatch.pipeline_config import MessageType


class FragmentIn(BaseModel):
    """Request body for POST /api/fragments."""

    id: str = Field(min_length=1)
    channel_id: str = Field(min_length=1)
    start_time_ms: int = Field(ge=0)
    duration_ms: int = Field(default=0, ge=0)
    raw_text: str = ""

    def to_fragment(self) -> TranscriptFragment:
        return TranscriptFragment(
            id=self.id,
            channel_id=self.channel_id,
            start_time_ms=self.start_time_ms,
            duration_ms=self.duration_ms,
            raw_text=self.raw_text,
        )


class FragmentResult(BaseModel):
    """Outcome of the detection cycle triggered by a fragment."""

    fragment_id: str
    state: EvaluationState
    fragment_ids: list[str] = []
    message_id: str | None = None
    confidence_score: int | None = None
    cached: bool = False
    is_repeat: bool = False
    error: str | None = None

    @classmethod
    def from_outcome(cls, fragment_id: str, outcome: DetectionOutcome) -> FragmentResult:
        return cls(
            fragment_id=fragment_id,
            state=outcome.state,
            fragment_ids=list(outcome.fragment_ids),
            message_id=outcome.message_id,
            confidence_score=outcome.confidence_score,
            cached=outcome.cached,
            is_repeat=outcome.is_repeat,
            error=outcome.error,
        )


class MessageOut(BaseModel):
    """A detected message as returned by the API."""

    id: str
    message_type: MessageType
    header: str | None = None
    body: str = ""
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

    @classmethod
    def from_message(cls, message: DetectedMessage) -> MessageOut:
        return cls(
            id=message.id or "",
            message_type=message.message_type,
            header=message.header,
            body=message.body,
            confidence_score=message.confidence_score,
            recording_ids=list(message.recording_ids),
            first_detected_at=message.first_detected_at,
            last_detected_at=message.last_detected_at,
            channel_id=message.channel_id,
            segment_count=message.segment_count,
            multi_segment=message.multi_segment,
            duration_seconds=message.duration_seconds,
            message_length=message.message_length,
            raw_text=message.raw_text,
            repeat_count=message.repeat_count,
            codeword=message.codeword,
            time_code=message.time_code,
            authentication=message.authentication,
        )


class StatisticsResponse(BaseModel):
    """Aggregate statistics over stored messages and the running detector."""

    messages: dict[str, Any]
    detector: dict[str, Any]
