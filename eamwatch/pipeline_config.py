"""Detection policy: enums, scoring weights and the DetectionConfig dataclass."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from eamwatch.config import Settings


class MessageType(str, Enum):
    """Kinds of detected message records."""

    STRUCTURED = "STRUCTURED"
    UNKNOWN = "UNKNOWN"


class StoreBackend(str, Enum):
    """Available storage backends."""

    MEMORY = "memory"
    SUPABASE = "supabase"


class HeaderQuality(str, Enum):
    """How well-formed an extracted header token is."""

    NONE = "none"
    PARTIAL = "partial"
    WELL_FORMED = "well_formed"


@dataclass(frozen=True)
class ScoringWeights:
    """Weights of the window confidence formula.

    Every term is additive; the final score is clamped to 0-100.
    """

    header_well_formed: int = 30
    header_partial: int = 15
    body_full: int = 30
    body_partial: int = 15
    repeat: int = 20
    message_length_declared: int = 10
    message_length_match: int = 10
    indicator_density: int = 15
    multi_segment: int = 10
    per_extra_segment: int = 5
    max_segment_bonus: int = 20
    looping_penalty: int = 20
    # A complete Skyking broadcast is accepted on its own
    skyking: int = 90

    # Thresholds the weights above are keyed on
    body_full_chars: int = 20
    body_partial_chars: int = 10
    min_distinct_indicators: int = 2
    length_match_tolerance: int = 5


@dataclass(frozen=True)
class DetectionConfig:
    """Immutable configuration for the Detector.

    Defaults mirror the production policy: accept at 40, fall back to
    3-fragment sliding windows when at least 3 fragments are related,
    merge repeats seen within the last 30 minutes.
    """

    weights: ScoringWeights = field(default_factory=ScoringWeights)
    accept_threshold: int = 40
    window_size: int = 3
    min_fallback_fragments: int = 3
    related_radius_ms: int = 120_000
    max_related_fragments: int = 10
    repeat_lookback_ms: int = 30 * 60 * 1000
    body_similarity_threshold: float = 0.85
    store_timeout_s: float = 5.0

    @classmethod
    def from_settings(cls, settings: Settings) -> DetectionConfig:
        """Build a config from application settings (weights keep their defaults)."""
        return cls(
            accept_threshold=settings.accept_threshold,
            window_size=settings.sliding_window_size,
            related_radius_ms=settings.related_radius_seconds * 1000,
            max_related_fragments=settings.max_related_fragments,
            repeat_lookback_ms=settings.repeat_lookback_minutes * 60 * 1000,
            body_similarity_threshold=settings.body_similarity_threshold,
            store_timeout_s=settings.store_timeout_seconds,
        )
