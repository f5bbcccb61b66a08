"""Data models for fragment ingestion and window building."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class TranscriptFragment:
    """One timestamped unit of transcribed text from a monitored channel."""

    id: str
    channel_id: str
    start_time_ms: int
    duration_ms: int
    raw_text: str

    @property
    def end_time_ms(self) -> int:
        return self.start_time_ms + max(0, self.duration_ms or 0)


@dataclass(frozen=True)
class NormalizedFragment:
    """Preprocessor output for a single fragment."""

    fragment: TranscriptFragment
    cleaned_text: str
    phonetic_normalized_text: str
    code_groups: tuple[str, ...] = ()
    indicator_hits: tuple[str, ...] = ()
    phonetic_count: int = 0
    local_confidence: int = 0


@dataclass(frozen=True)
class AggregationWindow:
    """A chronological span of fragments from one channel, evaluated as one text."""

    fragments: tuple[NormalizedFragment, ...] = field(default_factory=tuple)

    @property
    def fragment_ids(self) -> tuple[str, ...]:
        return tuple(f.fragment.id for f in self.fragments)

    @property
    def combined_text(self) -> str:
        return " ".join(
            f.phonetic_normalized_text for f in self.fragments if f.phonetic_normalized_text
        )

    @property
    def code_groups(self) -> tuple[str, ...]:
        return tuple(g for f in self.fragments for g in f.code_groups)

    @property
    def segment_count(self) -> int:
        return len(self.fragments)

    @property
    def first_start_ms(self) -> int | None:
        if not self.fragments:
            return None
        return self.fragments[0].fragment.start_time_ms

    @property
    def last_end_ms(self) -> int | None:
        if not self.fragments:
            return None
        return max(f.fragment.end_time_ms for f in self.fragments)

    @property
    def span_ms(self) -> int:
        if not self.fragments:
            return 0
        return (self.last_end_ms or 0) - (self.first_start_ms or 0)
