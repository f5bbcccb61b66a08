"""Window building: related-fragment retrieval and candidate aggregation windows."""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

from eamwatch.ingestion.models import AggregationWindow, NormalizedFragment, TranscriptFragment

if TYPE_CHECKING:
    from eamwatch.ingestion.storage import MessageStore


def _chronological(fragments: Sequence[TranscriptFragment]) -> list[TranscriptFragment]:
    return sorted(fragments, key=lambda f: (f.start_time_ms, f.id))


def select_related(
    fragments: Sequence[TranscriptFragment],
    anchor_time_ms: int,
    max_fragments: int = 10,
) -> list[TranscriptFragment]:
    """Keep at most *max_fragments* fragments, the ones closest to the anchor.

    Duplicate ids are dropped. The result is in chronological order.
    """
    unique: dict[str, TranscriptFragment] = {}
    for fragment in fragments:
        unique.setdefault(fragment.id, fragment)

    selected = list(unique.values())
    if len(selected) > max_fragments:
        selected.sort(key=lambda f: (abs(f.start_time_ms - anchor_time_ms), f.start_time_ms))
        selected = selected[:max_fragments]

    return _chronological(selected)


class WindowBuilder:
    """Retrieves a channel's recent fragments through the store's range index.

    Args:
        store: Any :class:`~eamwatch.ingestion.storage.MessageStore`.
        radius_ms: Half-width of the time range around the anchor.
        max_fragments: Cap on fragments aggregated into one window.
    """

    def __init__(self, store: MessageStore, radius_ms: int = 120_000, max_fragments: int = 10):
        self._store = store
        self._radius_ms = radius_ms
        self._max_fragments = max_fragments

    def related_fragments(
        self,
        channel_id: str,
        anchor_time_ms: int,
        radius_ms: int | None = None,
    ) -> list[TranscriptFragment]:
        """Fragments of *channel_id* starting within ``anchor ± radius``, oldest first."""
        radius = self._radius_ms if radius_ms is None else radius_ms
        fragments = self._store.get_fragments_in_range(
            channel_id, anchor_time_ms - radius, anchor_time_ms + radius
        )
        return select_related(fragments, anchor_time_ms, self._max_fragments)


def build_window(fragments: Sequence[NormalizedFragment]) -> AggregationWindow:
    """Aggregate normalized fragments into one window in chronological order."""
    ordered = sorted(fragments, key=lambda f: (f.fragment.start_time_ms, f.fragment.id))
    return AggregationWindow(fragments=tuple(ordered))


def build_sliding_windows(
    fragments: Sequence[NormalizedFragment],
    window_size: int = 3,
) -> list[AggregationWindow]:
    """Create overlapping fixed-size windows (1-3, 2-4, 3-5, ...).

    Args:
        fragments: Normalized fragments of one channel.
        window_size: Fragments per window.

    Returns:
        One window per valid starting offset, earliest first. With fewer
        fragments than *window_size* a single window holding all of them is
        returned; with none, an empty list.
    """
    if not fragments:
        return []

    ordered = build_window(fragments).fragments
    if len(ordered) < window_size:
        return [AggregationWindow(fragments=ordered)]

    return [
        AggregationWindow(fragments=ordered[start : start + window_size])
        for start in range(len(ordered) - window_size + 1)
    ]
