from __future__ import annotations

from collections.abc import Callable

import pytest

from eamwatch.ingestion.models import TranscriptFragment

FragmentFactory = Callable[..., TranscriptFragment]


@pytest.fixture
def make_fragment() -> FragmentFactory:
    def _make(
        fid: str,
        raw_text: str,
        start_time_ms: int = 0,
        channel_id: str = "ch-1",
        duration_ms: int = 5_000,
    ) -> TranscriptFragment:
        return TranscriptFragment(
            id=fid,
            channel_id=channel_id,
            start_time_ms=start_time_ms,
            duration_ms=duration_ms,
            raw_text=raw_text,
        )

    return _make
