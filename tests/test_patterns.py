"""Tests for bounded repeated-phrase detection."""

from __future__ import annotations

import time

from eamwatch.detection.patterns import MAX_SCAN_WORDS, has_repeated_pattern


class TestHasRepeatedPattern:
    def test_three_word_repeat(self) -> None:
        assert has_repeated_pattern("the quick fox jumps the quick fox")

    def test_eight_word_repeat(self) -> None:
        phrase = "one two three four five six seven eight"
        assert has_repeated_pattern(f"{phrase} and then {phrase}")

    def test_two_word_repeat_ignored(self) -> None:
        assert not has_repeated_pattern("stand by stand by now")

    def test_no_repeat(self) -> None:
        assert not has_repeated_pattern("alpha bravo charlie delta echo foxtrot golf hotel")

    def test_empty(self) -> None:
        assert not has_repeated_pattern("")

    def test_repeat_past_scan_cap_not_reported(self) -> None:
        prefix = " ".join(f"w{i}" for i in range(MAX_SCAN_WORDS))
        assert not has_repeated_pattern(f"{prefix} a b c d a b c d")

    def test_repeat_inside_cap_reported(self) -> None:
        prefix = " ".join(f"w{i}" for i in range(50))
        assert has_repeated_pattern(f"{prefix} a b c a b c")

    def test_latency_bounded_on_long_input(self) -> None:
        text = " ".join(f"word{i}" for i in range(10_000))
        started = time.perf_counter()
        result = has_repeated_pattern(text)
        elapsed = time.perf_counter() - started
        assert result is False
        assert elapsed < 0.05

    def test_latency_independent_of_length(self) -> None:
        short = " ".join(f"word{i}" for i in range(MAX_SCAN_WORDS))
        long = " ".join(f"word{i}" for i in range(100_000))

        started = time.perf_counter()
        for _ in range(10):
            has_repeated_pattern(short)
        short_elapsed = time.perf_counter() - started

        started = time.perf_counter()
        for _ in range(10):
            has_repeated_pattern(long)
        long_elapsed = time.perf_counter() - started

        assert long_elapsed < short_elapsed * 5 + 0.05
