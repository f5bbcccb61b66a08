"""Tests for fragment preprocessing: noise stripping, phonetics and indicators."""

from __future__ import annotations

import pytest

from eamwatch.ingestion.models import TranscriptFragment
from eamwatch.ingestion.preprocessor import (
    INDICATOR_POINTS,
    NOISE_PATTERNS,
    clean_text,
    detect_indicators,
    estimate_confidence,
    normalize,
    normalize_cached,
    normalize_phonetics,
    strip_noise,
)

# ---------------------------------------------------------------------------
# Noise stripping
# ---------------------------------------------------------------------------

NOISE_FIXTURES = [
    ("compact_datetime", "26/10/202519:33:2130s HEADER BODY"),
    ("spaced_datetime", "26/10/2025 19:33:21 30s HEADER BODY"),
    ("iso_utc", "2025-10-26T19:33:21Z HEADER BODY"),
    ("iso_local", "2025-10-26T19:33:21.5 HEADER BODY"),
    ("iso_spaced", "2025-10-26 19:33:21 HEADER BODY"),
    ("bracketed_timecode", "[00:12:34] HEADER BODY"),
    ("duration", "HEADER BODY 2m30s"),
]


class TestStripNoise:
    def test_every_shape_has_a_fixture(self) -> None:
        assert {name for name, _ in NOISE_FIXTURES} == set(NOISE_PATTERNS)

    @pytest.mark.parametrize(("shape", "raw"), NOISE_FIXTURES)
    def test_shape_removed(self, shape: str, raw: str) -> None:
        cleaned = clean_text(raw)
        assert cleaned == "HEADER BODY"
        assert NOISE_PATTERNS[shape].search(cleaned) is None

    def test_spaced_datetime_example(self) -> None:
        cleaned = clean_text("26/10/2025 19:33:21 30s HEADER BODY")
        assert "HEADER BODY" in cleaned
        assert "2025" not in cleaned
        assert "19:33" not in cleaned
        assert "30S" not in cleaned

    @pytest.mark.parametrize("duration", ["45sec", "10 seconds", "3 min 20 sec", "30s"])
    def test_duration_variants(self, duration: str) -> None:
        assert strip_noise(f"stand by {duration}") == "stand by"

    def test_unknown_marker_removed(self) -> None:
        assert strip_noise("stand [Unknown] by") == "stand by"

    def test_whitespace_collapsed(self) -> None:
        assert strip_noise("  alpha \n\t bravo  ") == "alpha bravo"

    def test_plain_text_untouched(self) -> None:
        assert strip_noise("radio check") == "radio check"


# ---------------------------------------------------------------------------
# Phonetic normalization
# ---------------------------------------------------------------------------


class TestNormalizePhonetics:
    def test_letters_and_digits_collapse(self) -> None:
        text, groups, count = normalize_phonetics("Alpha Bravo Charlie One Two Three")
        assert text == "ABC123"
        assert groups == ("ABC123",)
        assert count == 3

    def test_punctuation_splits_groups(self) -> None:
        _, groups, _ = normalize_phonetics("Alpha Bravo, Charlie Delta")
        assert groups == ("AB", "CD")

    def test_ordinary_words_kept(self) -> None:
        text, groups, _ = normalize_phonetics("message follows Kilo Lima")
        assert text == "MESSAGE FOLLOWS KL"
        assert groups == ("KL",)

    def test_lone_pronoun_is_not_a_group(self) -> None:
        text, groups, _ = normalize_phonetics("I say again")
        assert text == "I SAY AGAIN"
        assert groups == ()

    def test_icao_digits(self) -> None:
        _, groups, _ = normalize_phonetics("Niner Fife Tree")
        assert groups == ("953",)

    def test_spoken_and_numeric_digits_mix(self) -> None:
        _, groups, _ = normalize_phonetics("Zulu 4 Five")
        assert groups == ("Z45",)

    def test_mishearing_corrected(self) -> None:
        text, _, _ = normalize_phonetics("Force Lima")
        assert text == "FL"

    def test_air_force_left_alone(self) -> None:
        text, _, _ = normalize_phonetics("air force one")
        assert "FORCE" in text
        assert "FOXTROT" not in text

    def test_glued_words_split(self) -> None:
        _, groups, _ = normalize_phonetics("AlphaYankee")
        assert groups == ("AY",)

    def test_fillers_dropped(self) -> None:
        _, groups, _ = normalize_phonetics("Uh Alpha um Bravo")
        assert groups == ("AB",)

    @pytest.mark.parametrize("filler", ["uh", "um", "you know", "I think", "get back"])
    def test_each_filler_dropped(self, filler: str) -> None:
        _, groups, _ = normalize_phonetics(f"Alpha {filler} Bravo")
        assert groups == ("AB",)

    def test_declared_length_not_a_group(self) -> None:
        text, groups, _ = normalize_phonetics("Message of three zero characters")
        assert text == "MESSAGE OF 30 CHARACTERS"
        assert groups == ()

    def test_xray_variants(self) -> None:
        _, groups, _ = normalize_phonetics("X-ray Xray Whisky")
        assert groups == ("XXW",)

    @pytest.mark.parametrize("spelling", ["X ray", "x ray", "X - ray", "X  RAY"])
    def test_spaced_xray(self, spelling: str) -> None:
        text, groups, _ = normalize_phonetics(f"{spelling} Yankee Zulu One Two")
        assert text == "XYZ12"
        assert groups == ("XYZ12",)


# ---------------------------------------------------------------------------
# Indicators and local confidence
# ---------------------------------------------------------------------------


class TestIndicators:
    def test_detects_in_order(self) -> None:
        hits = detect_indicators("stand-by, message follows")
        assert hits == ("STAND BY", "MESSAGE FOLLOWS")

    def test_message_length_indicator(self) -> None:
        assert "MESSAGE LENGTH" in detect_indicators("MESSAGE OF THIRTY CHARACTERS")

    def test_skyking_spaced(self) -> None:
        assert detect_indicators("sky king sky king") == ("SKYKING",)

    def test_none(self) -> None:
        assert detect_indicators("radio check") == ()

    def test_confidence_sums_points(self) -> None:
        score = estimate_confidence(("SKYKING", "STAND BY"), phonetic_count=10)
        assert score == 25 + 20 + 20

    def test_confidence_capped(self) -> None:
        assert estimate_confidence(tuple(INDICATOR_POINTS), phonetic_count=50) == 100


class TestNormalize:
    def _fragment(self, raw_text: object) -> TranscriptFragment:
        return TranscriptFragment(
            id="f1", channel_id="ch", start_time_ms=0, duration_ms=0, raw_text=raw_text  # type: ignore[arg-type]
        )

    def test_full_fragment(self) -> None:
        result = normalize(
            self._fragment("26/10/2025 19:33:21 30s Skyking, Skyking, do not answer. Alpha Bravo")
        )
        assert result.cleaned_text == "SKYKING, SKYKING, DO NOT ANSWER. ALPHA BRAVO"
        assert result.indicator_hits == ("SKYKING", "DO NOT ANSWER")
        assert result.code_groups == ("AB",)
        assert result.local_confidence == 40

    @pytest.mark.parametrize("raw", ["", "   ", None, 42])
    def test_malformed_input_is_empty(self, raw: object) -> None:
        result = normalize(self._fragment(raw))
        assert result.cleaned_text == ""
        assert result.indicator_hits == ()
        assert result.code_groups == ()
        assert result.local_confidence == 0

    def test_cached_returns_same_object(self) -> None:
        fragment = self._fragment("Alpha Bravo")
        assert normalize_cached(fragment) is normalize_cached(fragment)
