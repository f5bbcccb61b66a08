"""Fragment preprocessing: noise stripping, phonetic normalization and indicators.

Every function here is pure. :func:`normalize` never raises for malformed
input; an empty or non-text fragment yields an empty normalization with
zero indicator hits and zero confidence.
"""

from __future__ import annotations

import re
from functools import lru_cache

from eamwatch.ingestion.models import NormalizedFragment, TranscriptFragment

# Capture-pipeline metadata leaked into raw text. Applied in insertion order;
# each match is replaced by a space so a removal never glues its neighbours
# into a token a later pattern could misread.
NOISE_PATTERNS: dict[str, re.Pattern[str]] = {
    # 26/10/202519:33:2130s
    "compact_datetime": re.compile(r"\d{2}/\d{2}/\d{4}\d{2}:\d{2}:\d{2}(?:\d+s\b)?", re.IGNORECASE),
    # 26/10/2025 19:33:21 30s
    "spaced_datetime": re.compile(
        r"\d{2}/\d{2}/\d{4}\s+\d{2}:\d{2}:\d{2}(?:\s*\d+s\b)?", re.IGNORECASE
    ),
    # 2025-10-26T19:33:21Z, 2025-10-26T19:33:21.123Z
    "iso_utc": re.compile(r"\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(?:\.\d+)?Z", re.IGNORECASE),
    # 2025-10-26T19:33:21, 2025-10-26T19:33:21.5
    "iso_local": re.compile(r"\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(?:\.\d+)?", re.IGNORECASE),
    # 2025-10-26 19:33:21
    "iso_spaced": re.compile(r"\d{4}-\d{2}-\d{2}\s+\d{2}:\d{2}:\d{2}(?:\.\d+)?"),
    # [12:34], [00:12:34]
    "bracketed_timecode": re.compile(r"\[\d{1,2}:\d{2}(?::\d{2})?\]"),
    # 30s, 45sec, 2m30s, 10 seconds
    "duration": re.compile(
        r"\b\d+(?:m|\s*min(?:ute)?s?\s*)\d+(?:s|\s*sec(?:ond)?s?)\b"
        r"|\b\d+(?:s|\s*sec(?:ond)?s?)\b",
        re.IGNORECASE,
    ),
}

_UNKNOWN_MARKER_RE = re.compile(r"\[\s*unknown\s*\]", re.IGNORECASE)
_WHITESPACE_RE = re.compile(r"\s+")
_GLUED_WORDS_RE = re.compile(r"([a-z])([A-Z])")
_FILLER_RE = re.compile(r"\b(?:UH|UM|YOU KNOW|I THINK|GET BACK)\b")
# "X ray" and "X - ray" spoken as two words
_SPACED_XRAY_RE = re.compile(r"\bX[\s-]+RAY\b")

# Frequent ASR mishearings of phonetic words on HF voice traffic
MISHEARINGS: dict[str, str] = {
    "FORCE": "FOXTROT",
    "STRONG": "SIERRA",
    "STORM": "SIERRA",
    "HILO": "HOTEL",
}
# FORCE after AIR is not a mishearing
_MISHEARING_RE = re.compile(r"(?<!AIR )\b(" + "|".join(MISHEARINGS) + r")\b")

PHONETIC_ALPHABET: dict[str, str] = {
    "ALPHA": "A", "ALFA": "A", "BRAVO": "B", "CHARLIE": "C", "DELTA": "D",
    "ECHO": "E", "FOXTROT": "F", "GOLF": "G", "HOTEL": "H",
    "INDIA": "I", "JULIET": "J", "JULIETT": "J", "KILO": "K",
    "LIMA": "L", "MIKE": "M", "NOVEMBER": "N", "OSCAR": "O",
    "PAPA": "P", "QUEBEC": "Q", "ROMEO": "R", "SIERRA": "S",
    "TANGO": "T", "UNIFORM": "U", "VICTOR": "V", "WHISKEY": "W",
    "WHISKY": "W", "XRAY": "X", "X-RAY": "X", "YANKEE": "Y", "ZULU": "Z",
}

# Spoken digits, including ICAO radiotelephony pronunciations
DIGIT_WORDS: dict[str, str] = {
    "ZERO": "0", "ONE": "1", "TWO": "2", "THREE": "3", "TREE": "3",
    "FOUR": "4", "FIVE": "5", "FIFE": "5", "SIX": "6", "SEVEN": "7",
    "EIGHT": "8", "NINE": "9", "NINER": "9",
}

# Trigger phrases of structured broadcast traffic, matched on cleaned text
INDICATOR_PATTERNS: dict[str, re.Pattern[str]] = {
    "STAND BY": re.compile(r"\bSTAND\s*-?\s*BY\b"),
    "MESSAGE FOLLOWS": re.compile(r"\bMESSAGE\s+(?:FOLLOWS|BEGINS)\b"),
    "I SAY AGAIN": re.compile(r"\bI\s+SAY\s+AGAIN\b"),
    "MESSAGE LENGTH": re.compile(r"\bMESSAGE\s+OF\s+(?:[A-Z0-9-]+\s+){1,3}?CHARACTERS?\b"),
    "AUTHENTICATION": re.compile(r"\bAUTHENTICATION\b"),
    "SKYKING": re.compile(r"\bSKY\s*KING\b"),
    "DO NOT ANSWER": re.compile(r"\bDO\s+NOT\s+ANSWER\b"),
}

INDICATOR_POINTS: dict[str, int] = {
    "STAND BY": 20,
    "MESSAGE FOLLOWS": 20,
    "I SAY AGAIN": 20,
    "MESSAGE LENGTH": 15,
    "AUTHENTICATION": 20,
    "SKYKING": 25,
    "DO NOT ANSWER": 15,
}

_PUNCTUATION = ".,;:!?\"'()[]"

_LETTER = "letter"
_DIGIT = "digit"
_SINGLE = "single"
_WORD = "word"


def strip_noise(text: str) -> str:
    """Remove timestamp, duration and ``[Unknown]`` noise; collapse whitespace."""
    cleaned = text
    for pattern in NOISE_PATTERNS.values():
        cleaned = pattern.sub(" ", cleaned)
    cleaned = _UNKNOWN_MARKER_RE.sub(" ", cleaned)
    return _WHITESPACE_RE.sub(" ", cleaned).strip()


def clean_text(text: str) -> str:
    """Noise-stripped, upper-cased text."""
    return strip_noise(text).upper()


def detect_indicators(text: str) -> tuple[str, ...]:
    """Return the names of trigger phrases present in *text* (case-insensitive)."""
    upper = text.upper()
    return tuple(name for name, pattern in INDICATOR_PATTERNS.items() if pattern.search(upper))


def _classify(core: str) -> tuple[str, str]:
    if core in PHONETIC_ALPHABET:
        return _LETTER, PHONETIC_ALPHABET[core]
    if core in DIGIT_WORDS:
        return _DIGIT, DIGIT_WORDS[core]
    if core.isdigit():
        return _DIGIT, core
    if len(core) == 1 and core.isalpha():
        return _SINGLE, core
    return _WORD, core


def normalize_phonetics(text: str) -> tuple[str, tuple[str, ...], int]:
    """Collapse spoken letter/digit runs into canonical code groups.

    A run is a maximal sequence of phonetic words, digit words, digits and
    single letters not interrupted by punctuation; it collapses only if it
    holds at least one phonetic or digit token, so a lone ``I`` or ``A``
    stays a word. Digits declaring a message length (``MESSAGE OF 30
    CHARACTERS``) are collapsed in the text but not reported as a group.

    Returns:
        ``(normalized_text, code_groups, phonetic_count)``.
    """
    spaced = _GLUED_WORDS_RE.sub(r"\1 \2", text).upper()
    spaced = _SPACED_XRAY_RE.sub("XRAY", spaced)
    spaced = _MISHEARING_RE.sub(lambda m: MISHEARINGS[m.group(1)], spaced)
    spaced = _FILLER_RE.sub(" ", spaced)

    # (core, kind, char, breaks_before, breaks_after)
    tokens: list[tuple[str, str, str, bool, bool]] = []
    for raw in spaced.split():
        core = raw.strip(_PUNCTUATION)
        if not core:
            if tokens:
                core_, kind_, char_, before_, _ = tokens[-1]
                tokens[-1] = (core_, kind_, char_, before_, True)
            continue
        kind, char = _classify(core)
        tokens.append((core, kind, char, raw[0] in _PUNCTUATION, raw[-1] in _PUNCTUATION))

    output: list[str] = []
    groups: list[str] = []
    phonetic_count = sum(1 for t in tokens if t[1] == _LETTER)

    i = 0
    while i < len(tokens):
        if tokens[i][1] == _WORD:
            output.append(tokens[i][0])
            i += 1
            continue

        start = i
        end = i
        while (
            end + 1 < len(tokens)
            and tokens[end + 1][1] != _WORD
            and not tokens[end][4]
            and not tokens[end + 1][3]
        ):
            end += 1
        run = tokens[start : end + 1]
        i = end + 1

        if not any(t[1] in (_LETTER, _DIGIT) for t in run):
            output.extend(t[0] for t in run)
            continue

        group = "".join(t[2] for t in run)
        output.append(group)
        declares_length = (
            start > 0
            and tokens[start - 1][0] == "OF"
            and end + 1 < len(tokens)
            and tokens[end + 1][0].startswith("CHARACTER")
        )
        if not declares_length:
            groups.append(group)

    return " ".join(output), tuple(groups), phonetic_count


def estimate_confidence(indicator_hits: tuple[str, ...], phonetic_count: int) -> int:
    """Cheap 0-100 ordering heuristic; never a final message confidence."""
    score = sum(INDICATOR_POINTS.get(name, 0) for name in indicator_hits)
    score += (phonetic_count // 5) * 10
    return min(score, 100)


def normalize(fragment: TranscriptFragment) -> NormalizedFragment:
    """Normalize one raw fragment.

    Args:
        fragment: The fragment as produced by the capture pipeline.

    Returns:
        A :class:`NormalizedFragment`; empty with zero hits for empty or
        non-text input.
    """
    raw = fragment.raw_text if isinstance(fragment.raw_text, str) else ""
    if not raw.strip():
        return NormalizedFragment(fragment=fragment, cleaned_text="", phonetic_normalized_text="")

    stripped = strip_noise(raw)
    cleaned = stripped.upper()
    normalized, groups, phonetic_count = normalize_phonetics(stripped)
    hits = detect_indicators(cleaned)

    return NormalizedFragment(
        fragment=fragment,
        cleaned_text=cleaned,
        phonetic_normalized_text=normalized,
        code_groups=groups,
        indicator_hits=hits,
        phonetic_count=phonetic_count,
        local_confidence=estimate_confidence(hits, phonetic_count),
    )


@lru_cache(maxsize=4096)
def normalize_cached(fragment: TranscriptFragment) -> NormalizedFragment:
    """Memoized :func:`normalize`; fragments are immutable so results never go stale."""
    return normalize(fragment)
