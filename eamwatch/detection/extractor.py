"""Structural extraction and confidence scoring of aggregation windows."""

from __future__ import annotations

import re
from itertools import takewhile

from eamwatch.detection.models import MessageComponents, WindowEvaluation
from eamwatch.detection.patterns import has_repeated_pattern
from eamwatch.ingestion.models import AggregationWindow, NormalizedFragment
from eamwatch.pipeline_config import HeaderQuality, ScoringWeights

HEADER_LENGTH = 6
PARTIAL_HEADER_MIN = 4
WELL_FORMED_REPEATS = 3
PARTIAL_REPEATS = 2

SAY_AGAIN_RE = re.compile(r"\bI\s+SAY\s+AGAIN\b")

# SKYKING SKYKING DO NOT ANSWER <codeword> ... <codeword> TIME <nn> AUTHENTICATION <xx>
SKYKING_RE = re.compile(
    r"\bSKY\s*KING\b.*?\bSKY\s*KING\b.*?\bDO\s+NOT\s+ANSWER\s+"
    r"([A-Z][A-Z0-9]*)\s+(?:\S+\s+)*?\1\b"
    r".*?\bTIME\s+(\d{2})\b"
    r".*?\bAUTHENTICATION\s+([A-Z]{2})\b"
)

_TENS = {
    "TEN": 10, "TWENTY": 20, "THIRTY": 30, "FORTY": 40,
    "FIFTY": 50, "SIXTY": 60, "SEVENTY": 70, "EIGHTY": 80, "NINETY": 90,
}
_LENGTH_DIGITS_RE = re.compile(r"\bMESSAGE\s+OF\s+(\d+)\s+CHARACTERS?\b")
_LENGTH_WORDS_RE = re.compile(
    r"\bMESSAGE\s+OF\s+(" + "|".join(_TENS) + r")(?:[\s-]+(\d))?\s+CHARACTERS?\b"
)


def _expand_glued_repeats(groups: tuple[str, ...]) -> list[str]:
    """Split groups like ``ABC123ABC123ABC123XY`` into ``ABC123`` x3 + ``XY``.

    ASR output without punctuation between repetitions collapses the whole
    header statement into a single group.
    """
    expanded: list[str] = []
    for group in groups:
        unit = group[:HEADER_LENGTH]
        repeats = 0
        if len(unit) == HEADER_LENGTH:
            while group.startswith(unit * (repeats + 1)):
                repeats += 1
        if repeats >= PARTIAL_REPEATS:
            expanded.extend([unit] * repeats)
            rest = group[HEADER_LENGTH * repeats :]
            if rest:
                expanded.append(rest)
        else:
            expanded.append(group)
    return expanded


def _join_split_units(groups: list[str]) -> list[str]:
    """Rejoin header statements split at a comma (``ABC``, ``123``).

    Two adjacent short groups forming a header-length unit are joined when
    the pair is stated at least twice in a row. A last statement glued to
    the following body (``ABC``, ``123XYZ``) is joined as well.
    """
    joined: list[str] = []
    i = 0
    while i < len(groups):
        pair = groups[i : i + 2]
        if (
            len(pair) == 2
            and len(pair[0]) < HEADER_LENGTH
            and len(pair[0]) + len(pair[1]) == HEADER_LENGTH
            and groups[i + 2 : i + 4] == pair
        ):
            unit = pair[0] + pair[1]
            while groups[i : i + 2] == pair:
                joined.append(unit)
                i += 2
            if i + 1 < len(groups) and groups[i] == pair[0] and groups[i + 1].startswith(pair[1]):
                joined.extend([unit, groups[i + 1][len(pair[1]) :]])
                i += 2
            continue
        joined.append(groups[i])
        i += 1
    return joined


def _run_length(groups: list[str], start: int) -> int:
    length = 1
    while start + length < len(groups) and groups[start + length] == groups[start]:
        length += 1
    return length


def find_header(groups: list[str]) -> tuple[str | None, HeaderQuality, int]:
    """Locate the header among code groups.

    Returns:
        ``(header, quality, end_index)`` where *end_index* is the index of
        the header's last consecutive repetition, or -1 when none is found.
    """
    for i, group in enumerate(groups):
        if len(group) == HEADER_LENGTH:
            run = _run_length(groups, i)
            if run >= WELL_FORMED_REPEATS:
                return group, HeaderQuality.WELL_FORMED, i + run - 1

    for i, group in enumerate(groups):
        if PARTIAL_HEADER_MIN <= len(group) <= HEADER_LENGTH:
            run = _run_length(groups, i)
            if run >= PARTIAL_REPEATS:
                return group, HeaderQuality.PARTIAL, i + run - 1

    return None, HeaderQuality.NONE, -1


def parse_message_length(text: str) -> int | None:
    """Read a ``MESSAGE OF N CHARACTERS`` declaration from normalized text."""
    match = _LENGTH_DIGITS_RE.search(text)
    if match:
        return int(match.group(1))
    match = _LENGTH_WORDS_RE.search(text)
    if match:
        return _TENS[match.group(1)] + int(match.group(2) or 0)
    return None


def extract_skyking(text: str) -> tuple[str, str, str] | None:
    """Read ``(codeword, time_code, authentication)`` from a Skyking broadcast.

    The codeword must be stated twice after "DO NOT ANSWER".
    """
    match = SKYKING_RE.search(text)
    if match is None:
        return None
    codeword, time_code, authentication = match.groups()
    return codeword, time_code, authentication


def extract_components(window: AggregationWindow) -> MessageComponents:
    """Extract header, body, declared length and repeat count from *window*.

    The body is the run of code groups following the header up to the
    header's next restatement; with no header, every code group. A
    header-less Skyking broadcast takes its codeword as the body.
    """
    groups = _join_split_units(_expand_glued_repeats(window.code_groups))
    header, quality, end = find_header(groups)

    if header is None:
        body_groups = groups
    else:
        body_groups = list(takewhile(lambda g: g != header, groups[end + 1 :]))

    text = window.combined_text
    skyking = extract_skyking(text)
    codeword = time_code = authentication = None
    if skyking is not None:
        codeword, time_code, authentication = skyking
        if header is None:
            body_groups = [codeword]

    return MessageComponents(
        header=header,
        header_quality=quality,
        body=" ".join(body_groups),
        message_length=parse_message_length(text),
        say_again_count=len(SAY_AGAIN_RE.findall(text)),
        codeword=codeword,
        time_code=time_code,
        authentication=authentication,
    )


def _collapse_stutter(words: list[str]) -> list[str]:
    return [w for i, w in enumerate(words) if i == 0 or w != words[i - 1]]


def is_looping(fragment: NormalizedFragment) -> bool:
    """A fragment repeating itself without declaring "I SAY AGAIN".

    Code groups are left out; a header stated several times is the
    broadcast format, not a loop.
    """
    if "I SAY AGAIN" in fragment.indicator_hits:
        return False
    codes = set(fragment.code_groups)
    words = [w for w in fragment.phonetic_normalized_text.split() if w not in codes]
    return has_repeated_pattern(" ".join(_collapse_stutter(words)))


def window_indicators(window: AggregationWindow) -> tuple[str, ...]:
    """Distinct indicator hits across the window, in first-seen order."""
    return tuple(dict.fromkeys(h for f in window.fragments for h in f.indicator_hits))


def score_window(window: AggregationWindow, weights: ScoringWeights | None = None) -> WindowEvaluation:
    """Extract and score a window.

    Args:
        window: The candidate window.
        weights: Scoring policy; defaults to :class:`ScoringWeights`.

    Returns:
        A :class:`WindowEvaluation` whose ``score`` is clamped to 0-100 and
        whose ``breakdown`` names each contributing term.
    """
    w = weights or ScoringWeights()
    components = extract_components(window)
    hits = window_indicators(window)
    repeated = has_repeated_pattern(window.combined_text)
    looping = any(is_looping(f) for f in window.fragments)

    breakdown: dict[str, int] = {}

    if components.header_quality is HeaderQuality.WELL_FORMED:
        breakdown["header"] = w.header_well_formed
    elif components.header_quality is HeaderQuality.PARTIAL:
        breakdown["header"] = w.header_partial

    if components.body_chars >= w.body_full_chars:
        breakdown["body"] = w.body_full
    elif components.body_chars >= w.body_partial_chars:
        breakdown["body"] = w.body_partial

    if components.codeword is not None:
        breakdown["skyking"] = w.skyking

    if components.say_again_count > 0 or (repeated and not looping):
        breakdown["repeat"] = w.repeat

    if components.message_length:
        breakdown["message_length"] = w.message_length_declared
        if (
            components.body_chars
            and abs(components.body_chars - components.message_length) <= w.length_match_tolerance
        ):
            breakdown["length_match"] = w.message_length_match

    if len(hits) >= w.min_distinct_indicators:
        breakdown["indicators"] = w.indicator_density

    if window.segment_count > 1:
        breakdown["multi_segment"] = w.multi_segment
        breakdown["segments"] = min((window.segment_count - 1) * w.per_extra_segment, w.max_segment_bonus)

    if looping:
        breakdown["looping"] = -w.looping_penalty

    score = max(0, min(100, sum(breakdown.values())))
    return WindowEvaluation(
        window=window,
        components=components,
        score=score,
        breakdown=breakdown,
        indicator_hits=hits,
        repeated_pattern=repeated,
        looping=looping,
    )
