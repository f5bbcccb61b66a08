"""Repeated-phrase detection over bounded word windows."""

from __future__ import annotations

import re
from itertools import islice

MAX_SCAN_WORDS = 200
MIN_PHRASE_WORDS = 3
MAX_PHRASE_WORDS = 8

_WORD_RE = re.compile(r"\S+")


def has_repeated_pattern(
    text: str,
    max_scan_words: int = MAX_SCAN_WORDS,
    min_phrase: int = MIN_PHRASE_WORDS,
    max_phrase: int = MAX_PHRASE_WORDS,
) -> bool:
    """Return True if any phrase of 3-8 words occurs twice in the first 200 words.

    Only the first *max_scan_words* words are ever tokenized, so work is
    bounded by ``max_scan_words * (max_phrase - min_phrase + 1)`` set
    look-ups regardless of input length. A repeat that starts past the cap
    is not reported.
    """
    if not text:
        return False

    words = [m.group(0) for m in islice(_WORD_RE.finditer(text), max_scan_words)]
    seen: set[tuple[str, ...]] = set()

    for length in range(min_phrase, max_phrase + 1):
        if len(words) < length * 2:
            break
        seen.clear()
        for i in range(len(words) - length + 1):
            phrase = tuple(words[i : i + length])
            if phrase in seen:
                return True
            seen.add(phrase)

    return False
