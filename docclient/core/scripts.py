from __future__ import annotations

import re

# Three or more consecutive Latin letters left behind by an English -> Hindi pass.
LATIN_RUN = re.compile(r"[A-Za-z]{3,}")
DEVANAGARI = re.compile(r"[ऀ-ॿ]")


def has_residual_latin(text: str | None) -> bool:
    if not text:
        return False
    return LATIN_RUN.search(text) is not None


def contains_devanagari(text: str | None) -> bool:
    if not text:
        return False
    return DEVANAGARI.search(text) is not None
