"""
Description Normalizer & Similarity Scorer

Bank descriptions wrap the merchant name in noise: embedded dates,
reference codes, card-network prefixes, city and state suffixes. The
normalizer strips that noise so two descriptions of the same payee compare
equal, then similarity() turns edit distance into a score in [0, 1].

Pipeline (each step idempotent, applied in this order):
1. case-fold
2. strip embedded date tokens (MM/DD, MM/DD/YY, MM/DD/YYYY)
3. strip bank metadata: reference codes, noise words, trailing ZIP and
   trailing CITY ST
4. punctuation to spaces, collapse whitespace, trim

A description made only of metadata falls back to its case-folded text.

Shared by reconciliation scoring and duplicate-import detection.
"""

import re
from datetime import date
from typing import Optional

from rapidfuzz.distance import Levenshtein


_DATE_TOKEN = re.compile(r"(?<![\d/])(\d{1,2})/(\d{1,2})(?:/(\d{2}|\d{4}))?(?![\d/])")

# Explicit reference prefixes consume the value that follows them
_PREFIXED_REFERENCE = re.compile(
    r"\b(?:ref|conf|confirmation|trace|auth|ppd id|web id|id)\s*[#:]\s*\S+"
)

# Long tokens mixing letters, digits and #*- that contain at least one digit
_REFERENCE_TOKEN = re.compile(r"^[a-z0-9#*\-]{6,}$")

# A run of five or more letters is a word ("7-eleven", "1password"), not a code
_WORD_RUN = re.compile(r"[a-z]{5,}")

_NOISE_WORDS = frozenset({
    "purchase",
    "pos",
    "debit",
    "card",
    "checkcard",
    "mobile",
    "recurring",
    "autopay",
    "online",
    "web",
    "ach",
})

_ZIP_CODE = re.compile(r"^\d{5}(?:-\d{4})?$")

_US_STATES = frozenset({
    "al", "ak", "az", "ar", "ca", "co", "ct", "de", "fl", "ga",
    "hi", "id", "il", "in", "ia", "ks", "ky", "la", "me", "md",
    "ma", "mi", "mn", "ms", "mo", "mt", "ne", "nv", "nh", "nj",
    "nm", "ny", "nc", "nd", "oh", "ok", "or", "pa", "ri", "sc",
    "sd", "tn", "tx", "ut", "vt", "va", "wa", "wv", "wi", "wy",
    "dc",
})

_PUNCTUATION = re.compile(r"[^\w\s]|_")
_WHITESPACE = re.compile(r"\s+")


def _strip_dates(text: str) -> str:
    return _DATE_TOKEN.sub(" ", text)


def _is_reference_token(token: str) -> bool:
    token = token.strip("()[]{}.,;:'\"")
    return (
        bool(_REFERENCE_TOKEN.match(token))
        and any(c.isdigit() for c in token)
        and not _WORD_RUN.search(token)
    )


def _strip_metadata(text: str) -> str:
    text = _PREFIXED_REFERENCE.sub(" ", text)
    tokens = [
        t for t in text.split()
        if not _is_reference_token(t) and t.strip(".,") not in _NOISE_WORDS
    ]

    # Location suffix: "... 98101" or "... SEATTLE WA"
    while tokens and _ZIP_CODE.match(tokens[-1]):
        tokens.pop()
    if len(tokens) >= 3 and tokens[-1].strip(".,") in _US_STATES:
        tokens = tokens[:-2]

    return " ".join(tokens)


def _clean_punctuation(text: str) -> str:
    text = _PUNCTUATION.sub(" ", text)
    return _WHITESPACE.sub(" ", text).strip()


def normalize_description(text: Optional[str]) -> str:
    """Reduce a bank description to its comparable core."""
    if not text:
        return ""
    folded = text.casefold()
    text = _strip_dates(folded)
    text = _strip_metadata(text)
    text = _clean_punctuation(text)
    # Punctuation removal can expose new noise ("pos-debit" → "pos debit")
    core = " ".join(t for t in text.split() if t not in _NOISE_WORDS)
    # All-metadata descriptions ("ACH 98765432") keep their folded text
    return core or _clean_punctuation(folded)


def similarity(a: Optional[str], b: Optional[str]) -> float:
    """
    1 - levenshtein(na, nb) / max(len(na), len(nb)) over normalized text.

    Symmetric, in [0, 1]. Two empty descriptions are identical (1.0);
    an empty description shares nothing with a non-empty one (0.0).
    """
    na = normalize_description(a)
    nb = normalize_description(b)
    if not na and not nb:
        return 1.0
    if not na or not nb:
        return 0.0
    distance = Levenshtein.distance(na, nb)
    return 1.0 - distance / max(len(na), len(nb))


def extract_initiated_date(text: Optional[str], posted_date: date) -> Optional[date]:
    """
    The date a card purchase was initiated, when the bank embeds it.

    Descriptions like "SQ *COFFEE 03/14 SEATTLE WA" carry MM/DD without a
    year. The year comes from the posted date, rolled back one year when
    the month is after the posted month (December purchase posted in
    January). A date after the posted date is ignored.
    """
    if not text:
        return None

    for match in _DATE_TOKEN.finditer(text):
        month, day, year_text = match.group(1), match.group(2), match.group(3)
        month, day = int(month), int(day)
        if not 1 <= month <= 12:
            continue

        if year_text:
            year = int(year_text)
            if year < 100:
                year += 2000
        else:
            year = posted_date.year
            if month > posted_date.month:
                year -= 1

        try:
            initiated = date(year, month, day)
        except ValueError:
            continue

        if initiated <= posted_date:
            return initiated

    return None
