"""
Normalization of card numbers and parallel names.

Checklists are unique by card number and variation name, but the same card
arrives as "#007", "7" or "07" and the same parallel as "Refractors",
"refractor" or "REFRACTOR". Comparisons always go through these helpers.
"""

import re

_PUNCTUATION_PATTERN = re.compile(r"[^\w\s/]")
_WHITESPACE_PATTERN = re.compile(r"\s+")

# Collector shorthand -> canonical parallel name
PARALLEL_ALIASES: dict[str, str] = {
    "refractors": "refractor",
    "xfractor": "x-fractor",
    "holo": "holographic",
    "rr": "rated rookie",
    "sp": "short print",
    "ssp": "super short print",
    "rwb": "red white blue",
    "red white & blue": "red white blue",
    "red, white & blue": "red white blue",
    "gold vinyl": "gold vinyl 1/1",
    "black finite": "black finite 1/1",
    "press proof": "press proof silver",
    "disco": "disco prizm",
    "mojo": "mojo refractor",
    "wave": "wave refractor",
}


def normalize_text(value: str | None) -> str:
    """Lowercase, strip punctuation except '/', collapse whitespace."""
    if value is None or not value.strip():
        return ""
    result = _PUNCTUATION_PATTERN.sub("", value.lower())
    return _WHITESPACE_PATTERN.sub(" ", result).strip()


def normalize_card_number(value: str | None) -> str:
    """
    Canonical card number.

    Leading '#' and zeros are dropped, so "#007" and "7" compare equal.
    A number made only of zeros becomes "0".
    """
    if value is None or not value.strip():
        return ""
    result = value.strip().lstrip("#").lstrip("0")
    return result or "0"


def normalize_parallel_name(value: str | None) -> str:
    """Canonical parallel name, with collector aliases expanded."""
    if value is None or not value.strip():
        return ""

    normalized = normalize_text(value)
    alias = PARALLEL_ALIASES.get(normalized) or PARALLEL_ALIASES.get(value.strip().lower())
    if alias is not None:
        return normalize_text(alias)
    return normalized


def _levenshtein(a: str, b: str) -> int:
    if not a:
        return len(b)
    if not b:
        return len(a)

    previous = list(range(len(b) + 1))
    for i, char_a in enumerate(a, start=1):
        current = [i]
        for j, char_b in enumerate(b, start=1):
            cost = 0 if char_a == char_b else 1
            current.append(min(previous[j] + 1, current[j - 1] + 1, previous[j - 1] + cost))
        previous = current
    return previous[-1]


def similarity(a: str | None, b: str | None) -> float:
    """
    Similarity of two names in [0.0, 1.0] after normalization.

    1.0 means equal once normalized; blank input scores 0.0.
    """
    if a is None or b is None or not a.strip() or not b.strip():
        return 0.0

    norm_a = normalize_text(a)
    norm_b = normalize_text(b)
    if norm_a == norm_b:
        return 1.0

    max_len = max(len(norm_a), len(norm_b))
    return 1.0 - _levenshtein(norm_a, norm_b) / max_len
