"""Decide whether a spoken token matches an expected passage word.

Recognizer output is noisy and written in simple script, while the passage is
Uthmani.  Matching therefore runs on normalized forms, with a strictness
policy controlling how close "close enough" is.
"""

from __future__ import annotations

import logging

from hifz.config import settings
from hifz.services.normalizer import SUPERSCRIPT_ALEF, normalize

logger = logging.getLogger(__name__)


# Disconnected letters opening some surahs are recited by letter name.
_MUQATTAAT_RAW: dict[str, list[str]] = {
    "الم": ["الف", "لام", "ميم"],
    "المص": ["الف", "لام", "ميم", "صاد"],
    "المر": ["الف", "لام", "ميم", "راء"],
    "الر": ["الف", "لام", "راء"],
    "حم": ["حاء", "ميم"],
    "طه": ["طاء", "هاء"],
    "طسم": ["طاء", "سين", "ميم"],
    "طس": ["طاء", "سين"],
    "يس": ["ياء", "سين"],
    "ص": ["صاد"],
    "ق": ["قاف"],
    "ن": ["نون"],
    "كهيعص": ["كاف", "هاء", "ياء", "عين", "صاد"],
    "حمعسق": ["حاء", "ميم", "عين", "سين", "قاف"],
}

MUQATTAAT: dict[str, frozenset[str]] = {
    normalize(key): frozenset(normalize(name) for name in names)
    for key, names in _MUQATTAAT_RAW.items()
}


def edit_distance(a: str, b: str) -> int:
    """Levenshtein distance using a single row over the shorter string."""
    if a == b:
        return 0
    if len(a) < len(b):
        a, b = b, a
    if not b:
        return len(a)
    prev = list(range(len(b) + 1))
    for i, ca in enumerate(a):
        curr = [i + 1]
        for j, cb in enumerate(b):
            cost = 0 if ca == cb else 1
            curr.append(min(curr[j] + 1, prev[j + 1] + 1, prev[j] + cost))
        prev = curr
    return prev[len(b)]


def similarity(a: str, b: str) -> float:
    """1 - distance / longer length; 1.0 for equal strings."""
    if a == b:
        return 1.0
    longest = max(len(a), len(b))
    if not a or not b:
        return 0.0
    return 1.0 - edit_distance(a, b) / longest


def thresholds_for(strictness: str) -> tuple[float, float]:
    """(similarity, containment) thresholds for a strictness level."""
    return settings.strictness_thresholds.get(
        strictness, settings.strictness_thresholds["medium"]
    )


def _muqattaat_match(spoken_norm: str, expected_norm: str) -> bool:
    names = MUQATTAAT.get(expected_norm)
    return bool(names) and spoken_norm in names


def _contains(spoken: str, expected: str, ratio: float) -> bool:
    shorter, longer = sorted((spoken, expected), key=len)
    if shorter not in longer:
        return False
    return len(shorter) / len(longer) >= ratio


def matches(spoken: str, expected: str, strictness: str = "medium") -> bool:
    """True when *spoken* is an acceptable rendition of *expected*."""
    if spoken == expected:
        return True

    spoken_norm = normalize(spoken)
    expected_norm = normalize(expected)

    if spoken_norm and _muqattaat_match(spoken_norm, expected_norm):
        logger.debug("Muqatta'at match %r -> %r", spoken, expected)
        return True

    if not spoken_norm or not expected_norm:
        return False
    if spoken_norm == expected_norm:
        return True

    # Simple script often omits the long vowel the dagger alef stands for.
    if SUPERSCRIPT_ALEF in expected:
        if spoken_norm == normalize(expected.replace(SUPERSCRIPT_ALEF, "")):
            logger.debug("Dagger-alef match %r -> %r", spoken, expected)
            return True

    sim_threshold, containment = thresholds_for(strictness)

    if _contains(spoken_norm, expected_norm, containment):
        logger.debug("Containment match %r -> %r (%s)", spoken, expected, strictness)
        return True

    score = similarity(spoken_norm, expected_norm)
    logger.debug(
        "Similarity %r vs %r = %.3f (threshold %.2f)",
        spoken_norm, expected_norm, score, sim_threshold,
    )
    return score >= sim_threshold
