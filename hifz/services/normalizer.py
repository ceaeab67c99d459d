"""Arabic text normalization for recitation matching.

Quranic (Uthmani) script and the simple script a speech recognizer emits
spell the same words differently: full vowel marks, the dagger alef standing
in for an elided long vowel, alef wasla, kashida, and annotation marks that
sit inside or between words.  ``normalize`` folds both sides to one
comparable form; ``clean_passage_marks`` removes the annotation marks the
same way everywhere a word count is derived.
"""

from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass

# Letters
ALEF = "\u0627"              # ا
YEH = "\u064A"               # ي
HEH = "\u0647"               # ه
TEH_MARBUTA = "\u0629"       # ة
SUPERSCRIPT_ALEF = "\u0670"  # dagger alef
TATWEEL = "\u0640"           # kashida

_DIACRITICS_RE = re.compile("[\u064B-\u065F]")
_FORMAT_CONTROLS_RE = re.compile("[\u200B-\u200F\u202A-\u202E\uFEFF]")
_ALEF_VARIANTS_RE = re.compile("[\u0623\u0625\u0622\u0671]")  # أ إ آ ٱ
_YEH_VARIANTS_RE = re.compile("[\u0649\u0626]")                # ى ئ
_NON_ARABIC_RE = re.compile(
    "[^\u0600-\u06FF\u0750-\u077F\u08A0-\u08FF\uFB50-\uFDFF\uFE70-\uFEFF\\s]"
)

# Quranic annotation marks written inside a word: deleted, no split.
IN_WORD_MARKS = "\u06D6-\u06DC\u06DF-\u06E4\u06E7-\u06E8\u06EA-\u06ED"
# Pause/end marks that act as a word boundary: replaced by a space.
SEPARATOR_MARKS = "\u06DD\u06DE\u06E5\u06E6\u06E9\u0600-\u0605"

IN_WORD_MARKS_RE = re.compile(f"[{IN_WORD_MARKS}]")
SEPARATOR_MARKS_RE = re.compile(f"[{SEPARATOR_MARKS}]")
_WHITESPACE_RE = re.compile(r"\s+")


@dataclass(frozen=True)
class NormalizeOptions:
    remove_diacritics: bool = True
    fill_superscript_alef: bool = True
    remove_kashida: bool = True
    normalize_alef: bool = True
    normalize_yeh: bool = True
    normalize_teh_marbuta: bool = True


DEFAULT_OPTIONS = NormalizeOptions()


def normalize(text: str, options: NormalizeOptions | None = None) -> str:
    """Canonicalize Arabic text for comparison.

    The dagger alef is mapped to a full alef rather than deleted, so
    ``مَـٰلِكِ`` normalizes to ``مالك`` (its phonetic spelling) and not ``ملك``.
    """
    opts = options or DEFAULT_OPTIONS

    result = unicodedata.normalize("NFD", text)

    if opts.remove_diacritics:
        result = _DIACRITICS_RE.sub("", result)

    result = _FORMAT_CONTROLS_RE.sub("", result)

    if opts.fill_superscript_alef:
        result = result.replace(SUPERSCRIPT_ALEF, ALEF)

    if opts.remove_kashida:
        result = result.replace(TATWEEL, "")

    if opts.normalize_alef:
        result = _ALEF_VARIANTS_RE.sub(ALEF, result)

    if opts.normalize_yeh:
        result = _YEH_VARIANTS_RE.sub(YEH, result)

    if opts.normalize_teh_marbuta:
        result = result.replace(TEH_MARBUTA, HEH)

    result = _NON_ARABIC_RE.sub("", result)

    return unicodedata.normalize("NFC", result).strip().lower()


def clean_passage_marks(text: str) -> str:
    """Strip Quranic annotation marks, keeping word boundaries intact."""
    cleaned = IN_WORD_MARKS_RE.sub("", text)
    cleaned = SEPARATOR_MARKS_RE.sub(" ", cleaned)
    return _WHITESPACE_RE.sub(" ", cleaned).strip()


def split_transcript(text: str) -> list[str]:
    """Split recognizer output into word tokens."""
    return [w for w in clean_passage_marks(text).split(" ") if w]
