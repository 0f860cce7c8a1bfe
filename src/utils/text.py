"""
Text Normalization Helpers.

Shared by the aligner, the entity matcher and the semantic engine so that
every component agrees on what "the same text" means.
"""

import re
from collections import Counter

from rapidfuzz.distance import Levenshtein

_WS_RE = re.compile(r"\s+")
_WORD_RE = re.compile(r"[a-z0-9]+")
_LEADING_ARTICLE_RE = re.compile(r"^(the|a|an)\s+")


def normalize_whitespace(text: str) -> str:
    """Collapse whitespace runs and strip the ends."""
    return _WS_RE.sub(" ", text).strip()


def normalize_mention(text: str) -> str:
    """
    Normalize a surface mention for identity lookups.

    Case-folds, collapses whitespace and drops a leading article, so that
    "The  Vendor" and "the vendor" share one identity.

    Args:
        text: Raw mention text

    Returns:
        Normalized key
    """
    normalized = normalize_whitespace(text).casefold()
    return _LEADING_ARTICLE_RE.sub("", normalized)


def words(text: str) -> list[str]:
    """Lowercase alphanumeric words of a text."""
    return _WORD_RE.findall(text.lower())


def word_counts(text: str, min_length: int = 1) -> Counter[str]:
    """Word-frequency vector used for coarse content fingerprints."""
    return Counter(word for word in words(text) if len(word) >= min_length)


def edit_ratio(left: str, right: str) -> float:
    """
    Normalized Levenshtein similarity in [0, 1].

    Two empty strings are identical (1.0).
    """
    if not left and not right:
        return 1.0
    return Levenshtein.normalized_similarity(left, right)


def word_overlap(left: str, right: str) -> float:
    """Jaccard overlap of the word sets of two texts."""
    left_words = set(words(left))
    right_words = set(words(right))
    if not left_words and not right_words:
        return 1.0
    union = left_words | right_words
    return len(left_words & right_words) / len(union)
