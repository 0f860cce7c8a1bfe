"""
Section Alignment Scoring.

Title similarity, body similarity, their blend, and the containment and
coverage measures used to detect splits and merges.
"""

from collections import Counter
from collections.abc import Iterable

import numpy as np

from src.ingestion.schemas import Section
from src.utils.text import edit_ratio, normalize_whitespace, word_counts

# Words shorter than this carry little content ("a", "of", "to")
MIN_CONTENT_WORD_LENGTH = 3


def fingerprint(section: Section) -> Counter[str]:
    """Word-frequency vector of a section body."""
    return word_counts(section.text, min_length=MIN_CONTENT_WORD_LENGTH)


def normalized_title(section: Section) -> str | None:
    if not section.title or not section.title.strip():
        return None
    return normalize_whitespace(section.title).casefold()


def title_similarity(left: str | None, right: str | None) -> float | None:
    """Edit similarity of two normalized titles; None when either is missing."""
    if left is None or right is None:
        return None
    return edit_ratio(left, right)


def body_similarity(left: Counter[str], right: Counter[str]) -> float:
    """
    Cosine similarity of two word-frequency vectors.

    Two empty bodies are identical; one empty body matches nothing.
    """
    if not left and not right:
        return 1.0
    if not left or not right:
        return 0.0

    vocabulary = sorted(set(left) | set(right))
    vec_a = np.array([left.get(word, 0) for word in vocabulary], dtype=float)
    vec_b = np.array([right.get(word, 0) for word in vocabulary], dtype=float)

    dot = np.dot(vec_a, vec_b)
    norm_a = np.linalg.norm(vec_a)
    norm_b = np.linalg.norm(vec_b)
    return float(dot / (norm_a * norm_b))


def blend(
    title_sim: float | None,
    body_sim: float,
    title_weight: float,
    body_weight: float,
) -> float:
    """Weighted blend; a missing title drops its term and renormalizes."""
    if title_sim is None:
        return body_sim
    total = title_weight + body_weight
    return (title_weight * title_sim + body_weight * body_sim) / total


def containment(part: Counter[str], whole: Counter[str]) -> float:
    """Share of a part's words that also occur in the whole."""
    size = sum(part.values())
    if size == 0:
        return 0.0
    shared = sum(min(count, whole.get(word, 0)) for word, count in part.items())
    return shared / size


def coverage(whole: Counter[str], parts: Iterable[Counter[str]]) -> float:
    """Share of the whole's words covered by the union of several parts."""
    size = sum(whole.values())
    if size == 0:
        return 0.0
    combined: Counter[str] = Counter()
    for part in parts:
        combined.update(part)
    shared = sum(min(count, combined.get(word, 0)) for word, count in whole.items())
    return shared / size


def split_merge_confidence(combined_coverage: float, discount: float) -> float:
    return max(0.0, min(1.0, combined_coverage * discount))


def same_content(left: Section, right: Section) -> bool:
    """Title and body equal after whitespace and case normalization."""
    return normalized_title(left) == normalized_title(right) and (
        normalize_whitespace(left.text).casefold() == normalize_whitespace(right.text).casefold()
    )
