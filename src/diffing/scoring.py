"""
Token Diff Scoring.

Named scoring functions used by the TokenDiffer, kept separate so tests
exercise the same arithmetic as production.
"""

from src.diffing.schemas import WhitespaceMode
from src.ingestion.schemas import Token
from src.utils.text import edit_ratio

NORMALIZED_SPACE = " "


def comparison_key(token: Token, mode: WhitespaceMode) -> str:
    """Text a token is compared by under a whitespace mode."""
    if token.is_space and mode == WhitespaceMode.NORMALIZE:
        return NORMALIZED_SPACE
    return token.text


def similar_score(left: Token, right: Token) -> float:
    """Normalized edit similarity of two tokens."""
    return edit_ratio(left.text, right.text)


def is_similar(score: float, threshold: float) -> bool:
    """Similar promotion needs a ratio strictly above the threshold."""
    return score > threshold


def alignment_similarity(
    identical: int,
    similar_scores: list[float],
    left_length: int,
    right_length: int,
) -> float:
    """
    Overall similarity of two sequences.

    Identical units count 1, Similar units count their edit score, and the
    sum is divided by the longer length. Two empty sequences are identical.
    """
    longest = max(left_length, right_length)
    if longest == 0:
        return 1.0
    if left_length == 0 or right_length == 0:
        return 0.0
    return min(1.0, (identical + sum(similar_scores)) / longest)
