"""
Diffing Layer - Token-Level Differencing.

LCS alignment of token sequences with whitespace modes and Similar promotion.
"""

from src.diffing.schemas import (
    AlignedTokenPair,
    TokenAlignment,
    TokenRelation,
    WhitespaceMode,
)
from src.diffing.token_diff import TokenDiffer

__all__ = [
    # Differ
    "TokenDiffer",
    # Schemas
    "TokenAlignment",
    "AlignedTokenPair",
    "TokenRelation",
    "WhitespaceMode",
]
