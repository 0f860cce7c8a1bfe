"""
Pydantic Schemas for Token Diffs.

A TokenAlignment is an ordered list of token pairs plus aggregate counts.
Token positions always point into the original, un-normalized text.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from src.ingestion.schemas import Token


class WhitespaceMode(str, Enum):
    """How whitespace tokens take part in a diff."""

    PRESERVE = "preserve"  # compared as ordinary tokens
    NORMALIZE = "normalize"  # each run is one unit, all runs equal
    IGNORE = "ignore"  # stripped before alignment


class TokenRelation(str, Enum):
    """Relation between the two sides of an aligned pair."""

    IDENTICAL = "identical"
    LEFT_ONLY = "left_only"
    RIGHT_ONLY = "right_only"
    SIMILAR = "similar"
    WHITESPACE_EQUIVALENT = "whitespace_equivalent"


UNCHANGED_RELATIONS = frozenset({TokenRelation.IDENTICAL, TokenRelation.WHITESPACE_EQUIVALENT})


class AlignedTokenPair(BaseModel):
    """Zero-or-one left token related to zero-or-one right token."""

    model_config = ConfigDict(frozen=True)

    relation: TokenRelation = Field(..., description="How the two sides relate")
    left: Token | None = Field(default=None, description="Token from the left sequence")
    right: Token | None = Field(default=None, description="Token from the right sequence")
    score: float = Field(default=1.0, ge=0.0, le=1.0, description="Edit similarity for Similar pairs")

    @property
    def is_change(self) -> bool:
        return self.relation not in UNCHANGED_RELATIONS


class TokenAlignment(BaseModel):
    """Edit-aligned correspondence between two token sequences."""

    model_config = ConfigDict(frozen=True)

    mode: WhitespaceMode = Field(default=WhitespaceMode.NORMALIZE)
    pairs: tuple[AlignedTokenPair, ...] = Field(default_factory=tuple)
    identical: int = Field(default=0, ge=0, description="Identical pairs, whitespace-equivalent included")
    left_only: int = Field(default=0, ge=0)
    right_only: int = Field(default=0, ge=0)
    similar: int = Field(default=0, ge=0)
    whitespace_equivalent: int = Field(default=0, ge=0, description="Subset of identical")
    left_length: int = Field(default=0, ge=0, description="Compared left units")
    right_length: int = Field(default=0, ge=0, description="Compared right units")
    similarity: float = Field(default=1.0, ge=0.0, le=1.0)

    @property
    def is_identical(self) -> bool:
        return self.left_only == 0 and self.right_only == 0 and self.similar == 0

    def added(self) -> list[Token]:
        """Tokens present only on the right."""
        return [p.right for p in self.pairs if p.relation == TokenRelation.RIGHT_ONLY and p.right]

    def removed(self) -> list[Token]:
        """Tokens present only on the left."""
        return [p.left for p in self.pairs if p.relation == TokenRelation.LEFT_ONLY and p.left]

    def changes(self) -> list[AlignedTokenPair]:
        """All pairs that are not identical or whitespace-equivalent."""
        return [p for p in self.pairs if p.is_change]

    def unchanged(self) -> list[AlignedTokenPair]:
        return [p for p in self.pairs if not p.is_change]

    def change_blocks(self) -> list[list[AlignedTokenPair]]:
        """Maximal runs of consecutive changed pairs."""
        blocks: list[list[AlignedTokenPair]] = []
        current: list[AlignedTokenPair] = []
        for pair in self.pairs:
            if pair.is_change:
                current.append(pair)
            elif current:
                blocks.append(current)
                current = []
        if current:
            blocks.append(current)
        return blocks

    def changes_in(self, start: int, end: int, side: str = "either") -> list[AlignedTokenPair]:
        """
        Changed pairs touching a character range.

        Args:
            start: Range start (inclusive)
            end: Range end (exclusive)
            side: "left", "right" or "either"

        Returns:
            Changed pairs whose token on the chosen side overlaps the range
        """

        def inside(token: Token | None) -> bool:
            return token is not None and token.start < end and start < token.end

        selected: list[AlignedTokenPair] = []
        for pair in self.changes():
            hit_left = side in ("left", "either") and inside(pair.left)
            hit_right = side in ("right", "either") and inside(pair.right)
            if hit_left or hit_right:
                selected.append(pair)
        return selected
