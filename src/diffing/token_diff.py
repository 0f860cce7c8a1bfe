"""
Token Differencer - LCS Alignment of Token Sequences.

Aligns two token sequences with a longest-common-subsequence table,
then promotes single-token replace blocks to Similar when the two tokens
are near-typos of each other. Never raises on well-formed tokens.
"""

from collections.abc import Sequence

from src.diffing.schemas import (
    AlignedTokenPair,
    TokenAlignment,
    TokenRelation,
    WhitespaceMode,
)
from src.diffing.scoring import (
    alignment_similarity,
    comparison_key,
    is_similar,
    similar_score,
)
from src.ingestion.schemas import Token, TokenTag
from src.utils.logger import get_logger

logger = get_logger(__name__)


# ============================================================================
# Configuration
# ============================================================================

DEFAULT_SIMILAR_THRESHOLD = 0.6


# ============================================================================
# Token Differencer
# ============================================================================


class TokenDiffer:
    """
    Compute token alignments between two sequences.

    Stateless after construction, so one instance can be shared across
    worker threads.

    Usage:
        differ = TokenDiffer(mode=WhitespaceMode.NORMALIZE)
        alignment = differ.diff(left_tokens, right_tokens)
        print(alignment.similarity)
    """

    def __init__(
        self,
        mode: WhitespaceMode = WhitespaceMode.NORMALIZE,
        similar_threshold: float = DEFAULT_SIMILAR_THRESHOLD,
    ) -> None:
        """
        Initialize the differ.

        Args:
            mode: Whitespace handling
            similar_threshold: Edit ratio a replace pair must exceed to become Similar
        """
        self.mode = mode
        self.similar_threshold = similar_threshold

    def diff(self, left: Sequence[Token], right: Sequence[Token]) -> TokenAlignment:
        """
        Align two token sequences.

        Args:
            left: Tokens of the older version
            right: Tokens of the newer version

        Returns:
            TokenAlignment whose counts satisfy
            identical + left_only + similar == left_length and
            identical + right_only + similar == right_length
        """
        left_units = self._prepare(left)
        right_units = self._prepare(right)

        pairs = self._lcs_pairs(left_units, right_units)
        pairs = self._promote_similar(pairs)

        return self._build(pairs, len(left_units), len(right_units))

    # ------------------------------------------------------------------------
    # Preprocessing
    # ------------------------------------------------------------------------

    def _prepare(self, tokens: Sequence[Token]) -> list[Token]:
        """Apply the whitespace mode, keeping original text and offsets."""
        if self.mode == WhitespaceMode.IGNORE:
            return [token for token in tokens if not token.is_space]
        if self.mode == WhitespaceMode.PRESERVE:
            return list(tokens)

        units: list[Token] = []
        run: list[Token] = []
        for token in tokens:
            if token.is_space:
                run.append(token)
                continue
            if run:
                units.append(_merge_run(run))
                run = []
            units.append(token)
        if run:
            units.append(_merge_run(run))
        return units

    # ------------------------------------------------------------------------
    # LCS
    # ------------------------------------------------------------------------

    def _lcs_pairs(self, left: list[Token], right: list[Token]) -> list[AlignedTokenPair]:
        left_keys = [comparison_key(token, self.mode) for token in left]
        right_keys = [comparison_key(token, self.mode) for token in right]
        n, m = len(left_keys), len(right_keys)

        table = [[0] * (m + 1) for _ in range(n + 1)]
        for i in range(1, n + 1):
            row, prev = table[i], table[i - 1]
            key = left_keys[i - 1]
            for j in range(1, m + 1):
                if key == right_keys[j - 1]:
                    row[j] = prev[j - 1] + 1
                else:
                    row[j] = row[j - 1] if row[j - 1] >= prev[j] else prev[j]

        # Walk back from the end; preferring the insertion on ties puts
        # deletions ahead of insertions once the list is reversed.
        pairs: list[AlignedTokenPair] = []
        i, j = n, m
        while i > 0 or j > 0:
            if i > 0 and j > 0 and left_keys[i - 1] == right_keys[j - 1]:
                pairs.append(self._matched_pair(left[i - 1], right[j - 1]))
                i -= 1
                j -= 1
            elif j > 0 and (i == 0 or table[i][j - 1] >= table[i - 1][j]):
                pairs.append(AlignedTokenPair(relation=TokenRelation.RIGHT_ONLY, right=right[j - 1]))
                j -= 1
            else:
                pairs.append(AlignedTokenPair(relation=TokenRelation.LEFT_ONLY, left=left[i - 1]))
                i -= 1
        pairs.reverse()
        return pairs

    def _matched_pair(self, left: Token, right: Token) -> AlignedTokenPair:
        relation = TokenRelation.IDENTICAL
        if left.is_space and left.text != right.text:
            relation = TokenRelation.WHITESPACE_EQUIVALENT
        return AlignedTokenPair(relation=relation, left=left, right=right)

    # ------------------------------------------------------------------------
    # Similar promotion
    # ------------------------------------------------------------------------

    def _promote_similar(self, pairs: list[AlignedTokenPair]) -> list[AlignedTokenPair]:
        """Replace single-token delete/insert blocks with one Similar pair."""
        result: list[AlignedTokenPair] = []
        block: list[AlignedTokenPair] = []

        for pair in pairs:
            if pair.is_change:
                block.append(pair)
                continue
            result.extend(self._resolve_block(block))
            block = []
            result.append(pair)
        result.extend(self._resolve_block(block))
        return result

    def _resolve_block(self, block: list[AlignedTokenPair]) -> list[AlignedTokenPair]:
        if len(block) != 2:
            return block
        removed, inserted = block
        if removed.relation != TokenRelation.LEFT_ONLY or inserted.relation != TokenRelation.RIGHT_ONLY:
            return block
        if removed.left is None or inserted.right is None:
            return block
        if removed.left.is_space or inserted.right.is_space:
            return block

        score = similar_score(removed.left, inserted.right)
        if not is_similar(score, self.similar_threshold):
            return block

        logger.debug(f"Similar: {removed.left.text!r} ~ {inserted.right.text!r} ({score:.2f})")
        return [
            AlignedTokenPair(
                relation=TokenRelation.SIMILAR,
                left=removed.left,
                right=inserted.right,
                score=score,
            )
        ]

    # ------------------------------------------------------------------------
    # Assembly
    # ------------------------------------------------------------------------

    def _build(self, pairs: list[AlignedTokenPair], left_length: int, right_length: int) -> TokenAlignment:
        counts = {relation: 0 for relation in TokenRelation}
        similar_scores: list[float] = []
        for pair in pairs:
            counts[pair.relation] += 1
            if pair.relation == TokenRelation.SIMILAR:
                similar_scores.append(pair.score)

        identical = counts[TokenRelation.IDENTICAL] + counts[TokenRelation.WHITESPACE_EQUIVALENT]
        return TokenAlignment(
            mode=self.mode,
            pairs=tuple(pairs),
            identical=identical,
            left_only=counts[TokenRelation.LEFT_ONLY],
            right_only=counts[TokenRelation.RIGHT_ONLY],
            similar=counts[TokenRelation.SIMILAR],
            whitespace_equivalent=counts[TokenRelation.WHITESPACE_EQUIVALENT],
            left_length=left_length,
            right_length=right_length,
            similarity=alignment_similarity(identical, similar_scores, left_length, right_length),
        )


def _merge_run(run: list[Token]) -> Token:
    """One comparison unit spanning a whitespace run in the original text."""
    if len(run) == 1:
        return run[0]
    return Token(
        text="".join(token.text for token in run),
        tag=TokenTag.SPACE,
        start=run[0].start,
        end=run[-1].end,
    )
