"""
Tests for the Token Differencer.

Covers relations, counts, whitespace modes and Similar promotion.
"""

import pytest

from src.diffing.schemas import TokenRelation, WhitespaceMode
from src.diffing.scoring import alignment_similarity, is_similar
from src.diffing.token_diff import TokenDiffer
from src.ingestion.tokenizer import tokenize


def _counts_hold(alignment) -> bool:
    left = alignment.identical + alignment.left_only + alignment.similar
    right = alignment.identical + alignment.right_only + alignment.similar
    return left == alignment.left_length and right == alignment.right_length


class TestTokenDiffer:
    """Unit tests for TokenDiffer."""

    @pytest.fixture
    def differ(self) -> TokenDiffer:
        return TokenDiffer()

    def test_identical_sequences(self, differ) -> None:
        """Identical text aligns with no changes and similarity 1.0."""
        tokens = tokenize("The Vendor shall deliver the Goods.")
        alignment = differ.diff(tokens, tokens)

        assert alignment.is_identical
        assert alignment.similarity == 1.0
        assert all(p.relation == TokenRelation.IDENTICAL for p in alignment.pairs)
        assert alignment.changes() == []
        assert _counts_hold(alignment)

    def test_modal_swap_is_delete_and_insert(self, differ) -> None:
        """shall -> may is too different to be Similar."""
        left = tokenize("The Vendor shall deliver the Goods.")
        right = tokenize("The Vendor may deliver the Goods.")
        alignment = differ.diff(left, right)

        assert alignment.left_only == 1
        assert alignment.right_only == 1
        assert alignment.similar == 0
        assert [t.text for t in alignment.removed()] == ["shall"]
        assert [t.text for t in alignment.added()] == ["may"]
        assert _counts_hold(alignment)

    def test_spelling_variant_is_similar(self, differ) -> None:
        """A one-letter change inside a word becomes one Similar pair."""
        alignment = differ.diff(tokenize("The colour is red"), tokenize("The color is red"))

        similar = [p for p in alignment.pairs if p.relation == TokenRelation.SIMILAR]
        assert len(similar) == 1
        assert similar[0].left.text == "colour"
        assert similar[0].right.text == "color"
        assert similar[0].score == pytest.approx(5 / 6)
        assert alignment.left_only == 0 and alignment.right_only == 0
        assert _counts_hold(alignment)

    def test_pairs_keep_original_offsets(self, differ) -> None:
        """Token ranges point into the original text, offset included."""
        left = tokenize("pay ten days", offset=100)
        right = tokenize("pay five days", offset=200)
        alignment = differ.diff(left, right)

        changed = alignment.changes()
        assert len(changed) == 2
        assert changed[0].left.start == 104
        assert changed[1].right.start == 204

    def test_empty_sides(self, differ) -> None:
        """Empty inputs: both empty is identical, one empty is all inserted."""
        assert differ.diff([], []).similarity == 1.0

        alignment = differ.diff([], tokenize("new clause"))
        assert alignment.similarity == 0.0
        assert alignment.right_only == alignment.right_length == 3

    def test_change_blocks_and_ranges(self, differ) -> None:
        """Consecutive changes group into blocks; range queries use the chosen side."""
        left = tokenize("Vendor shall deliver within thirty days")
        right = tokenize("Vendor may deliver within ten days")
        alignment = differ.diff(left, right)

        blocks = alignment.change_blocks()
        assert len(blocks) == 2
        assert alignment.changes_in(7, 12, side="left")[0].left.text == "shall"
        assert alignment.changes_in(7, 10, side="right")[0].right.text == "may"
        assert alignment.changes_in(13, 20, side="left") == []


class TestWhitespaceModes:
    """Whitespace handling across modes."""

    LEFT = "Payment  is due"
    RIGHT = "Payment is\tdue"

    def test_normalize_treats_runs_as_equal(self) -> None:
        """Different whitespace runs are WhitespaceEquivalent and count as identical."""
        alignment = TokenDiffer(mode=WhitespaceMode.NORMALIZE).diff(tokenize(self.LEFT), tokenize(self.RIGHT))

        assert alignment.is_identical
        assert alignment.whitespace_equivalent == 2
        assert alignment.identical == 5
        assert alignment.similarity == 1.0

    def test_preserve_reports_whitespace_changes(self) -> None:
        """Whitespace is compared literally."""
        alignment = TokenDiffer(mode=WhitespaceMode.PRESERVE).diff(tokenize(self.LEFT), tokenize(self.RIGHT))

        assert not alignment.is_identical
        assert all(t.is_space for t in alignment.removed())
        assert _counts_hold(alignment)

    def test_ignore_strips_whitespace(self) -> None:
        """Whitespace never appears in the alignment."""
        alignment = TokenDiffer(mode=WhitespaceMode.IGNORE).diff(tokenize(self.LEFT), tokenize(self.RIGHT))

        assert alignment.is_identical
        assert alignment.left_length == 3
        assert all(not p.left.is_space for p in alignment.pairs)

    def test_ignore_merges_split_words_only_by_text(self) -> None:
        """Gluing words together is still a change when whitespace is ignored."""
        alignment = TokenDiffer(mode=WhitespaceMode.IGNORE).diff(
            tokenize("sub contractor"), tokenize("subcontractor")
        )
        assert not alignment.is_identical


class TestDiffScoring:
    """Scoring helpers shared with the differ."""

    def test_similar_threshold_is_strict(self) -> None:
        assert not is_similar(0.6, 0.6)
        assert is_similar(0.61, 0.6)

    def test_alignment_similarity_uses_longer_side(self) -> None:
        assert alignment_similarity(3, [0.5], 4, 5) == pytest.approx(3.5 / 5)
        assert alignment_similarity(0, [], 0, 0) == 1.0
        assert alignment_similarity(0, [], 0, 2) == 0.0
