"""
Tests for Ingestion Layer.

Uses real components - no mocks.
"""

import pytest

from src.ingestion.schemas import Annotation, AnnotationIndex, AnnotationType, Document, Token, TokenTag
from src.ingestion.tokenizer import annotate, find_span, make_section, tokenize
from src.utils.errors import ConfigurationError


# ============================================================================
# Tokenizer Tests
# ============================================================================


class TestTokenizer:
    """Tests for the regex tokenizer."""

    def test_tags_and_offsets(self) -> None:
        """Every character is covered by exactly one tagged token."""
        text = "Pay $1,200.50 within 30 days."
        tokens = tokenize(text)

        assert "".join(t.text for t in tokens) == text
        assert [t.tag for t in tokens if not t.is_space] == [
            TokenTag.WORD,
            TokenTag.SYMBOL,
            TokenTag.NUMBER,
            TokenTag.WORD,
            TokenTag.NUMBER,
            TokenTag.WORD,
            TokenTag.PUNCTUATION,
        ]
        for previous, current in zip(tokens, tokens[1:]):
            assert previous.end == current.start

    def test_offset_shifts_ranges(self) -> None:
        tokens = tokenize("the Vendor", offset=40)
        assert tokens[0].start == 40
        assert tokens[-1].end == 50

    def test_possessive_is_one_word(self) -> None:
        words = [t.text for t in tokenize("the Vendor's obligations") if not t.is_space]
        assert words == ["the", "Vendor's", "obligations"]

    def test_token_range_validation(self) -> None:
        with pytest.raises(ValueError):
            Token(text="x", tag=TokenTag.WORD, start=5, end=4)


# ============================================================================
# Annotation Tests
# ============================================================================


class TestAnnotations:
    """Tests for annotation spans and the annotation index."""

    def test_find_span_with_occurrence(self) -> None:
        text = "the Vendor and the Vendor"
        assert find_span(text, "Vendor") == (4, 10)
        assert find_span(text, "Vendor", offset=100, occurrence=1) == (119, 125)

    def test_find_span_missing_phrase(self) -> None:
        with pytest.raises(ValueError):
            find_span("the Vendor", "Customer")

    def test_annotate_carries_attributes(self) -> None:
        annotation = annotate("The Vendor shall deliver.", "shall", AnnotationType.OBLIGATION, 10, modal="duty")

        assert annotation.span == (21, 26)
        assert annotation.attr("modal") == "duty"
        assert annotation.attr("obligor", "unknown") == "unknown"

    def test_index_keeps_overlapping_annotations(self) -> None:
        """Several annotations of the same type may share a span."""
        first = Annotation(annotation_type=AnnotationType.ENTITY_MENTION, start=0, end=6, text="Vendor")
        second = Annotation(
            annotation_type=AnnotationType.ENTITY_MENTION,
            start=0,
            end=6,
            text="Vendor",
            attributes={"chain_id": "c1"},
        )
        obligation = Annotation(annotation_type=AnnotationType.OBLIGATION, start=0, end=20, text="Vendor shall pay")
        index = AnnotationIndex([first, second, obligation])

        assert len(index) == 3
        assert index.at(0, 6) == [first, second]
        assert index.at(0, 6, AnnotationType.OBLIGATION) == []
        assert len(index.overlapping(3, 4)) == 3
        assert index.find(AnnotationType.OBLIGATION) == [obligation]


# ============================================================================
# Section and Document Tests
# ============================================================================


class TestSectionsAndDocuments:
    """Tests for Section and Document."""

    def test_section_text_and_range(self) -> None:
        section = make_section("s1", "Payment is due.", title="Payment", offset=12)

        assert section.text == "Payment is due."
        assert section.start == 12
        assert section.end == 27

    def test_section_find_uses_index(self) -> None:
        text = "The Vendor shall deliver."
        section = make_section(
            "s1",
            text,
            annotations=[annotate(text, "The Vendor", AnnotationType.ENTITY_MENTION)],
        )
        assert [a.text for a in section.find(AnnotationType.ENTITY_MENTION)] == ["The Vendor"]
        assert section.find(AnnotationType.OBLIGATION) == []

    def test_owner_key(self, builder) -> None:
        document = builder("supply", "3").section("s1", "Text.").build()
        assert document.owner_key == "supply@3"
        assert document.section("s1").index == 0

    def test_duplicate_sections_rejected(self) -> None:
        document = Document(
            document_id="supply",
            sections=(make_section("s1", "One."), make_section("s1", "Two.", index=1)),
        )

        with pytest.raises(ConfigurationError) as exc_info:
            document.check_integrity()

        assert exc_info.value.offending_ids == ["s1"]

    def test_builder_offsets_do_not_overlap(self, builder) -> None:
        document = (
            builder()
            .section("a", "First section.")
            .mention("First", chain_id="c1")
            .section("b", "Second section.")
            .mention("Second")
            .build()
        )
        first, second = document.sections

        assert first.end < second.start
        mention = second.find(AnnotationType.ENTITY_MENTION)[0]
        assert mention.start == second.start
