"""
Pytest Configuration and Fixtures.

All fixtures use REAL components - no mocks.
Documents are built from plain text with the regex tokenizer, so token
offsets and annotation spans are always computed, never hand-written.
"""

import pytest

from src.ingestion.schemas import Annotation, AnnotationType, Document, Section
from src.ingestion.tokenizer import annotate, make_section
from src.knowledge.hole_registry import HoleRegistry
from src.matching.classifier import MatchClassifier
from src.pipeline.comparator import ContractComparator


# ============================================================================
# Document Builder
# ============================================================================


class DocumentBuilder:
    """
    Fluent builder for annotated test documents.

    Annotation methods attach to the most recently added section.

    Usage:
        doc = (
            DocumentBuilder("msa", "1")
            .section("delivery", "The Vendor shall deliver the Goods.", title="Delivery")
            .obligation("The Vendor shall deliver the Goods", modal="duty", obligor="the Vendor")
            .build()
        )
    """

    SEPARATOR = 2

    def __init__(self, document_id: str = "msa", version: str = "1") -> None:
        self.document_id = document_id
        self.version = version
        self._sections: list[Section] = []
        self._pending: dict | None = None
        self._offset = 0

    def section(self, section_id: str, text: str, title: str | None = None) -> "DocumentBuilder":
        self._flush()
        self._pending = {
            "section_id": section_id,
            "text": text,
            "title": title,
            "offset": self._offset,
            "annotations": [],
        }
        self._offset += len(text) + self.SEPARATOR
        return self

    def _annotate(self, phrase: str, annotation_type: AnnotationType, **attributes: object) -> "DocumentBuilder":
        if self._pending is None:
            raise ValueError("Add a section before annotating")
        annotation = annotate(
            self._pending["text"], phrase, annotation_type, self._pending["offset"], **attributes
        )
        self._pending["annotations"].append(annotation)
        return self

    def obligation(
        self,
        phrase: str,
        modal: str,
        obligor: str | None = None,
        beneficiary: str | None = None,
        action: str | None = None,
        **attributes: object,
    ) -> "DocumentBuilder":
        if obligor is not None:
            attributes["obligor"] = obligor
        if beneficiary is not None:
            attributes["beneficiary"] = beneficiary
        return self._annotate(phrase, AnnotationType.OBLIGATION, modal=modal, action=action or phrase, **attributes)

    def term(self, phrase: str, definition: str) -> "DocumentBuilder":
        return self._annotate(phrase, AnnotationType.DEFINED_TERM, term=phrase, definition=definition)

    def mention(
        self,
        phrase: str,
        chain_id: str | None = None,
        canonical_name: str | None = None,
        **attributes: object,
    ) -> "DocumentBuilder":
        if chain_id is not None:
            attributes["chain_id"] = chain_id
            attributes["canonical_name"] = canonical_name or phrase
        return self._annotate(phrase, AnnotationType.ENTITY_MENTION, **attributes)

    def pronoun(self, phrase: str, **attributes: object) -> "DocumentBuilder":
        return self._annotate(phrase, AnnotationType.PRONOUN_REFERENCE, **attributes)

    def temporal(self, phrase: str, value: float, unit: str = "days") -> "DocumentBuilder":
        return self._annotate(phrase, AnnotationType.TEMPORAL, value=value, unit=unit)

    def annotations(self) -> list[Annotation]:
        return list(self._pending["annotations"]) if self._pending else []

    def _flush(self) -> None:
        if self._pending is None:
            return
        pending = self._pending
        self._sections.append(
            make_section(
                pending["section_id"],
                pending["text"],
                title=pending["title"],
                index=len(self._sections),
                offset=pending["offset"],
                annotations=pending["annotations"],
            )
        )
        self._pending = None

    def build(self) -> Document:
        self._flush()
        return Document(document_id=self.document_id, version=self.version, sections=tuple(self._sections))


# ============================================================================
# Sample Texts
# ============================================================================

DEFINITIONS_TEXT = (
    '"Goods" means the hardware listed in Schedule A. '
    '"Services" means installation and support of the Goods.'
)
DELIVERY_TEXT = "The Vendor shall deliver the Goods to the Customer within thirty days of each order."
PAYMENT_TEXT = (
    "Customer shall pay all invoices within thirty days. "
    "Late payments accrue interest at two percent monthly."
)


def contract(version: str, delivery_modal: str = "shall", extra_section: bool = False) -> Document:
    """Two-section supply contract whose parties are chain-resolved."""
    modal = {"shall": "duty", "may": "permission"}[delivery_modal]
    delivery = DELIVERY_TEXT.replace("shall", delivery_modal)
    builder = (
        DocumentBuilder("supply", version)
        .section("definitions", DEFINITIONS_TEXT, title="Definitions")
        .term("Goods", "the hardware listed in Schedule A")
        .section("delivery", delivery, title="Delivery")
        .mention("The Vendor", chain_id="chain-vendor", canonical_name="Vendor")
        .mention("the Customer", chain_id="chain-customer", canonical_name="Customer")
        .obligation(
            f"The Vendor {delivery_modal} deliver the Goods",
            modal=modal,
            obligor="The Vendor",
            beneficiary="the Customer",
            action="deliver the Goods",
        )
    )
    if extra_section:
        builder.section("notices", "Notices must be given in writing to the registered address.", title="Notices")
    return builder.build()


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def builder() -> type[DocumentBuilder]:
    """The document builder class."""
    return DocumentBuilder


@pytest.fixture
def contract_factory():
    """Factory for the two-section supply contract."""
    return contract


@pytest.fixture
def classifier() -> MatchClassifier:
    """Classifier with default thresholds."""
    return MatchClassifier()


@pytest.fixture
def comparison_registry() -> HoleRegistry:
    """Empty comparison-scoped registry."""
    return HoleRegistry.for_comparison("supply@1", "supply@2")


@pytest.fixture
def comparator() -> ContractComparator:
    """Comparator with default settings and two workers."""
    return ContractComparator(max_workers=2)
