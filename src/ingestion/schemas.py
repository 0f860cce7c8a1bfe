"""
Pydantic Schemas for Ingestion Layer.

Read-only input model handed over by the upstream annotation pipeline:
tokens, sections, documents and the typed annotations attached to them.
None of these models are mutated during a comparison.
"""

from collections import defaultdict
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, model_validator

from src.utils.errors import ConfigurationError


class TokenTag(str, Enum):
    """Lexical class of a token."""

    WORD = "word"
    NUMBER = "number"
    PUNCTUATION = "punctuation"
    SYMBOL = "symbol"
    SPACE = "space"


class Token(BaseModel):
    """Smallest comparison unit, with a half-open document-absolute range."""

    model_config = ConfigDict(frozen=True)

    text: str = Field(..., description="Surface text")
    tag: TokenTag = Field(..., description="Lexical class")
    start: int = Field(..., ge=0, description="Start offset (inclusive)")
    end: int = Field(..., ge=0, description="End offset (exclusive)")

    @model_validator(mode="after")
    def check_range(self) -> "Token":
        if self.end < self.start:
            raise ValueError(f"Token end {self.end} precedes start {self.start}")
        return self

    @property
    def is_space(self) -> bool:
        return self.tag == TokenTag.SPACE


class AnnotationType(str, Enum):
    """Annotation kinds produced upstream."""

    OBLIGATION = "obligation"
    DEFINED_TERM = "defined_term"
    ENTITY_MENTION = "entity_mention"
    PRONOUN_REFERENCE = "pronoun_reference"
    TEMPORAL = "temporal"


class Annotation(BaseModel):
    """
    A typed span with opaque attributes.

    Several annotations may cover the same span, including several of the
    same type; none of them is treated as the single "true" reading.
    """

    model_config = ConfigDict(frozen=True)

    annotation_type: AnnotationType = Field(..., description="Annotation kind")
    start: int = Field(..., ge=0, description="Start offset (inclusive)")
    end: int = Field(..., ge=0, description="End offset (exclusive)")
    text: str = Field(default="", description="Covered text")
    attributes: dict[str, Any] = Field(default_factory=dict, description="Type-specific attributes")

    def attr(self, name: str, default: Any = None) -> Any:
        """Attribute lookup with a default."""
        return self.attributes.get(name, default)

    @property
    def span(self) -> tuple[int, int]:
        return (self.start, self.end)


class AnnotationIndex:
    """
    Multimap of annotations keyed by (span, type).

    Insertion order is preserved both across keys and within one key.
    """

    def __init__(self, annotations: tuple[Annotation, ...] | list[Annotation] = ()) -> None:
        self._by_key: dict[tuple[int, int, AnnotationType], list[Annotation]] = defaultdict(list)
        self._by_type: dict[AnnotationType, list[Annotation]] = defaultdict(list)
        self._all: list[Annotation] = []
        for annotation in annotations:
            self.add(annotation)

    def add(self, annotation: Annotation) -> None:
        key = (annotation.start, annotation.end, annotation.annotation_type)
        self._by_key[key].append(annotation)
        self._by_type[annotation.annotation_type].append(annotation)
        self._all.append(annotation)

    def find(self, annotation_type: AnnotationType) -> list[Annotation]:
        """All annotations of a type, in insertion order."""
        return list(self._by_type.get(annotation_type, []))

    def at(
        self,
        start: int,
        end: int,
        annotation_type: AnnotationType | None = None,
    ) -> list[Annotation]:
        """Annotations with exactly this span, optionally filtered by type."""
        if annotation_type is not None:
            return list(self._by_key.get((start, end, annotation_type), []))
        return [a for a in self._all if a.start == start and a.end == end]

    def overlapping(
        self,
        start: int,
        end: int,
        annotation_type: AnnotationType | None = None,
    ) -> list[Annotation]:
        """Annotations intersecting the half-open range [start, end)."""
        pool = self._all if annotation_type is None else self._by_type.get(annotation_type, [])
        return [a for a in pool if a.start < end and start < a.end]

    def __len__(self) -> int:
        return len(self._all)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, AnnotationIndex):
            return NotImplemented
        return self._all == other._all


class Section(BaseModel):
    """A contiguous named region of one document version."""

    model_config = ConfigDict(frozen=True)

    section_id: str = Field(..., description="Identity, unique within the document")
    title: str | None = Field(default=None, description="Heading text, if any")
    index: int = Field(default=0, ge=0, description="Document-order index")
    depth: int = Field(default=0, ge=0, description="Nesting depth in the section hierarchy")
    parent_id: str | None = Field(default=None, description="Enclosing section, if nested")
    tokens: tuple[Token, ...] = Field(default_factory=tuple, description="Body tokens")
    annotations: tuple[Annotation, ...] = Field(default_factory=tuple, description="Upstream annotations")

    _index: AnnotationIndex = PrivateAttr(default_factory=AnnotationIndex)

    def model_post_init(self, __context: Any) -> None:
        self._index = AnnotationIndex(self.annotations)

    @property
    def text(self) -> str:
        """Body text reconstructed from tokens."""
        return "".join(token.text for token in self.tokens)

    @property
    def start(self) -> int:
        return self.tokens[0].start if self.tokens else 0

    @property
    def end(self) -> int:
        return self.tokens[-1].end if self.tokens else 0

    @property
    def annotation_index(self) -> AnnotationIndex:
        return self._index

    def find(self, annotation_type: AnnotationType) -> list[Annotation]:
        """Shortcut for annotation_index.find()."""
        return self._index.find(annotation_type)


class Document(BaseModel):
    """One version of a structured document."""

    model_config = ConfigDict(frozen=True)

    document_id: str = Field(..., description="Document identity")
    version: str = Field(default="1", description="Version label")
    sections: tuple[Section, ...] = Field(default_factory=tuple, description="Sections in document order")

    @property
    def owner_key(self) -> str:
        """Scope key used by the document's hole registry."""
        return f"{self.document_id}@{self.version}"

    def check_integrity(self) -> None:
        """
        Reject inputs that cannot be compared.

        Raises:
            ConfigurationError: If two sections share an id
        """
        seen: set[str] = set()
        duplicates: set[str] = set()
        for section in self.sections:
            if section.section_id in seen:
                duplicates.add(section.section_id)
            seen.add(section.section_id)
        if duplicates:
            raise ConfigurationError(
                f"Duplicate section ids in document {self.owner_key}",
                offending_ids=duplicates,
            )

    def section(self, section_id: str) -> Section:
        for section in self.sections:
            if section.section_id == section_id:
                return section
        raise KeyError(section_id)


class HintKind(str, Enum):
    """What an alignment hint asks for."""

    FORCE_MATCH = "force_match"  # align these sections
    FORCE_NO_MATCH = "force_no_match"  # never pair these sections


class AlignmentHint(BaseModel):
    """An externally forced or forbidden (source, target) section pair."""

    model_config = ConfigDict(frozen=True)

    kind: HintKind = Field(default=HintKind.FORCE_MATCH)
    source_id: str = Field(..., description="Section id in the source document")
    target_id: str = Field(..., description="Section id in the target document")
    source: str = Field(default="external", description="Who supplied the hint")
    note: str | None = Field(default=None, description="Free-text justification")
