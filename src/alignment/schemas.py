"""
Pydantic Schemas for Section Alignment.

Section correspondences relate one-or-more source sections to
zero-or-more target sections and together form an exact cover.
"""

from collections import Counter
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from src.diffing.schemas import TokenAlignment


class CorrespondenceKind(str, Enum):
    """How source and target sections relate."""

    EXACT_MATCH = "exact_match"
    MODIFIED = "modified"
    INSERTED = "inserted"
    DELETED = "deleted"
    SPLIT = "split"
    MERGED = "merged"


MATCHED_KINDS = frozenset(
    {
        CorrespondenceKind.EXACT_MATCH,
        CorrespondenceKind.MODIFIED,
        CorrespondenceKind.SPLIT,
        CorrespondenceKind.MERGED,
    }
)


class SectionCorrespondence(BaseModel):
    """One cell of the section cover."""

    model_config = ConfigDict(frozen=True)

    correspondence_id: str = Field(..., description="Stable id within one comparison (corr_N)")
    kind: CorrespondenceKind = Field(...)
    source_ids: tuple[str, ...] = Field(default_factory=tuple, description="Sections of the older version")
    target_ids: tuple[str, ...] = Field(default_factory=tuple, description="Sections of the newer version")
    confidence: float = Field(..., ge=0.0, le=1.0)
    hinted: bool = Field(default=False, description="Forced by an external hint")
    order: int = Field(default=0, ge=0, description="Position in source-document order")
    token_alignment: TokenAlignment | None = Field(default=None, description="Nested token diff")

    @property
    def is_matched(self) -> bool:
        return self.kind in MATCHED_KINDS


class AlignmentResult(BaseModel):
    """Output of the Section Aligner."""

    correspondences: list[SectionCorrespondence] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    @property
    def stats(self) -> dict[str, int]:
        """Count of correspondences per kind."""
        counts = Counter(c.kind.value for c in self.correspondences)
        return {kind.value: counts.get(kind.value, 0) for kind in CorrespondenceKind}

    def for_source(self, section_id: str) -> SectionCorrespondence | None:
        for correspondence in self.correspondences:
            if section_id in correspondence.source_ids:
                return correspondence
        return None

    def for_target(self, section_id: str) -> SectionCorrespondence | None:
        for correspondence in self.correspondences:
            if section_id in correspondence.target_ids:
                return correspondence
        return None
