"""
Alignment Layer - Section Correspondences.

Hint-first, assignment-based section alignment with split/merge detection.
"""

from src.alignment.schemas import (
    AlignmentResult,
    CorrespondenceKind,
    SectionCorrespondence,
)
from src.alignment.section_aligner import SectionAligner

__all__ = [
    "SectionAligner",
    "AlignmentResult",
    "SectionCorrespondence",
    "CorrespondenceKind",
]
