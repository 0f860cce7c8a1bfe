"""
Contract Comparison Engine - Source Package.

This package contains the core functionality for:
- Document model and tokenization
- Token-level and section-level diffing
- Entity identity registries and cross-document matching
- Three-zone match classification
- Semantic change detection and the hierarchical diff
"""

from src.alignment import SectionAligner
from src.diffing import TokenDiffer
from src.knowledge import DocumentBinder, EntityMatcher, HoleRegistry
from src.matching import MatchClassifier
from src.pipeline import ComparisonResult, ContractComparator, ExternalResolution
from src.semantic import DiffTree, SemanticDiffEngine

__all__ = [
    # Diffing
    "TokenDiffer",
    "SectionAligner",
    # Knowledge
    "HoleRegistry",
    "DocumentBinder",
    "EntityMatcher",
    # Matching
    "MatchClassifier",
    # Semantic
    "SemanticDiffEngine",
    "DiffTree",
    # Pipeline
    "ContractComparator",
    "ComparisonResult",
    "ExternalResolution",
]
