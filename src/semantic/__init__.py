"""
Semantic Layer - Typed Changes, Risk and the Diff Tree.
"""

from src.semantic.diff_engine import SemanticDiffEngine
from src.semantic.hierarchy import DiffLevel, DiffTree, DiffTreeNode
from src.semantic.schemas import (
    ChangeStatus,
    ChangeType,
    DetectionFlag,
    DiffSummary,
    Impact,
    ModalStrength,
    PartyImpact,
    PartySummary,
    RiskLevel,
    SemanticChange,
)

__all__ = [
    # Engine
    "SemanticDiffEngine",
    # Hierarchy
    "DiffTree",
    "DiffTreeNode",
    "DiffLevel",
    # Schemas
    "SemanticChange",
    "ChangeType",
    "ChangeStatus",
    "RiskLevel",
    "Impact",
    "ModalStrength",
    "DetectionFlag",
    "PartyImpact",
    "PartySummary",
    "DiffSummary",
]
