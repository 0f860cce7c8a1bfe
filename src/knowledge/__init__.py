"""
Knowledge Layer - Entity Identity.

Owner-scoped hole registries, document bindings and cross-document party matching.
"""

from src.knowledge.binder import DocumentBinder, DocumentBindings
from src.knowledge.entity_matcher import EntityMatcher
from src.knowledge.hole_registry import (
    HoleRegistry,
    InMemoryRegistryStore,
    RegistryStore,
)
from src.knowledge.schemas import (
    EntityBinding,
    Hole,
    HoleBinding,
    MentionOccurrence,
    MergeHypothesis,
    RegistryKind,
    RegistryOwner,
    RegistrySnapshot,
    ResolutionCandidate,
    ResolvedBinding,
)

__all__ = [
    # Registry
    "HoleRegistry",
    "RegistryStore",
    "InMemoryRegistryStore",
    # Binding
    "DocumentBinder",
    "DocumentBindings",
    "EntityMatcher",
    # Schemas
    "EntityBinding",
    "ResolvedBinding",
    "HoleBinding",
    "Hole",
    "MentionOccurrence",
    "ResolutionCandidate",
    "MergeHypothesis",
    "RegistryKind",
    "RegistryOwner",
    "RegistrySnapshot",
]
