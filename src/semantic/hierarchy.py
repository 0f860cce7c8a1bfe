"""
Hierarchical Diff Assembler - Drill-Down and Roll-Up Views.

Packages a flat change list into a tree stored in a NetworkX DiGraph:

    root
    └── aggregate   party:<ref>, or "document" for party-less changes
        └── node    one relationship edge or one section
            └── clause   one change, with its token evidence

Node-level is the default view. A change touching two parties appears
under both aggregates; roll-ups count distinct change ids.
"""

from enum import Enum
from typing import Any

import networkx as nx
from pydantic import BaseModel, Field

from src.semantic.schemas import RiskLevel, SemanticChange
from src.utils.errors import ConfigurationError
from src.utils.logger import get_logger

logger = get_logger(__name__)

ROOT_ID = "root"
DOCUMENT_AGGREGATE = "document"


class DiffLevel(str, Enum):
    """Granularity of a tree view."""

    AGGREGATE = "aggregate"
    NODE = "node"
    CLAUSE = "clause"


class DiffTreeNode(BaseModel):
    """One node of the diff tree with its roll-up."""

    node_id: str = Field(..., description="Path-like id, unique in the tree")
    level: DiffLevel = Field(...)
    label: str = Field(...)
    parent_id: str | None = Field(default=None, description="None for aggregates")
    change_ids: list[str] = Field(default_factory=list, description="Distinct changes below this node")
    change_count: int = Field(default=0, ge=0)
    max_risk: RiskLevel | None = Field(default=None)
    party_ref: str | None = Field(default=None, description="Party of an aggregate node")


class DiffTree:
    """
    Tree of changes grouped by party, relationship and clause.

    Usage:
        tree = DiffTree.build(changes)
        for node in tree.view():
            print(node.label, node.change_count, node.max_risk)
        clauses = tree.children(node.node_id)
    """

    def __init__(self) -> None:
        self._graph: nx.DiGraph = nx.DiGraph()
        self._graph.add_node(ROOT_ID, level=None, label="root", change_ids=[], max_risk=None, party_ref=None)

    @property
    def graph(self) -> nx.DiGraph:
        return self._graph

    @classmethod
    def build(cls, changes: list[SemanticChange]) -> "DiffTree":
        """Assemble a tree from changes, keeping their order."""
        tree = cls()
        for change in changes:
            tree.add_change(change)
        logger.debug(
            f"Diff tree: {len(tree.view(DiffLevel.AGGREGATE))} aggregates, "
            f"{len(tree.view(DiffLevel.NODE))} nodes, {len(changes)} changes"
        )
        return tree

    def add_change(self, change: SemanticChange) -> None:
        """Attach one change under every party it affects."""
        aggregates: dict[str, tuple[str, str | None]] = {}
        for impact in change.party_impacts:
            aggregates.setdefault(f"party:{impact.party_ref}", (impact.party_name, impact.party_ref))
        if not aggregates:
            aggregates[DOCUMENT_AGGREGATE] = ("Document", None)

        if change.relationship:
            node_key, node_label = f"edge:{change.relationship}", change.relationship
        else:
            section = change.correspondence_id or DOCUMENT_AGGREGATE
            node_key, node_label = f"section:{section}", _section_label(change)

        for aggregate_id, (aggregate_label, party_ref) in aggregates.items():
            self._ensure(aggregate_id, ROOT_ID, DiffLevel.AGGREGATE, aggregate_label, party_ref)
            node_id = f"{aggregate_id}/{node_key}"
            self._ensure(node_id, aggregate_id, DiffLevel.NODE, node_label)
            clause_id = f"{node_id}/{change.change_id}"
            self._ensure(clause_id, node_id, DiffLevel.CLAUSE, change.explanation)
            for ancestor in (clause_id, node_id, aggregate_id, ROOT_ID):
                self._roll_up(ancestor, change)

    def _ensure(
        self,
        node_id: str,
        parent_id: str,
        level: DiffLevel,
        label: str,
        party_ref: str | None = None,
    ) -> None:
        if node_id in self._graph:
            return
        self._graph.add_node(node_id, level=level, label=label, change_ids=[], max_risk=None, party_ref=party_ref)
        self._graph.add_edge(parent_id, node_id)

    def _roll_up(self, node_id: str, change: SemanticChange) -> None:
        data = self._graph.nodes[node_id]
        if change.change_id not in data["change_ids"]:
            data["change_ids"].append(change.change_id)
        current = data["max_risk"]
        if current is None or change.risk.rank > current.rank:
            data["max_risk"] = change.risk

    # ------------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------------

    def view(self, level: DiffLevel = DiffLevel.NODE) -> list[DiffTreeNode]:
        """All nodes at one level, in assembly order."""
        return [node for node in self.nodes() if node.level == level]

    def children(self, node_id: str = ROOT_ID) -> list[DiffTreeNode]:
        """
        Direct children of a node.

        Raises:
            ConfigurationError: If the node is not in the tree
        """
        if node_id not in self._graph:
            raise ConfigurationError("Unknown diff tree node", [node_id])
        return [self.node(child) for child in self._graph.successors(node_id)]

    def node(self, node_id: str) -> DiffTreeNode:
        data = self._graph.nodes[node_id]
        parents = list(self._graph.predecessors(node_id))
        parent_id = parents[0] if parents and parents[0] != ROOT_ID else None
        return DiffTreeNode(
            node_id=node_id,
            level=data["level"],
            label=data["label"],
            parent_id=parent_id,
            change_ids=list(data["change_ids"]),
            change_count=len(data["change_ids"]),
            max_risk=data["max_risk"],
            party_ref=data["party_ref"],
        )

    def nodes(self) -> list[DiffTreeNode]:
        """Every node except the root, parents before children."""
        ordered = list(nx.dfs_preorder_nodes(self._graph, ROOT_ID))
        return [self.node(node_id) for node_id in ordered if node_id != ROOT_ID]

    @property
    def change_ids(self) -> list[str]:
        return list(self._graph.nodes[ROOT_ID]["change_ids"])

    def to_dict(self) -> dict[str, Any]:
        """Nested dictionary form for reporting."""

        def expand(node_id: str) -> dict[str, Any]:
            payload = self.node(node_id).model_dump(mode="json")
            payload["children"] = [expand(child) for child in self._graph.successors(node_id)]
            return payload

        return {
            "change_count": len(self.change_ids),
            "aggregates": [expand(child) for child in self._graph.successors(ROOT_ID)],
        }

    @classmethod
    def from_nodes(cls, nodes: list[DiffTreeNode]) -> "DiffTree":
        """
        Rebuild a tree from its flattened nodes.

        Raises:
            ConfigurationError: If a node names a parent not seen before it
        """
        tree = cls()
        root = tree._graph.nodes[ROOT_ID]
        for node in nodes:
            parent_id = node.parent_id or ROOT_ID
            if parent_id not in tree._graph:
                raise ConfigurationError("Diff tree node has unknown parent", [node.node_id])
            tree._graph.add_node(
                node.node_id,
                level=node.level,
                label=node.label,
                change_ids=list(node.change_ids),
                max_risk=node.max_risk,
                party_ref=node.party_ref,
            )
            tree._graph.add_edge(parent_id, node.node_id)
            if node.level == DiffLevel.AGGREGATE:
                for change_id in node.change_ids:
                    if change_id not in root["change_ids"]:
                        root["change_ids"].append(change_id)
                if node.max_risk and (root["max_risk"] is None or node.max_risk.rank > root["max_risk"].rank):
                    root["max_risk"] = node.max_risk
        return tree


def _section_label(change: SemanticChange) -> str:
    sections = list(dict.fromkeys((*change.source_section_ids, *change.target_section_ids)))
    if sections:
        return "Section " + ", ".join(sections)
    return "Document"
