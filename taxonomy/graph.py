"""
Immutable skill taxonomy: containment hierarchy plus prerequisite edges.

Nodes are domains, sub-areas, skill groups and skills. Edges join nodes of the
same kind and point from a prerequisite to its dependent. The graph is built
once, validated up front, and shared read-only by every engine component.
"""

import logging
from typing import Dict, FrozenSet, Iterable, List, Optional, Tuple

from taxonomy.errors import GraphIntegrityError, UnknownNodeError
from taxonomy.models import MAX_TIER, MIN_TIER, PARENT_KIND, Direction, Edge, Node, NodeKind

logger = logging.getLogger(__name__)


class TaxonomyGraph:
    def __init__(self, nodes: Iterable[Node], edges: Iterable[Edge] = ()):
        self._nodes: Dict[str, Node] = {}
        self._order: Dict[str, int] = {}
        self._children: Dict[str, List[str]] = {}
        self._prerequisites: Dict[str, Dict[str, float]] = {}
        self._dependents: Dict[str, Dict[str, float]] = {}
        self._closures: Dict[Tuple[str, Direction], FrozenSet[str]] = {}

        for node in nodes:
            if node.id in self._nodes:
                self._fail(f"duplicate node id '{node.id}'")
            self._order[node.id] = len(self._nodes)
            self._nodes[node.id] = node
            self._children[node.id] = []
            self._prerequisites[node.id] = {}
            self._dependents[node.id] = {}
            if node.tier is not None and (node.kind != NodeKind.SKILL or not MIN_TIER <= node.tier <= MAX_TIER):
                self._fail(f"node '{node.id}' has tier {node.tier!r}; tiers are 1-5 and apply to skills")

        self._check_containment()
        for edge in edges:
            self._add_edge(edge)
        self._check_acyclic()
        self._skills_in = self._index_skills()

    @staticmethod
    def _fail(message: str):
        logger.error("Taxonomy rejected: %s", message)
        raise GraphIntegrityError(message)

    def _check_containment(self):
        for node in self._nodes.values():
            expected = PARENT_KIND[node.kind]
            if expected is None:
                if node.parent_id is not None:
                    self._fail(f"domain '{node.id}' cannot have a parent")
                continue
            parent = self._nodes.get(node.parent_id)
            if parent is None:
                self._fail(f"node '{node.id}' references missing parent '{node.parent_id}'")
            if parent.kind != expected:
                self._fail(
                    f"node '{node.id}' ({node.kind.value}) must belong to a "
                    f"{expected.value}, not {parent.kind.value} '{parent.id}'"
                )
            self._children[parent.id].append(node.id)

    def _add_edge(self, edge: Edge):
        for end in (edge.prerequisite, edge.dependent):
            if end not in self._nodes:
                self._fail(
                    f"edge {edge.prerequisite} -> {edge.dependent} references unknown node '{end}'"
                )
        if edge.prerequisite == edge.dependent:
            self._fail(f"node '{edge.dependent}' lists itself as a prerequisite")
        pre_kind = self._nodes[edge.prerequisite].kind
        dep_kind = self._nodes[edge.dependent].kind
        if pre_kind != dep_kind:
            self._fail(
                f"edge {edge.prerequisite} -> {edge.dependent} joins a "
                f"{pre_kind.value} to a {dep_kind.value}"
            )
        if not 0 < edge.weight <= 1:
            self._fail(
                f"edge {edge.prerequisite} -> {edge.dependent} has weight {edge.weight} outside (0, 1]"
            )
        if edge.prerequisite in self._prerequisites[edge.dependent]:
            self._fail(f"duplicate edge {edge.prerequisite} -> {edge.dependent}")
        self._prerequisites[edge.dependent][edge.prerequisite] = edge.weight
        self._dependents[edge.prerequisite][edge.dependent] = edge.weight

    def _check_acyclic(self):
        # Iterative DFS; `stack` is the current recursion path.
        visited = set()
        for root in self._nodes:
            if root in visited:
                continue
            visited.add(root)
            stack = {root}
            path = [(root, iter(self._prerequisites[root]))]
            while path:
                node_id, pending = path[-1]
                nxt = next(pending, None)
                if nxt is None:
                    path.pop()
                    stack.discard(node_id)
                    continue
                if nxt in stack:
                    cycle = [n for n, _ in path]
                    cycle = cycle[cycle.index(nxt):] + [nxt]
                    self._fail("prerequisite cycle: " + " -> ".join(reversed(cycle)))
                if nxt not in visited:
                    visited.add(nxt)
                    stack.add(nxt)
                    path.append((nxt, iter(self._prerequisites[nxt])))

    def _index_skills(self) -> Dict[str, Tuple[str, ...]]:
        index: Dict[str, List[str]] = {node_id: [] for node_id in self._nodes}
        for node in self._nodes.values():
            if node.kind != NodeKind.SKILL:
                continue
            current: Optional[str] = node.id
            while current is not None:
                index[current].append(node.id)
                current = self._nodes[current].parent_id
        return {node_id: tuple(skills) for node_id, skills in index.items()}

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def __contains__(self, node_id) -> bool:
        return node_id in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def node(self, node_id: str) -> Node:
        try:
            return self._nodes[node_id]
        except KeyError:
            raise UnknownNodeError(node_id) from None

    def nodes(self, kind: Optional[NodeKind] = None) -> List[Node]:
        return [n for n in self._nodes.values() if kind is None or n.kind == kind]

    def domains(self) -> List[Node]:
        return self.nodes(NodeKind.DOMAIN)

    def sub_areas(self) -> List[Node]:
        return self.nodes(NodeKind.SUB_AREA)

    def skills(self) -> List[Node]:
        return self.nodes(NodeKind.SKILL)

    def children(self, node_id: str) -> List[str]:
        self.node(node_id)
        return list(self._children[node_id])

    def order(self, node_id: str) -> int:
        """Declaration position, used for deterministic tie-breaks."""
        self.node(node_id)
        return self._order[node_id]

    def edge_count(self) -> int:
        return sum(len(prereqs) for prereqs in self._prerequisites.values())

    # ------------------------------------------------------------------
    # Containment
    # ------------------------------------------------------------------

    def _enclosing(self, node_id: str, kind: NodeKind) -> Optional[str]:
        node = self.node(node_id)
        while node is not None:
            if node.kind == kind:
                return node.id
            node = self._nodes.get(node.parent_id) if node.parent_id else None
        return None

    def domain_of(self, node_id: str) -> str:
        return self._enclosing(node_id, NodeKind.DOMAIN)

    def sub_area_of(self, node_id: str) -> Optional[str]:
        return self._enclosing(node_id, NodeKind.SUB_AREA)

    def skills_in(self, node_id: str) -> Tuple[str, ...]:
        self.node(node_id)
        return self._skills_in[node_id]

    # ------------------------------------------------------------------
    # Traversal
    # ------------------------------------------------------------------

    def _adjacency(self, direction: Direction) -> Dict[str, Dict[str, float]]:
        direction = Direction(direction)
        if direction == Direction.PREREQUISITES:
            return self._prerequisites
        return self._dependents

    def neighbors(self, node_id: str, direction: Direction) -> Tuple[str, ...]:
        self.node(node_id)
        return tuple(self._adjacency(direction)[node_id])

    def edges(self, node_id: str, direction: Direction) -> List[Edge]:
        """Weighted edges behind ``neighbors``."""
        self.node(node_id)
        direction = Direction(direction)
        adjacent = self._adjacency(direction)[node_id]
        if direction == Direction.PREREQUISITES:
            return [Edge(other, node_id, w) for other, w in adjacent.items()]
        return [Edge(node_id, other, w) for other, w in adjacent.items()]

    def weight(self, prerequisite: str, dependent: str) -> Optional[float]:
        self.node(dependent)
        return self._prerequisites[dependent].get(prerequisite)

    def _closure(self, node_id: str, direction: Direction) -> FrozenSet[str]:
        self.node(node_id)
        key = (node_id, Direction(direction))
        cached = self._closures.get(key)
        if cached is not None:
            return cached

        adjacency = self._adjacency(direction)
        seen = set()
        queue = list(adjacency[node_id])
        while queue:
            current = queue.pop()
            if current in seen:
                continue
            seen.add(current)
            queue.extend(adjacency[current])

        result = frozenset(seen)
        self._closures[key] = result
        return result

    def ancestors(self, node_id: str) -> FrozenSet[str]:
        """All transitive prerequisites of a node."""
        return self._closure(node_id, Direction.PREREQUISITES)

    def descendants(self, node_id: str) -> FrozenSet[str]:
        """All transitive dependents of a node."""
        return self._closure(node_id, Direction.DEPENDENTS)

    def sorted_ids(self, node_ids: Iterable[str]) -> List[str]:
        return sorted(node_ids, key=lambda n: self._order[n])
