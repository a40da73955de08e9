"""
Builds a TaxonomyGraph from the YAML taxonomy source.

Document layout::

    domains:
      - id: d1
        name: Regulation
        sub_areas:
          - id: d1-sa1
            skill_groups:
              - id: d1-sa1-sg1
                skills:
                  - id: d1-sa1-sg1-s1
                    tier: 1
    domain_dependencies:
      d2: {requires: [d1], supports: []}
    sub_area_dependencies:
      d2-sa1: [d1-sa1]
    skill_prerequisites:
      d2-sa1-sg1-s1: [d1-sa1-sg1-s1]        # or {d1-sa1-sg1-s1: 0.8}

Coupling rules for skill ceilings live in a second document,
``coupling.yaml``, read by ``load_coupling``.

Any structural problem is a GraphIntegrityError: the taxonomy is loaded once
at startup and a bad one must stop the process.
"""

import logging
from functools import lru_cache
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import yaml

from taxonomy.errors import GraphIntegrityError
from taxonomy.graph import TaxonomyGraph
from taxonomy.models import (
    PRIMARY_EDGE_WEIGHT,
    SECONDARY_EDGE_WEIGHT,
    CouplingBonus,
    CouplingRules,
    Edge,
    Node,
    NodeKind,
)

logger = logging.getLogger(__name__)

REFERENCE_TAXONOMY_PATH = Path(__file__).resolve().parent / "reference.yaml"
REFERENCE_COUPLING_PATH = REFERENCE_TAXONOMY_PATH.with_name("coupling.yaml")

RELATION_WEIGHTS = {
    "requires": PRIMARY_EDGE_WEIGHT,
    "supports": SECONDARY_EDGE_WEIGHT,
}

# (child list key, kind of the children)
HIERARCHY = [
    ("sub_areas", NodeKind.SUB_AREA),
    ("skill_groups", NodeKind.SKILL_GROUP),
    ("skills", NodeKind.SKILL),
]


def _entry_id(entry, where: str) -> str:
    if not isinstance(entry, dict) or not entry.get("id"):
        raise GraphIntegrityError(f"{where}: entry without an id")
    return str(entry["id"])


def _tier(entry: Dict, node_id: str) -> Optional[int]:
    tier = entry.get("tier")
    if tier is None:
        return None
    if isinstance(tier, bool) or not isinstance(tier, int):
        raise GraphIntegrityError(f"'{node_id}': tier must be an integer, got {tier!r}")
    return tier


def _walk(entries, kind: NodeKind, parent_id: Optional[str], depth: int, nodes: List[Node]):
    if entries is None:
        return
    if not isinstance(entries, list):
        raise GraphIntegrityError(f"{kind.value} list under '{parent_id}' must be a list")
    for entry in entries:
        node_id = _entry_id(entry, parent_id or "domains")
        nodes.append(Node(node_id, kind, str(entry.get("name", "")), parent_id, _tier(entry, node_id)))
        if depth < len(HIERARCHY):
            key, child_kind = HIERARCHY[depth]
            _walk(entry.get(key), child_kind, node_id, depth + 1, nodes)


def _domain_relations(raw: Dict) -> Dict[Tuple[str, str], str]:
    """(dependent domain, prerequisite domain) -> relation name."""
    relations = {}
    for dependent, declared in (raw or {}).items():
        for relation, prereqs in (declared or {}).items():
            if relation not in RELATION_WEIGHTS:
                raise GraphIntegrityError(
                    f"domain '{dependent}': unknown dependency type '{relation}'"
                )
            for prereq in prereqs or []:
                relations[(str(dependent), str(prereq))] = relation
    return relations


def _prerequisite_items(raw, dependent: str) -> List[Tuple[str, Optional[float]]]:
    if isinstance(raw, dict):
        return [(str(pre), float(w)) for pre, w in raw.items()]
    if isinstance(raw, list):
        return [(str(pre), None) for pre in raw]
    raise GraphIntegrityError(f"prerequisites of '{dependent}' must be a list or mapping")


def build_taxonomy(data: Dict) -> TaxonomyGraph:
    if not isinstance(data, dict) or not isinstance(data.get("domains"), list):
        raise GraphIntegrityError("taxonomy document needs a 'domains' list")

    nodes: List[Node] = []
    _walk(data["domains"], NodeKind.DOMAIN, None, 0, nodes)
    domain_of = {}
    for node in nodes:
        domain_of[node.id] = node.id if node.parent_id is None else domain_of.get(node.parent_id)

    relations = _domain_relations(data.get("domain_dependencies"))

    def inherited_weight(dependent: str, prerequisite: str) -> float:
        dep_domain = domain_of.get(dependent)
        pre_domain = domain_of.get(prerequisite)
        if dep_domain == pre_domain:
            return PRIMARY_EDGE_WEIGHT
        relation = relations.get((dep_domain, pre_domain), "requires")
        return RELATION_WEIGHTS[relation]

    edges = [
        Edge(prereq, dependent, RELATION_WEIGHTS[relation])
        for (dependent, prereq), relation in relations.items()
    ]
    for section in ("sub_area_dependencies", "skill_prerequisites"):
        for dependent, raw in (data.get(section) or {}).items():
            dependent = str(dependent)
            for prereq, weight in _prerequisite_items(raw, dependent):
                if weight is None:
                    weight = inherited_weight(dependent, prereq)
                edges.append(Edge(prereq, dependent, weight))

    graph = TaxonomyGraph(nodes, edges)
    logger.info(
        "Loaded taxonomy: %d domains, %d sub-areas, %d skills, %d edges",
        len(graph.domains()),
        len(graph.sub_areas()),
        len(graph.skills()),
        graph.edge_count(),
    )
    return graph


def _read_yaml(path: Path):
    try:
        return yaml.safe_load(path.read_text())
    except yaml.YAMLError as exc:
        logger.error("Taxonomy %s is not valid YAML: %s", path, exc)
        raise GraphIntegrityError(f"{path}: invalid YAML") from exc


def load_taxonomy(path) -> TaxonomyGraph:
    return build_taxonomy(_read_yaml(Path(path)))


@lru_cache(maxsize=1)
def load_reference_taxonomy() -> TaxonomyGraph:
    return load_taxonomy(REFERENCE_TAXONOMY_PATH)


def build_coupling_rules(data: Dict, graph: Optional[TaxonomyGraph] = None) -> CouplingRules:
    """Coupling rules from a parsed document; ids are checked when a graph is given."""
    data = data or {}

    def known(node_id) -> str:
        node_id = str(node_id)
        if graph is not None and node_id not in graph:
            raise GraphIntegrityError(f"coupling rule references unknown node '{node_id}'")
        return node_id

    def strength(value, where: str) -> float:
        value = float(value)
        if not 0 < value <= 1:
            raise GraphIntegrityError(f"{where}: coupling {value} outside (0, 1]")
        return value

    overrides = {}
    for dependent, prereqs in (data.get("overrides") or {}).items():
        if not isinstance(prereqs, dict):
            raise GraphIntegrityError(f"coupling overrides of '{dependent}' must be a mapping")
        for prereq, value in prereqs.items():
            overrides[(known(dependent), known(prereq))] = strength(value, f"{dependent} <- {prereq}")

    bonuses = []
    for entry in data.get("bonuses") or []:
        if not isinstance(entry, dict) or "prerequisite" not in entry or "bonus" not in entry:
            raise GraphIntegrityError("coupling bonus needs 'prerequisite' and 'bonus'")
        dependent = entry.get("dependent")
        bonuses.append(CouplingBonus(
            prerequisite=known(entry["prerequisite"]),
            bonus=float(entry["bonus"]),
            dependent=known(dependent) if dependent is not None else None,
        ))

    return CouplingRules(overrides=overrides, bonuses=tuple(bonuses))


def load_coupling(path, graph: Optional[TaxonomyGraph] = None) -> CouplingRules:
    return build_coupling_rules(_read_yaml(Path(path)), graph)


@lru_cache(maxsize=1)
def load_reference_coupling() -> CouplingRules:
    return load_coupling(REFERENCE_COUPLING_PATH, load_reference_taxonomy())
