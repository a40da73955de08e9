from datetime import datetime, timedelta, timezone

import pytest

from taxonomy.graph import TaxonomyGraph
from taxonomy.loader import load_reference_coupling, load_reference_taxonomy
from taxonomy.models import Edge, Node, NodeKind, Snapshot

BASE_TIME = datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)


def build_graph(layout, domain_edges=(), skill_edges=(), area_edges=(), tiers=None):
    """
    layout: {domain_id: {sub_area_id: [skill_id, ...]}}. Each sub-area gets a
    single skill group. Edges are (prerequisite, dependent[, weight]) tuples;
    tiers maps skill ids to their tier.
    """
    tiers = tiers or {}
    nodes = []
    for domain_id, sub_areas in layout.items():
        nodes.append(Node(domain_id, NodeKind.DOMAIN, domain_id.upper()))
        for sa_id, skills in sub_areas.items():
            group_id = f"{sa_id}-sg1"
            nodes.append(Node(sa_id, NodeKind.SUB_AREA, sa_id, domain_id))
            nodes.append(Node(group_id, NodeKind.SKILL_GROUP, group_id, sa_id))
            for skill_id in skills:
                nodes.append(Node(skill_id, NodeKind.SKILL, skill_id, group_id, tiers.get(skill_id)))
    edges = [Edge(*e) for e in list(domain_edges) + list(area_edges) + list(skill_edges)]
    return TaxonomyGraph(nodes, edges)


@pytest.fixture
def graph_factory():
    return build_graph


@pytest.fixture
def chain_graph():
    """D1 -> D2 -> D3, two skills per domain, a1 -> b1 -> c1 at skill level."""
    return build_graph(
        {
            "d1": {"d1-sa1": ["a1", "a2"]},
            "d2": {"d2-sa1": ["b1", "b2"]},
            "d3": {"d3-sa1": ["c1", "c2"]},
        },
        domain_edges=[("d1", "d2"), ("d2", "d3")],
        skill_edges=[("a1", "b1"), ("b1", "c1")],
    )


@pytest.fixture
def pair_graph():
    """Skill b (in D2) depends on skill a (in D1)."""
    return build_graph(
        {"d1": {"d1-sa1": ["a"]}, "d2": {"d2-sa1": ["b"]}},
        domain_edges=[("d1", "d2")],
        skill_edges=[("a", "b")],
    )


@pytest.fixture
def long_chain_graph():
    """k0 -> k1 -> ... -> k7 at domain level."""
    layout = {f"k{i}": {f"k{i}-sa1": [f"k{i}-s1"]} for i in range(8)}
    edges = [(f"k{i}", f"k{i + 1}") for i in range(7)]
    return build_graph(layout, domain_edges=edges)


@pytest.fixture(scope="session")
def reference_graph():
    return load_reference_taxonomy()


@pytest.fixture(scope="session")
def reference_coupling():
    return load_reference_coupling()


@pytest.fixture
def tiered_graph():
    """f1 (tier 1), f2 (2), f3 (4) in d1-sa1 feed d2-sa1; g1 (2) and g2 (3) depend on it."""
    return build_graph(
        {"d1": {"d1-sa1": ["f1", "f2", "f3"]}, "d2": {"d2-sa1": ["g1", "g2"]}},
        domain_edges=[("d1", "d2")],
        area_edges=[("d1-sa1", "d2-sa1")],
        skill_edges=[("f1", "g1")],
        tiers={"f1": 1, "f2": 2, "f3": 4, "g1": 2, "g2": 3},
    )


@pytest.fixture
def snapshot_at():
    def make(days, assessments):
        return Snapshot(timestamp=BASE_TIME + timedelta(days=days), assessments=assessments)
    return make


@pytest.fixture
def as_of_day():
    def make(days):
        return BASE_TIME + timedelta(days=days)
    return make


@pytest.fixture
def levels_for():
    def make(graph, node_id, level):
        return {skill_id: level for skill_id in graph.skills_in(node_id)}
    return make
