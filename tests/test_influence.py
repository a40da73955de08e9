import pytest

from engine.influence import (
    ceiling_coverage,
    constrained_skills,
    coupling_strength,
    imposed_ceiling,
    max_gap,
    skill_ceiling,
    skill_ceilings,
    skill_influence,
    start_here,
)
from taxonomy.models import CouplingBonus, CouplingRules


# ============================================================
# Coupling strength
# ============================================================

def test_sole_hard_prerequisite(chain_graph):
    # 0.65 base + 0.08 same tier + 0.10 sole prerequisite
    assert coupling_strength(chain_graph, "b1", "a1") == pytest.approx(0.83)


def test_supporting_relation_is_looser(graph_factory):
    graph = graph_factory(
        {"d1": {"d1-sa1": ["x"]}, "d2": {"d2-sa1": ["y"]}},
        domain_edges=[("d1", "d2", 0.5)],
        skill_edges=[("x", "y")],
    )
    assert coupling_strength(graph, "y", "x") == pytest.approx(0.58)


def test_undeclared_domain_relation_counts_as_hard(graph_factory):
    graph = graph_factory(
        {"d1": {"d1-sa1": ["x"]}, "d2": {"d2-sa1": ["y"]}},
        skill_edges=[("x", "y")],
    )
    assert coupling_strength(graph, "y", "x") == pytest.approx(0.83)


def test_sub_area_proximity(graph_factory):
    same_area = graph_factory({"d1": {"d1-sa1": ["x", "y"]}}, skill_edges=[("x", "y")])
    assert coupling_strength(same_area, "y", "x") == pytest.approx(0.91)

    layout = {"d1": {"d1-sa1": ["x"], "d1-sa2": ["m"], "d1-sa3": ["y"]}}
    next_area = graph_factory(layout, skill_edges=[("x", "m")])
    far_area = graph_factory(layout, skill_edges=[("x", "y")])
    assert coupling_strength(next_area, "m", "x") == pytest.approx(0.91)
    assert coupling_strength(far_area, "y", "x") == pytest.approx(0.87)


def test_tier_distance_penalised(graph_factory):
    graph = graph_factory(
        {"d1": {"d1-sa1": ["x"]}, "d2": {"d2-sa1": ["y"]}},
        domain_edges=[("d1", "d2")],
        skill_edges=[("x", "y")],
        tiers={"x": 1, "y": 4},
    )
    assert coupling_strength(graph, "y", "x") == pytest.approx(0.71)


def test_override_and_bonus_rules(chain_graph):
    override = CouplingRules(overrides={("b1", "a1"): 0.3})
    assert coupling_strength(chain_graph, "b1", "a1", override) == 0.3

    bonus = CouplingRules(bonuses=(CouplingBonus("d1", 0.04),))
    assert coupling_strength(chain_graph, "b1", "a1", bonus) == pytest.approx(0.87)

    elsewhere = CouplingRules(bonuses=(CouplingBonus("d1", 0.04, dependent="d3"),))
    assert coupling_strength(chain_graph, "b1", "a1", elsewhere) == pytest.approx(0.83)


def test_strength_is_clamped(chain_graph):
    rules = CouplingRules(bonuses=(CouplingBonus("d1", 0.5),))
    assert coupling_strength(chain_graph, "b1", "a1", rules) == 0.95


def test_reference_coupling(reference_graph, reference_coupling):
    assert coupling_strength(
        reference_graph, "d2-sa1-sg2-s1", "d1-sa1-sg1-s1", reference_coupling
    ) == 0.95
    # requires base, adjacent tiers, sole prerequisite, regulation and tolerance bonuses
    assert coupling_strength(
        reference_graph, "d3-sa2-sg1-s2", "d1-sa4-sg2-s1", reference_coupling
    ) == pytest.approx(0.89)


def test_max_gap():
    assert max_gap(0.95) == 1
    assert max_gap(0.75) == 2
    assert max_gap(0.5) == 2
    assert max_gap(0.25) == 3


def test_imposed_ceiling():
    assert imposed_ceiling(None, 0.83) == 1
    assert imposed_ceiling(1, 0.83) == 2
    assert imposed_ceiling(3, 0.25) == 3


# ============================================================
# Ceilings
# ============================================================

def test_ceilings_only_for_skills_with_prerequisites(chain_graph):
    ceilings = skill_ceilings(chain_graph, {})
    assert set(ceilings) == {"b1", "c1"}
    assert ceilings["b1"].ceiling == 1
    assert skill_ceiling(chain_graph, "a1", {}) is None


def test_ceiling_rises_with_prerequisite(chain_graph):
    assert skill_ceiling(chain_graph, "b1", {"a1": 1}).ceiling == 2
    assert skill_ceiling(chain_graph, "b1", {"a1": 2}).ceiling == 3


def test_most_constraining_cap_first(graph_factory):
    graph = graph_factory(
        {"d1": {"d1-sa1": ["x", "z"]}, "d2": {"d2-sa1": ["y"]}},
        domain_edges=[("d1", "d2")],
        skill_edges=[("x", "y"), ("z", "y")],
    )
    ceiling = skill_ceiling(graph, "y", {"x": 3, "z": 1})
    assert [cap.prerequisite for cap in ceiling.caps] == ["z", "x"]
    assert ceiling.ceiling == ceiling.caps[0].ceiling


def test_constrained_skills(chain_graph):
    [constrained] = constrained_skills(chain_graph, {"a1": 1, "b1": 3})
    assert constrained.skill_id == "b1"
    assert constrained.domain_id == "d2"
    assert constrained.ceiling == 2
    assert constrained.gap == 1
    assert [cap.prerequisite for cap in constrained.caps] == ["a1"]


def test_skill_within_ceiling_not_constrained(chain_graph):
    assert constrained_skills(chain_graph, {"a1": 2, "b1": 3}) == []


def test_ceiling_coverage(chain_graph):
    assert ceiling_coverage(chain_graph, {})["coverage"] == pytest.approx(4 / 6)
    assert ceiling_coverage(chain_graph, {"a1": 1})["known_ceilings"] == 5


# ============================================================
# Influence
# ============================================================

def test_influence_counts_raisable_ceilings(chain_graph):
    influence = skill_influence(chain_graph, {"a1": 1, "b1": 3})
    assert set(influence) == {"a1", "b1"}
    a1 = influence["a1"]
    assert a1.score == pytest.approx(0.83)
    assert a1.direct_downstream == 1
    assert a1.transitive_downstream == 2
    assert a1.constrained_downstream == 1
    assert a1.affected_domains == ("d2",)


def test_no_influence_when_ceiling_already_maxed(chain_graph):
    a1 = skill_influence(chain_graph, {"a1": 2})["a1"]
    assert a1.score == 0
    assert a1.affected_domains == ()


# ============================================================
# Start here
# ============================================================

def test_start_here_ordering(chain_graph):
    entries = start_here(chain_graph, {})
    assert [e.skill_id for e in entries] == ["a1", "b1", "a2", "b2", "c2", "c1"]
    assert entries[0].priority == 21
    assert entries[0].reason.startswith("First skill in this domain")


def test_start_here_skips_assessed_and_lifts_uncapped(chain_graph):
    entries = start_here(chain_graph, {"a1": 2})
    assert "a1" not in [e.skill_id for e in entries]
    assert entries[0].skill_id == "b1"
    assert entries[0].priority == 21


def test_start_here_reference(reference_graph, reference_coupling):
    entries = start_here(reference_graph, {}, reference_coupling)
    assert len(entries) == 260
    priorities = [e.priority for e in entries]
    assert priorities == sorted(priorities, reverse=True)
