import pytest

from engine.bottleneck import find_bottleneck, rank_leverage, skill_bottlenecks


def test_mastered_foundations_never_selected(chain_graph):
    assessments = {"a1": 3, "a2": 3, "b1": 3, "b2": 3}
    assert find_bottleneck(chain_graph, assessments) not in ("d1", "d2")


def test_nothing_assessed_returns_none(chain_graph):
    assert find_bottleneck(chain_graph, {}) is None


def test_all_solid_returns_none(chain_graph):
    assessments = {s.id: 3 for s in chain_graph.skills()}
    assert find_bottleneck(chain_graph, assessments) is None


def test_weak_foundation_is_bottleneck(chain_graph):
    assessments = {"a1": 1, "a2": 1, "b1": 2, "b2": 2}
    assert find_bottleneck(chain_graph, assessments) == "d1"


def test_leverage_scores(chain_graph):
    ranking = rank_leverage(chain_graph, {"a1": 1, "a2": 1, "b1": 2, "b2": 2})
    assert [entry.domain_id for entry in ranking] == ["d1", "d2"]
    d1, d2 = ranking
    # (1 - 1/3) * ((1 - 2/3) + (1 - 0))
    assert d1.score == pytest.approx((2 / 3) * (4 / 3))
    assert d1.downstream_domains == ("d2", "d3")
    # (1 - 2/3) * (1 - 0)
    assert d2.score == pytest.approx(1 / 3)
    assert d2.prerequisite_count == 1


def test_unassessed_domains_not_ranked(chain_graph):
    ranking = rank_leverage(chain_graph, {"b1": 1})
    assert [entry.domain_id for entry in ranking] == ["d2"]


def test_leaf_domain_has_no_leverage(chain_graph):
    assert find_bottleneck(chain_graph, {"c1": 1}) is None


def test_tie_prefers_fewer_prerequisites(graph_factory):
    graph = graph_factory(
        {
            "d0": {"d0-sa1": ["z"]},
            "d2": {"d2-sa1": ["b"]},
            "d4": {"d4-sa1": ["e"]},
            "d1": {"d1-sa1": ["a"]},
            "d3": {"d3-sa1": ["c"]},
        },
        domain_edges=[("d1", "d3"), ("d0", "d2"), ("d2", "d4")],
    )
    assessments = {"a": 1, "b": 1}
    ranking = rank_leverage(graph, assessments)
    assert ranking[0].score == pytest.approx(ranking[1].score)
    assert find_bottleneck(graph, assessments) == "d1"


def test_reference_weak_regulation(reference_graph, levels_for):
    assessments = levels_for(reference_graph, "d1", 1)
    assert find_bottleneck(reference_graph, assessments) == "d1"
    top = rank_leverage(reference_graph, assessments)[0]
    assert len(top.downstream_domains) == 8


def test_skill_bottlenecks(tiered_graph):
    entries = skill_bottlenecks(tiered_graph, {})
    assert [(e.skill_id, e.blocked_count) for e in entries] == [("f1", 2), ("f2", 2)]
    assert entries[0].tier == 1


def test_skill_bottlenecks_drop_met_prerequisites(tiered_graph):
    [entry] = skill_bottlenecks(tiered_graph, {"f1": 2, "f2": 1})
    assert entry.skill_id == "f2"
    assert entry.current_level == 1.0
    assert entry.domain_id == "d1"


def test_skill_bottlenecks_direct_only(chain_graph):
    entries = skill_bottlenecks(chain_graph, {"a1": 1})
    assert [e.skill_id for e in entries] == ["a1", "b1"]
