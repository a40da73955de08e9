import pytest

from engine.health import compute_health, node_health


def test_chain_scenario_unassessed_domains(chain_graph):
    health = compute_health(chain_graph, {"a1": 3, "a2": 3})
    assert health["d1"].health_pct == 1.0
    assert health["d1"].average == 3.0
    assert health["d1"].assessed_count == 2
    for domain_id in ("d2", "d3"):
        assert health[domain_id].health_pct == 0
        assert health[domain_id].assessed_count == 0
        assert health[domain_id].total_count == 2
        assert not health[domain_id].assessed


def test_not_assessed_excluded_from_average(chain_graph):
    health = compute_health(chain_graph, {"a1": 1, "a2": 0})
    assert health["d1"].average == 1.0
    assert health["d1"].assessed_count == 1
    assert health["d1"].total_count == 2


def test_none_counts_as_not_assessed(chain_graph):
    health = compute_health(chain_graph, {"a1": None, "a2": 2})
    assert health["d1"].average == 2.0
    assert health["d1"].assessed_count == 1


def test_sub_area_and_domain_buckets(chain_graph):
    health = compute_health(chain_graph, {"b1": 2, "b2": 1})
    assert health["d2-sa1"].average == pytest.approx(1.5)
    assert health["d2"].health_pct == pytest.approx(0.5)


def test_every_domain_and_sub_area_reported(reference_graph):
    health = compute_health(reference_graph, {})
    assert len(health) == 9 + 49
    assert all(h.health_pct == 0 and h.assessed_count == 0 for h in health.values())


def test_health_pct_bounds(reference_graph):
    assessments = {}
    for i, skill in enumerate(reference_graph.skills()):
        assessments[skill.id] = i % 4
    for stats in compute_health(reference_graph, assessments).values():
        assert 0 <= stats.health_pct <= 1
        assert (stats.health_pct == 0) == (stats.assessed_count == 0)


def test_unknown_skill_ignored(chain_graph):
    health = compute_health(chain_graph, {"ghost": 3, "d1": 3, "a1": 2})
    assert health["d1"].assessed_count == 1
    assert health["d1"].average == 2.0


def test_out_of_range_level_rejected(chain_graph):
    with pytest.raises(ValueError):
        compute_health(chain_graph, {"a1": 4})
    with pytest.raises(ValueError):
        compute_health(chain_graph, {"a1": -1})


def test_non_finite_level_rejected(chain_graph):
    with pytest.raises(ValueError):
        compute_health(chain_graph, {"a1": float("nan")})
    with pytest.raises(ValueError):
        compute_health(chain_graph, {"a1": float("inf")})


def test_unknown_key_not_range_checked(chain_graph):
    health = compute_health(chain_graph, {"ghost": 9, "d1": -2, "a1": 2})
    assert health["d1"].assessed_count == 1
    assert health["d1"].average == 2.0


def test_input_map_not_mutated(chain_graph):
    assessments = {"a1": 3}
    compute_health(chain_graph, assessments)
    assert assessments == {"a1": 3}


def test_node_health_for_skill_and_group(chain_graph):
    skill = node_health(chain_graph, "a1", {"a1": 2})
    assert skill.average == 2.0
    assert skill.total_count == 1

    group = node_health(chain_graph, "d1-sa1-sg1", {"a1": 3, "a2": 1})
    assert group.average == 2.0
    assert group.health_pct == pytest.approx(2 / 3)
