import logging
from typing import Dict, Mapping

from taxonomy.graph import TaxonomyGraph
from taxonomy.models import MAX_LEVEL, HealthStats, NodeKind, level_value

logger = logging.getLogger(__name__)


def _stats(node_id: str, score_sum: float, assessed: int, total: int) -> HealthStats:
    average = score_sum / assessed if assessed else 0.0
    return HealthStats(
        node_id=node_id,
        average=average,
        health_pct=average / MAX_LEVEL,
        assessed_count=assessed,
        total_count=total,
    )


def compute_health(graph: TaxonomyGraph, assessments: Mapping[str, float]) -> Dict[str, HealthStats]:
    """
    Health of every domain and sub-area for one assessment map.

    Only skills with a non-zero level count towards averages. A node with no
    assessed skills reports average 0 and assessed_count 0.
    """
    sums: Dict[str, float] = {}
    counts: Dict[str, int] = {}

    for skill_id, raw in assessments.items():
        if skill_id not in graph or graph.node(skill_id).kind != NodeKind.SKILL:
            logger.debug("Ignoring assessment for unknown skill '%s'", skill_id)
            continue
        value = level_value(raw)
        if value <= 0:
            continue
        for bucket in (graph.sub_area_of(skill_id), graph.domain_of(skill_id)):
            sums[bucket] = sums.get(bucket, 0.0) + value
            counts[bucket] = counts.get(bucket, 0) + 1

    health = {}
    for node in graph.domains() + graph.sub_areas():
        health[node.id] = _stats(
            node.id,
            sums.get(node.id, 0.0),
            counts.get(node.id, 0),
            len(graph.skills_in(node.id)),
        )
    return health


def node_health(graph: TaxonomyGraph, node_id: str, assessments: Mapping[str, float]) -> HealthStats:
    """Health of any single node; a skill's average is its own level."""
    score_sum = 0.0
    assessed = 0
    skills = graph.skills_in(node_id)
    for skill_id in skills:
        value = level_value(assessments.get(skill_id))
        if value > 0:
            score_sum += value
            assessed += 1
    return _stats(node_id, score_sum, assessed, len(skills))
