"""
Cascade simulation: how a change at one node ripples through the graph.

A deficit cascade follows dependent edges (a weak foundation harms what is
built on it); a mastery cascade follows prerequisite edges (the foundations
whose strengthening feeds the source). The math is the same in both
directions: every hop multiplies the strength by the edge weight and by
``1 - decay``, and a node whose strength is below the materiality threshold
is dropped without being expanded. When several paths reach a node the
strongest one wins.
"""

import logging
from collections import deque
from typing import Dict, Mapping

from engine.config import HOP_DECAY, MATERIALITY_THRESHOLD
from engine.health import node_health
from taxonomy.graph import TaxonomyGraph
from taxonomy.models import CascadeDirection, CascadeResult, Direction

logger = logging.getLogger(__name__)

TRAVERSAL = {
    CascadeDirection.DEFICIT: Direction.DEPENDENTS,
    CascadeDirection.MASTERY: Direction.PREREQUISITES,
}


def source_strength(graph: TaxonomyGraph, source_id: str, assessments: Mapping[str, float]) -> float:
    """Starting impact: the unmet share of the source's health, 1.0 if unassessed."""
    health = node_health(graph, source_id, assessments)
    if not health.assessed:
        return 1.0
    return 1.0 - health.health_pct


def simulate(
    graph: TaxonomyGraph,
    source_id: str,
    assessments: Mapping[str, float],
    direction=CascadeDirection.DEFICIT,
    decay: float = HOP_DECAY,
    threshold: float = MATERIALITY_THRESHOLD,
) -> CascadeResult:
    direction = CascadeDirection(direction)
    if not 0 <= decay < 1:
        raise ValueError(f"decay must be in [0, 1), got {decay}")
    if not 0 < threshold <= 1:
        raise ValueError(f"threshold must be in (0, 1], got {threshold}")

    if source_id not in graph:
        logger.debug("Cascade requested for unknown node '%s'", source_id)
        return CascadeResult(active=False, source_id=source_id, direction=direction)

    traversal = TRAVERSAL[direction]
    retention = 1.0 - decay
    best: Dict[str, float] = {source_id: source_strength(graph, source_id, assessments)}
    hops: Dict[str, int] = {source_id: 0}

    queue = deque([source_id])
    while queue:
        current = queue.popleft()
        strength = best[current]
        for edge in graph.edges(current, traversal):
            target = edge.dependent if traversal == Direction.DEPENDENTS else edge.prerequisite
            reached = strength * edge.weight * retention
            if reached < threshold or reached <= best.get(target, 0.0):
                continue
            best[target] = reached
            hops[target] = hops[current] + 1
            queue.append(target)

    del best[source_id]
    del hops[source_id]
    return CascadeResult(
        active=True,
        source_id=source_id,
        direction=direction,
        affected=best,
        hops=hops,
    )
