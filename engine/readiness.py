"""
Readiness views over the graph: domain states, prerequisite chains towards a
goal, and per-skill readiness against direct and structural prerequisites.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Mapping, Sequence, Tuple

from engine.config import CLOSE_AVERAGE, MASTERED_AVERAGE, MET_AVERAGE
from engine.health import node_health
from taxonomy.graph import TaxonomyGraph
from taxonomy.models import (
    PRIMARY_EDGE_WEIGHT,
    AssessmentLevel,
    Direction,
    HealthStats,
    level_value,
)


class DomainState(str, Enum):
    LOCKED = "locked"
    BLOCKED = "blocked"
    NEEDS_WORK = "needs_work"
    DEVELOPING = "developing"
    MASTERED = "mastered"


@dataclass(frozen=True)
class PathStep:
    step: int
    node_id: str
    average: float
    assessed_count: int
    total_count: int
    status: str
    gap: float

    def to_dict(self) -> Dict:
        return {
            "step": self.step,
            "node_id": self.node_id,
            "average": self.average,
            "assessed_count": self.assessed_count,
            "total_count": self.total_count,
            "status": self.status,
            "gap": self.gap,
        }


@dataclass(frozen=True)
class SkillReadiness:
    skill_id: str
    ready: bool
    readiness: float
    unmet_direct: Tuple[str, ...] = ()
    unmet_structural: Tuple[str, ...] = ()
    prerequisite_count: int = 0

    @property
    def unmet(self) -> Tuple[str, ...]:
        return self.unmet_direct + self.unmet_structural

    def to_dict(self) -> Dict:
        return {
            "skill_id": self.skill_id,
            "ready": self.ready,
            "readiness": self.readiness,
            "unmet_direct": list(self.unmet_direct),
            "unmet_structural": list(self.unmet_structural),
            "prerequisite_count": self.prerequisite_count,
        }


def domain_states(graph: TaxonomyGraph, health: Mapping[str, HealthStats]) -> Dict[str, DomainState]:
    """Classify each domain; only hard ("requires") prerequisites can block."""
    states = {}
    for domain in graph.domains():
        stats = health[domain.id]
        hard_prereqs = [
            edge.prerequisite
            for edge in graph.edges(domain.id, Direction.PREREQUISITES)
            if edge.weight >= PRIMARY_EDGE_WEIGHT
        ]
        prereqs_met = all(
            health[p].assessed and health[p].average >= MET_AVERAGE for p in hard_prereqs
        )

        if not stats.assessed:
            state = DomainState.LOCKED
        elif not prereqs_met and stats.average < MET_AVERAGE:
            state = DomainState.BLOCKED
        elif stats.average < CLOSE_AVERAGE:
            state = DomainState.NEEDS_WORK
        elif stats.average < MASTERED_AVERAGE:
            state = DomainState.DEVELOPING
        else:
            state = DomainState.MASTERED
        states[domain.id] = state
    return states


def prerequisite_chain(graph: TaxonomyGraph, goal_id: str) -> List[str]:
    """Every prerequisite of ``goal_id`` plus the goal, foundations first."""
    if goal_id not in graph:
        return []

    chain: List[str] = []
    visited = set()

    def walk(node_id):
        if node_id in visited:
            return
        visited.add(node_id)
        for prereq in graph.sorted_ids(graph.neighbors(node_id, Direction.PREREQUISITES)):
            walk(prereq)
        chain.append(node_id)

    walk(goal_id)
    return chain


def path_readiness(
    graph: TaxonomyGraph,
    chain: Sequence[str],
    assessments: Mapping[str, float],
) -> List[PathStep]:
    steps = []
    for index, node_id in enumerate(chain):
        stats = node_health(graph, node_id, assessments)
        if stats.average >= MET_AVERAGE:
            status = "met"
        elif stats.average >= CLOSE_AVERAGE:
            status = "close"
        else:
            status = "far"
        steps.append(PathStep(
            step=index + 1,
            node_id=node_id,
            average=stats.average,
            assessed_count=stats.assessed_count,
            total_count=stats.total_count,
            status=status,
            gap=max(0.0, MET_AVERAGE - stats.average),
        ))
    return steps


def structural_prerequisites(graph: TaxonomyGraph, skill_id: str) -> Tuple[str, ...]:
    """
    Skills of equal or lower tier in the sub-areas this skill's sub-area
    depends on. A skill without a tier has none.
    """
    tier = graph.node(skill_id).tier
    area = graph.sub_area_of(skill_id)
    if tier is None or area is None:
        return ()
    found = []
    for prereq_area in graph.neighbors(area, Direction.PREREQUISITES):
        for candidate in graph.skills_in(prereq_area):
            candidate_tier = graph.node(candidate).tier
            if candidate_tier is not None and candidate_tier <= tier:
                found.append(candidate)
    return tuple(dict.fromkeys(found))


def skill_readiness(
    graph: TaxonomyGraph,
    skill_id: str,
    assessments: Mapping[str, float],
) -> SkillReadiness:
    """Share of direct and structural prerequisites at DEVELOPING or above."""
    direct = tuple(graph.sorted_ids(graph.neighbors(skill_id, Direction.PREREQUISITES)))
    structural = tuple(p for p in structural_prerequisites(graph, skill_id) if p not in direct)
    total = len(direct) + len(structural)
    if not total:
        return SkillReadiness(skill_id=skill_id, ready=True, readiness=1.0)

    def weak(prereq_id):
        return level_value(assessments.get(prereq_id)) < AssessmentLevel.DEVELOPING

    unmet_direct = tuple(p for p in direct if weak(p))
    unmet_structural = tuple(p for p in structural if weak(p))
    unmet = len(unmet_direct) + len(unmet_structural)
    return SkillReadiness(
        skill_id=skill_id,
        ready=not unmet,
        readiness=(total - unmet) / total,
        unmet_direct=unmet_direct,
        unmet_structural=unmet_structural,
        prerequisite_count=total,
    )
