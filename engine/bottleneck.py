from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Tuple

from engine.config import SOLID_HEALTH_PCT
from engine.health import compute_health
from engine.readiness import skill_readiness
from taxonomy.graph import TaxonomyGraph
from taxonomy.models import HealthStats, level_value


@dataclass(frozen=True)
class LeverageScore:
    domain_id: str
    health_pct: float
    downstream_domains: Tuple[str, ...]
    downstream_need: float
    prerequisite_count: int
    score: float

    def to_dict(self) -> Dict:
        return {
            "domain_id": self.domain_id,
            "health_pct": self.health_pct,
            "downstream_domains": list(self.downstream_domains),
            "downstream_need": self.downstream_need,
            "prerequisite_count": self.prerequisite_count,
            "score": self.score,
        }


def rank_leverage(
    graph: TaxonomyGraph,
    assessments: Mapping[str, float],
    health: Optional[Dict[str, HealthStats]] = None,
) -> List[LeverageScore]:
    """
    Leverage of every assessed domain, highest first.

    score = (1 - healthPct) x sum of the unmet-health fraction of every distinct
    domain downstream of it. Ties go to the domain with fewer prerequisites of
    its own, then to declaration order.
    """
    if health is None:
        health = compute_health(graph, assessments)

    ranking = []
    for domain in graph.domains():
        stats = health[domain.id]
        if not stats.assessed:
            continue
        downstream = tuple(graph.sorted_ids(graph.descendants(domain.id)))
        need = sum(1.0 - health[d].health_pct for d in downstream)
        ranking.append(LeverageScore(
            domain_id=domain.id,
            health_pct=stats.health_pct,
            downstream_domains=downstream,
            downstream_need=need,
            prerequisite_count=len(graph.ancestors(domain.id)),
            score=(1.0 - stats.health_pct) * need,
        ))

    ranking.sort(key=lambda s: (-s.score, s.prerequisite_count, graph.order(s.domain_id)))
    return ranking


def top_leverage(
    graph: TaxonomyGraph,
    assessments: Mapping[str, float],
    health: Optional[Dict[str, HealthStats]] = None,
    solid_pct: float = SOLID_HEALTH_PCT,
) -> Optional[LeverageScore]:
    for entry in rank_leverage(graph, assessments, health):
        if entry.health_pct >= solid_pct or entry.score <= 0:
            continue
        return entry
    return None


def find_bottleneck(
    graph: TaxonomyGraph,
    assessments: Mapping[str, float],
    solid_pct: float = SOLID_HEALTH_PCT,
) -> Optional[str]:
    """Domain whose improvement would unblock the most downstream capability."""
    entry = top_leverage(graph, assessments, solid_pct=solid_pct)
    return entry.domain_id if entry else None


@dataclass(frozen=True)
class SkillBottleneck:
    skill_id: str
    domain_id: str
    tier: Optional[int]
    blocked_count: int
    current_level: float

    def to_dict(self) -> Dict:
        return {
            "skill_id": self.skill_id,
            "domain_id": self.domain_id,
            "tier": self.tier,
            "blocked_count": self.blocked_count,
            "current_level": self.current_level,
        }


def skill_bottlenecks(graph: TaxonomyGraph, assessments: Mapping[str, float]) -> List[SkillBottleneck]:
    """Weak prerequisite skills ranked by how many skills they hold back."""
    blocked: Dict[str, int] = {}
    for skill in graph.skills():
        for prereq in skill_readiness(graph, skill.id, assessments).unmet:
            blocked[prereq] = blocked.get(prereq, 0) + 1

    entries = [
        SkillBottleneck(
            skill_id=skill_id,
            domain_id=graph.domain_of(skill_id),
            tier=graph.node(skill_id).tier,
            blocked_count=count,
            current_level=level_value(assessments.get(skill_id)),
        )
        for skill_id, count in blocked.items()
    ]
    entries.sort(key=lambda e: (-e.blocked_count, graph.order(e.skill_id)))
    return entries
