"""
Skill ceilings and influence.

Each prerequisite caps how far its dependent skill can sensibly develop. The
cap depends on the prerequisite's level and on the coupling strength between
the two skills: a tightly coupled prerequisite at level 1 holds the dependent
at 2, a loose one barely constrains it.

From the ceilings follow the skills rated above what their prerequisites
support, the influence of each prerequisite on its dependents' ceilings, and
the order in which unassessed skills are most worth assessing.
"""

import math
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Tuple

from engine.config import (
    COUPLING_MAX,
    COUPLING_MIN,
    COUPLING_REQUIRES_BASE,
    COUPLING_SUPPORTS_BASE,
    DEFAULT_TIER,
    HEAVY_CONSTRAINT_CEILING,
)
from taxonomy.graph import TaxonomyGraph
from taxonomy.models import (
    MAX_LEVEL,
    MAX_TIER,
    PRIMARY_EDGE_WEIGHT,
    CouplingRules,
    Direction,
    level_value,
)

NO_RULES = CouplingRules()

# Tier distance -> adjustment; distances from FAR_TIER_GAP up are penalised.
TIER_PROXIMITY = {0: 0.08, 1: 0.04}
FAR_TIER_GAP = 3
FAR_TIER_PENALTY = 0.04

# Number of prerequisites of the dependent -> adjustment.
PREREQUISITE_COUNT_BONUS = {1: 0.10, 2: 0.04}
CROWDED_PREREQUISITES = 5
CROWDED_PENALTY = 0.03

SAME_SUB_AREA_BONUS = 0.08
SAME_DOMAIN_BONUS = 0.04
NEXT_SUB_AREA_BONUS = 0.04

HIGH_INFLUENCE_DOWNSTREAM = 5


def _round_half_up(value: float, places: int = 0) -> float:
    factor = 10 ** places
    return math.floor(value * factor + 0.5) / factor


def _tier(graph: TaxonomyGraph, skill_id: str) -> int:
    tier = graph.node(skill_id).tier
    return tier if tier is not None else DEFAULT_TIER


def _within(graph: TaxonomyGraph, node_id: str, container_id: str) -> bool:
    current = node_id
    while current is not None:
        if current == container_id:
            return True
        current = graph.node(current).parent_id
    return False


def _assessed_level(assessments: Mapping[str, float], skill_id: str) -> Optional[float]:
    value = level_value(assessments.get(skill_id))
    return value if value > 0 else None


# ---------------------------------------------------------------------------
# Coupling and ceilings
# ---------------------------------------------------------------------------


def coupling_strength(
    graph: TaxonomyGraph,
    dependent: str,
    prerequisite: str,
    rules: Optional[CouplingRules] = None,
) -> float:
    """How tightly ``dependent`` is held back by ``prerequisite``, in [0.25, 0.95]."""
    rules = rules or NO_RULES
    override = rules.overrides.get((dependent, prerequisite))
    if override is not None:
        return override

    dep_domain = graph.domain_of(dependent)
    pre_domain = graph.domain_of(prerequisite)
    dep_area = graph.sub_area_of(dependent)
    pre_area = graph.sub_area_of(prerequisite)
    same_domain = dep_domain == pre_domain

    relation = None if same_domain else graph.weight(pre_domain, dep_domain)
    hard = relation is None or relation >= PRIMARY_EDGE_WEIGHT
    strength = COUPLING_REQUIRES_BASE if hard else COUPLING_SUPPORTS_BASE

    tier_gap = abs(_tier(graph, dependent) - _tier(graph, prerequisite))
    if tier_gap >= FAR_TIER_GAP:
        strength -= FAR_TIER_PENALTY
    else:
        strength += TIER_PROXIMITY.get(tier_gap, 0.0)

    count = len(graph.neighbors(dependent, Direction.PREREQUISITES))
    if count >= CROWDED_PREREQUISITES:
        strength -= CROWDED_PENALTY
    else:
        strength += PREREQUISITE_COUNT_BONUS.get(count, 0.0)

    if dep_area == pre_area:
        strength += SAME_SUB_AREA_BONUS
    elif same_domain:
        strength += SAME_DOMAIN_BONUS
        if dep_area is not None and pre_area is not None:
            areas = graph.children(dep_domain)
            if areas.index(dep_area) == areas.index(pre_area) + 1:
                strength += NEXT_SUB_AREA_BONUS

    for rule in rules.bonuses:
        if not _within(graph, prerequisite, rule.prerequisite):
            continue
        if rule.dependent is None:
            matched = not same_domain
        else:
            matched = _within(graph, dependent, rule.dependent)
        if matched:
            strength += rule.bonus

    return _round_half_up(max(COUPLING_MIN, min(COUPLING_MAX, strength)), 2)


def max_gap(strength: float) -> int:
    """Levels a dependent may sit above its prerequisite: 1 when tight, 3 when loose."""
    return int(_round_half_up(1 + 2 * (1 - strength)))


def imposed_ceiling(prerequisite_level: Optional[float], strength: float) -> float:
    level = prerequisite_level or 0.0
    return min(MAX_LEVEL, level + max_gap(strength))


@dataclass(frozen=True)
class PrerequisiteCap:
    prerequisite: str
    level: Optional[float]
    strength: float
    ceiling: float

    def to_dict(self) -> Dict:
        return {
            "prerequisite": self.prerequisite,
            "level": self.level,
            "strength": self.strength,
            "ceiling": self.ceiling,
        }


@dataclass(frozen=True)
class SkillCeiling:
    skill_id: str
    ceiling: float
    # Most constraining first.
    caps: Tuple[PrerequisiteCap, ...]

    def to_dict(self) -> Dict:
        return {
            "skill_id": self.skill_id,
            "ceiling": self.ceiling,
            "caps": [cap.to_dict() for cap in self.caps],
        }


def skill_ceiling(
    graph: TaxonomyGraph,
    skill_id: str,
    assessments: Mapping[str, float],
    rules: Optional[CouplingRules] = None,
) -> Optional[SkillCeiling]:
    """Ceiling of one skill, or None when it has no prerequisites.

    Unassessed prerequisites count as level 0.
    """
    prereqs = graph.neighbors(skill_id, Direction.PREREQUISITES)
    if not prereqs:
        return None
    caps = []
    for prereq in prereqs:
        level = _assessed_level(assessments, prereq)
        strength = coupling_strength(graph, skill_id, prereq, rules)
        caps.append(PrerequisiteCap(prereq, level, strength, imposed_ceiling(level, strength)))
    caps.sort(key=lambda cap: cap.ceiling)
    return SkillCeiling(skill_id=skill_id, ceiling=caps[0].ceiling, caps=tuple(caps))


def skill_ceilings(
    graph: TaxonomyGraph,
    assessments: Mapping[str, float],
    rules: Optional[CouplingRules] = None,
) -> Dict[str, SkillCeiling]:
    ceilings = {}
    for skill in graph.skills():
        ceiling = skill_ceiling(graph, skill.id, assessments, rules)
        if ceiling is not None:
            ceilings[skill.id] = ceiling
    return ceilings


def ceiling_coverage(graph: TaxonomyGraph, assessments: Mapping[str, float]) -> Dict:
    """Share of skills whose ceiling is known.

    A skill without prerequisites always has a known ceiling; any other skill
    needs at least one assessed prerequisite.
    """
    total = len(graph.skills())
    known = 0
    for skill in graph.skills():
        prereqs = graph.neighbors(skill.id, Direction.PREREQUISITES)
        if not prereqs or any(_assessed_level(assessments, p) is not None for p in prereqs):
            known += 1
    return {
        "known_ceilings": known,
        "total_skills": total,
        "coverage": known / total if total else 0.0,
    }


# ---------------------------------------------------------------------------
# Constrained skills and influence
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ConstrainedSkill:
    skill_id: str
    domain_id: str
    level: float
    ceiling: float
    gap: float
    # Only the caps that sit below the current level.
    caps: Tuple[PrerequisiteCap, ...]

    def to_dict(self) -> Dict:
        return {
            "skill_id": self.skill_id,
            "domain_id": self.domain_id,
            "level": self.level,
            "ceiling": self.ceiling,
            "gap": self.gap,
            "caps": [cap.to_dict() for cap in self.caps],
        }


def constrained_skills(
    graph: TaxonomyGraph,
    assessments: Mapping[str, float],
    rules: Optional[CouplingRules] = None,
) -> List[ConstrainedSkill]:
    """Skills rated above their ceiling, largest gap first.

    These are fragile: without prerequisite support they tend to regress.
    """
    found = []
    for skill_id, data in skill_ceilings(graph, assessments, rules).items():
        level = _assessed_level(assessments, skill_id)
        if level is None or level <= data.ceiling:
            continue
        found.append(ConstrainedSkill(
            skill_id=skill_id,
            domain_id=graph.domain_of(skill_id),
            level=level,
            ceiling=data.ceiling,
            gap=level - data.ceiling,
            caps=tuple(cap for cap in data.caps if cap.ceiling < level),
        ))
    found.sort(key=lambda c: -c.gap)
    return found


@dataclass(frozen=True)
class SkillInfluence:
    skill_id: str
    score: float
    direct_downstream: int
    transitive_downstream: int
    constrained_downstream: int
    affected_domains: Tuple[str, ...] = ()

    def to_dict(self) -> Dict:
        return {
            "skill_id": self.skill_id,
            "score": self.score,
            "direct_downstream": self.direct_downstream,
            "transitive_downstream": self.transitive_downstream,
            "constrained_downstream": self.constrained_downstream,
            "affected_domains": list(self.affected_domains),
        }


def skill_influence(
    graph: TaxonomyGraph,
    assessments: Mapping[str, float],
    rules: Optional[CouplingRules] = None,
) -> Dict[str, SkillInfluence]:
    """
    Influence of every skill that has dependents.

    The score sums the coupling strength of each direct dependent whose
    ceiling would rise if this skill improved by one level.
    """
    influence = {}
    for skill in graph.skills():
        dependents = graph.neighbors(skill.id, Direction.DEPENDENTS)
        if not dependents:
            continue
        level = level_value(assessments.get(skill.id))
        raised = min(MAX_LEVEL, level + 1)

        score = 0.0
        constrained = 0
        affected = []
        for dependent in dependents:
            strength = coupling_strength(graph, dependent, skill.id, rules)
            current = imposed_ceiling(level, strength)
            if imposed_ceiling(raised, strength) > current:
                score += strength
                affected.append(graph.domain_of(dependent))
            dep_level = _assessed_level(assessments, dependent)
            if dep_level is not None and dep_level > current:
                constrained += 1

        influence[skill.id] = SkillInfluence(
            skill_id=skill.id,
            score=_round_half_up(score, 2),
            direct_downstream=len(dependents),
            transitive_downstream=len(graph.descendants(skill.id)),
            constrained_downstream=constrained,
            affected_domains=tuple(dict.fromkeys(affected)),
        )
    return influence


# ---------------------------------------------------------------------------
# Start here
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class StartHereEntry:
    skill_id: str
    domain_id: str
    sub_area_id: str
    tier: int
    priority: int
    reason: str
    downstream_count: int

    def to_dict(self) -> Dict:
        return {
            "skill_id": self.skill_id,
            "domain_id": self.domain_id,
            "sub_area_id": self.sub_area_id,
            "tier": self.tier,
            "priority": self.priority,
            "reason": self.reason,
            "downstream_count": self.downstream_count,
        }


def _reason(downstream: int, tier: int, is_prereq: bool, is_junction: bool, domain_untouched: bool) -> str:
    if downstream >= HIGH_INFLUENCE_DOWNSTREAM:
        return "High influence: many skills depend on this"
    if tier <= 2 and is_prereq:
        return "Foundation skill: sets the ceiling for higher skills"
    if domain_untouched:
        return "First skill in this domain: establishes coverage"
    if is_junction:
        return "Junction point: both receives and sends influence"
    if is_prereq:
        return "Prerequisite: affects downstream skill ceilings"
    if tier <= 2:
        return "Foundation tier: early developmental skill"
    return "Fills assessment coverage"


def start_here(
    graph: TaxonomyGraph,
    assessments: Mapping[str, float],
    rules: Optional[CouplingRules] = None,
) -> List[StartHereEntry]:
    """
    Unassessed skills in the order they are most informative to assess.

    Favours skills with many dependents, low tiers, skills in domains nobody
    has assessed yet and junction points; skills already capped at a low
    ceiling drop back.
    """
    ceilings = skill_ceilings(graph, assessments, rules)
    entries = []
    for domain in graph.domains():
        skills = graph.skills_in(domain.id)
        domain_untouched = all(_assessed_level(assessments, s) is None for s in skills)
        for skill_id in skills:
            if _assessed_level(assessments, skill_id) is not None:
                continue
            tier = _tier(graph, skill_id)
            downstream = len(graph.descendants(skill_id))
            direct = len(graph.neighbors(skill_id, Direction.DEPENDENTS))
            is_prereq = direct > 0
            is_junction = is_prereq and bool(graph.neighbors(skill_id, Direction.PREREQUISITES))
            ceiling = ceilings[skill_id].ceiling if skill_id in ceilings else MAX_LEVEL

            priority = downstream * 3 + direct * 2 + (MAX_TIER + 1 - tier) * 2
            if domain_untouched:
                priority += 5
            if is_junction:
                priority += 3
            if is_prereq:
                priority += 2
            if ceiling <= HEAVY_CONSTRAINT_CEILING:
                priority -= 8

            entries.append(StartHereEntry(
                skill_id=skill_id,
                domain_id=domain.id,
                sub_area_id=graph.sub_area_of(skill_id),
                tier=tier,
                priority=priority,
                reason=_reason(downstream, tier, is_prereq, is_junction, domain_untouched),
                downstream_count=downstream,
            ))
    entries.sort(key=lambda e: -e.priority)
    return entries
