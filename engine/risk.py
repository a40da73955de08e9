"""
Longitudinal risk detection over the current assessment map and its history.

Four independent passes each contribute findings:

- inversion: a dependent scores clearly above its prerequisite
- regression: a domain dropped between the two latest observations
- bottleneck: the top leverage domain, when its score is significant
- stalling: a domain that has not moved across several snapshots

Findings are returned sorted by severity, highest first.
"""

import logging
from datetime import datetime, timezone
from typing import Dict, List, Mapping, Optional, Sequence, Set, Tuple

from engine.bottleneck import top_leverage
from engine.config import (
    BOTTLENECK_SIGNIFICANCE,
    INVERSION_TOLERANCE,
    REGRESSION_TOLERANCE,
    SOLID_HEALTH_PCT,
    STALLING_MIN_OBSERVATIONS,
    STALLING_MIN_SPAN_DAYS,
    STALLING_TOLERANCE,
)
from engine.health import compute_health
from taxonomy.graph import TaxonomyGraph
from taxonomy.models import (
    Direction,
    HealthStats,
    RiskFinding,
    RiskType,
    Snapshot,
    level_value,
)

logger = logging.getLogger(__name__)

Health = Dict[str, HealthStats]


def _name(graph: TaxonomyGraph, node_id: str) -> str:
    return graph.node(node_id).name or node_id


def _ordered_unique(ids) -> Tuple[str, ...]:
    return tuple(dict.fromkeys(ids))


def _with_downstream(graph: TaxonomyGraph, domain_id: str) -> Tuple[str, ...]:
    return (domain_id,) + tuple(graph.sorted_ids(graph.descendants(domain_id)))


# ---------------------------------------------------------------------------
# Passes
# ---------------------------------------------------------------------------


def _inversions(
    graph: TaxonomyGraph,
    current: Mapping[str, float],
    health: Health,
    tolerance: float,
) -> List[RiskFinding]:
    findings = []
    covered: Set[Tuple[str, str]] = set()

    for skill in graph.skills():
        dependent_level = level_value(current.get(skill.id))
        if dependent_level <= 0:
            continue
        for prereq_id in graph.neighbors(skill.id, Direction.PREREQUISITES):
            prereq_level = level_value(current.get(prereq_id))
            if prereq_level <= 0:
                continue
            gap = dependent_level - prereq_level
            if gap <= tolerance:
                continue
            dep_domain = graph.domain_of(skill.id)
            pre_domain = graph.domain_of(prereq_id)
            covered.add((dep_domain, pre_domain))
            findings.append(RiskFinding(
                type=RiskType.INVERSION,
                severity=gap,
                title="Foundation Inversion",
                description=(
                    f"{_name(graph, skill.id)} ({dependent_level:.1f}) exceeds its "
                    f"prerequisite {_name(graph, prereq_id)} ({prereq_level:.1f}), "
                    f"a possible splinter skill"
                ),
                affected_domains=_ordered_unique([dep_domain, pre_domain]),
                action_domain_id=pre_domain,
                nodes=(skill.id, prereq_id),
            ))

    for domain in graph.domains():
        dependent = health[domain.id]
        if not dependent.assessed:
            continue
        for prereq_id in graph.neighbors(domain.id, Direction.PREREQUISITES):
            prereq = health[prereq_id]
            if not prereq.assessed or (domain.id, prereq_id) in covered:
                continue
            gap = dependent.average - prereq.average
            if gap <= tolerance:
                continue
            findings.append(RiskFinding(
                type=RiskType.INVERSION,
                severity=gap,
                title="Foundation Inversion",
                description=(
                    f"{_name(graph, domain.id)} ({dependent.average:.1f}) exceeds "
                    f"prerequisite {_name(graph, prereq_id)} ({prereq.average:.1f}), "
                    f"a possible splinter skill pattern"
                ),
                affected_domains=(domain.id, prereq_id),
                action_domain_id=prereq_id,
                nodes=(domain.id, prereq_id),
            ))
    return findings


def _regressions(
    graph: TaxonomyGraph,
    observations: Sequence[Health],
    tolerance: float,
) -> List[RiskFinding]:
    if len(observations) < 2:
        return []
    previous, latest = observations[-2], observations[-1]

    findings = []
    for domain in graph.domains():
        before = previous[domain.id]
        after = latest[domain.id]
        if not before.assessed or not after.assessed:
            continue
        decline = before.average - after.average
        if decline <= tolerance:
            continue
        findings.append(RiskFinding(
            type=RiskType.REGRESSION,
            severity=decline,
            title="Regression",
            description=(
                f"{_name(graph, domain.id)} dropped from {before.average:.1f} to "
                f"{after.average:.1f} since the last snapshot and may destabilize "
                f"dependent domains"
            ),
            affected_domains=_with_downstream(graph, domain.id),
            action_domain_id=domain.id,
            nodes=(domain.id,),
        ))
    return findings


def _bottleneck(
    graph: TaxonomyGraph,
    current: Mapping[str, float],
    health: Health,
    significance: float,
    solid_pct: float,
) -> List[RiskFinding]:
    entry = top_leverage(graph, current, health, solid_pct=solid_pct)
    if entry is None or entry.score <= significance:
        return []
    stats = health[entry.domain_id]
    return [RiskFinding(
        type=RiskType.BOTTLENECK,
        severity=entry.score,
        title="Bottleneck",
        description=(
            f"{_name(graph, entry.domain_id)} ({stats.average:.1f}/3) holds back "
            f"{len(entry.downstream_domains)} downstream domains"
        ),
        affected_domains=(entry.domain_id,) + entry.downstream_domains,
        action_domain_id=entry.domain_id,
        nodes=(entry.domain_id,),
    )]


def _stalls(
    graph: TaxonomyGraph,
    timeline: Sequence[Tuple[datetime, Health]],
    snapshot_count: int,
    tolerance: float,
    min_span_days: float,
    min_observations: int,
    solid_pct: float,
) -> List[RiskFinding]:
    if snapshot_count < 2:
        return []
    as_of, latest = timeline[-1]

    findings = []
    for domain in graph.domains():
        current = latest[domain.id]
        if not current.assessed or current.health_pct >= solid_pct:
            continue
        points = [(ts, h[domain.id].average) for ts, h in timeline if h[domain.id].assessed]
        if len(points) < min_observations:
            continue
        span_days = (as_of - points[0][0]).total_seconds() / 86400
        if span_days < min_span_days:
            continue
        averages = [avg for _, avg in points]
        if max(averages) - min(averages) >= tolerance:
            continue
        findings.append(RiskFinding(
            type=RiskType.STALLING,
            severity=1.0 - current.health_pct,
            title="Stalled Progress",
            description=(
                f"{_name(graph, domain.id)} has stayed near {current.average:.1f} "
                f"across {len(points)} observations over {span_days:.0f} days"
            ),
            affected_domains=(domain.id,),
            action_domain_id=domain.id,
            nodes=(domain.id,),
        ))
    return findings


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------


def detect(
    graph: TaxonomyGraph,
    current: Mapping[str, float],
    snapshots: Sequence[Snapshot] = (),
    as_of: Optional[datetime] = None,
    inversion_tolerance: float = INVERSION_TOLERANCE,
    regression_tolerance: float = REGRESSION_TOLERANCE,
    stalling_tolerance: float = STALLING_TOLERANCE,
    stalling_min_span_days: float = STALLING_MIN_SPAN_DAYS,
    stalling_min_observations: int = STALLING_MIN_OBSERVATIONS,
    bottleneck_significance: float = BOTTLENECK_SIGNIFICANCE,
    solid_pct: float = SOLID_HEALTH_PCT,
) -> List[RiskFinding]:
    ordered = sorted(snapshots, key=lambda s: s.timestamp)
    if as_of is None:
        tz = ordered[-1].timestamp.tzinfo if ordered else timezone.utc
        as_of = datetime.now(tz)
    elif as_of.tzinfo is None:
        as_of = as_of.replace(tzinfo=timezone.utc)

    health = compute_health(graph, current)
    timeline = [(s.timestamp, compute_health(graph, s.assessments)) for s in ordered]
    timeline.append((as_of, health))
    observations = [h for _, h in timeline]

    findings = []
    findings.extend(_inversions(graph, current, health, inversion_tolerance))
    findings.extend(_regressions(graph, observations, regression_tolerance))
    findings.extend(_bottleneck(graph, current, health, bottleneck_significance, solid_pct))
    findings.extend(_stalls(
        graph,
        timeline,
        len(ordered),
        stalling_tolerance,
        stalling_min_span_days,
        stalling_min_observations,
        solid_pct,
    ))

    findings.sort(key=lambda f: -f.severity)
    logger.debug("Risk detection: %d findings from %d snapshots", len(findings), len(ordered))
    return findings


def summarize(findings: Sequence[RiskFinding]) -> Dict:
    counts = {risk_type.value: 0 for risk_type in RiskType}
    for finding in findings:
        counts[finding.type.value] += 1
    return {
        "total": len(findings),
        "by_type": counts,
        "top_risk": findings[0].to_dict() if findings else None,
    }
