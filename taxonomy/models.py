import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum, IntEnum
from types import MappingProxyType
from typing import Dict, Mapping, Optional, Tuple


class AssessmentLevel(IntEnum):
    NOT_ASSESSED = 0
    NEEDS_WORK = 1
    DEVELOPING = 2
    SOLID = 3


MAX_LEVEL = float(AssessmentLevel.SOLID)

PRIMARY_EDGE_WEIGHT = 1.0
SECONDARY_EDGE_WEIGHT = 0.5

MIN_TIER = 1
MAX_TIER = 5


class NodeKind(str, Enum):
    DOMAIN = "domain"
    SUB_AREA = "sub_area"
    SKILL_GROUP = "skill_group"
    SKILL = "skill"


# Kind each node kind must be contained in.
PARENT_KIND = {
    NodeKind.DOMAIN: None,
    NodeKind.SUB_AREA: NodeKind.DOMAIN,
    NodeKind.SKILL_GROUP: NodeKind.SUB_AREA,
    NodeKind.SKILL: NodeKind.SKILL_GROUP,
}


class Direction(str, Enum):
    PREREQUISITES = "prerequisites"
    DEPENDENTS = "dependents"


class CascadeDirection(str, Enum):
    DEFICIT = "deficit"
    MASTERY = "mastery"


class RiskType(str, Enum):
    INVERSION = "inversion"
    REGRESSION = "regression"
    BOTTLENECK = "bottleneck"
    STALLING = "stalling"


@dataclass(frozen=True)
class Node:
    id: str
    kind: NodeKind
    name: str = ""
    parent_id: Optional[str] = None
    # Developmental complexity (1-5); skills only.
    tier: Optional[int] = None


@dataclass(frozen=True)
class Edge:
    prerequisite: str
    dependent: str
    weight: float = PRIMARY_EDGE_WEIGHT


@dataclass(frozen=True)
class CouplingBonus:
    prerequisite: str
    bonus: float
    # None: any dependent outside the prerequisite's domain
    dependent: Optional[str] = None


@dataclass(frozen=True)
class CouplingRules:
    # (dependent, prerequisite) -> strength
    overrides: Mapping[Tuple[str, str], float] = field(default_factory=dict)
    bonuses: Tuple[CouplingBonus, ...] = ()


def level_value(level) -> float:
    """Numeric value of an assessment entry; None counts as not assessed."""
    if level is None:
        return 0.0
    value = float(level)
    if not math.isfinite(value) or value < 0 or value > MAX_LEVEL:
        raise ValueError(f"assessment level {level!r} outside 0-{int(MAX_LEVEL)}")
    return value


@dataclass(frozen=True)
class Snapshot:
    timestamp: datetime
    assessments: Mapping[str, float] = field(default_factory=dict)

    def __post_init__(self):
        # Naive timestamps are taken as UTC so snapshots always compare.
        if self.timestamp.tzinfo is None:
            object.__setattr__(self, "timestamp", self.timestamp.replace(tzinfo=timezone.utc))
        object.__setattr__(
            self, "assessments", MappingProxyType(dict(self.assessments))
        )

    @classmethod
    def from_dict(cls, raw: Dict) -> "Snapshot":
        timestamp = raw["timestamp"]
        if isinstance(timestamp, str):
            timestamp = datetime.fromisoformat(timestamp.replace("Z", "+00:00"))
        return cls(timestamp=timestamp, assessments=raw.get("assessments") or {})


@dataclass(frozen=True)
class HealthStats:
    node_id: str
    average: float = 0.0
    health_pct: float = 0.0
    assessed_count: int = 0
    total_count: int = 0

    @property
    def assessed(self) -> bool:
        return self.assessed_count > 0

    def to_dict(self) -> Dict:
        return {
            "node_id": self.node_id,
            "average": self.average,
            "health_pct": self.health_pct,
            "assessed_count": self.assessed_count,
            "total_count": self.total_count,
        }


@dataclass(frozen=True)
class CascadeResult:
    active: bool
    source_id: str
    direction: CascadeDirection
    affected: Mapping[str, float] = field(default_factory=dict)
    hops: Mapping[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict:
        return {
            "active": self.active,
            "source_id": self.source_id,
            "direction": self.direction.value,
            "affected": dict(self.affected),
            "hops": dict(self.hops),
        }


@dataclass(frozen=True)
class RiskFinding:
    type: RiskType
    severity: float
    title: str
    description: str
    affected_domains: Tuple[str, ...] = ()
    action_domain_id: Optional[str] = None
    nodes: Tuple[str, ...] = ()

    def to_dict(self) -> Dict:
        return {
            "type": self.type.value,
            "severity": self.severity,
            "title": self.title,
            "description": self.description,
            "affected_domains": list(self.affected_domains),
            "action_domain_id": self.action_domain_id,
            "nodes": list(self.nodes),
        }
