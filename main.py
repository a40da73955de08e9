import logging
from typing import Dict, List, Optional

from fastapi import FastAPI
from mcp.server.fastmcp import FastMCP

from engine.bottleneck import find_bottleneck, rank_leverage, skill_bottlenecks
from engine.cascade import simulate
from engine.health import compute_health
from engine.influence import ceiling_coverage, constrained_skills, skill_ceiling, skill_influence, start_here
from engine.readiness import domain_states, path_readiness, prerequisite_chain, skill_readiness
from engine.risk import detect, summarize
from engine.whatif import apply_overrides, interpolate_assessments
from taxonomy.loader import load_reference_coupling, load_reference_taxonomy
from taxonomy.models import CascadeDirection, CascadeResult, NodeKind, Snapshot

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Loaded once; a malformed taxonomy aborts startup with GraphIntegrityError.
GRAPH = load_reference_taxonomy()
COUPLING = load_reference_coupling()

mcp = FastMCP(
    "Skill Cascade",
    instructions=(
        "Explains how skill levels across a developmental taxonomy depend on "
        "each other: domain health, cascades, bottlenecks and risk patterns."
    ),
)


@mcp.tool(
    name="get_taxonomy_summary",
    description="List the domains of the taxonomy with their sub-area and skill counts",
)
def get_taxonomy_summary():
    return {
        "domains": [
            {
                "id": d.id,
                "name": d.name,
                "sub_areas": len(GRAPH.children(d.id)),
                "skills": len(GRAPH.skills_in(d.id)),
            }
            for d in GRAPH.domains()
        ],
        "skills": len(GRAPH.skills()),
        "edges": GRAPH.edge_count(),
    }


@mcp.tool(
    name="compute_health",
    description="Compute domain and sub-area health from a {skill_id: level} map",
)
def compute_health_tool(assessments: Dict[str, float]):
    try:
        health = compute_health(GRAPH, assessments)
    except ValueError as exc:
        return {"error": str(exc)}
    states = domain_states(GRAPH, health)
    return {
        "health": {k: v.to_dict() for k, v in health.items()},
        "domain_states": {k: v.value for k, v in states.items()},
    }


@mcp.tool(
    name="simulate_cascade",
    description="Simulate how a deficit or mastery change at one node propagates",
)
def simulate_cascade_tool(source_id: str, assessments: Dict[str, float], direction: str = "deficit"):
    if direction not in [d.value for d in CascadeDirection]:
        return {"error": "Invalid direction. Choose from: deficit, mastery"}
    try:
        result = simulate(GRAPH, source_id, assessments, direction)
    except ValueError as exc:
        logger.warning("Cascade from %s failed: %s", source_id, exc)
        result = CascadeResult(active=False, source_id=source_id, direction=CascadeDirection(direction))
    return result.to_dict()


@mcp.tool(
    name="find_bottleneck",
    description="Find the domain whose improvement would unblock the most downstream progress",
)
def find_bottleneck_tool(assessments: Dict[str, float]):
    try:
        ranking = rank_leverage(GRAPH, assessments)
        bottleneck = find_bottleneck(GRAPH, assessments)
    except ValueError as exc:
        return {"error": str(exc)}
    return {
        "bottleneck": bottleneck,
        "ranking": [entry.to_dict() for entry in ranking],
    }


@mcp.tool(
    name="detect_risks",
    description="Detect inversion, regression, bottleneck and stalling risks from history",
)
def detect_risks_tool(assessments: Dict[str, float], snapshots: Optional[List[Dict]] = None):
    try:
        history = [Snapshot.from_dict(raw) for raw in snapshots or []]
        findings = detect(GRAPH, assessments, history)
    except (KeyError, ValueError, TypeError) as exc:
        return {"error": f"Invalid risk detection input: {exc}"}
    return {
        "summary": summarize(findings),
        "findings": [f.to_dict() for f in findings],
    }


@mcp.tool(
    name="get_learning_path",
    description="Trace the prerequisite chain to a goal node and show readiness at each step",
)
def get_learning_path(goal_id: str, assessments: Dict[str, float]):
    chain = prerequisite_chain(GRAPH, goal_id)
    if not chain:
        return {"goal_id": goal_id, "steps": []}
    try:
        steps = path_readiness(GRAPH, chain, assessments)
    except ValueError as exc:
        return {"error": str(exc)}
    return {
        "goal_id": goal_id,
        "steps": [step.to_dict() for step in steps],
        "next_focus": [s.node_id for s in steps if s.status != "met"][:5],
    }


def _domain_health(assessments: Dict[str, float]) -> Dict:
    health = compute_health(GRAPH, assessments)
    return {d.id: health[d.id].to_dict() for d in GRAPH.domains()}


@mcp.tool(
    name="get_skill_readiness",
    description="Check whether a skill's direct and structural prerequisites are in place",
)
def get_skill_readiness(skill_id: str, assessments: Dict[str, float]):
    if skill_id not in GRAPH or GRAPH.node(skill_id).kind != NodeKind.SKILL:
        return {"error": f"Unknown skill: {skill_id}"}
    try:
        readiness = skill_readiness(GRAPH, skill_id, assessments)
        ceiling = skill_ceiling(GRAPH, skill_id, assessments, COUPLING)
    except ValueError as exc:
        return {"error": str(exc)}
    result = readiness.to_dict()
    result["ceiling"] = ceiling.to_dict() if ceiling else None
    return result


@mcp.tool(
    name="what_if",
    description="Apply {node_id: level} overrides and compare health and bottleneck before and after",
)
def what_if_tool(assessments: Dict[str, float], overrides: Dict[str, float]):
    try:
        synthetic = apply_overrides(GRAPH, assessments, overrides)
        before = _domain_health(assessments)
        after = _domain_health(synthetic)
        bottleneck_before = find_bottleneck(GRAPH, assessments)
        bottleneck_after = find_bottleneck(GRAPH, synthetic)
    except ValueError as exc:
        return {"error": str(exc)}
    return {
        "assessments": synthetic,
        "health": after,
        "changed_domains": [d for d in after if after[d]["average"] != before[d]["average"]],
        "bottleneck_before": bottleneck_before,
        "bottleneck_after": bottleneck_after,
    }


@mcp.tool(
    name="interpolate_health",
    description="Domain health at a point t in [0, 1] between two assessment maps",
)
def interpolate_health_tool(start: Dict[str, float], end: Dict[str, float], t: float):
    try:
        blended = interpolate_assessments(start, end, t)
        return {"t": t, "health": _domain_health(blended)}
    except ValueError as exc:
        return {"error": str(exc)}


@mcp.tool(
    name="get_skill_constraints",
    description="Skills rated above their prerequisite ceiling and the most influential prerequisites",
)
def get_skill_constraints(assessments: Dict[str, float], limit: int = 10):
    try:
        constrained = constrained_skills(GRAPH, assessments, COUPLING)
        influence = skill_influence(GRAPH, assessments, COUPLING)
    except ValueError as exc:
        return {"error": str(exc)}
    top = sorted(influence.values(), key=lambda i: -i.score)[:limit]
    return {
        "constrained": [c.to_dict() for c in constrained],
        "influence": [i.to_dict() for i in top],
        "coverage": ceiling_coverage(GRAPH, assessments),
    }


@mcp.tool(
    name="get_start_here",
    description="Unassessed skills ordered by how informative they are to assess next",
)
def get_start_here(assessments: Dict[str, float], limit: int = 10):
    try:
        entries = start_here(GRAPH, assessments, COUPLING)
    except ValueError as exc:
        return {"error": str(exc)}
    return {"skills": [e.to_dict() for e in entries[:limit]], "remaining": len(entries)}


@mcp.tool(
    name="find_skill_bottlenecks",
    description="Weak prerequisite skills ranked by how many skills they hold back",
)
def find_skill_bottlenecks_tool(assessments: Dict[str, float], limit: int = 10):
    try:
        entries = skill_bottlenecks(GRAPH, assessments)
    except ValueError as exc:
        return {"error": str(exc)}
    return {"skills": [e.to_dict() for e in entries[:limit]]}


app = FastAPI()
app.mount("/", mcp.sse_app())
