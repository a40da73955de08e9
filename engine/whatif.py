import math
from typing import Dict, Mapping

from taxonomy.graph import TaxonomyGraph
from taxonomy.models import MAX_LEVEL


def apply_overrides(
    graph: TaxonomyGraph,
    assessments: Mapping[str, float],
    overrides: Mapping[str, float],
) -> Dict[str, float]:
    """
    Synthetic assessment map for a what-if scenario.

    Every skill under each overridden node is set to the override rounded to
    the nearest valid level, halves rounding up. The input map is left
    untouched; unknown ids are skipped.
    """
    synthetic = dict(assessments)
    for node_id, target in overrides.items():
        if node_id not in graph:
            continue
        level = int(math.floor(min(MAX_LEVEL, max(0.0, float(target))) + 0.5))
        for skill_id in graph.skills_in(node_id):
            synthetic[skill_id] = level
    return synthetic


def interpolate_assessments(
    start: Mapping[str, float],
    end: Mapping[str, float],
    t: float,
) -> Dict[str, float]:
    """Blend two assessment maps; t=0 gives ``start``, t=1 gives ``end``."""
    if not 0 <= t <= 1:
        raise ValueError(f"t must be in [0, 1], got {t}")
    result = {}
    for key in list(dict.fromkeys(list(start) + list(end))):
        a = float(start.get(key) or 0)
        b = float(end.get(key) or 0)
        result[key] = a + (b - a) * t
    return result
