"""
Engine tuning constants. Single source of truth for every threshold.

None of these are clinically validated values; each can be overridden through
the environment variable of the same name (prefixed ``CASCADE_``) and through
keyword arguments on the engine entry points.
"""

import os

# ─── Cascade ────────────────────────────────────────────────────────────────
# Fraction of impact lost on every hop (strength *= weight * (1 - HOP_DECAY)).
HOP_DECAY = float(os.getenv("CASCADE_HOP_DECAY", "0.5"))
# Nodes whose accumulated impact drops below this are neither reported nor expanded.
MATERIALITY_THRESHOLD = float(os.getenv("CASCADE_MATERIALITY_THRESHOLD", "0.05"))

# ─── Health ─────────────────────────────────────────────────────────────────
# healthPct at or above this counts as solid (2.5 / 3).
SOLID_HEALTH_PCT = float(os.getenv("CASCADE_SOLID_HEALTH_PCT", "0.83"))
# Average a prerequisite must reach before it stops gating its dependents.
MET_AVERAGE = float(os.getenv("CASCADE_MET_AVERAGE", "2.0"))
CLOSE_AVERAGE = float(os.getenv("CASCADE_CLOSE_AVERAGE", "1.5"))
MASTERED_AVERAGE = float(os.getenv("CASCADE_MASTERED_AVERAGE", "2.5"))

# ─── Risk detection ─────────────────────────────────────────────────────────
INVERSION_TOLERANCE = float(os.getenv("CASCADE_INVERSION_TOLERANCE", "0.5"))
REGRESSION_TOLERANCE = float(os.getenv("CASCADE_REGRESSION_TOLERANCE", "0.15"))
STALLING_TOLERANCE = float(os.getenv("CASCADE_STALLING_TOLERANCE", "0.1"))
STALLING_MIN_SPAN_DAYS = float(os.getenv("CASCADE_STALLING_MIN_SPAN_DAYS", "28"))
# Oldest snapshot, at least one intermediate, current.
STALLING_MIN_OBSERVATIONS = int(os.getenv("CASCADE_STALLING_MIN_OBSERVATIONS", "3"))
BOTTLENECK_SIGNIFICANCE = float(os.getenv("CASCADE_BOTTLENECK_SIGNIFICANCE", "1.0"))

# ─── Skill ceilings ─────────────────────────────────────────────────────────
# Derived coupling starts here for "requires" and "supports" relations.
COUPLING_REQUIRES_BASE = float(os.getenv("CASCADE_COUPLING_REQUIRES_BASE", "0.65"))
COUPLING_SUPPORTS_BASE = float(os.getenv("CASCADE_COUPLING_SUPPORTS_BASE", "0.40"))
COUPLING_MIN = float(os.getenv("CASCADE_COUPLING_MIN", "0.25"))
COUPLING_MAX = float(os.getenv("CASCADE_COUPLING_MAX", "0.95"))
# Tier assumed for a skill without one.
DEFAULT_TIER = int(os.getenv("CASCADE_DEFAULT_TIER", "3"))
# A ceiling at or below this demotes a skill in the start-here ordering.
HEAVY_CONSTRAINT_CEILING = float(os.getenv("CASCADE_HEAVY_CONSTRAINT_CEILING", "1"))
