"""Engine layer: supervised subprocess execution and the Terraform command surface."""

from mcbridge.engine.adapter import BoundedBuffer, EngineResult, ExternalToolAdapter, summarize
from mcbridge.engine.terraform import (
    STATE_FILES,
    ApplyCounts,
    PlanCounts,
    TerraformCommands,
    parse_apply_counts,
    parse_plan_counts,
)

__all__ = [
    "STATE_FILES",
    "ApplyCounts",
    "BoundedBuffer",
    "EngineResult",
    "ExternalToolAdapter",
    "PlanCounts",
    "TerraformCommands",
    "parse_apply_counts",
    "parse_plan_counts",
    "summarize",
]
