"""Terraform command lines and output parsing.

Only the textual surface of the CLI is relied upon: the engine stays an
opaque subprocess, this module just knows which flags to pass and which
summary lines to read back.
"""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Dict, List, Optional

STATE_FILES = ("terraform.tfstate", "terraform.tfstate.backup")

_PLAN_RE = re.compile(r"Plan:\s+(\d+) to add,\s+(\d+) to change,\s+(\d+) to destroy")
_NO_CHANGES_RE = re.compile(r"No changes\.")
_ADDED_RE = re.compile(r"(\d+) added")
_CHANGED_RE = re.compile(r"(\d+) changed")
_DESTROYED_RE = re.compile(r"(\d+) destroyed")


@dataclass(frozen=True)
class PlanCounts:
    add: int = 0
    change: int = 0
    destroy: int = 0

    def summary(self) -> str:
        return f"{self.add} to add, {self.change} to change, {self.destroy} to destroy"

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


@dataclass(frozen=True)
class ApplyCounts:
    added: int = 0
    changed: int = 0
    destroyed: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "resources_added": self.added,
            "resources_changed": self.changed,
            "resources_destroyed": self.destroyed,
        }


def parse_plan_counts(output: str) -> Optional[PlanCounts]:
    """Read the ``Plan:`` line; ``No changes.`` counts as all zeros."""
    match = _PLAN_RE.search(output)
    if match:
        return PlanCounts(*(int(group) for group in match.groups()))
    if _NO_CHANGES_RE.search(output):
        return PlanCounts()
    return None


def parse_apply_counts(output: str) -> ApplyCounts:
    """Read ``Resources: N added, N changed, N destroyed.``; missing parts are 0."""

    def first(pattern: re.Pattern) -> int:
        match = pattern.search(output)
        return int(match.group(1)) if match else 0

    return ApplyCounts(first(_ADDED_RE), first(_CHANGED_RE), first(_DESTROYED_RE))


class TerraformCommands:
    """Build argv lists for the subcommands the bridge exposes."""

    def __init__(self, binary: str = "terraform"):
        self.binary = binary

    def plan(
        self,
        plan_file: Path,
        destroy: bool = False,
        variables: Optional[Dict[str, str]] = None,
        var_file: Optional[Path] = None,
    ) -> List[str]:
        argv = [self.binary, "plan", "-input=false", "-no-color", f"-out={plan_file}"]
        if destroy:
            argv.append("-destroy")
        for key, value in (variables or {}).items():
            argv.extend(["-var", f"{key}={value}"])
        if var_file is not None:
            argv.append(f"-var-file={var_file}")
        return argv

    def apply(self, plan_file: Path) -> List[str]:
        return [self.binary, "apply", "-input=false", "-no-color", str(plan_file)]

    def validate(self) -> List[str]:
        return [self.binary, "validate", "-no-color", "-json"]

    def state_list(self) -> List[str]:
        return [self.binary, "state", "list"]
