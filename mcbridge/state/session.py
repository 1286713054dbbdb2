"""
mcbridge Session - The per-process session and its path containment rules.

Every path operand a client sends is resolved here. Relative paths are taken
against the working directory; the canonical result must lie under the
project root, which is fixed at startup.
"""

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from mcbridge.engine.terraform import PlanCounts
from mcbridge.errors import InvalidParams, PathViolation, StartupError


@dataclass
class StagedPlan:
    """A saved engine plan waiting to be applied."""

    mode: str  # "apply" or "destroy"
    plan_file: Path
    counts: PlanCounts
    digest: str
    working_directory: Path
    created_at: datetime = field(default_factory=datetime.now)

    @property
    def summary(self) -> str:
        return self.counts.summary()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mode": self.mode,
            "plan_file": str(self.plan_file),
            "summary": self.summary,
            "counts": self.counts.to_dict(),
            "digest": self.digest,
            "working_directory": str(self.working_directory),
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class Session:
    """
    State that lives for the whole server process.

    ``project_root`` is canonical and never changes. ``working_directory``
    always stays inside it.
    """

    project_root: Path
    working_directory: Path
    last_operation_summary: Optional[str] = None
    staged_plan: Optional[StagedPlan] = None

    @classmethod
    def open(cls, root: Path) -> "Session":
        """
        Create the session for ``root``.

        Raises:
            StartupError: If the root does not exist or is not a directory.
        """
        try:
            canonical = Path(root).expanduser().resolve(strict=True)
        except (OSError, RuntimeError) as exc:
            raise StartupError(f"Project root is not reachable: {root} ({exc})")
        if not canonical.is_dir():
            raise StartupError(f"Project root is not a directory: {canonical}")
        return cls(project_root=canonical, working_directory=canonical)

    def contains(self, path: Path) -> bool:
        return path == self.project_root or self.project_root in path.parents

    def resolve_path(self, raw: str) -> Path:
        """
        Canonicalize a client-supplied path and enforce containment.

        Symlinks are followed, so a link pointing out of the project is a
        violation too. The path itself need not exist.

        Raises:
            PathViolation: If the canonical path is outside the project root.
        """
        candidate = Path(raw).expanduser()
        if not candidate.is_absolute():
            candidate = self.working_directory / candidate
        resolved = candidate.resolve()

        if not self.contains(resolved):
            raise PathViolation(
                f"Path is outside the project root: {raw}",
                data={"path": raw, "resolved": str(resolved), "project_root": str(self.project_root)},
            )
        return resolved

    def change_directory(self, raw: str) -> Path:
        """Move the working directory; the target must be an existing directory."""
        target = self.resolve_path(raw)
        if not target.is_dir():
            raise InvalidParams(f"Not a directory: {raw}", data={"path": raw})
        self.working_directory = target
        return target

    def relative(self, path: Path) -> str:
        """Project-relative display form of a contained path."""
        try:
            rel = path.relative_to(self.project_root)
        except ValueError:
            return str(path)
        return rel.as_posix() or "."
