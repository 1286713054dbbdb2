"""
mcbridge Context - Everything a tool handler may touch, in one object.

The context lives exactly as long as the server process and is passed
explicitly to every handler; nothing is kept in module globals.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Sequence

from mcbridge.engine.adapter import EngineResult, ExternalToolAdapter
from mcbridge.engine.terraform import TerraformCommands
from mcbridge.files.service import FileService
from mcbridge.state.backups import BackupStore
from mcbridge.state.confirmations import ConfirmationStore
from mcbridge.state.session import Session
from mcbridge.validation.config import BridgeConfig

logger = logging.getLogger(__name__)

STATE_DIR_NAME = ".mcbridge"

Notifier = Callable[[str, Optional[Dict[str, Any]]], None]


@dataclass
class ServerContext:
    config: BridgeConfig
    session: Session
    confirmations: ConfirmationStore
    backups: BackupStore
    files: FileService
    adapter: ExternalToolAdapter
    terraform: TerraformCommands
    notifier: Optional[Notifier] = None

    @classmethod
    def create(
        cls,
        config: BridgeConfig,
        project_root: Path,
        clock: Callable[[], float] = time.monotonic,
    ) -> "ServerContext":
        """
        Build the context for ``project_root``.

        Raises:
            StartupError: If the project root is not an existing directory.
        """
        session = Session.open(project_root)
        root = session.project_root
        state_dir = root / STATE_DIR_NAME

        context = cls(
            config=config,
            session=session,
            confirmations=ConfirmationStore(config.confirmation.ttl_seconds, clock=clock),
            backups=BackupStore(state_dir / "backups"),
            files=FileService(
                root,
                exclude_patterns=config.project.exclude_patterns,
                max_read_bytes=config.files.max_read_bytes,
            ),
            adapter=ExternalToolAdapter(
                timeout_seconds=config.engine.timeout_seconds,
                max_output_bytes=config.engine.max_output_bytes,
                env=config.engine.env,
            ),
            terraform=TerraformCommands(config.engine.terraform_binary),
        )
        logger.info("session rooted at %s", root)
        return context

    @property
    def state_dir(self) -> Path:
        return self.session.project_root / STATE_DIR_NAME

    @property
    def plans_dir(self) -> Path:
        return self.state_dir / "plans"

    # ── Engine ────────────────────────────────────────────────────────────

    def run_engine(
        self,
        argv: Sequence[str],
        cwd: Optional[Path] = None,
        check: bool = True,
    ) -> EngineResult:
        """Run the engine in the working directory, streaming progress if enabled."""
        on_output = self._progress if self.config.engine.stream_progress and self.notifier else None
        return self.adapter.run(
            argv,
            cwd=cwd or self.session.working_directory,
            check=check,
            on_output=on_output,
        )

    def _progress(self, stream: str, line: str) -> None:
        self.notify(
            "notifications/message",
            {
                "level": "info" if stream == "stdout" else "warning",
                "logger": "engine",
                "data": line,
            },
        )

    def notify(self, method: str, params: Optional[Dict[str, Any]] = None) -> None:
        if self.notifier is not None:
            self.notifier(method, params)
