"""
mcbridge Supervisor - Staging, confirmation and execution of tool calls.

Read-only tools run straight away. Destructive tools go through the
confirmation state machine:

    REQUESTED -> AWAITING_CONFIRMATION -> CONFIRMED -> EXECUTING -> COMPLETED | FAILED
    REQUESTED -> REJECTED                (path outside the project root)
    AWAITING_CONFIRMATION -> EXPIRED | CANCELLED | REJECTED

Backups of every target path are captured right before EXECUTING.
"""

from __future__ import annotations

import hashlib
import json
import logging
from typing import Any, Dict, List, Optional

from mcbridge.core.context import ServerContext
from mcbridge.core.operations import HANDLERS, ToolHandler
from mcbridge.errors import (
    BridgeError,
    ExternalToolFailure,
    InvalidConfirmation,
    PathViolation,
)
from mcbridge.protocol.registry import ToolRegistry
from mcbridge.protocol.schema import ToolArgs, ToolDescriptor
from mcbridge.state.backups import BackupRecord
from mcbridge.state.confirmations import OperationState, StagedOperation

logger = logging.getLogger(__name__)


class ExecutionSupervisor:
    """
    Orchestrates every ``tools/call``, ``tools/confirm`` and ``tools/cancel``.

    Example:
        >>> supervisor = ExecutionSupervisor(context)
        >>> staged = supervisor.call("write_file", {"path": "a.txt", "content": "hi\\n"})
        >>> staged["status"]
        'awaiting_confirmation'
        >>> supervisor.confirm(staged["token"])["status"]
        'completed'
    """

    def __init__(
        self,
        context: ServerContext,
        registry: Optional[ToolRegistry] = None,
        handlers: Optional[Dict[str, ToolHandler]] = None,
    ):
        self.context = context
        self.registry = registry or ToolRegistry()
        self.handlers = handlers if handlers is not None else HANDLERS

        missing = [name for name in self.registry.names() if name not in self.handlers]
        if missing:
            raise ValueError(f"No handler for tool(s): {', '.join(missing)}")

    # ── Entry points ──────────────────────────────────────────────────────

    def call(self, name: str, arguments: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Handle ``tools/call``.

        Returns:
            ``{"status": "completed", ...}`` for calls that ran, or
            ``{"status": "awaiting_confirmation", "token", "summary", ...}``
            for staged destructive calls.
        """
        descriptor = self.registry.get(name)
        args = self.registry.validate(name, arguments)
        handler = self.handlers[name]
        operation = StagedOperation(tool_name=name, arguments={})

        try:
            args = self._check_paths(descriptor, args)
        except PathViolation:
            operation.advance(OperationState.REJECTED)
            self._record(name, "rejected (PathViolation)")
            raise
        operation.arguments = args.model_dump()

        if not descriptor.destructive:
            return self._run_read_only(descriptor, handler, args)

        if not descriptor.requires_confirmation:
            operation.advance(OperationState.EXECUTING)
            return self._execute(operation, descriptor, handler, args)

        return self._stage(operation, descriptor, handler, args)

    def confirm(self, token: str) -> Dict[str, Any]:
        """
        Handle ``tools/confirm``: re-check the staged call, then run it.

        Raises:
            InvalidConfirmation: Unknown, expired or used token, or the
                call no longer matches what was staged.
        """
        pending = self.context.confirmations.consume(token)
        operation = pending.operation
        descriptor = self.registry.get(operation.tool_name)
        handler = self.handlers[operation.tool_name]
        args = descriptor.args_model.model_validate(operation.arguments)

        try:
            preview = handler.preview(self.context, args)
        except BridgeError as exc:
            operation.advance(OperationState.REJECTED)
            self._record(operation.tool_name, "rejected at confirmation")
            raise InvalidConfirmation(
                f"Staged {operation.tool_name} can no longer run: {exc.message}",
                data={"token": token, "reason": exc.to_error()},
            )

        if self._fingerprint(descriptor.name, args, preview.precondition) != pending.params_fingerprint:
            operation.advance(OperationState.REJECTED)
            self._record(operation.tool_name, "rejected at confirmation")
            raise InvalidConfirmation(
                f"Target of {operation.tool_name} changed since it was staged",
                data={"token": token},
            )

        operation.advance(OperationState.CONFIRMED)
        operation.advance(OperationState.EXECUTING)
        return self._execute(operation, descriptor, handler, args)

    def cancel(self, token: str) -> Dict[str, Any]:
        """Handle ``tools/cancel``: discard a pending confirmation."""
        pending = self.context.confirmations.cancel(token)
        self._record(pending.tool_name, "cancelled")
        return {"status": "cancelled", "tool": pending.tool_name, "token": token}

    # ── Stages ────────────────────────────────────────────────────────────

    def _check_paths(self, descriptor: ToolDescriptor, args: ToolArgs) -> ToolArgs:
        """Resolve every path operand; raises PathViolation before anything runs."""
        state_dir = self.context.state_dir
        updates = {}
        for field_name in descriptor.path_fields:
            raw = getattr(args, field_name)
            if raw is None:
                continue
            resolved = self.context.session.resolve_path(raw)
            # Backups and saved plans are only reachable through their own tools.
            if resolved == state_dir or state_dir in resolved.parents:
                raise PathViolation(
                    f"Path is inside the bridge state directory: {raw}",
                    data={"path": raw, "resolved": str(resolved)},
                )
            updates[field_name] = str(resolved)
        return args.model_copy(update=updates) if updates else args

    def _run_read_only(self, descriptor: ToolDescriptor, handler: ToolHandler, args: ToolArgs) -> Dict[str, Any]:
        try:
            result = handler.execute(self.context, args, [])
        except BridgeError as exc:
            self._record(descriptor.name, f"failed ({exc.kind})")
            raise
        except OSError as exc:
            self._record(descriptor.name, "failed (ExternalToolFailure)")
            raise ExternalToolFailure(f"{descriptor.name} failed: {exc}") from exc
        self._record(descriptor.name, "completed")
        return {"status": "completed", "tool": descriptor.name, **result}

    def _stage(
        self,
        operation: StagedOperation,
        descriptor: ToolDescriptor,
        handler: ToolHandler,
        args: ToolArgs,
    ) -> Dict[str, Any]:
        try:
            preview = handler.preview(self.context, args)
        except BridgeError as exc:
            self._record(descriptor.name, f"failed ({exc.kind})")
            raise

        fingerprint = self._fingerprint(descriptor.name, args, preview.precondition)
        pending = self.context.confirmations.mint(operation, fingerprint)
        self._record(descriptor.name, f"awaiting confirmation: {preview.summary}")
        logger.info("staged %s: %s", descriptor.name, preview.summary)

        return {
            "status": "awaiting_confirmation",
            "tool": descriptor.name,
            "token": pending.token,
            "summary": preview.summary,
            "expires_in": pending.expires_in(self.context.confirmations.now()),
            **preview.details,
        }

    def _execute(
        self,
        operation: StagedOperation,
        descriptor: ToolDescriptor,
        handler: ToolHandler,
        args: ToolArgs,
    ) -> Dict[str, Any]:
        captured: List[BackupRecord] = []
        try:
            targets = handler.targets(self.context, args) if handler.targets else []
            for target in targets:
                captured.append(self.context.backups.capture(target))
            result = handler.execute(self.context, args, captured)
        except BridgeError as exc:
            self._fail(operation, captured, exc)
            raise
        except OSError as exc:
            error = ExternalToolFailure(f"{descriptor.name} failed: {exc}", data={"error": str(exc)})
            self._fail(operation, captured, error)
            raise error from exc

        operation.advance(OperationState.COMPLETED)
        self._record(descriptor.name, "completed")
        logger.info("%s completed (%d backup(s))", descriptor.name, len(captured))
        return {
            "status": "completed",
            "tool": descriptor.name,
            **result,
            "backups": [record.to_dict() for record in captured],
        }

    def _fail(self, operation: StagedOperation, captured: List[BackupRecord], exc: BridgeError) -> None:
        operation.advance(OperationState.FAILED)
        exc.data.setdefault("backups", [record.to_dict() for record in captured])
        exc.data["state"] = operation.state.value
        self._record(operation.tool_name, f"failed ({exc.kind})")
        logger.warning("%s failed: %s", operation.tool_name, exc.message)

    # ── Helpers ───────────────────────────────────────────────────────────

    @staticmethod
    def _fingerprint(name: str, args: ToolArgs, precondition: str) -> str:
        payload = json.dumps(
            {"tool": name, "arguments": args.model_dump(mode="json"), "precondition": precondition},
            sort_keys=True,
        )
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()

    def _record(self, name: str, outcome: str) -> None:
        self.context.session.last_operation_summary = f"{name}: {outcome}"
