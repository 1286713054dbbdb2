"""
mcbridge Server - The stdio serve loop and the protocol method table.

One request is read, resolved and answered before the next frame is read,
so responses always leave in arrival order.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Callable, Dict, Optional

from pydantic import ValidationError

from mcbridge import __version__
from mcbridge.core.context import ServerContext
from mcbridge.core.supervisor import ExecutionSupervisor
from mcbridge.errors import BridgeError, InvalidParams
from mcbridge.protocol.dispatcher import Dispatcher
from mcbridge.protocol.registry import ToolRegistry
from mcbridge.protocol.schema import CallParams, TokenParams, make_error
from mcbridge.protocol.transport import StdioTransport, TransportClosed

logger = logging.getLogger(__name__)

PROTOCOL_VERSION = "2024-11-05"
SERVER_NAME = "mcbridge"


def _parse(model: type, params: Dict[str, Any]) -> Any:
    try:
        return model.model_validate(params)
    except ValidationError as exc:
        raise InvalidParams(
            "Invalid params",
            data={"errors": exc.errors(include_url=False, include_context=False)},
        )


def tool_result(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Attach the MCP ``content`` block to a tool payload."""
    text = json.dumps(payload, indent=2, ensure_ascii=False, default=str)
    return {**payload, "content": [{"type": "text", "text": text}]}


class BridgeServer:
    """
    Serves one session over one transport.

    Example:
        >>> context = ServerContext.create(config.merged, Path("/project"))
        >>> server = BridgeServer(context, StdioTransport.from_stdio())
        >>> exit_code = server.serve()
    """

    def __init__(
        self,
        context: ServerContext,
        transport: StdioTransport,
        registry: Optional[ToolRegistry] = None,
    ):
        self.context = context
        self.transport = transport
        self.registry = registry or ToolRegistry()
        self.supervisor = ExecutionSupervisor(context, self.registry)
        self.dispatcher = Dispatcher(self._method_table())
        self.initialized = False
        self._shutdown = False
        context.notifier = transport.notify

    def _method_table(self) -> Dict[str, Callable[[Dict[str, Any]], Any]]:
        return {
            "initialize": self.initialize,
            "notifications/initialized": self.on_initialized,
            "ping": lambda params: {},
            "tools/list": self.list_tools,
            "tools/call": self.call_tool,
            "tools/confirm": self.confirm_tool,
            "tools/cancel": self.cancel_tool,
            "resources/list": lambda params: {"resources": []},
            "prompts/list": lambda params: {"prompts": []},
            "shutdown": self.shutdown,
        }

    # ── Serve loop ────────────────────────────────────────────────────────

    def serve(self) -> int:
        """Read and answer frames until EOF or ``shutdown``; returns the exit code."""
        logger.info("serving %d tools for %s", len(self.registry), self.context.session.project_root)
        try:
            while not self._shutdown:
                frame = self.transport.read_frame()
                if frame is None:
                    logger.info("input closed; shutting down")
                    break
                self.handle_frame(frame)
        except TransportClosed as exc:
            logger.info("%s; shutting down", exc)
        except KeyboardInterrupt:
            logger.info("interrupted; shutting down")
        return 0

    def handle_frame(self, frame: bytes) -> None:
        try:
            request = self.transport.decode(frame)
        except BridgeError as exc:
            logger.info("rejected frame: %s", exc.message)
            self.transport.send(make_error(exc.request_id, exc))
            return

        response = self.dispatcher.dispatch(request)
        if response is not None:
            self.transport.send(response)

    # ── Methods ───────────────────────────────────────────────────────────

    def initialize(self, params: Dict[str, Any]) -> Dict[str, Any]:
        client = params.get("clientInfo") or {}
        logger.info("initialize from %s %s", client.get("name", "client"), client.get("version", ""))
        return {
            "protocolVersion": params.get("protocolVersion") or PROTOCOL_VERSION,
            "capabilities": {
                "tools": {"listChanged": False},
                "resources": {},
                "prompts": {},
                "logging": {},
            },
            "serverInfo": {"name": SERVER_NAME, "version": __version__},
        }

    def on_initialized(self, params: Dict[str, Any]) -> None:
        self.initialized = True

    def list_tools(self, params: Dict[str, Any]) -> Dict[str, Any]:
        return {"tools": self.registry.to_mcp_list()}

    def call_tool(self, params: Dict[str, Any]) -> Dict[str, Any]:
        call: CallParams = _parse(CallParams, params)
        return tool_result(self.supervisor.call(call.name, call.arguments))

    def confirm_tool(self, params: Dict[str, Any]) -> Dict[str, Any]:
        token: TokenParams = _parse(TokenParams, params)
        return tool_result(self.supervisor.confirm(token.token))

    def cancel_tool(self, params: Dict[str, Any]) -> Dict[str, Any]:
        token: TokenParams = _parse(TokenParams, params)
        return tool_result(self.supervisor.cancel(token.token))

    def shutdown(self, params: Dict[str, Any]) -> Dict[str, Any]:
        self._shutdown = True
        return {}
