"""JSON-RPC framing over a stdio-like duplex byte stream."""

from __future__ import annotations

import json
import logging
import sys
import threading
from typing import Any, BinaryIO, Dict, Optional

from pydantic import ValidationError

from mcbridge.errors import InvalidRequest, ParseError
from mcbridge.protocol.schema import JSONRPC_VERSION, Request, make_notification

logger = logging.getLogger(__name__)

_HEADER_PREFIX = b"content-length:"
MAX_FRAME_BYTES = 64 * 1024 * 1024


class TransportClosed(Exception):
    """Raised when the peer has gone away (broken pipe on write)."""


class StdioTransport:
    """
    Server side of the protocol stream.

    Frames are read one at a time, either as newline-delimited JSON or as
    ``Content-Length`` header frames; replies use the framing of the last
    frame read. Writes are flushed immediately and serialized by a lock,
    since progress notifications may be emitted from engine reader threads.
    """

    def __init__(self, reader: BinaryIO, writer: BinaryIO):
        self._reader = reader
        self._writer = writer
        self._lock = threading.Lock()
        self._header_framing = False

    @classmethod
    def from_stdio(cls) -> "StdioTransport":
        return cls(sys.stdin.buffer, sys.stdout.buffer)

    # ── Reading ───────────────────────────────────────────────────────────

    def read_frame(self) -> Optional[bytes]:
        """Return the next raw frame, or None at end of stream."""
        while True:
            line = self._reader.readline()
            if not line:
                return None
            stripped = line.strip()
            if not stripped:
                continue
            if stripped.lower().startswith(_HEADER_PREFIX):
                return self._read_header_frame(stripped)
            self._header_framing = False
            return stripped

    def _read_header_frame(self, first_header: bytes) -> bytes:
        try:
            length = int(first_header[len(_HEADER_PREFIX):].strip())
        except ValueError:
            # Not a usable header; let the JSON parser report it.
            return first_header
        if length < 0 or length > MAX_FRAME_BYTES:
            logger.warning("rejecting frame with Content-Length %d", length)
            return first_header

        # Skip any further headers up to the blank separator line.
        while True:
            header = self._reader.readline()
            if not header or not header.strip():
                break

        self._header_framing = True
        return self._reader.read(length)

    def decode(self, frame: bytes) -> Request:
        """
        Parse one frame into a Request.

        Raises
        ------
        ParseError : the frame is not valid UTF-8 JSON
        InvalidRequest : valid JSON that is not a JSON-RPC request object
        """
        try:
            payload = json.loads(frame.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise ParseError(f"Parse error: {exc}")

        if isinstance(payload, list):
            raise InvalidRequest("Batch requests are not supported")
        if not isinstance(payload, dict):
            raise InvalidRequest("Request must be a JSON object")

        request_id = payload.get("id")
        if not isinstance(request_id, (int, str)) or isinstance(request_id, bool):
            request_id = None

        if payload.get("jsonrpc") != JSONRPC_VERSION:
            raise InvalidRequest("jsonrpc must be \"2.0\"", request_id=request_id)

        try:
            return Request.model_validate(payload)
        except ValidationError as exc:
            raise InvalidRequest(
                "Invalid request object",
                data={"errors": exc.errors(include_url=False, include_context=False)},
                request_id=request_id,
            )

    # ── Writing ───────────────────────────────────────────────────────────

    def send(self, message: Dict[str, Any]) -> None:
        """Write one message and flush before returning."""
        body = json.dumps(message, ensure_ascii=False, separators=(",", ":"), default=str)
        data = body.encode("utf-8")

        with self._lock:
            try:
                if self._header_framing:
                    self._writer.write(f"Content-Length: {len(data)}\r\n\r\n".encode("ascii"))
                    self._writer.write(data)
                else:
                    self._writer.write(data + b"\n")
                self._writer.flush()
            except (BrokenPipeError, ValueError) as exc:
                raise TransportClosed(f"Protocol stream closed: {exc}")

        if len(body) > 500:
            logger.debug("sent %s... (truncated)", body[:500])
        else:
            logger.debug("sent %s", body)

    def notify(self, method: str, params: Optional[Dict[str, Any]] = None) -> None:
        """Send an out-of-band notification (no id, no reply expected)."""
        self.send(make_notification(method, params))
