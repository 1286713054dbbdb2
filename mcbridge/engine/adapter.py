"""External tool adapter: runs the engine as a supervised subprocess."""

from __future__ import annotations

import logging
import os
import subprocess
import threading
import time
from dataclasses import dataclass, field
from typing import IO, Callable, Dict, List, Optional, Sequence

from mcbridge.errors import ExternalToolFailure, Timeout

logger = logging.getLogger(__name__)

READ_CHUNK = 65536

# (stream name, decoded line without trailing newline); lines over READ_CHUNK
# bytes arrive in pieces.
OutputCallback = Callable[[str, str], None]


def summarize(output: str, max_chars: int = 500) -> str:
    """Shorten engine output to its head and tail for summaries and logs."""
    if not output:
        return "(empty output)"
    if len(output) <= max_chars:
        return output
    head = output[: max_chars // 2]
    tail = output[-(max_chars // 2):]
    omitted = len(output) - max_chars
    return f"{head}\n... [{omitted} chars omitted] ...\n{tail}"


class BoundedBuffer:
    """Byte buffer that keeps only the last ``max_bytes`` written to it."""

    def __init__(self, max_bytes: int):
        self.max_bytes = max_bytes
        self._data = bytearray()
        self.truncated = False

    def write(self, chunk: bytes) -> None:
        self._data.extend(chunk)
        overflow = len(self._data) - self.max_bytes
        if overflow > 0:
            del self._data[:overflow]
            self.truncated = True

    def __len__(self) -> int:
        return len(self._data)

    def text(self) -> str:
        return self._data.decode("utf-8", errors="replace")


@dataclass
class EngineResult:
    """Outcome of one finished engine invocation."""

    argv: List[str]
    exit_code: int
    stdout: str
    stderr: str
    duration_ms: int = 0
    stdout_truncated: bool = False
    stderr_truncated: bool = False

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    def diagnostics(self) -> Dict[str, object]:
        """Error data for a failed invocation."""
        return {
            "argv": self.argv,
            "exit_code": self.exit_code,
            "stderr": self.stderr,
            "stdout": summarize(self.stdout, max_chars=2000),
            "stderr_truncated": self.stderr_truncated,
        }


@dataclass
class _Pump:
    stream: IO[bytes]
    name: str
    buffer: BoundedBuffer
    on_output: Optional[OutputCallback] = None
    thread: Optional[threading.Thread] = field(default=None, repr=False)

    def start(self) -> None:
        self.thread = threading.Thread(target=self._run, name=f"engine-{self.name}", daemon=True)
        self.thread.start()

    def _run(self) -> None:
        try:
            # Bounded reads so a child that never prints a newline cannot grow memory.
            for line in iter(lambda: self.stream.readline(READ_CHUNK), b""):
                self.buffer.write(line)
                if self.on_output is not None:
                    try:
                        self.on_output(self.name, line.decode("utf-8", errors="replace").rstrip("\r\n"))
                    except Exception:
                        # Keep draining the pipe even if the progress sink is gone.
                        logger.warning("progress callback failed; output streaming disabled", exc_info=True)
                        self.on_output = None
        finally:
            self.stream.close()

    def join(self, timeout: Optional[float] = None) -> None:
        if self.thread is not None:
            self.thread.join(timeout)


class ExternalToolAdapter:
    """
    Spawn an engine command, capture its output, and enforce a time budget.

    Each stream is captured into a BoundedBuffer. A non-zero exit (when
    ``check`` is set) and a failure to spawn both raise ExternalToolFailure.
    A call that outlives its timeout is terminated, killed after
    ``grace_seconds`` if still alive, and raises Timeout. Nothing is retried.
    """

    def __init__(
        self,
        timeout_seconds: float = 600.0,
        max_output_bytes: int = 1_048_576,
        env: Optional[Dict[str, str]] = None,
        grace_seconds: float = 5.0,
    ):
        self.timeout_seconds = timeout_seconds
        self.max_output_bytes = max_output_bytes
        self.env = env or {}
        self.grace_seconds = grace_seconds

    def run(
        self,
        argv: Sequence[str],
        cwd: os.PathLike,
        timeout: Optional[float] = None,
        check: bool = True,
        on_output: Optional[OutputCallback] = None,
    ) -> EngineResult:
        """
        Run ``argv`` in ``cwd`` and wait for it to finish.

        Args:
            argv: Command and arguments; no shell is involved.
            cwd: Working directory of the subprocess.
            timeout: Overrides the adapter's default budget for this call.
            check: Raise ExternalToolFailure on a non-zero exit status.
            on_output: Called from reader threads for every output line.

        Returns:
            EngineResult with the (possibly truncated) output tails.
        """
        argv_list = [str(arg) for arg in argv]
        budget = timeout if timeout is not None else self.timeout_seconds
        merged_env = {**os.environ, **self.env}

        logger.info("running %s in %s", " ".join(argv_list), cwd)
        t0 = time.perf_counter()
        try:
            process = subprocess.Popen(
                argv_list,
                cwd=str(cwd),
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                env=merged_env,
            )
        except OSError as exc:
            raise ExternalToolFailure(
                f"Failed to start {argv_list[0]}: {exc}",
                data={"argv": argv_list, "error": str(exc)},
            )

        pumps = [
            _Pump(process.stdout, "stdout", BoundedBuffer(self.max_output_bytes), on_output),
            _Pump(process.stderr, "stderr", BoundedBuffer(self.max_output_bytes), on_output),
        ]
        for pump in pumps:
            pump.start()

        try:
            exit_code = process.wait(timeout=budget)
        except subprocess.TimeoutExpired:
            self._stop(process)
            for pump in pumps:
                pump.join(self.grace_seconds)
            stdout, stderr = (pump.buffer.text() for pump in pumps)
            logger.warning("%s timed out after %ss", argv_list[0], budget)
            raise Timeout(
                f"{argv_list[0]} did not finish within {budget}s and was terminated",
                data={
                    "argv": argv_list,
                    "timeout_seconds": budget,
                    "stdout": summarize(stdout, max_chars=2000),
                    "stderr": stderr,
                },
            )

        for pump in pumps:
            pump.join(self.grace_seconds)

        out, err = pumps
        result = EngineResult(
            argv=argv_list,
            exit_code=exit_code,
            stdout=out.buffer.text(),
            stderr=err.buffer.text(),
            duration_ms=int((time.perf_counter() - t0) * 1000),
            stdout_truncated=out.buffer.truncated,
            stderr_truncated=err.buffer.truncated,
        )
        logger.debug("%s exited %d in %dms", argv_list[0], exit_code, result.duration_ms)

        if check and not result.ok:
            raise ExternalToolFailure(
                f"{argv_list[0]} exited with status {exit_code}",
                data=result.diagnostics(),
            )
        return result

    def _stop(self, process: subprocess.Popen) -> None:
        """Terminate, then kill if the grace period runs out."""
        process.terminate()
        try:
            process.wait(timeout=self.grace_seconds)
        except subprocess.TimeoutExpired:
            process.kill()
            process.wait()
