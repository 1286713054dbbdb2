"""Tests for the external tool adapter."""

import sys
import time

import pytest

from mcbridge.engine.adapter import READ_CHUNK, BoundedBuffer, ExternalToolAdapter, summarize
from mcbridge.errors import ExternalToolFailure, Timeout


def python(code: str):
    return [sys.executable, "-c", code]


class TestBoundedBuffer:
    """Tests for BoundedBuffer."""

    def test_keeps_everything_under_limit(self):
        buffer = BoundedBuffer(10)
        buffer.write(b"abc")
        buffer.write(b"def")

        assert buffer.text() == "abcdef"
        assert not buffer.truncated

    def test_keeps_tail_over_limit(self):
        buffer = BoundedBuffer(5)
        buffer.write(b"12345")
        buffer.write(b"678")

        assert buffer.text() == "45678"
        assert len(buffer) == 5
        assert buffer.truncated


class TestSummarize:
    def test_short_output_unchanged(self):
        assert summarize("ok") == "ok"

    def test_empty_output(self):
        assert summarize("") == "(empty output)"

    def test_long_output_keeps_head_and_tail(self):
        text = "a" * 600 + "z" * 600
        short = summarize(text, max_chars=100)

        assert short.startswith("a" * 50)
        assert short.endswith("z" * 50)
        assert "[1100 chars omitted]" in short


class TestExternalToolAdapter:
    """Tests for ExternalToolAdapter.run."""

    @pytest.fixture
    def adapter(self):
        return ExternalToolAdapter(timeout_seconds=30, grace_seconds=1)

    def test_captures_output(self, adapter, tmp_path):
        result = adapter.run(
            python("import os, sys; print(os.getcwd()); print('warn', file=sys.stderr)"),
            cwd=tmp_path,
        )

        assert result.ok
        assert result.exit_code == 0
        assert result.stdout.strip() == str(tmp_path.resolve())
        assert result.stderr.strip() == "warn"

    def test_env_is_merged(self, tmp_path):
        adapter = ExternalToolAdapter(env={"MCBRIDGE_TEST_VALUE": "42"})
        result = adapter.run(python("import os; print(os.environ['MCBRIDGE_TEST_VALUE'])"), cwd=tmp_path)
        assert result.stdout.strip() == "42"

    def test_nonzero_exit(self, adapter, tmp_path):
        with pytest.raises(ExternalToolFailure) as exc_info:
            adapter.run(python("import sys; sys.stderr.write('bad things'); sys.exit(3)"), cwd=tmp_path)

        error = exc_info.value
        assert error.code == -32003
        assert error.data["exit_code"] == 3
        assert error.data["stderr"] == "bad things"

    def test_nonzero_exit_without_check(self, adapter, tmp_path):
        result = adapter.run(python("import sys; sys.exit(2)"), cwd=tmp_path, check=False)
        assert result.exit_code == 2
        assert not result.ok

    def test_spawn_failure(self, adapter, tmp_path):
        with pytest.raises(ExternalToolFailure) as exc_info:
            adapter.run([str(tmp_path / "no-such-binary"), "plan"], cwd=tmp_path)
        assert "argv" in exc_info.value.data

    def test_timeout_terminates(self, tmp_path):
        adapter = ExternalToolAdapter(timeout_seconds=0.5, grace_seconds=1)
        started = time.monotonic()

        with pytest.raises(Timeout) as exc_info:
            adapter.run(python("import time; print('started', flush=True); time.sleep(30)"), cwd=tmp_path)

        assert time.monotonic() - started < 10
        assert exc_info.value.code == -32004
        assert exc_info.value.data["timeout_seconds"] == 0.5

    def test_per_call_timeout_override(self, adapter, tmp_path):
        with pytest.raises(Timeout):
            adapter.run(python("import time; time.sleep(30)"), cwd=tmp_path, timeout=0.3)

    def test_output_is_bounded(self, tmp_path):
        adapter = ExternalToolAdapter(max_output_bytes=64)
        result = adapter.run(python("print('x' * 1000)"), cwd=tmp_path)

        assert len(result.stdout) == 64
        assert result.stdout_truncated
        assert not result.stderr_truncated

    def test_output_without_newlines_is_read_in_chunks(self, tmp_path):
        adapter = ExternalToolAdapter(max_output_bytes=1024)
        pieces = []
        result = adapter.run(
            python("import sys; sys.stdout.write('x' * 300000)"),
            cwd=tmp_path,
            on_output=lambda stream, line: pieces.append(len(line)),
        )

        assert result.stdout == "x" * 1024
        assert result.stdout_truncated
        assert sum(pieces) == 300000
        assert max(pieces) <= READ_CHUNK

    def test_progress_callback(self, adapter, tmp_path):
        lines = []
        adapter.run(
            python("import sys; print('one'); print('two'); print('oops', file=sys.stderr)"),
            cwd=tmp_path,
            on_output=lambda stream, line: lines.append((stream, line)),
        )

        assert [line for line in lines if line[0] == "stdout"] == [("stdout", "one"), ("stdout", "two")]
        assert ("stderr", "oops") in lines

    def test_failing_callback_does_not_block(self, adapter, tmp_path):
        def callback(stream, line):
            raise RuntimeError("sink closed")

        result = adapter.run(python("for i in range(1000): print(i)"), cwd=tmp_path, on_output=callback)
        assert result.stdout.splitlines()[-1] == "999"
