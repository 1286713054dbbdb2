"""Tests for the command-line entry points."""

import logging

import pytest
from click.testing import CliRunner

from mcbridge import __version__
from mcbridge.cli.main import cli
from mcbridge.validation.config import Config


@pytest.fixture
def runner(tmp_path, monkeypatch):
    monkeypatch.setattr(Config, "GLOBAL_CONFIG_DIR", tmp_path / "global")
    monkeypatch.chdir(tmp_path)
    yield CliRunner()
    logger = logging.getLogger("mcbridge")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = True


class TestCli:
    def test_version(self, runner):
        result = runner.invoke(cli, ["version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_tools(self, runner):
        result = runner.invoke(cli, ["tools"])
        assert result.exit_code == 0
        assert "apply" in result.output
        assert "read_file" in result.output

    def test_serve_missing_root(self, runner, tmp_path):
        result = runner.invoke(cli, ["serve", "--project-root", str(tmp_path / "missing")])
        assert result.exit_code == 1

    def test_serve_bad_config(self, runner, tmp_path):
        bad = tmp_path / "bad.yaml"
        bad.write_text("engine:\n  timeout_seconds: -1\n")

        result = runner.invoke(cli, ["serve", "--project-root", str(tmp_path), "--config", str(bad)])
        assert result.exit_code == 1

    def test_serve_unopenable_log_file(self, runner, tmp_path):
        result = runner.invoke(
            cli,
            ["serve", "--project-root", str(tmp_path), "--log-file", str(tmp_path / "no" / "such" / "log")],
        )
        assert result.exit_code == 1
