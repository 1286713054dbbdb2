"""Shared fixtures: a project directory, a fake Terraform binary and a server context."""

import stat
import sys
import textwrap

import pytest

from mcbridge.core.context import ServerContext
from mcbridge.validation.config import BridgeConfig

FAKE_TERRAFORM = textwrap.dedent(
    """\
    #!{python}
    import json
    import os
    import sys
    import time

    args = sys.argv[1:]
    command = args[0] if args else ""

    if os.environ.get("FAKE_TF_SLEEP"):
        time.sleep(float(os.environ["FAKE_TF_SLEEP"]))

    if os.environ.get("FAKE_TF_FAIL") == command:
        print("Error: simulated " + command + " failure", file=sys.stderr)
        sys.exit(1)

    if command == "plan":
        out = [a for a in args if a.startswith("-out=")][0][len("-out="):]
        destroy = "-destroy" in args
        with open(out, "w") as f:
            json.dump({{"destroy": destroy, "args": args}}, f)
        add, change, remove = os.environ.get("FAKE_TF_PLAN", "2,0,0").split(",")
        if destroy:
            add, change, remove = "0", "0", os.environ.get("FAKE_TF_DESTROY", "1")
        print("Terraform will perform the following actions:")
        if (add, change, remove) == ("0", "0", "0"):
            print("No changes. Your infrastructure matches the configuration.")
        else:
            print("Plan: %s to add, %s to change, %s to destroy." % (add, change, remove))
    elif command == "apply":
        with open(args[-1]) as f:
            plan = json.load(f)
        with open("terraform.tfstate", "w") as f:
            json.dump({{"serial": time.time(), "destroyed": plan["destroy"]}}, f)
        if os.environ.get("FAKE_TF_FAIL") == "apply-partial":
            print("Error: simulated partial apply", file=sys.stderr)
            sys.exit(1)
        if plan["destroy"]:
            print("Destroy complete! Resources: 1 destroyed.")
        else:
            print("null_resource.a: Creating...")
            print("null_resource.a: Creation complete")
            print("Apply complete! Resources: 2 added, 0 changed, 0 destroyed.")
    elif command == "validate":
        valid = not os.environ.get("FAKE_TF_INVALID")
        print(json.dumps({{
            "valid": valid,
            "error_count": 0 if valid else 1,
            "warning_count": 0,
            "diagnostics": [] if valid else [{{"severity": "error", "summary": "Unsupported argument"}}],
        }}))
        sys.exit(0 if valid else 1)
    elif command == "state" and args[1:2] == ["list"]:
        print("null_resource.a")
        print("null_resource.b")
    else:
        print("unknown command: " + " ".join(args), file=sys.stderr)
        sys.exit(2)
    """
)


class FakeClock:
    """Monotonic clock under test control."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def project(tmp_path):
    """A small project root with one text file."""
    root = tmp_path / "project"
    root.mkdir()
    (root / "a.txt").write_text("hello\nworld\n")
    return root


@pytest.fixture
def fake_terraform(tmp_path):
    """An executable Python script that mimics the Terraform CLI surface."""
    script = tmp_path / "bin" / "terraform"
    script.parent.mkdir()
    script.write_text(FAKE_TERRAFORM.format(python=sys.executable))
    script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return script


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def make_context(project, fake_terraform, clock):
    """Factory for a ServerContext rooted at ``project``."""

    def factory(engine_env=None, **engine):
        settings = {
            "terraform_binary": str(fake_terraform),
            "stream_progress": False,
            "env": dict(engine_env or {}),
        }
        settings.update(engine)
        config = BridgeConfig(engine=settings)
        return ServerContext.create(config, project, clock=clock)

    return factory


@pytest.fixture
def context(make_context):
    return make_context()


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch):
    for var in ("MCBRIDGE_PROJECT_ROOT", "PROJECT_DIR", "FAKE_TF_FAIL", "FAKE_TF_SLEEP", "FAKE_TF_PLAN", "FAKE_TF_DESTROY", "FAKE_TF_INVALID"):
        monkeypatch.delenv(var, raising=False)
