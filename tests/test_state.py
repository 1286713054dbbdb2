"""Tests for the session, path containment and confirmation tokens."""

import os

import pytest

from mcbridge.errors import InternalError, InvalidConfirmation, InvalidParams, PathViolation, StartupError
from mcbridge.state.confirmations import (
    ConfirmationStore,
    OperationState,
    StagedOperation,
)
from mcbridge.state.session import Session


class TestSession:
    """Tests for Session."""

    @pytest.fixture
    def session(self, project):
        (project / "modules" / "net").mkdir(parents=True)
        return Session.open(project)

    def test_open_canonicalizes(self, project):
        (project / "modules").mkdir()
        session = Session.open(project / "." / "modules" / "..")
        assert session.project_root == project.resolve()
        assert session.working_directory == session.project_root

    def test_open_missing_root(self, tmp_path):
        with pytest.raises(StartupError):
            Session.open(tmp_path / "missing")

    def test_open_file_root(self, project):
        with pytest.raises(StartupError):
            Session.open(project / "a.txt")

    def test_relative_path(self, session):
        assert session.resolve_path("a.txt") == session.project_root / "a.txt"

    def test_nonexistent_path_inside_root(self, session):
        assert session.resolve_path("new/dir/file.tf") == session.project_root / "new" / "dir" / "file.tf"

    def test_absolute_path_inside_root(self, session):
        inside = str(session.project_root / "a.txt")
        assert session.resolve_path(inside) == session.project_root / "a.txt"

    def test_absolute_path_outside_root(self, session):
        with pytest.raises(PathViolation) as exc_info:
            session.resolve_path("/etc/passwd")
        assert exc_info.value.code == -32001
        assert exc_info.value.data["path"] == "/etc/passwd"

    def test_traversal(self, session):
        with pytest.raises(PathViolation):
            session.resolve_path("../outside.txt")
        with pytest.raises(PathViolation):
            session.resolve_path("modules/../../outside.txt")

    def test_sibling_with_common_prefix(self, session):
        sibling = str(session.project_root) + "-evil/x"
        with pytest.raises(PathViolation):
            session.resolve_path(sibling)

    def test_symlink_escape(self, session, tmp_path):
        outside = tmp_path / "outside"
        outside.mkdir()
        os.symlink(outside, session.project_root / "link")

        with pytest.raises(PathViolation):
            session.resolve_path("link/secret.txt")

    def test_change_directory(self, session):
        target = session.change_directory("modules/net")

        assert target == session.project_root / "modules" / "net"
        assert session.resolve_path("main.tf") == target / "main.tf"
        assert session.resolve_path("../../a.txt") == session.project_root / "a.txt"
        assert session.relative(target) == "modules/net"

    def test_change_directory_outside(self, session):
        with pytest.raises(PathViolation):
            session.change_directory("..")
        assert session.working_directory == session.project_root

    def test_change_directory_missing(self, session):
        with pytest.raises(InvalidParams):
            session.change_directory("does-not-exist")
        with pytest.raises(InvalidParams):
            session.change_directory("a.txt")

    def test_relative_of_root(self, session):
        assert session.relative(session.project_root) == "."


class TestStagedOperation:
    """Tests for the operation state machine."""

    def test_happy_path(self):
        operation = StagedOperation("write_file", {})
        for state in (
            OperationState.AWAITING_CONFIRMATION,
            OperationState.CONFIRMED,
            OperationState.EXECUTING,
            OperationState.COMPLETED,
        ):
            operation.advance(state)

        assert operation.is_terminal
        assert operation.history[0] is OperationState.REQUESTED

    def test_illegal_transition(self):
        operation = StagedOperation("apply", {})
        with pytest.raises(InternalError):
            operation.advance(OperationState.COMPLETED)

    def test_terminal_states_are_final(self):
        operation = StagedOperation("apply", {})
        operation.advance(OperationState.REJECTED)
        with pytest.raises(InternalError):
            operation.advance(OperationState.AWAITING_CONFIRMATION)


class TestConfirmationStore:
    """Tests for ConfirmationStore."""

    @pytest.fixture
    def store(self, clock):
        return ConfirmationStore(ttl_seconds=300, clock=clock)

    def test_mint_and_consume(self, store, clock):
        operation = StagedOperation("apply", {})
        pending = store.mint(operation, "fp")

        assert operation.state is OperationState.AWAITING_CONFIRMATION
        assert pending.expires_at == clock.now + 300
        assert pending.token in store

        assert store.consume(pending.token) is pending
        assert len(store) == 0

    def test_tokens_are_single_use(self, store):
        pending = store.mint(StagedOperation("apply", {}), "fp")
        store.consume(pending.token)

        with pytest.raises(InvalidConfirmation):
            store.consume(pending.token)

    def test_tokens_are_unique(self, store):
        tokens = {store.mint(StagedOperation("apply", {}), "fp").token for _ in range(50)}
        assert len(tokens) == 50

    def test_unknown_token(self, store):
        with pytest.raises(InvalidConfirmation):
            store.consume("not-a-token")

    def test_expiry(self, store, clock):
        operation = StagedOperation("apply", {})
        pending = store.mint(operation, "fp")

        clock.advance(299.9)
        assert pending.token in store
        assert pending.expires_in(clock()) == pytest.approx(0.1)

        clock.advance(1)
        with pytest.raises(InvalidConfirmation):
            store.consume(pending.token)
        assert operation.state is OperationState.EXPIRED

    def test_sweep_on_mint(self, store, clock):
        old = store.mint(StagedOperation("apply", {}), "fp")
        clock.advance(301)
        store.mint(StagedOperation("destroy", {}), "fp")

        assert old.token not in store
        assert len(store) == 1

    def test_cancel(self, store):
        operation = StagedOperation("delete_file", {})
        pending = store.mint(operation, "fp")

        store.cancel(pending.token)

        assert operation.state is OperationState.CANCELLED
        with pytest.raises(InvalidConfirmation):
            store.consume(pending.token)
