"""
Tool handlers: what each tool actually does once the supervisor lets it run.

Every tool has a ToolHandler. Destructive tools that need confirmation also
have a ``preview`` that describes the planned effect and a ``precondition``
digest of the state it was computed from; the supervisor fingerprints that
digest at staging time and checks it again at confirmation. ``targets``
lists the paths that get a backup record before execution.

Path arguments arrive canonical and contained; handlers re-resolve them
through the session, which is a no-op for such paths.
"""

from __future__ import annotations

import hashlib
import json
import logging
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from mcbridge.core.context import ServerContext
from mcbridge.engine.adapter import summarize
from mcbridge.engine.terraform import STATE_FILES, parse_apply_counts, parse_plan_counts
from mcbridge.errors import ExternalToolFailure, InvalidParams
from mcbridge.files.analyzer import analyze_project
from mcbridge.files.diff import diff_stats, unified_diff
from mcbridge.files.suggestions import apply_suggestion, parse_suggestion
from mcbridge.state.backups import BackupRecord
from mcbridge.state.session import StagedPlan

logger = logging.getLogger(__name__)

ABSENT = "absent"


@dataclass
class Preview:
    """Planned effect of a staged call."""

    summary: str
    details: Dict[str, Any] = field(default_factory=dict)
    precondition: str = ""


Execute = Callable[[ServerContext, Any, List[BackupRecord]], Dict[str, Any]]
PreviewFn = Callable[[ServerContext, Any], Preview]
TargetsFn = Callable[[ServerContext, Any], List[Path]]


@dataclass(frozen=True)
class ToolHandler:
    execute: Execute
    preview: Optional[PreviewFn] = None
    targets: Optional[TargetsFn] = None


# ── Helpers ───────────────────────────────────────────────────────────────


def _path(ctx: ServerContext, raw: str) -> Path:
    return ctx.session.resolve_path(raw)


def _rel(ctx: ServerContext, path: Path) -> str:
    return ctx.session.relative(path)


def _digest_file(path: Path) -> str:
    if not path.is_file():
        return ABSENT
    return hashlib.sha256(path.read_bytes()).hexdigest()


def _content_change(ctx: ServerContext, path: Path, current: Optional[str], proposed: str) -> Dict[str, Any]:
    rel = _rel(ctx, path)
    diff = unified_diff(current or "", proposed, fromfile=f"a/{rel}", tofile=f"b/{rel}")
    return {"path": rel, "diff": diff, **diff_stats(diff), "created": current is None}


def _change_summary(verb: str, change: Dict[str, Any]) -> str:
    if change["created"]:
        return f"create {change['path']}"
    if not change["diff"]:
        return f"{verb} {change['path']} (no changes)"
    return f"{verb} {change['path']} (+{change['additions']} -{change['deletions']})"


def _single_target(ctx: ServerContext, args: Any) -> List[Path]:
    return [_path(ctx, args.path)]


# ── Read-only filesystem tools ────────────────────────────────────────────


def read_file(ctx: ServerContext, args, backups) -> Dict[str, Any]:
    path = _path(ctx, args.path)
    return {"path": _rel(ctx, path), "content": ctx.files.read_text(path)}


def list_files(ctx: ServerContext, args, backups) -> Dict[str, Any]:
    files = ctx.files.list_files(args.pattern)
    return {"files": files, "count": len(files)}


def search_files(ctx: ServerContext, args, backups) -> Dict[str, Any]:
    return {"query": args.query, "results": ctx.files.search(args.query)}


def analyze(ctx: ServerContext, args, backups) -> Dict[str, Any]:
    return analyze_project(ctx.session.project_root, ctx.config.project.exclude_patterns)


def generate_diff(ctx: ServerContext, args, backups) -> Dict[str, Any]:
    diff = unified_diff(args.original, args.modified)
    return {"diff": diff, **diff_stats(diff)}


def list_backups(ctx: ServerContext, args, backups) -> Dict[str, Any]:
    path = _path(ctx, args.path)
    records = ctx.backups.list_for(path)
    return {"path": _rel(ctx, path), "backups": [record.to_dict() for record in records]}


def change_directory(ctx: ServerContext, args, backups) -> Dict[str, Any]:
    target = ctx.session.change_directory(args.directory)
    return {"working_directory": _rel(ctx, target), "absolute_path": str(target)}


# ── write_file / create_file ──────────────────────────────────────────────


def preview_write(ctx: ServerContext, args) -> Preview:
    path = _path(ctx, args.path)
    change = _content_change(ctx, path, ctx.files.read_optional(path), args.content)
    return Preview(
        summary=_change_summary("write", change),
        details={"diff": change["diff"]},
        precondition=_digest_file(path),
    )


def write_file(ctx: ServerContext, args, backups) -> Dict[str, Any]:
    path = _path(ctx, args.path)
    change = _content_change(ctx, path, ctx.files.read_optional(path), args.content)
    ctx.files.write_text(path, args.content)
    return change


def create_targets(ctx: ServerContext, args) -> List[Path]:
    path = _path(ctx, args.path)
    # Refused before any backup is captured.
    if path.exists():
        raise InvalidParams(f"File already exists: {_rel(ctx, path)}", data={"path": _rel(ctx, path)})
    return [path]


def create_file(ctx: ServerContext, args, backups) -> Dict[str, Any]:
    path = _path(ctx, args.path)
    change = _content_change(ctx, path, None, args.content)
    ctx.files.write_text(path, args.content)
    return change


# ── edit_file ─────────────────────────────────────────────────────────────


def _proposed_edit(ctx: ServerContext, args):
    path = _path(ctx, args.path)
    current = ctx.files.read_optional(path)
    suggestion = parse_suggestion(args.suggestion)
    proposed = apply_suggestion(current, suggestion)
    return path, current, proposed, suggestion.type


def preview_edit(ctx: ServerContext, args) -> Preview:
    path, current, proposed, kind = _proposed_edit(ctx, args)
    change = _content_change(ctx, path, current, proposed)
    return Preview(
        summary=_change_summary(f"{kind} edit of", change),
        details={"diff": change["diff"], "suggestion_type": kind},
        precondition=_digest_file(path),
    )


def edit_file(ctx: ServerContext, args, backups) -> Dict[str, Any]:
    path, current, proposed, kind = _proposed_edit(ctx, args)
    change = _content_change(ctx, path, current, proposed)
    ctx.files.write_text(path, proposed)
    return {**change, "suggestion_type": kind}


# ── delete_file / rename_file ─────────────────────────────────────────────


def preview_delete(ctx: ServerContext, args) -> Preview:
    path = _path(ctx, args.path)
    if not path.is_file():
        raise InvalidParams(f"File not found: {_rel(ctx, path)}", data={"path": _rel(ctx, path)})
    return Preview(
        summary=f"delete {_rel(ctx, path)} ({path.stat().st_size} bytes)",
        precondition=_digest_file(path),
    )


def delete_file(ctx: ServerContext, args, backups) -> Dict[str, Any]:
    path = _path(ctx, args.path)
    ctx.files.delete(path)
    return {"path": _rel(ctx, path), "deleted": True}


def _rename_paths(ctx: ServerContext, args):
    source, target = _path(ctx, args.from_path), _path(ctx, args.to_path)
    if not source.is_file():
        raise InvalidParams(f"File not found: {_rel(ctx, source)}", data={"path": _rel(ctx, source)})
    if target.exists():
        raise InvalidParams(f"Target already exists: {_rel(ctx, target)}", data={"path": _rel(ctx, target)})
    return source, target


def preview_rename(ctx: ServerContext, args) -> Preview:
    source, target = _rename_paths(ctx, args)
    return Preview(
        summary=f"rename {_rel(ctx, source)} -> {_rel(ctx, target)}",
        precondition=f"{_digest_file(source)}:{_digest_file(target)}",
    )


def rename_file(ctx: ServerContext, args, backups) -> Dict[str, Any]:
    source, target = _rename_paths(ctx, args)
    ctx.files.rename(source, target)
    return {"from_path": _rel(ctx, source), "to_path": _rel(ctx, target)}


def rename_targets(ctx: ServerContext, args) -> List[Path]:
    return [_path(ctx, args.from_path), _path(ctx, args.to_path)]


# ── restore_backup / cleanup_backups ──────────────────────────────────────


def _restore_record(ctx: ServerContext, args, exclude: frozenset = frozenset()) -> BackupRecord:
    path = _path(ctx, args.path)
    if args.record_id:
        record = ctx.backups.get(args.record_id)
        if record is None or record.original_path != str(path):
            raise InvalidParams(
                f"No backup {args.record_id} for {_rel(ctx, path)}",
                data={"path": _rel(ctx, path), "record_id": args.record_id},
            )
        return record

    for record in ctx.backups.list_for(path):
        if record.record_id not in exclude:
            return record
    raise InvalidParams(f"No backup available for {_rel(ctx, path)}", data={"path": _rel(ctx, path)})


def preview_restore(ctx: ServerContext, args) -> Preview:
    path = _path(ctx, args.path)
    record = _restore_record(ctx, args)
    details: Dict[str, Any] = {"record": record.to_dict()}

    if record.existed:
        try:
            restored = Path(record.backup_path).read_bytes().decode("utf-8")
            current = ctx.files.read_optional(path)
        except (OSError, UnicodeDecodeError, InvalidParams):
            pass
        else:
            details["diff"] = _content_change(ctx, path, current, restored)["diff"]
        summary = f"restore {_rel(ctx, path)} from backup {record.record_id} ({record.captured_at.isoformat()})"
    else:
        summary = f"restore {_rel(ctx, path)} to absent (delete it)"

    return Preview(
        summary=summary,
        details=details,
        precondition=f"{record.record_id}:{_digest_file(path)}",
    )


def restore_backup(ctx: ServerContext, args, backups) -> Dict[str, Any]:
    # Records captured for this very call are the current state, not a restore source.
    record = _restore_record(ctx, args, exclude=frozenset(b.record_id for b in backups))
    ctx.backups.restore(record)
    ctx.backups.remove(record.record_id)
    return {"path": _rel(ctx, _path(ctx, args.path)), "restored_from": record.to_dict()}


def preview_cleanup(ctx: ServerContext, args) -> Preview:
    path = _path(ctx, args.path)
    records = ctx.backups.list_for(path)
    if not records:
        raise InvalidParams(f"No backups for {_rel(ctx, path)}", data={"path": _rel(ctx, path)})
    return Preview(
        summary=f"remove {len(records)} backup(s) of {_rel(ctx, path)}",
        precondition=",".join(record.record_id for record in records),
    )


def cleanup_backups(ctx: ServerContext, args, backups) -> Dict[str, Any]:
    path = _path(ctx, args.path)
    removed = ctx.backups.remove_for(path)
    return {"path": _rel(ctx, path), "removed": len(removed)}


# ── Terraform ─────────────────────────────────────────────────────────────


def validate(ctx: ServerContext, args, backups) -> Dict[str, Any]:
    result = ctx.run_engine(ctx.terraform.validate(), check=False)
    try:
        report = json.loads(result.stdout)
    except json.JSONDecodeError:
        if result.ok:
            report = {"valid": True}
        else:
            raise ExternalToolFailure(
                f"validate exited with status {result.exit_code}",
                data=result.diagnostics(),
            )
    return {
        "valid": bool(report.get("valid", result.ok)),
        "error_count": report.get("error_count", 0),
        "warning_count": report.get("warning_count", 0),
        "diagnostics": report.get("diagnostics", []),
    }


def plan(ctx: ServerContext, args, backups) -> Dict[str, Any]:
    mode = "destroy" if args.destroy else "apply"
    ctx.plans_dir.mkdir(parents=True, exist_ok=True)
    plan_file = ctx.plans_dir / f"{uuid.uuid4().hex}.tfplan"
    var_file = _path(ctx, args.var_file) if args.var_file else None

    argv = ctx.terraform.plan(plan_file, destroy=args.destroy, variables=args.variables, var_file=var_file)
    result = ctx.run_engine(argv)

    counts = parse_plan_counts(result.stdout)
    if counts is None:
        raise ExternalToolFailure("Could not find a plan summary in the engine output", data=result.diagnostics())

    previous = ctx.session.staged_plan
    if previous is not None:
        previous.plan_file.unlink(missing_ok=True)

    staged = StagedPlan(
        mode=mode,
        plan_file=plan_file,
        counts=counts,
        digest=_digest_file(plan_file),
        working_directory=ctx.session.working_directory,
    )
    ctx.session.staged_plan = staged
    logger.info("staged %s plan: %s", mode, staged.summary)
    return {
        "mode": mode,
        "summary": staged.summary,
        **counts.to_dict(),
        "output": summarize(result.stdout, max_chars=2000),
    }


def state_list(ctx: ServerContext, args, backups) -> Dict[str, Any]:
    result = ctx.run_engine(ctx.terraform.state_list())
    resources = [line.strip() for line in result.stdout.splitlines() if line.strip()]
    return {"resources": resources, "count": len(resources)}


def _staged_plan(ctx: ServerContext, mode: str) -> StagedPlan:
    staged = ctx.session.staged_plan
    if staged is None or staged.mode != mode:
        hint = "plan" if mode == "apply" else "plan with destroy=true"
        raise InvalidParams(f"No staged {mode} plan; run {hint} first", data={"mode": mode})
    if not staged.plan_file.exists():
        ctx.session.staged_plan = None
        raise InvalidParams("Staged plan file is missing; run plan again", data={"mode": mode})
    return staged


def _apply_preview(mode: str) -> PreviewFn:
    def preview(ctx: ServerContext, args) -> Preview:
        staged = _staged_plan(ctx, mode)
        return Preview(
            summary=staged.summary,
            details={"plan": staged.to_dict()},
            precondition=_digest_file(staged.plan_file),
        )

    return preview


def _apply_targets(mode: str) -> TargetsFn:
    def targets(ctx: ServerContext, args) -> List[Path]:
        staged = _staged_plan(ctx, mode)
        return [staged.working_directory / name for name in STATE_FILES]

    return targets


def _apply_execute(mode: str) -> Execute:
    def execute(ctx: ServerContext, args, backups) -> Dict[str, Any]:
        staged = _staged_plan(ctx, mode)
        try:
            result = ctx.run_engine(ctx.terraform.apply(staged.plan_file), cwd=staged.working_directory)
        finally:
            # A saved plan is single-use whatever the outcome.
            ctx.session.staged_plan = None
            staged.plan_file.unlink(missing_ok=True)
        counts = parse_apply_counts(result.stdout)
        return {
            "mode": mode,
            **counts.to_dict(),
            "output": summarize(result.stdout, max_chars=2000),
        }

    return execute


# ── Table ─────────────────────────────────────────────────────────────────

HANDLERS: Dict[str, ToolHandler] = {
    "read_file": ToolHandler(read_file),
    "list_files": ToolHandler(list_files),
    "search_files": ToolHandler(search_files),
    "analyze_project": ToolHandler(analyze),
    "generate_diff": ToolHandler(generate_diff),
    "list_backups": ToolHandler(list_backups),
    "change_directory": ToolHandler(change_directory),
    "write_file": ToolHandler(write_file, preview_write, _single_target),
    "create_file": ToolHandler(create_file, None, create_targets),
    "edit_file": ToolHandler(edit_file, preview_edit, _single_target),
    "delete_file": ToolHandler(delete_file, preview_delete, _single_target),
    "rename_file": ToolHandler(rename_file, preview_rename, rename_targets),
    "restore_backup": ToolHandler(restore_backup, preview_restore, _single_target),
    "cleanup_backups": ToolHandler(cleanup_backups, preview_cleanup),
    "validate": ToolHandler(validate),
    "plan": ToolHandler(plan),
    "state_list": ToolHandler(state_list),
    "apply": ToolHandler(_apply_execute("apply"), _apply_preview("apply"), _apply_targets("apply")),
    "destroy": ToolHandler(_apply_execute("destroy"), _apply_preview("destroy"), _apply_targets("destroy")),
}
