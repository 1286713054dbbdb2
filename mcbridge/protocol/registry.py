"""Tool registry: the closed catalogue of invocable tools and their argument schemas."""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional

from pydantic import ValidationError

from mcbridge.errors import InvalidParams, MethodNotFound
from mcbridge.protocol.schema import (
    AnalyzeProjectArgs,
    ApplyArgs,
    ChangeDirectoryArgs,
    CleanupBackupsArgs,
    CreateFileArgs,
    DeleteFileArgs,
    DestroyArgs,
    EditFileArgs,
    GenerateDiffArgs,
    ListBackupsArgs,
    ListFilesArgs,
    PlanArgs,
    ReadFileArgs,
    RenameFileArgs,
    RestoreBackupArgs,
    SearchFilesArgs,
    StateListArgs,
    ToolArgs,
    ToolDescriptor,
    ValidateArgs,
    WriteFileArgs,
)

DEFAULT_TOOLS = (
    # ── Filesystem, read-only ─────────────────────────────────────────────
    ToolDescriptor(
        name="read_file",
        description="Read the contents of a file",
        engine="files",
        args_model=ReadFileArgs,
        path_fields=("path",),
    ),
    ToolDescriptor(
        name="list_files",
        description="List project files, optionally filtered by a regex",
        engine="files",
        args_model=ListFilesArgs,
    ),
    ToolDescriptor(
        name="search_files",
        description="Search project files line by line for a regex",
        engine="files",
        args_model=SearchFilesArgs,
    ),
    ToolDescriptor(
        name="analyze_project",
        description="Summarize project type, languages and key files",
        engine="files",
        args_model=AnalyzeProjectArgs,
    ),
    ToolDescriptor(
        name="generate_diff",
        description="Unified diff between two texts",
        engine="files",
        args_model=GenerateDiffArgs,
    ),
    ToolDescriptor(
        name="list_backups",
        description="List backup records for a file",
        engine="files",
        args_model=ListBackupsArgs,
        path_fields=("path",),
    ),
    # ── Session ───────────────────────────────────────────────────────────
    ToolDescriptor(
        name="change_directory",
        description="Change the working directory inside the project root",
        engine="session",
        args_model=ChangeDirectoryArgs,
        path_fields=("directory",),
    ),
    # ── Filesystem, mutating ──────────────────────────────────────────────
    ToolDescriptor(
        name="write_file",
        description="Overwrite or create a file with new content",
        engine="files",
        args_model=WriteFileArgs,
        destructive=True,
        requires_confirmation=True,
        path_fields=("path",),
    ),
    ToolDescriptor(
        name="create_file",
        description="Create a new file; fails if it already exists",
        engine="files",
        args_model=CreateFileArgs,
        destructive=True,
        path_fields=("path",),
    ),
    ToolDescriptor(
        name="edit_file",
        description="Apply a suggested change to a file",
        engine="files",
        args_model=EditFileArgs,
        destructive=True,
        requires_confirmation=True,
        path_fields=("path",),
    ),
    ToolDescriptor(
        name="delete_file",
        description="Delete a file",
        engine="files",
        args_model=DeleteFileArgs,
        destructive=True,
        requires_confirmation=True,
        path_fields=("path",),
    ),
    ToolDescriptor(
        name="rename_file",
        description="Rename or move a file",
        engine="files",
        args_model=RenameFileArgs,
        destructive=True,
        requires_confirmation=True,
        path_fields=("from_path", "to_path"),
    ),
    ToolDescriptor(
        name="restore_backup",
        description="Restore a file from a backup record",
        engine="files",
        args_model=RestoreBackupArgs,
        destructive=True,
        requires_confirmation=True,
        path_fields=("path",),
    ),
    ToolDescriptor(
        name="cleanup_backups",
        description="Remove all backup records for a file",
        engine="files",
        args_model=CleanupBackupsArgs,
        destructive=True,
        requires_confirmation=True,
        path_fields=("path",),
    ),
    # ── Terraform ─────────────────────────────────────────────────────────
    ToolDescriptor(
        name="validate",
        description="Validate the configuration in the working directory",
        engine="terraform",
        args_model=ValidateArgs,
    ),
    ToolDescriptor(
        name="plan",
        description="Create and stage an execution plan",
        engine="terraform",
        args_model=PlanArgs,
        path_fields=("var_file",),
    ),
    ToolDescriptor(
        name="state_list",
        description="List resources in the state",
        engine="terraform",
        args_model=StateListArgs,
    ),
    ToolDescriptor(
        name="apply",
        description="Apply the staged plan",
        engine="terraform",
        args_model=ApplyArgs,
        destructive=True,
        requires_confirmation=True,
    ),
    ToolDescriptor(
        name="destroy",
        description="Apply the staged destroy plan",
        engine="terraform",
        args_model=DestroyArgs,
        destructive=True,
        requires_confirmation=True,
    ),
)


class ToolRegistry:
    """
    Lookup table of tool descriptors, fixed at construction.

    Validation happens here so that malformed arguments never reach the
    supervisor.
    """

    def __init__(self, descriptors: Optional[Iterable[ToolDescriptor]] = None):
        self._tools: Dict[str, ToolDescriptor] = {}
        for descriptor in descriptors if descriptors is not None else DEFAULT_TOOLS:
            if descriptor.name in self._tools:
                raise ValueError(f"Duplicate tool name: {descriptor.name}")
            self._tools[descriptor.name] = descriptor

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    # ── Lookup ────────────────────────────────────────────────────────────

    def get(self, name: str) -> ToolDescriptor:
        """Return the descriptor for ``name`` or raise MethodNotFound."""
        try:
            return self._tools[name]
        except KeyError:
            raise MethodNotFound(f"Unknown tool: {name}", data={"tool": name})

    def names(self) -> List[str]:
        return list(self._tools)

    def list_tools(self) -> List[ToolDescriptor]:
        return list(self._tools.values())

    # ── Validation ────────────────────────────────────────────────────────

    def validate(self, name: str, arguments: Optional[Dict[str, Any]]) -> ToolArgs:
        """
        Validate ``arguments`` against the tool's schema.

        Raises
        ------
        MethodNotFound : unknown tool
        InvalidParams : arguments do not match the schema
        """
        descriptor = self.get(name)
        try:
            return descriptor.args_model.model_validate(arguments or {})
        except ValidationError as exc:
            raise InvalidParams(
                f"Invalid arguments for {name}",
                data={
                    "tool": name,
                    "errors": exc.errors(include_url=False, include_context=False),
                },
            )

    # ── Listing ───────────────────────────────────────────────────────────

    def to_mcp_list(self) -> List[Dict[str, Any]]:
        """Tool entries for the ``tools/list`` result."""
        return [tool.to_mcp() for tool in self._tools.values()]

    def build_prompt_fragment(self) -> str:
        """Plain-text catalogue, one tool per line."""
        return "\n".join(tool.prompt_line() for tool in self._tools.values())
