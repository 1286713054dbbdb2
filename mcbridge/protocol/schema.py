"""Data models for protocol frames, tool descriptors, and tool arguments."""

from __future__ import annotations

from typing import Any, Dict, Optional, Tuple, Type, Union

from pydantic import BaseModel, ConfigDict, Field, StrictInt, StrictStr

from mcbridge.errors import BridgeError, RequestId

JSONRPC_VERSION = "2.0"


# ── Frames ────────────────────────────────────────────────────────────────


class Request(BaseModel):
    """A JSON-RPC request, or a notification when ``id`` is absent."""

    model_config = ConfigDict(extra="ignore")

    jsonrpc: str = JSONRPC_VERSION
    id: Optional[Union[StrictInt, StrictStr]] = None
    method: StrictStr
    params: Optional[Dict[str, Any]] = None

    @property
    def is_notification(self) -> bool:
        return "id" not in self.model_fields_set


def make_result(request_id: RequestId, result: Any) -> Dict[str, Any]:
    return {"jsonrpc": JSONRPC_VERSION, "id": request_id, "result": result}


def make_error(request_id: RequestId, error: BridgeError) -> Dict[str, Any]:
    return {"jsonrpc": JSONRPC_VERSION, "id": request_id, "error": error.to_error()}


def make_notification(method: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    message: Dict[str, Any] = {"jsonrpc": JSONRPC_VERSION, "method": method}
    if params is not None:
        message["params"] = params
    return message


class CallParams(BaseModel):
    """Params of ``tools/call``."""

    name: StrictStr
    arguments: Dict[str, Any] = Field(default_factory=dict)


class TokenParams(BaseModel):
    """Params of ``tools/confirm`` and ``tools/cancel``."""

    token: StrictStr


# ── Tool arguments ────────────────────────────────────────────────────────


class ToolArgs(BaseModel):
    """Base for tool arguments; unknown fields are a validation error."""

    model_config = ConfigDict(extra="forbid")


class ReadFileArgs(ToolArgs):
    path: StrictStr = Field(description="File to read, relative to the working directory")


class WriteFileArgs(ToolArgs):
    path: StrictStr = Field(description="File to write, relative to the working directory")
    content: StrictStr = Field(description="Full new content of the file")


class CreateFileArgs(WriteFileArgs):
    pass


class EditFileArgs(ToolArgs):
    path: StrictStr = Field(description="File to modify")
    suggestion: StrictStr = Field(
        description="Suggested change: JSON {type: replace|edit|create, ...} or free text"
    )


class DeleteFileArgs(ToolArgs):
    path: StrictStr = Field(description="File to delete")


class RenameFileArgs(ToolArgs):
    from_path: StrictStr = Field(description="Current path of the file")
    to_path: StrictStr = Field(description="New path; must not exist yet")


class ListFilesArgs(ToolArgs):
    pattern: Optional[StrictStr] = Field(
        default=None, description="Regex matched against project-relative paths"
    )


class SearchFilesArgs(ToolArgs):
    query: StrictStr = Field(min_length=1, description="Regex searched line by line")


class AnalyzeProjectArgs(ToolArgs):
    pass


class GenerateDiffArgs(ToolArgs):
    original: StrictStr = Field(description="Original text")
    modified: StrictStr = Field(description="Modified text")


class ChangeDirectoryArgs(ToolArgs):
    directory: StrictStr = Field(description="New working directory inside the project root")


class ListBackupsArgs(ToolArgs):
    path: StrictStr = Field(description="File whose backups to list")


class RestoreBackupArgs(ToolArgs):
    path: StrictStr = Field(description="File to restore")
    record_id: Optional[StrictStr] = Field(
        default=None, description="Backup record to restore; latest when omitted"
    )


class CleanupBackupsArgs(ToolArgs):
    path: StrictStr = Field(description="File whose backups to remove")


class ValidateArgs(ToolArgs):
    pass


class PlanArgs(ToolArgs):
    destroy: bool = Field(default=False, description="Plan the destruction of all resources")
    variables: Dict[str, StrictStr] = Field(default_factory=dict, description="Input variables")
    var_file: Optional[StrictStr] = Field(default=None, description="Variable definitions file")


class StateListArgs(ToolArgs):
    pass


class ApplyArgs(ToolArgs):
    pass


class DestroyArgs(ToolArgs):
    pass


# ── Tool descriptors ──────────────────────────────────────────────────────


class ToolDescriptor(BaseModel):
    """Immutable description of one invocable tool."""

    model_config = ConfigDict(frozen=True)

    name: str
    description: str
    engine: str  # "files", "session" or "terraform"
    args_model: Type[ToolArgs]
    destructive: bool = False
    requires_confirmation: bool = False
    path_fields: Tuple[str, ...] = ()

    @property
    def input_schema(self) -> Dict[str, Any]:
        return self.args_model.model_json_schema()

    def to_mcp(self) -> Dict[str, Any]:
        """Entry for the ``tools/list`` result."""
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": self.input_schema,
            "annotations": {
                "readOnlyHint": not self.destructive,
                "destructiveHint": self.destructive,
                "requiresConfirmation": self.requires_confirmation,
            },
        }

    def prompt_line(self) -> str:
        """One-line representation for listings."""
        flag = " [confirm]" if self.requires_confirmation else ""
        return f"- {self.name}: {self.description}{flag}"
