"""
Suggested edits: parse an assistant's change request and compute the result.

A suggestion is either a JSON object::

    {"type": "replace", "content": "..."}
    {"type": "edit", "edits": [{"action": "insert", "line": 3, "content": "..."}]}
    {"type": "create", "content": "...", "overwrite": false}

or free text such as "replace lines 4-6 with:\\n...". Text that matches no
known form replaces the whole file. Applying a suggestion is pure: it maps
the current content to the proposed content and never touches the disk.
"""

from __future__ import annotations

import json
import re
from typing import List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from mcbridge.errors import InvalidParams


class LineEdit(BaseModel):
    """One line operation; line numbers are 1-based and ranges inclusive."""

    model_config = ConfigDict(extra="ignore")

    action: Literal["insert", "replace", "delete", "region"]
    line: Optional[int] = Field(default=None, ge=1)
    start: Optional[int] = Field(default=None, ge=1)
    end: Optional[int] = Field(default=None, ge=1)
    content: str = ""


class ReplaceSuggestion(BaseModel):
    type: Literal["replace"]
    content: str


class EditSuggestion(BaseModel):
    type: Literal["edit"]
    edits: List[LineEdit]


class CreateSuggestion(BaseModel):
    type: Literal["create"]
    content: str
    overwrite: bool = False


Suggestion = Union[ReplaceSuggestion, EditSuggestion, CreateSuggestion]

_SUGGESTION = TypeAdapter(Suggestion)
_TYPES = ("replace", "edit", "create")

_CODE_BLOCK_RE = re.compile(r"```(?:json|javascript)\s*\n([\s\S]*?)\n\s*```")
_ANY_CODE_BLOCK_RE = re.compile(r"```\s*\n([\s\S]*?)\n\s*```")
_REPLACE_LINES_RE = re.compile(
    r"(?i)(?:replace|change|modify)\s+lines?\s+(\d+)(?:\s*-\s*|\s+to\s+)(\d+)(?:\s+with)?:?\s*\n([\s\S]+)"
)
_INSERT_RE = re.compile(r"(?i)(?:insert|add)\s+(at|after|before)\s+lines?\s+(\d+):?\s*\n([\s\S]+)")
_DELETE_RE = re.compile(r"(?i)(?:delete|remove)\s+lines?\s+(\d+)(?:(?:\s*-\s*|\s+to\s+)(\d+))?")
_REPLACE_FILE_RE = re.compile(
    r"(?i)(?:replace the (?:file|content)|update the entire file)(?:\s+with|\s+to)?:?\s*\n([\s\S]+)"
)
_CREATE_FILE_RE = re.compile(r"(?i)(?:create a new file|make a file)(?:\s+with|\s+containing)?:?\s*\n([\s\S]+)")


# ── Parsing ───────────────────────────────────────────────────────────────


def _from_json(text: str) -> Optional[Suggestion]:
    try:
        value = json.loads(text)
    except (json.JSONDecodeError, ValueError):
        return None
    if not isinstance(value, dict) or value.get("type") not in _TYPES:
        return None
    try:
        return _SUGGESTION.validate_python(value)
    except ValidationError as exc:
        raise InvalidParams(
            "Malformed suggestion",
            data={"errors": exc.errors(include_url=False, include_context=False)},
        )


def _from_line_text(text: str) -> Optional[Suggestion]:
    match = _REPLACE_LINES_RE.search(text)
    if match:
        start, end, content = int(match.group(1)), int(match.group(2)), match.group(3).strip()
        return EditSuggestion(
            type="edit",
            edits=[LineEdit(action="region", start=start, end=end, content=content)],
        )

    match = _INSERT_RE.search(text)
    if match:
        where, line, content = match.group(1).lower(), int(match.group(2)), match.group(3).strip()
        if where == "after":
            line += 1
        return EditSuggestion(type="edit", edits=[LineEdit(action="insert", line=line, content=content)])

    match = _DELETE_RE.search(text)
    if match:
        start = int(match.group(1))
        end = int(match.group(2)) if match.group(2) else start
        if start != end:
            edit = LineEdit(action="region", start=start, end=end, content="")
        else:
            edit = LineEdit(action="delete", line=start)
        return EditSuggestion(type="edit", edits=[edit])

    return None


def _from_whole_file_text(text: str) -> Optional[Suggestion]:
    match = _REPLACE_FILE_RE.search(text)
    if match:
        return ReplaceSuggestion(type="replace", content=match.group(1).strip())
    match = _CREATE_FILE_RE.search(text)
    if match:
        return CreateSuggestion(type="create", content=match.group(1).strip())
    return None


def parse_suggestion(text: str) -> Suggestion:
    """
    Turn free-form suggestion text into a typed suggestion.

    Order of attempts: the whole text as JSON, a fenced JSON block, line
    instructions, whole-file instructions, and finally a full replacement
    with the text itself.

    Raises
    ------
    InvalidParams : JSON with a known ``type`` that does not validate, or a
        line instruction naming line 0
    """
    suggestion = _from_json(text)
    if suggestion is not None:
        return suggestion

    for pattern in (_CODE_BLOCK_RE, _ANY_CODE_BLOCK_RE):
        block = pattern.search(text)
        if block:
            suggestion = _from_json(block.group(1))
            if suggestion is not None:
                return suggestion

    try:
        suggestion = _from_line_text(text) or _from_whole_file_text(text)
    except ValidationError as exc:
        raise InvalidParams(
            "Malformed line instruction",
            data={"errors": exc.errors(include_url=False, include_context=False)},
        )
    if suggestion is not None:
        return suggestion

    return ReplaceSuggestion(type="replace", content=text)


# ── Applying ──────────────────────────────────────────────────────────────


def _out_of_range(what: str, value: int, total: int) -> InvalidParams:
    return InvalidParams(
        f"{what} {value} is out of range (file has {total} lines)",
        data={what: value, "line_count": total},
    )


def apply_line_edits(content: str, edits: List[LineEdit]) -> str:
    """Apply ``edits`` in order; the file's trailing newline is preserved."""
    lines = content.splitlines()
    trailing_newline = content.endswith("\n")

    for edit in edits:
        new_lines = edit.content.splitlines()
        total = len(lines)

        if edit.action in ("insert", "replace", "delete") and edit.line is None:
            raise InvalidParams(f"'{edit.action}' edit requires 'line'")

        if edit.action == "insert":
            if edit.line > total + 1:
                raise _out_of_range("line", edit.line, total)
            index = edit.line - 1
            lines[index:index] = new_lines
        elif edit.action == "replace":
            if edit.line > total:
                raise _out_of_range("line", edit.line, total)
            index = edit.line - 1
            lines[index:index + 1] = new_lines
        elif edit.action == "delete":
            if edit.line > total:
                raise _out_of_range("line", edit.line, total)
            del lines[edit.line - 1]
        else:
            if edit.start is None or edit.end is None:
                raise InvalidParams("'region' edit requires 'start' and 'end'")
            if edit.start > edit.end:
                raise InvalidParams(
                    f"Invalid range {edit.start}-{edit.end}",
                    data={"start": edit.start, "end": edit.end},
                )
            if edit.start > total:
                raise _out_of_range("start", edit.start, total)
            end = min(edit.end, total)
            lines[edit.start - 1:end] = new_lines

    result = "\n".join(lines)
    if lines and trailing_newline:
        result += "\n"
    return result


def apply_suggestion(current: Optional[str], suggestion: Suggestion) -> str:
    """
    Compute the content a suggestion would produce.

    Args:
        current: Present file content, or None if the file does not exist.
        suggestion: Parsed suggestion.

    Returns:
        Proposed new content.
    """
    if isinstance(suggestion, CreateSuggestion):
        if current is not None and not suggestion.overwrite:
            raise InvalidParams("File already exists; set overwrite to replace it")
        return suggestion.content

    if current is None:
        raise InvalidParams("File does not exist; use a 'create' suggestion")

    if isinstance(suggestion, ReplaceSuggestion):
        return suggestion.content
    return apply_line_edits(current, suggestion.edits)
