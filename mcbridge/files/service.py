"""Filesystem editor primitives used by the tool handlers.

Paths reaching this module are already canonical and contained; the
service only deals with reading, searching and writing them.
"""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from mcbridge.errors import InvalidParams
from mcbridge.files.analyzer import walk_files
from mcbridge.files.atomic import atomic_write_text

logger = logging.getLogger(__name__)


def _compile(pattern: str, what: str) -> "re.Pattern[str]":
    try:
        return re.compile(pattern)
    except re.error as exc:
        raise InvalidParams(f"Invalid {what} pattern: {exc}", data={"pattern": pattern})


class FileService:
    """
    Read, search and write files under one project root.

    Example:
        >>> files = FileService(Path("/project"), exclude_patterns=[".git"])
        >>> files.read_text(Path("/project/main.tf"))
        'resource "null_resource" "a" {}\\n'
    """

    def __init__(
        self,
        root: Path,
        exclude_patterns: Sequence[str] = (),
        max_read_bytes: int = 2_000_000,
    ):
        self.root = root
        self.exclude_patterns = list(exclude_patterns)
        self.max_read_bytes = max_read_bytes

    # ── Reading ───────────────────────────────────────────────────────────

    def read_text(self, path: Path) -> str:
        """
        Return a file's text.

        Raises:
            InvalidParams: Missing, not a regular file, larger than
                ``max_read_bytes``, or not UTF-8.
        """
        if not path.exists():
            raise InvalidParams(f"File not found: {self._rel(path)}", data={"path": self._rel(path)})
        if not path.is_file():
            raise InvalidParams(f"Not a regular file: {self._rel(path)}", data={"path": self._rel(path)})

        size = path.stat().st_size
        if size > self.max_read_bytes:
            raise InvalidParams(
                f"File too large to read: {self._rel(path)} ({size} bytes)",
                data={"path": self._rel(path), "size": size, "limit": self.max_read_bytes},
            )
        try:
            return path.read_bytes().decode("utf-8")
        except UnicodeDecodeError:
            raise InvalidParams(f"File is not UTF-8 text: {self._rel(path)}", data={"path": self._rel(path)})

    def read_optional(self, path: Path) -> Optional[str]:
        """Like read_text, but None for a path that does not exist."""
        if not path.exists():
            return None
        return self.read_text(path)

    def list_files(self, pattern: Optional[str] = None) -> List[str]:
        regex = _compile(pattern, "file") if pattern else None
        results = []
        for path in walk_files(self.root, self.exclude_patterns):
            rel = self._rel(path)
            if regex is None or regex.search(rel):
                results.append(rel)
        return results

    def search(self, query: str) -> List[Dict[str, Any]]:
        """Regex search, line by line; binary and oversized files are skipped."""
        regex = _compile(query, "search")
        results = []
        for path in walk_files(self.root, self.exclude_patterns):
            if path.stat().st_size > self.max_read_bytes:
                continue
            try:
                content = path.read_bytes().decode("utf-8")
            except (OSError, UnicodeDecodeError):
                continue

            matches = [
                {"line_number": number, "line": line}
                for number, line in enumerate(content.splitlines(), start=1)
                if regex.search(line)
            ]
            if matches:
                results.append({"file": self._rel(path), "matches": matches})
        logger.debug("search %r matched %d file(s)", query, len(results))
        return results

    # ── Writing ───────────────────────────────────────────────────────────

    def write_text(self, path: Path, content: str) -> None:
        atomic_write_text(path, content)
        logger.info("wrote %s (%d chars)", self._rel(path), len(content))

    def delete(self, path: Path) -> None:
        if not path.is_file():
            raise InvalidParams(f"File not found: {self._rel(path)}", data={"path": self._rel(path)})
        path.unlink()
        logger.info("deleted %s", self._rel(path))

    def rename(self, source: Path, target: Path) -> None:
        if not source.is_file():
            raise InvalidParams(f"File not found: {self._rel(source)}", data={"path": self._rel(source)})
        if target.exists():
            raise InvalidParams(f"Target already exists: {self._rel(target)}", data={"path": self._rel(target)})
        target.parent.mkdir(parents=True, exist_ok=True)
        os.replace(source, target)
        logger.info("renamed %s -> %s", self._rel(source), self._rel(target))

    def _rel(self, path: Path) -> str:
        try:
            return path.relative_to(self.root).as_posix()
        except ValueError:
            return str(path)
