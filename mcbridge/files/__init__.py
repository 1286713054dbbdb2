"""Built-in filesystem editor: reads, searches, suggested edits, diffs and atomic writes."""

from mcbridge.files.analyzer import analyze_project, walk_files
from mcbridge.files.atomic import atomic_write_bytes, atomic_write_text
from mcbridge.files.diff import diff_stats, unified_diff
from mcbridge.files.service import FileService
from mcbridge.files.suggestions import apply_suggestion, parse_suggestion

__all__ = [
    "FileService",
    "analyze_project",
    "apply_suggestion",
    "atomic_write_bytes",
    "atomic_write_text",
    "diff_stats",
    "parse_suggestion",
    "unified_diff",
    "walk_files",
]
