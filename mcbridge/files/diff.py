"""Unified diffs between the prior and proposed content of a file."""

from __future__ import annotations

import difflib
from typing import Dict

NO_NEWLINE_MARKER = "\\ No newline at end of file\n"


def unified_diff(
    original: str,
    modified: str,
    fromfile: str = "original",
    tofile: str = "modified",
    context: int = 3,
) -> str:
    """
    Return a unified diff, or ``""`` when the two texts are identical.

    A last line without a newline gets the usual
    ``\\ No newline at end of file`` marker, so a change that only adds or
    drops the final newline still shows up.
    """
    if original == modified:
        return ""

    out = []
    for line in difflib.unified_diff(
        original.splitlines(keepends=True),
        modified.splitlines(keepends=True),
        fromfile=fromfile,
        tofile=tofile,
        n=context,
    ):
        if line.endswith("\n"):
            out.append(line)
        else:
            out.append(line + "\n")
            out.append(NO_NEWLINE_MARKER)
    return "".join(out)


def diff_stats(diff: str) -> Dict[str, int]:
    """Count added and removed lines of a unified diff."""
    additions = deletions = 0
    in_hunk = False
    for line in diff.splitlines():
        if line.startswith("@@"):
            in_hunk = True
            continue
        # The ---/+++ file headers come before the first hunk.
        if not in_hunk:
            continue
        if line.startswith("+"):
            additions += 1
        elif line.startswith("-"):
            deletions += 1
    return {"additions": additions, "deletions": deletions}
