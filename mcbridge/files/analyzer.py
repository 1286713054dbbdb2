"""
Project analysis: file walking, language statistics and project-type detection.

The walk skips hidden entries and anything whose name matches one of the
configured exclude patterns (fnmatch syntax, matched per path component).
"""

from __future__ import annotations

import fnmatch
import os
from collections import Counter
from pathlib import Path
from typing import Any, Dict, Iterator, List, Sequence

_LANGUAGES = {
    "rs": "Rust",
    "go": "Go",
    "js": "JavaScript",
    "ts": "TypeScript",
    "py": "Python",
    "java": "Java",
    "c": "C",
    "cpp": "C++",
    "h": "C/C++ Header",
    "hpp": "C++ Header",
    "cs": "C#",
    "rb": "Ruby",
    "php": "PHP",
    "html": "HTML",
    "css": "CSS",
    "json": "JSON",
    "md": "Markdown",
    "yml": "YAML",
    "yaml": "YAML",
    "toml": "TOML",
    "xml": "XML",
    "txt": "Text",
    "sh": "Shell",
    "bat": "Batch",
    "ps1": "PowerShell",
    "tf": "Terraform",
    "tfvars": "Terraform",
    "hcl": "HCL",
    "sql": "SQL",
}

TEXT_EXTENSIONS = frozenset(_LANGUAGES)

_KEY_FILES = (
    ".git/config",
    ".gitignore",
    ".gitmodules",
    "package.json",
    "Cargo.toml",
    "go.mod",
    "requirements.txt",
    "pyproject.toml",
    "setup.py",
    "pom.xml",
    "build.gradle",
    ".env.example",
    "docker-compose.yml",
    "Dockerfile",
    "Makefile",
    "CMakeLists.txt",
    "main.tf",
    "variables.tf",
    "README.md",
    "LICENSE",
    "CONTRIBUTING.md",
    "CHANGELOG.md",
    ".github/workflows",
    ".travis.yml",
    "Jenkinsfile",
    "azure-pipelines.yml",
)

_PROJECT_MARKERS = (
    ("Node.js", ("package.json",)),
    ("Rust", ("Cargo.toml",)),
    ("Go", ("go.mod",)),
    ("Python", ("requirements.txt", "setup.py", "pyproject.toml")),
    ("Java", ("pom.xml", "build.gradle")),
    ("C/C++", ("CMakeLists.txt", "Makefile")),
    ("Docker", ("Dockerfile", "docker-compose.yml")),
    ("Terraform", ("main.tf",)),
)

# Fallback when no marker file is present, in priority order.
_EXTENSION_FALLBACK = (
    ("rs", "Rust"),
    ("py", "Python"),
    ("js", "JavaScript"),
    ("ts", "TypeScript"),
    ("go", "Go"),
    ("java", "Java"),
    ("html", "Web"),
    ("tf", "Terraform"),
)


def is_excluded(name: str, exclude_patterns: Sequence[str]) -> bool:
    if name.startswith("."):
        return True
    return any(fnmatch.fnmatch(name, pattern) for pattern in exclude_patterns)


def walk_files(root: Path, exclude_patterns: Sequence[str] = ()) -> Iterator[Path]:
    """Yield regular files under ``root`` in a stable order."""
    for dirpath, dirnames, filenames in os.walk(root):
        # Prune in place so excluded trees are never entered
        dirnames[:] = sorted(d for d in dirnames if not is_excluded(d, exclude_patterns))
        for name in sorted(filenames):
            if is_excluded(name, exclude_patterns):
                continue
            path = Path(dirpath) / name
            if path.is_file():
                yield path


def _extension(path: Path) -> str:
    return path.suffix[1:].lower()


def detect_key_files(root: Path) -> List[str]:
    return [name for name in _KEY_FILES if (root / name).exists()]


def detect_project_type(key_files: Sequence[str], extension_counts: Counter) -> str:
    detected = [
        project_type
        for project_type, markers in _PROJECT_MARKERS
        if any(marker in key_files for marker in markers)
    ]
    if not detected:
        for ext, project_type in _EXTENSION_FALLBACK:
            if extension_counts.get(ext):
                detected.append(project_type)
                break
    return ", ".join(detected) if detected else "Unknown"


def analyze_project(root: Path, exclude_patterns: Sequence[str] = ()) -> Dict[str, Any]:
    """
    Summarize the project under ``root``.

    Returns:
        Dict with ``project_directory``, ``project_type``, ``stats``
        (file count, directory count, total bytes), ``languages`` (per
        extension, most frequent first) and ``key_files``.
    """
    extension_counts: Counter = Counter()
    total_files = 0
    total_size = 0
    directories = set()

    for path in walk_files(root, exclude_patterns):
        total_files += 1
        total_size += path.stat().st_size
        directories.add(path.parent)
        ext = _extension(path)
        if ext:
            extension_counts[ext] += 1

    languages = [
        {"extension": ext, "language": _LANGUAGES.get(ext, "Unknown"), "count": count}
        for ext, count in extension_counts.most_common()
    ]
    key_files = detect_key_files(root)

    return {
        "project_directory": str(root),
        "project_type": detect_project_type(key_files, extension_counts),
        "stats": {
            "total_files": total_files,
            "total_directories": len(directories),
            "total_size_bytes": total_size,
        },
        "languages": languages,
        "key_files": key_files,
    }
