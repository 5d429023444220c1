"""Glob-based file discovery for schema, source, migration and test corpora."""
import re
from pathlib import Path
from typing import Iterable, List

# Vendored code, build output and VCS metadata never belong to the corpus
EXCLUDED_DIRS = {
    'node_modules', '.git', '.hg',
    'dist', 'build', 'out', '.next', '.turbo', '.cache',
    'coverage', '.venv', 'venv', '__pycache__',
}

_BRACE = re.compile(r'\{([^{}]*)\}')


def expand_braces(pattern: str) -> List[str]:
    """Expand shell-style ``{a,b}`` alternatives, which pathlib.glob lacks.

    Args:
        pattern: Glob pattern such as ``src/**/*.{ts,tsx}``

    Returns:
        Equivalent list of brace-free patterns, in alternative order
    """
    match = _BRACE.search(pattern)
    if match is None:
        return [pattern]

    expanded = []
    head, tail = pattern[:match.start()], pattern[match.end():]
    for alternative in match.group(1).split(','):
        expanded.extend(expand_braces(head + alternative + tail))
    return expanded


def discover_files(project_root: Path, patterns: Iterable[str]) -> List[Path]:
    """Find all files under the root matching any pattern.

    Args:
        project_root: Directory the patterns are relative to
        patterns: Glob patterns (brace alternatives allowed)

    Returns:
        Sorted, de-duplicated list of absolute file paths
    """
    files = set()
    for pattern in patterns:
        for expanded in expand_braces(pattern):
            for path in project_root.glob(expanded):
                if not path.is_file():
                    continue
                relative_parts = path.relative_to(project_root).parts
                if any(part in EXCLUDED_DIRS for part in relative_parts):
                    continue
                files.add(path.resolve())
    return sorted(files)


def relative_name(project_root: Path, path: Path) -> str:
    """Render a path relative to the root with forward slashes."""
    try:
        return path.resolve().relative_to(project_root).as_posix()
    except ValueError:
        return path.as_posix()
