"""
Path globs in the style of editor file watchers.

Patterns and paths are compared one "/"-separated segment at a time:
"*", "?" and "[...]" never cross a separator, and a "**" segment matches
zero or more whole segments. Segments are compared with fnmatch, so case
sensitivity follows the host filesystem.
"""

from __future__ import annotations

import fnmatch

GLOBSTAR = "**"


def _match_segments(parts: list[str], pattern: list[str]) -> bool:
    if not pattern:
        return not parts
    head, rest = pattern[0], pattern[1:]
    if head == GLOBSTAR:
        return any(_match_segments(parts[i:], rest) for i in range(len(parts) + 1))
    if not parts:
        return False
    return fnmatch.fnmatch(parts[0], head) and _match_segments(parts[1:], rest)


def glob_match(posix_path: str, pattern: str) -> bool:
    """Match a POSIX-style path against a glob pattern."""
    return _match_segments(posix_path.split("/"), pattern.split("/"))
