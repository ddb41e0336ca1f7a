from __future__ import annotations

import os
import re
from functools import lru_cache
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

INCLUDE_MARKER = "+:"
EXCLUDE_MARKER = "-:"


def strip_marker(pattern: str) -> str:
    if pattern.startswith(INCLUDE_MARKER) or pattern.startswith(EXCLUDE_MARKER):
        return pattern[2:]
    return pattern


def is_wildcard(path: str) -> bool:
    return "*" in path or "?" in path


def relative_path(base_dir: str | Path, file: str | Path) -> Optional[str]:
    """
    Path of file relative to base_dir with forward slashes, or None when the
    file does not live under base_dir.
    """
    base = os.path.abspath(base_dir)
    path = os.path.abspath(file)
    try:
        rel = os.path.relpath(path, base)
    except ValueError:
        # different drive
        return None
    if rel in (os.curdir, os.pardir) or rel.startswith(os.pardir + os.sep):
        return None
    return rel.replace(os.sep, "/")


@lru_cache(maxsize=512)
def _segment_regex(segment: str) -> re.Pattern:
    parts = []
    for ch in segment:
        if ch == "*":
            parts.append("[^/]*")
        elif ch == "?":
            parts.append("[^/]")
        else:
            parts.append(re.escape(ch))
    return re.compile("".join(parts) + r"\Z")


def _split_pattern(pattern: str) -> Tuple[str, ...]:
    pattern = pattern.replace("\\", "/")
    if pattern.endswith("/"):
        pattern += "**"
    segments = []
    for seg in pattern.split("/"):
        if not seg:
            continue
        # a/**/**/b is the same as a/**/b
        if seg == "**" and segments and segments[-1] == "**":
            continue
        segments.append(seg)
    return tuple(segments)


def _match_segments(pattern: Tuple[str, ...], parts: Tuple[str, ...]) -> bool:
    if not pattern:
        return not parts
    head = pattern[0]
    if head == "**":
        rest = pattern[1:]
        if not rest:
            return True
        return any(_match_segments(rest, parts[i:]) for i in range(len(parts) + 1))
    if not parts:
        return False
    return bool(_segment_regex(head).match(parts[0])) and _match_segments(pattern[1:], parts[1:])


def match_path(pattern: str, path: str) -> bool:
    """
    Ant-style match of a relative path against a pattern.

    `*` matches any characters except the separator, `?` exactly one
    character, `**` any number of directories. A trailing `/` means
    everything below that directory.
    """
    parts = tuple(p for p in path.replace("\\", "/").split("/") if p)
    return _match_segments(_split_pattern(pattern), parts)


def _expand_directory(base: Path, pattern: str) -> str:
    # a plain directory name stands for everything below it
    if not is_wildcard(pattern) and not pattern.endswith("/") and (base / pattern).is_dir():
        return pattern + "/"
    return pattern


def scan_dir(base_dir: str | Path, rules: Iterable[str]) -> List[Path]:
    """
    Collect files under base_dir matching the given include/exclude rules.

    Rules prefixed with ``-:`` exclude, all other rules (optionally prefixed
    with ``+:``) include. When there are no include rules every file is
    included. Symlinked directories are not followed.

    Returns:
        Matching files sorted by their relative path
    """
    base = Path(os.path.abspath(base_dir))
    includes = []
    excludes = []
    for rule in rules:
        if rule.startswith(EXCLUDE_MARKER):
            excludes.append(_expand_directory(base, rule[2:]))
        else:
            includes.append(_expand_directory(base, strip_marker(rule)))
    if not includes:
        includes = ["**"]

    found = []
    if not base.is_dir():
        return found

    for dirpath, dirnames, filenames in os.walk(base, followlinks=False):
        dirnames.sort()
        for filename in sorted(filenames):
            path = Path(dirpath) / filename
            rel = relative_path(base, path)
            if rel is None:
                continue
            if not any(match_path(p, rel) for p in includes):
                continue
            if any(match_path(p, rel) for p in excludes):
                continue
            found.append((rel, path))

    found.sort(key=lambda item: item[0])
    return [path for _, path in found]
