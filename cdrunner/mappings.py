"""
Revision path rules: parsing of the rule text and mapping of source files to
their location inside the application revision archive.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Dict, List, Optional

from .antpath import is_wildcard, match_path, relative_path, scan_dir, strip_marker
from .constants import MULTILINE_SPLIT_REGEX, PATH_SPLIT_REGEX

BUNDLE_TYPES = (
    (".zip", "zip"),
    (".tar.gz", "tgz"),
    (".tgz", "tgz"),
    (".tar", "tar"),
)


def _split(pattern: str, text: str) -> List[str]:
    # trailing empty items are dropped, an unsplit text is kept as is
    parts = re.split(pattern, text)
    if len(parts) == 1:
        return parts
    while parts and not parts[-1]:
        parts.pop()
    return parts


def _items(revision_paths: str) -> List[str]:
    # blank lines and CRLF breaks leave empty items, they are not rules
    items = _split(MULTILINE_SPLIT_REGEX, revision_paths.strip())
    if len(items) == 1:
        return items
    return [item for item in items if item.strip()]


def get_bundle_type(revision: str) -> Optional[str]:
    """
    Derive the CodeDeploy bundle type from an archive name.

    Args:
        revision: Archive file name or S3 object key

    Returns:
        "zip", "tar" or "tgz", or None for an unsupported extension
    """
    for suffix, bundle_type in BUNDLE_TYPES:
        if revision.endswith(suffix):
            return bundle_type
    return None


def get_ready_revision(revision_paths: str) -> Optional[str]:
    """
    Return the single pre-built archive named by the rule text, if any.

    The text names a ready revision when it holds exactly one item without
    wildcards whose extension is a supported bundle type.
    """
    items = _items(revision_paths)
    if len(items) != 1:
        return None
    revision_path = items[0]
    if is_wildcard(revision_path) or get_bundle_type(revision_path) is None:
        return None
    return revision_path


def _normalize_relative(path: str) -> str:
    segments: List[str] = []
    for seg in path.split("/"):
        if seg in ("", "."):
            continue
        if seg == ".." and segments and segments[-1] != "..":
            segments.pop()
            continue
        segments.append(seg)
    return "/".join(segments)


def _normalize(path: str, is_source: bool) -> str:
    path = path.replace("\\", "/")
    if path.startswith("/"):
        path = path[1:]
    suffix = "/" if is_source and path.endswith("/") else ""
    path = _normalize_relative(path)
    if not path and is_source:
        return "**"
    return path + suffix if path else path


def parse_revision_paths(revision_paths: str) -> Dict[str, str]:
    """
    Parse revision path rules into an ordered source -> destination mapping.

    Items are separated by commas or newlines, each item is ``SOURCE`` or
    ``SOURCE => DEST``. Destination ``.`` or empty means the archive root.
    Empty items between separators are skipped.

    Args:
        revision_paths: Raw rule text

    Returns:
        Ordered mapping, empty when the text names a ready revision
    """
    if get_ready_revision(revision_paths) is not None:
        return {}

    mappings: Dict[str, str] = {}
    for item in _items(revision_paths):
        parts = _split(PATH_SPLIT_REGEX, item)
        if not parts:
            continue
        mappings[_normalize(parts[0], True)] = "" if len(parts) == 1 else _normalize(parts[1], False)
    return mappings


def remove_wildcards(pattern: str) -> str:
    """
    Return the literal tail of a wildcard pattern used to strip matched paths.

    Finds the last wildcard and the next ``/`` after it; when there is none (or
    it is the final character) walks back to the previous ``/`` and retries on
    the shorter pattern. Empty when no slash precedes the first wildcard.
    """
    last_mark = max(pattern.rfind("*"), pattern.rfind("?"))
    if last_mark < 0:
        return pattern

    slash = pattern.find("/", last_mark)
    if slash < 0 or len(pattern) - slash < 2:
        slash = pattern.rfind("/", 0, last_mark + 1)
        return remove_wildcards(pattern[:slash + 1]) if slash > 0 else ""
    return pattern[slash:]


def _do_map(path: str, dest: str) -> str:
    return (dest + "/" if dest else "") + path


class PathMappings:
    """Maps files under a base directory to archive paths using ordered rules."""

    def __init__(self, base_dir: str | Path, mappings: Dict[str, str]):
        self.base_dir = Path(base_dir)
        self.mappings = dict(mappings)

    def collect_files(self) -> List[Path]:
        return scan_dir(self.base_dir, self.mappings.keys())

    def map_path(self, file: str | Path) -> Optional[str]:
        """
        Compute the archive path of a file.

        Rules are scanned in declared order. A rule equal to the relative path
        wins immediately. Prefix and wildcard matches only replace the current
        candidate, so the last of them decides. Without any match the relative
        path is kept.

        Args:
            file: File under the base directory

        Returns:
            Archive path, or None when the file is outside the base directory
        """
        relative = relative_path(self.base_dir, file)
        if relative is None:
            return None

        result = None
        for rule, dest in self.mappings.items():
            source = strip_marker(rule)
            if relative == source:
                return _do_map(Path(file).name, dest)

            if relative.startswith(source):
                result = _do_map(relative[len(source):], dest)
                continue

            if is_wildcard(source) and match_path(source, relative):
                literal = remove_wildcards(source)
                if literal:
                    suffix = relative[relative.rfind(literal) + len(literal):]
                else:
                    suffix = relative
                result = _do_map(suffix, dest)

        return relative if result is None else result
