"""File search and file-reference helpers for ``#`` autocomplete."""

from __future__ import annotations

import fnmatch
import os
import posixpath
import re
from dataclasses import dataclass
from urllib.parse import quote, urlencode

IGNORED_DIRS = frozenset({"node_modules", ".git", "dist", "build", ".next", "coverage"})
IGNORED_FILE_PATTERNS = (
    "*.lock",
    "package-lock.json",
    "bun.lockb",
    ".ds_store",
    "thumbs.db",
)
DEFAULT_LIMIT = 100
# Entries visited per search before giving up on the walk
MAX_SCANNED_ENTRIES = 50_000

_LINE_RANGE_RE = re.compile(r"^(\d+)(?:-(\d*))?$")


@dataclass
class LineRange:
    start_line: int
    end_line: int | None = None

    def suffix(self) -> str:
        return f"#{self.start_line}" + (f"-{self.end_line}" if self.end_line else "")


@dataclass
class ParsedQuery:
    base_query: str
    line_range: LineRange | None = None


def extract_line_range(query: str) -> ParsedQuery:
    """Split ``"file.py#10-20"`` into the path query and its line range.

    An end line that is not after the start line is dropped; a ``#`` suffix
    that is not a line range is dropped entirely.
    """
    hash_index = query.rfind("#")
    if hash_index == -1:
        return ParsedQuery(base_query=query)

    base = query[:hash_index]
    m = _LINE_RANGE_RE.match(query[hash_index + 1 :])
    if not m:
        return ParsedQuery(base_query=base)

    start_line = int(m.group(1))
    end_text = m.group(2)
    end_line = int(end_text) if end_text and start_line < int(end_text) else None
    return ParsedQuery(base_query=base, line_range=LineRange(start_line, end_line))


def remove_line_range(query: str) -> str:
    hash_index = query.rfind("#")
    return query[:hash_index] if hash_index != -1 else query


def build_file_url(file_path: str, cwd: str, line_range: LineRange | None = None) -> str:
    """``file://`` URL for *file_path* under *cwd*, with ``start``/``end`` query."""
    full_path = posixpath.join(cwd.replace(os.sep, "/"), file_path)
    url = "file://" + quote(full_path)
    if line_range is not None:
        params = {"start": str(line_range.start_line)}
        if line_range.end_line is not None:
            params["end"] = str(line_range.end_line)
        url += "?" + urlencode(params)
    return url


def _is_ignored_file(name: str) -> bool:
    lower = name.lower()
    return any(fnmatch.fnmatchcase(lower, pattern) for pattern in IGNORED_FILE_PATTERNS)


def _sort_key(path: str) -> tuple[int, int, str]:
    is_dir = path.endswith("/")
    depth = len(path.rstrip("/").split("/"))
    return (0 if is_dir else 1, depth, path.lower())


def search_files(query: str, cwd: str | None = None, limit: int = DEFAULT_LIMIT) -> list[str]:
    """Find files and directories under *cwd* matching *query*.

    * empty query: top-level entries
    * query containing ``/``: paths starting with the query at that depth
      (``src/`` lists the ``src`` directory)
    * anything else: entries anywhere whose name contains the query

    Matching is case-insensitive, hidden entries and build/VCS directories are
    skipped. Directories carry a trailing ``/`` and sort first, then shallower
    paths, then alphabetically. Unreadable directories are skipped.
    """
    root = cwd or os.getcwd()
    clean = remove_line_range(query).strip().lower()

    if not clean:
        pattern, max_depth = "*", 1
    elif "/" in clean:
        pattern = f"{clean}*"
        max_depth = clean.count("/") + 1
    else:
        pattern, max_depth = f"*{clean}*", None

    matches: list[str] = []
    scanned = 0

    for dirpath, dirnames, filenames in os.walk(root, onerror=lambda _err: None):
        rel_dir = os.path.relpath(dirpath, root).replace(os.sep, "/")
        rel_dir = "" if rel_dir == "." else rel_dir
        depth = rel_dir.count("/") + 1 if rel_dir else 0

        dirnames[:] = sorted(
            d for d in dirnames if not d.startswith(".") and d not in IGNORED_DIRS
        )
        subdirs = list(dirnames)
        if max_depth is not None and depth + 1 >= max_depth:
            dirnames[:] = []

        entries = [(d, True) for d in subdirs] + [
            (f, False) for f in filenames if not f.startswith(".") and not _is_ignored_file(f)
        ]
        for name, is_dir in entries:
            scanned += 1
            rel = f"{rel_dir}/{name}" if rel_dir else name
            if max_depth is None:
                target = name.lower()
            else:
                if rel.count("/") + 1 != max_depth:
                    continue
                target = rel.lower()
            if fnmatch.fnmatchcase(target, pattern):
                matches.append(f"{rel}/" if is_dir else rel)

        if scanned >= MAX_SCANNED_ENTRIES:
            break

    matches.sort(key=_sort_key)
    return matches[:limit]
