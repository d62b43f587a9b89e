"""Append-then-compact JSONL files with best-effort persistence.

Each prompt store (history, stash, frecency) keeps its entries in memory and
mirrors them to a JSON-lines file: one record per line, newest at the end.
Normal updates append a single line; when a store trims entries it rewrites
the whole file. Disk trouble is logged and otherwise ignored, the in-memory
state stays authoritative.

Concurrent processes writing the same file are not coordinated: the last
compaction wins.
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Callable

logger = logging.getLogger(__name__)


def parse_jsonl(content: str) -> list[dict[str, Any]]:
    """Parse JSONL content, skipping blank, malformed and non-object lines."""
    records: list[dict[str, Any]] = []
    for line_no, line in enumerate(content.splitlines(), start=1):
        line = line.strip()
        if not line:
            continue
        try:
            record = json.loads(line)
        except json.JSONDecodeError:
            logger.debug("Skipping malformed JSONL line %d", line_no)
            continue
        if isinstance(record, dict):
            records.append(record)
    return records


def _dumps(record: dict[str, Any]) -> str | None:
    try:
        return json.dumps(record, ensure_ascii=False)
    except (TypeError, ValueError):
        logger.warning("Dropping unserializable record: %r", record, exc_info=True)
        return None


class JsonlFile:
    """A JSONL file with ordered, fire-and-forget writes.

    Inside a running event loop, writes run in a worker thread and are chained
    so they reach the disk in the order they were issued. Without a loop they
    run inline. :meth:`flush` waits for everything issued so far.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._tail: asyncio.Task[None] | None = None

    # -- Reading ---------------------------------------------------------------

    def read(self) -> list[dict[str, Any]]:
        try:
            content = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return []
        except (OSError, UnicodeDecodeError):
            logger.warning("Failed to read %s", self.path, exc_info=True)
            return []
        return parse_jsonl(content)

    async def load(self) -> list[dict[str, Any]]:
        return await asyncio.to_thread(self.read)

    # -- Writing ---------------------------------------------------------------

    def append(self, record: dict[str, Any]) -> None:
        """Append one record as a single line."""
        line = _dumps(record)
        if line is None:
            return
        self._schedule(lambda: self._append_line(line))

    def rewrite(self, records: list[dict[str, Any]]) -> None:
        """Replace the file contents with *records* (compaction)."""
        lines = [line for line in map(_dumps, records) if line is not None]
        self._schedule(lambda: self._write_lines(lines))

    async def flush(self) -> None:
        while self._tail is not None and not self._tail.done():
            await asyncio.wait([self._tail])

    def _append_line(self, line: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("a", encoding="utf-8") as f:
            f.write(line + "\n")

    def _write_lines(self, lines: list[str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        content = "".join(f"{line}\n" for line in lines)
        self.path.write_text(content, encoding="utf-8")

    def _run(self, write: Callable[[], None]) -> None:
        try:
            write()
        except OSError:
            logger.warning("Failed to persist %s", self.path, exc_info=True)

    def _schedule(self, write: Callable[[], None]) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._run(write)
            return

        previous = self._tail

        async def _chained() -> None:
            if previous is not None and not previous.done():
                await asyncio.wait([previous])
            await asyncio.to_thread(self._run, write)

        self._tail = loop.create_task(_chained())
