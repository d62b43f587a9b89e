"""Frecency tracking for file suggestions.

Combines how often a file was picked with how recently, so files the user
keeps referencing float to the top of ``#`` autocomplete.
"""

from __future__ import annotations

import os
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, TypeVar

from pi.prompt.storage import JsonlFile

T = TypeVar("T")

FRECENCY_FILENAME = "frecency.jsonl"
MAX_FRECENCY_ENTRIES = 1000
MS_PER_DAY = 86_400_000


@dataclass
class FrecencyEntry:
    path: str
    frequency: int
    last_open: int  # epoch milliseconds

    def to_dict(self) -> dict[str, Any]:
        return {"path": self.path, "frequency": self.frequency, "lastOpen": self.last_open}

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> FrecencyEntry | None:
        path = d.get("path")
        frequency = d.get("frequency")
        last_open = d.get("lastOpen")
        if not isinstance(path, str) or not isinstance(frequency, int):
            return None
        if not isinstance(last_open, (int, float)):
            return None
        return cls(path=path, frequency=frequency, last_open=int(last_open))


def frecency_score(entry: FrecencyEntry | None, now_ms: int) -> float:
    """``frequency / (1 + days since last access)``; unknown paths score 0."""
    if entry is None:
        return 0.0
    days_since = max(now_ms - entry.last_open, 0) / MS_PER_DAY
    return entry.frequency / (1 + days_since)


def _now_ms() -> int:
    return int(time.time() * 1000)


class FrecencyTracker:
    """Frecency scores for absolute file paths, persisted to ``frecency.jsonl``."""

    def __init__(
        self,
        config_dir: str | Path,
        *,
        max_entries: int = MAX_FRECENCY_ENTRIES,
        cwd: str | None = None,
        clock: Callable[[], int] = _now_ms,
    ) -> None:
        self._file = JsonlFile(Path(config_dir) / FRECENCY_FILENAME)
        self._max_entries = max_entries
        self._cwd = cwd
        self._clock = clock
        self._data: dict[str, FrecencyEntry] = {}
        self._loaded = False

    @property
    def loaded(self) -> bool:
        return self._loaded

    @property
    def file(self) -> JsonlFile:
        return self._file

    def _resolve(self, file_path: str) -> str:
        return os.path.abspath(os.path.join(self._cwd or os.getcwd(), file_path))

    async def load(self) -> None:
        """Load the log once: last record per path wins, newest paths kept."""
        if self._loaded:
            return
        latest: dict[str, FrecencyEntry] = {}
        for record in await self._file.load():
            entry = FrecencyEntry.from_dict(record)
            if entry is not None:
                latest[entry.path] = entry
        self._data = self._most_recent(latest.values())
        self._loaded = True

    def _most_recent(self, entries: Any) -> dict[str, FrecencyEntry]:
        ordered = sorted(entries, key=lambda e: e.last_open, reverse=True)
        return {e.path: e for e in ordered[: self._max_entries]}

    def score(self, file_path: str) -> float:
        return frecency_score(self._data.get(self._resolve(file_path)), self._clock())

    def record_access(self, file_path: str) -> FrecencyEntry:
        """Count a pick of *file_path* and persist it."""
        absolute = self._resolve(file_path)
        existing = self._data.get(absolute)
        entry = FrecencyEntry(
            path=absolute,
            frequency=(existing.frequency if existing else 0) + 1,
            last_open=self._clock(),
        )
        self._data.pop(absolute, None)
        self._data[absolute] = entry

        if len(self._data) > self._max_entries:
            self._data = self._most_recent(self._data.values())
            self._file.rewrite([e.to_dict() for e in self._data.values()])
        else:
            self._file.append(entry.to_dict())
        return entry

    def rank(self, items: list[T], get_path: Callable[[T], str]) -> list[T]:
        """Sort *items* by descending score; equal scores keep their order."""
        now = self._clock()
        scores = [
            frecency_score(self._data.get(self._resolve(get_path(item))), now)
            for item in items
        ]
        order = sorted(range(len(items)), key=lambda i: -scores[i])
        return [items[i] for i in order]

    def entries(self) -> dict[str, FrecencyEntry]:
        return dict(self._data)

    async def flush(self) -> None:
        await self._file.flush()
