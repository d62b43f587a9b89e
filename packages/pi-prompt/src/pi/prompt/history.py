"""Persistent prompt history with Up/Down browsing."""

from __future__ import annotations

import copy
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable

from pi.prompt.parts import PromptInfo, PromptPart, part_to_dict, parts_from_list
from pi.prompt.storage import JsonlFile

HISTORY_FILENAME = "prompt-history.jsonl"
MAX_HISTORY_ENTRIES = 50


@dataclass
class HistoryEntry:
    input: str
    parts: list[PromptPart] = field(default_factory=list)
    mode: str = "normal"
    timestamp: int | None = None  # epoch milliseconds

    def to_prompt_info(self) -> PromptInfo:
        return PromptInfo(
            input=self.input,
            parts=copy.deepcopy(self.parts),
            mode="shell" if self.mode == "shell" else "normal",
        )

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "input": self.input,
            "parts": [part_to_dict(p) for p in self.parts],
        }
        if self.mode != "normal":
            d["mode"] = self.mode
        if self.timestamp is not None:
            d["timestamp"] = self.timestamp
        return d

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> HistoryEntry | None:
        if not isinstance(d.get("input"), str):
            return None
        timestamp = d.get("timestamp")
        return cls(
            input=d["input"],
            parts=parts_from_list(d.get("parts")),
            mode=d.get("mode") if d.get("mode") == "shell" else "normal",
            timestamp=int(timestamp) if isinstance(timestamp, (int, float)) else None,
        )


class PromptHistory:
    """Submitted prompts, oldest first, stored in ``prompt-history.jsonl``.

    Navigation uses a non-positive index: ``0`` is the live input, ``-1`` the
    most recent entry, ``-2`` the one before, and so on.
    """

    def __init__(
        self,
        config_dir: str | Path,
        *,
        max_entries: int = MAX_HISTORY_ENTRIES,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._file = JsonlFile(Path(config_dir) / HISTORY_FILENAME)
        self._max_entries = max_entries
        self._clock = clock
        self._items: list[HistoryEntry] = []
        self._index = 0
        self._loaded = False

    @property
    def loaded(self) -> bool:
        return self._loaded

    @property
    def index(self) -> int:
        return self._index

    @property
    def items(self) -> list[HistoryEntry]:
        return list(self._items)

    async def load(self) -> None:
        if self._loaded:
            return
        records = await self._file.load()
        entries = (HistoryEntry.from_dict(r) for r in records)
        self._items = [e for e in entries if e is not None][-self._max_entries :]
        self._loaded = True

    def append(
        self, input: str, parts: list[PromptPart] | None = None, mode: str = "normal"
    ) -> bool:
        """Record a submitted prompt.

        Blank input and exact repeats of the latest entry are skipped.
        Returns whether an entry was added.
        """
        if not input.strip():
            return False
        if self._items and self._items[-1].input == input:
            return False

        entry = HistoryEntry(
            input=input,
            parts=copy.deepcopy(parts or []),
            mode=mode,
            timestamp=int(self._clock() * 1000),
        )
        self._items.append(entry)
        self._index = 0

        if len(self._items) > self._max_entries:
            self._items = self._items[-self._max_entries :]
            self._file.rewrite([e.to_dict() for e in self._items])
        else:
            self._file.append(entry.to_dict())
        return True

    def move(self, direction: int, current_input: str) -> HistoryEntry | None:
        """Step through history: ``-1`` towards older entries, ``1`` newer.

        Returns ``None`` at either boundary, or when *current_input* was
        edited away from the entry being shown (the edit wins). Stepping back
        to the live input returns an empty entry.
        """
        if not self._items:
            return None

        current = self._items[self._index] if self._index < 0 else None
        if current is not None and current.input != current_input and current_input:
            return None

        next_index = self._index + direction
        if abs(next_index) > len(self._items) or next_index > 0:
            return None

        self._index = next_index
        if self._index == 0:
            return HistoryEntry(input="")
        return copy.deepcopy(self._items[self._index])

    def reset(self) -> None:
        self._index = 0

    async def flush(self) -> None:
        await self._file.flush()
