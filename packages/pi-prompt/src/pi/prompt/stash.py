"""Stash for temporarily saving and restoring prompt drafts."""

from __future__ import annotations

import copy
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable

from pi.prompt.parts import PromptInfo, PromptPart, part_to_dict, parts_from_list
from pi.prompt.storage import JsonlFile

STASH_FILENAME = "prompt-stash.jsonl"
MAX_STASH_ENTRIES = 50


@dataclass
class StashEntry:
    input: str
    timestamp: int  # epoch milliseconds
    parts: list[PromptPart] = field(default_factory=list)

    def to_prompt_info(self) -> PromptInfo:
        return PromptInfo(input=self.input, parts=copy.deepcopy(self.parts))

    def to_dict(self) -> dict[str, Any]:
        return {
            "input": self.input,
            "parts": [part_to_dict(p) for p in self.parts],
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> StashEntry | None:
        if not isinstance(d.get("input"), str):
            return None
        timestamp = d.get("timestamp")
        return cls(
            input=d["input"],
            parts=parts_from_list(d.get("parts")),
            timestamp=int(timestamp) if isinstance(timestamp, (int, float)) else 0,
        )


class PromptStash:
    """Saved drafts, newest last, stored in ``prompt-stash.jsonl``."""

    def __init__(
        self,
        config_dir: str | Path,
        *,
        max_entries: int = MAX_STASH_ENTRIES,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._file = JsonlFile(Path(config_dir) / STASH_FILENAME)
        self._max_entries = max_entries
        self._clock = clock
        self._entries: list[StashEntry] = []
        self._loaded = False

    @property
    def loaded(self) -> bool:
        return self._loaded

    async def load(self) -> None:
        if self._loaded:
            return
        records = await self._file.load()
        entries = (StashEntry.from_dict(r) for r in records)
        self._entries = [e for e in entries if e is not None][-self._max_entries :]
        self._loaded = True

    def list(self) -> list[StashEntry]:
        return list(self._entries)

    def count(self) -> int:
        return len(self._entries)

    def has_entries(self) -> bool:
        return bool(self._entries)

    def push(self, input: str, parts: list[PromptPart] | None = None) -> bool:
        """Stash a draft; blank drafts are rejected."""
        if not input.strip():
            return False

        entry = StashEntry(
            input=input,
            parts=copy.deepcopy(parts or []),
            timestamp=int(self._clock() * 1000),
        )
        self._entries.append(entry)

        if len(self._entries) > self._max_entries:
            self._entries = self._entries[-self._max_entries :]
            self._save_all()
        else:
            self._file.append(entry.to_dict())
        return True

    def pop(self) -> StashEntry | None:
        """Remove and return the most recently stashed draft."""
        if not self._entries:
            return None
        entry = self._entries.pop()
        self._save_all()
        return entry

    def remove(self, index: int) -> bool:
        if index < 0 or index >= len(self._entries):
            return False
        del self._entries[index]
        self._save_all()
        return True

    def clear(self) -> None:
        self._entries = []
        self._save_all()

    def _save_all(self) -> None:
        self._file.rewrite([e.to_dict() for e in self._entries])

    async def flush(self) -> None:
        await self._file.flush()
