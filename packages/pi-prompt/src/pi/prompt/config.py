"""Prompt settings and config-directory resolution.

Settings live in ``settings.json`` inside the config directory, with camelCase
keys. Unknown keys are ignored; a missing or unreadable file yields defaults.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_APP_ID = "pi-prompt"
SETTINGS_FILENAME = "settings.json"


@dataclass
class PromptSettings:
    """Tunables for the prompt engine."""

    max_history_entries: int = 50
    max_stash_entries: int = 50
    max_frecency_entries: int = 1000
    max_queue_size: int = 10
    max_visible_options: int = 10
    file_search_limit: int = 100
    # Pastes with at least this many lines, or longer than paste_max_chars,
    # become a "[Pasted ~N lines]" badge
    paste_min_lines: int = 3
    paste_max_chars: int = 150
    interrupt_window_s: float = 5.0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PromptSettings:
        defaults = cls()
        values: dict[str, Any] = {}
        for f in fields(cls):
            value = data.get(_camel(f.name))
            default = getattr(defaults, f.name)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                continue
            if value <= 0:
                continue
            values[f.name] = type(default)(value)
        return cls(**values)

    def to_dict(self) -> dict[str, Any]:
        return {_camel(f.name): getattr(self, f.name) for f in fields(self)}


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(word.capitalize() for word in rest)


def get_config_dir(app_id: str = DEFAULT_APP_ID) -> str:
    """``$XDG_CONFIG_HOME/<app_id>``, defaulting to ``~/.config/<app_id>``."""
    base = os.environ.get("XDG_CONFIG_HOME") or os.path.join(
        os.path.expanduser("~"), ".config"
    )
    return os.path.join(base, app_id)


def _load_from_file(path: Path) -> tuple[dict[str, Any], Exception | None]:
    """Load a JSON object from *path*. Returns (data, error)."""
    if not path.exists():
        return {}, None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        return {}, e
    if not isinstance(data, dict):
        return {}, ValueError(f"{path} does not contain a JSON object")
    return data, None


def load_settings(config_dir: str | Path) -> PromptSettings:
    path = Path(config_dir) / SETTINGS_FILENAME
    data, error = _load_from_file(path)
    if error is not None:
        logger.warning("Ignoring unreadable settings file %s: %s", path, error)
    return PromptSettings.from_dict(data)
