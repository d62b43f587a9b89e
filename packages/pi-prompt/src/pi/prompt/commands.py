"""Command registry backing ``/`` autocomplete and slash-command submission.

Commands are registered in batches (or as a callable producing a fresh batch
on every lookup) and unregistered with the callable :meth:`CommandRegistry.register`
returns.
"""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Literal, Union

from pi.prompt.autocomplete import AutocompleteOption

logger = logging.getLogger(__name__)

CommandCategory = Literal["Session", "Navigation", "View", "Edit", "Help", "Agent"]

CommandHandler = Callable[[], Union[Awaitable[Any], Any]]


@dataclass
class SlashName:
    name: str
    aliases: list[str] = field(default_factory=list)

    def matches(self, name: str) -> bool:
        lowered = name.lower()
        return self.name.lower() == lowered or any(a.lower() == lowered for a in self.aliases)


@dataclass
class Command:
    """A user-invocable action, optionally reachable as ``/name``."""

    id: str
    title: str
    on_select: CommandHandler
    category: CommandCategory = "Session"
    description: str | None = None
    keybind: str | None = None
    slash: SlashName | None = None
    when: Callable[[], bool] | None = None
    hidden: bool = False

    def available(self) -> bool:
        return self.when is None or self.when()


CommandSource = Callable[[], list[Command]]


class CommandRegistry:
    def __init__(self) -> None:
        self._commands: dict[str, Command] = {}
        self._sources: list[CommandSource] = []
        self._suspend_count = 0

    # -- Registration ---------------------------------------------------------

    def register(self, commands: list[Command] | CommandSource) -> Callable[[], None]:
        """Add *commands*; call the returned function to remove them again."""
        if callable(commands):
            source = commands
            self._sources.append(source)

            def _unregister_source() -> None:
                if source in self._sources:
                    self._sources.remove(source)

            return _unregister_source

        batch = list(commands)
        for cmd in batch:
            self._commands[cmd.id] = cmd

        def _unregister() -> None:
            for cmd in batch:
                if self._commands.get(cmd.id) is cmd:
                    del self._commands[cmd.id]

        return _unregister

    def all(self) -> list[Command]:
        dynamic = [cmd for source in self._sources for cmd in source()]
        return list(self._commands.values()) + dynamic

    # -- Lookup ---------------------------------------------------------------

    def get_by_id(self, command_id: str) -> Command | None:
        cmd = self._commands.get(command_id)
        if cmd is not None:
            return cmd
        return next((c for c in self.all() if c.id == command_id), None)

    def get_by_slash(self, name: str) -> Command | None:
        """Find a command by slash name or alias, ignoring case."""
        return next((c for c in self.all() if c.slash and c.slash.matches(name)), None)

    def commands(
        self, *, category: CommandCategory | None = None, search: str | None = None
    ) -> list[Command]:
        """Visible, currently available commands, optionally filtered.

        *search* is a case-insensitive substring test over the title,
        description, slash name and aliases.
        """
        result = [c for c in self.all() if not c.hidden and c.available()]
        if category is not None:
            result = [c for c in result if c.category == category]
        if search:
            needle = search.lower()
            result = [c for c in result if needle in _haystack(c)]
        return result

    def search(self, text: str) -> list[Command]:
        return self.commands(search=text)

    def slashes(self) -> list[AutocompleteOption]:
        """Autocomplete options for every available slash command."""
        options: list[AutocompleteOption] = []
        for cmd in self.all():
            if cmd.slash is None or not cmd.available():
                continue
            options.append(
                AutocompleteOption(
                    display=f"/{cmd.slash.name}",
                    description=cmd.description or cmd.title,
                    aliases=[f"/{a}" for a in cmd.slash.aliases],
                    on_select=_bind_execute(self, cmd.id),
                )
            )
        return options

    # -- Execution ------------------------------------------------------------

    async def execute(self, command_id: str) -> bool:
        """Run a command's handler; returns ``False`` for unknown IDs."""
        cmd = self.get_by_id(command_id)
        if cmd is None:
            logger.debug("Unknown command %s", command_id)
            return False
        result = cmd.on_select()
        if inspect.isawaitable(result):
            await result
        return True

    # -- Keybind suspension ---------------------------------------------------

    def keybinds(self, enabled: bool) -> None:
        """Suspend (``False``) or resume (``True``) global keybinds; nests."""
        self._suspend_count += -1 if enabled else 1
        self._suspend_count = max(self._suspend_count, 0)

    @property
    def suspended(self) -> bool:
        return self._suspend_count > 0


def _haystack(cmd: Command) -> str:
    fields = [cmd.title, cmd.description or ""]
    if cmd.slash is not None:
        fields.append(cmd.slash.name)
        fields.extend(cmd.slash.aliases)
    return "\n".join(fields).lower()


def _bind_execute(registry: CommandRegistry, command_id: str) -> Callable[[], Awaitable[bool]]:
    async def _run() -> bool:
        return await registry.execute(command_id)

    return _run
