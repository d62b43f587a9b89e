"""Candidate providers for the three autocomplete triggers."""

from __future__ import annotations

import asyncio
import os
from typing import Callable

from pi.prompt.autocomplete import AutocompleteOption, Trigger
from pi.prompt.commands import CommandRegistry
from pi.prompt.file_search import (
    DEFAULT_LIMIT,
    build_file_url,
    extract_line_range,
    search_files,
)
from pi.prompt.frecency import FrecencyTracker
from pi.prompt.parts import AgentPart, FilePart, SourceText
from pi.prompt.text import truncate_middle
from pi.prompt.types import AgentDescriptor

DEFAULT_DISPLAY_WIDTH = 56


class PromptOptionProvider:
    """Files for ``#``, sub-agents for ``@``, slash commands for ``/``.

    File candidates are ordered by frecency before the session applies fuzzy
    ranking, so frecency breaks ties between equally good matches.
    """

    def __init__(
        self,
        *,
        cwd: str | None = None,
        frecency: FrecencyTracker | None = None,
        agents: Callable[[], list[AgentDescriptor]] | None = None,
        commands: CommandRegistry | None = None,
        search_limit: int = DEFAULT_LIMIT,
        display_width: int = DEFAULT_DISPLAY_WIDTH,
    ) -> None:
        self.cwd = cwd
        self._frecency = frecency
        self._agents = agents
        self._commands = commands
        self._search_limit = search_limit
        self.display_width = display_width

    async def options(self, trigger: Trigger, filter: str) -> list[AutocompleteOption]:
        if trigger == "#":
            return await self.file_options(filter)
        if trigger == "@":
            return self.agent_options()
        return self._commands.slashes() if self._commands else []

    async def file_options(self, filter: str) -> list[AutocompleteOption]:
        cwd = self.cwd or os.getcwd()
        parsed = extract_line_range(filter)
        files = await asyncio.to_thread(
            search_files, parsed.base_query, cwd, self._search_limit
        )
        if self._frecency is not None:
            files = self._frecency.rank(files, lambda f: f)

        options: list[AutocompleteOption] = []
        for file in files:
            is_dir = file.endswith("/")
            display_name = file
            if parsed.line_range is not None and not is_dir:
                display_name = f"{file}{parsed.line_range.suffix()}"

            part = FilePart(
                mime="text/plain",
                url=build_file_url(file, cwd, parsed.line_range),
                filename=display_name,
                path=file,
                source=SourceText(start=0, end=0, value=""),
            )
            options.append(
                AutocompleteOption(
                    display=truncate_middle(display_name, self.display_width),
                    value=display_name,
                    is_directory=is_dir,
                    path=file,
                    part=part,
                    on_select=self._recorder(file),
                )
            )
        return options

    def _recorder(self, file: str) -> Callable[[], None] | None:
        frecency = self._frecency
        if frecency is None:
            return None

        def _record() -> None:
            frecency.record_access(file)

        return _record

    def agent_options(self) -> list[AutocompleteOption]:
        agents = self._agents() if self._agents else []
        return [
            AutocompleteOption(
                display=agent.id,
                description=agent.description,
                part=AgentPart(id=agent.id, source=SourceText(start=0, end=0, value="")),
            )
            for agent in agents
        ]
