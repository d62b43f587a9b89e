"""Trigger-driven autocomplete for ``#`` files, ``@`` agents and ``/`` commands.

The session watches every buffer change. Typing a trigger character at the
start of the buffer or after whitespace opens it; the text between the
trigger and the cursor is the filter. Candidates come from an
:class:`OptionProvider` and are ranked with :func:`pi.prompt.fuzzy.fuzzy_filter`.
"""

from __future__ import annotations

import asyncio
import contextlib
import copy
import dataclasses
import inspect
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Iterator, Literal, Protocol, Union

from pi.prompt.buffer import PromptBuffer
from pi.prompt.fuzzy import fuzzy_filter
from pi.prompt.parts import AgentPart, FilePart
from pi.prompt.text import is_whitespace_char, pad_to_width, visible_width
from pi.prompt.types import KeyEvent

logger = logging.getLogger(__name__)

Trigger = Literal["#", "@", "/"]

MAX_VISIBLE_ITEMS = 10
# "/name arg": a full command name followed by an argument
SLASH_COMMAND_COMPLETE_RE = re.compile(r"^\S+\s+\S+\s*$")
_WHITESPACE_RE = re.compile(r"\s")


@dataclass
class AutocompleteOption:
    """One candidate row.

    File and agent options carry the :attr:`part` to insert; command options
    carry an :attr:`on_select` handler instead. File options may have both,
    the handler then runs after insertion.
    """

    display: str
    value: str | None = None
    aliases: list[str] = field(default_factory=list)
    description: str | None = None
    disabled: bool = False
    is_directory: bool = False
    path: str | None = None
    part: Union[FilePart, AgentPart, None] = None
    on_select: Callable[[], Any] | None = None

    @property
    def key(self) -> str:
        return (self.value if self.value is not None else self.display).strip()


@dataclass
class AutocompleteState:
    visible: Trigger | None = None
    trigger_index: int = 0
    selected_index: int = 0


class OptionProvider(Protocol):
    async def options(self, trigger: Trigger, filter: str) -> list[AutocompleteOption]: ...


async def _call_handler(handler: Callable[[], Any]) -> None:
    result = handler()
    if inspect.isawaitable(result):
        await result


def find_trigger(text: str, cursor: int) -> tuple[Trigger, int] | None:
    """Return the trigger that should open at *cursor*, if any.

    ``/`` opens when the buffer starts with it and no whitespace precedes the
    cursor. ``#`` and ``@`` open at the nearest occurrence before the cursor
    when nothing but non-whitespace follows it and it sits at the start of
    the buffer or right after whitespace (``foo#bar`` and ``a@b.c`` do not).
    """
    if cursor <= 0:
        return None
    before = text[:cursor]
    if text.startswith("/") and not _WHITESPACE_RE.search(before):
        return "/", 0

    trigger: Trigger
    for index, trigger in sorted(
        ((before.rfind("#"), "#"), (before.rfind("@"), "@")), reverse=True
    ):
        if index == -1:
            continue
        if _WHITESPACE_RE.search(before[index:]):
            continue
        if index == 0 or is_whitespace_char(text[index - 1]):
            return trigger, index
    return None


class AutocompleteSession:
    """Autocomplete state machine bound to one :class:`PromptBuffer`.

    ``on_visibility_change(visible)`` fires when the popup opens or closes,
    ``on_update()`` when a new candidate list has arrived.
    """

    def __init__(
        self,
        buffer: PromptBuffer,
        provider: OptionProvider,
        *,
        max_visible: int = MAX_VISIBLE_ITEMS,
    ) -> None:
        self._buffer = buffer
        self._provider = provider
        self._max_visible = max_visible
        self._state = AutocompleteState()
        self._options: list[AutocompleteOption] = []
        self._generation = 0
        self._task: asyncio.Task[list[AutocompleteOption]] | None = None
        self._quiet = 0

        self.on_visibility_change: Callable[[bool], None] | None = None
        self.on_update: Callable[[], None] | None = None

    # -- State ----------------------------------------------------------------

    @property
    def visible(self) -> Trigger | None:
        return self._state.visible

    @property
    def trigger_index(self) -> int:
        return self._state.trigger_index

    @property
    def selected_index(self) -> int:
        return self._state.selected_index

    @property
    def state(self) -> AutocompleteState:
        return dataclasses.replace(self._state)

    @property
    def options(self) -> list[AutocompleteOption]:
        return list(self._options)

    @property
    def filter(self) -> str:
        if not self._state.visible:
            return ""
        start = self._state.trigger_index + 1
        return self._buffer.text[start : self._buffer.cursor]

    @property
    def filtered_options(self) -> list[AutocompleteOption]:
        """Ranked candidates, displays padded to a common width."""
        if not self._state.visible:
            return []
        limit = self._max_visible * 2
        query = self.filter
        if query:
            results = fuzzy_filter(
                self._options,
                query,
                lambda o: [o.key, o.description, *o.aliases],
                limit=limit,
            )
        else:
            results = self._options[:limit]

        width = max((visible_width(o.display) for o in results), default=0)
        if width == 0:
            return list(results)
        return [dataclasses.replace(o, display=pad_to_width(o.display, width + 2)) for o in results]

    @property
    def selected(self) -> AutocompleteOption | None:
        options = self.filtered_options
        if not options:
            return None
        return options[min(self._state.selected_index, len(options) - 1)]

    # -- Transitions ----------------------------------------------------------

    def on_input(self, text: str, cursor: int) -> None:
        """React to a buffer change carrying the new text and cursor."""
        if self._quiet:
            return
        state = self._state
        if state.visible:
            between = text[state.trigger_index : cursor]
            if (
                cursor <= state.trigger_index
                or _WHITESPACE_RE.search(between)
                or (state.visible == "/" and SLASH_COMMAND_COMPLETE_RE.match(text))
            ):
                self.hide()
                return
            state.selected_index = 0
            self._schedule_refresh()
            return

        found = find_trigger(text, cursor)
        if found is not None:
            self.show(*found)

    @contextlib.contextmanager
    def quiet(self) -> Iterator[None]:
        """Ignore buffer changes made inside the block (insertions, restores)."""
        self._quiet += 1
        try:
            yield
        finally:
            self._quiet -= 1

    def show(self, trigger: Trigger, trigger_index: int) -> None:
        was_visible = self._state.visible is not None
        self._state = AutocompleteState(visible=trigger, trigger_index=trigger_index)
        self._options = []
        if not was_visible and self.on_visibility_change:
            self.on_visibility_change(True)
        self._schedule_refresh()

    def hide(self, *, cancel: bool = False) -> None:
        """Close the popup.

        With *cancel*, a ``/`` token with no whitespace typed yet is removed
        from the buffer as well.
        """
        trigger = self._state.visible
        if trigger is None:
            return
        self._state.visible = None
        self._generation += 1
        self._options = []

        if cancel and trigger == "/":
            text = self._buffer.text
            if text.startswith("/") and not _WHITESPACE_RE.search(text):
                self._buffer.delete_range(0, self._buffer.cursor)

        if self.on_visibility_change:
            self.on_visibility_change(False)

    # -- Candidates -----------------------------------------------------------

    def _schedule_refresh(self) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._task = loop.create_task(self.refresh())

    async def refresh(self) -> list[AutocompleteOption]:
        """Fetch candidates for the current filter.

        A response that arrives after the popup closed, switched trigger, or
        was superseded by a newer request is discarded. Provider failures
        yield an empty list.
        """
        trigger = self._state.visible
        if trigger is None:
            return []
        self._generation += 1
        generation = self._generation

        try:
            options = await self._provider.options(trigger, self.filter)
        except Exception:
            logger.debug("Autocomplete provider failed for %r", trigger, exc_info=True)
            options = []

        if generation != self._generation or self._state.visible != trigger:
            return []

        self._options = list(options)
        count = len(self.filtered_options)
        self._state.selected_index = max(0, min(self._state.selected_index, count - 1))
        if self.on_update:
            self.on_update()
        return self.filtered_options

    async def wait(self) -> None:
        """Wait for the most recently scheduled candidate request."""
        if self._task is not None:
            await asyncio.wait([self._task])

    # -- Navigation -----------------------------------------------------------

    def move(self, direction: int) -> None:
        """Move the highlight, wrapping at both ends."""
        count = len(self.filtered_options)
        if not self._state.visible or count == 0:
            return
        self._state.selected_index = (self._state.selected_index + direction) % count

    def move_to(self, index: int) -> None:
        count = len(self.filtered_options)
        self._state.selected_index = max(0, min(index, count - 1))

    # -- Selection ------------------------------------------------------------

    async def select(self) -> bool:
        """Accept the highlighted option.

        Parts are inserted over the trigger-to-cursor span; command options
        run their handler. Returns whether anything was selected.
        """
        selected = self.selected
        if selected is None or selected.disabled:
            return False

        trigger_index = self._state.trigger_index
        self.hide(cancel=True)

        if selected.part is not None:
            part = copy.deepcopy(selected.part)
            prefix = "#" if isinstance(part, FilePart) else "@"
            with self.quiet():
                self._buffer.insert_part(
                    part,
                    f"{prefix}{selected.key}",
                    start=trigger_index,
                    end=self._buffer.cursor,
                )
        if selected.on_select is not None:
            await _call_handler(selected.on_select)
        return True

    async def expand_directory(self) -> bool:
        """Tab: descend into a highlighted directory, else select."""
        selected = self.selected
        if selected is None:
            return False
        if not selected.is_directory:
            return await self.select()

        path = selected.key.removeprefix("#")
        self._buffer.replace_range(
            self._state.trigger_index, self._buffer.cursor, f"#{path}"
        )
        self._state.selected_index = 0
        return True

    async def handle_key(self, event: KeyEvent) -> bool:
        """Handle a key while visible; returns whether it was consumed."""
        if not self._state.visible:
            return False

        name = event.name.lower()
        if name == "up" or (event.ctrl_only and name == "p"):
            self.move(-1)
            return True
        if name == "down" or (event.ctrl_only and name == "n"):
            self.move(1)
            return True
        if name == "escape":
            self.hide(cancel=True)
            return True
        if name == "return":
            await self.select()
            return True
        if name == "tab":
            await self.expand_directory()
            return True
        return False
