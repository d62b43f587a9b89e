"""Prompt session orchestrator.

Wires the buffer, autocomplete, history, stash, frecency and message queue
together behind the events a host UI delivers:

- Key presses (:meth:`PromptSession.handle_key`)
- Paste events (:meth:`PromptSession.handle_paste`)
- Agent status changes (:meth:`PromptSession.set_status`)

Submission renders the buffer to a ``(text, files)`` payload and hands it to
the message queue, which forwards it to the transport.
"""

from __future__ import annotations

import asyncio
import base64
import logging
import mimetypes
import re
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Literal

from pi.prompt.autocomplete import AutocompleteSession
from pi.prompt.buffer import PromptBuffer
from pi.prompt.commands import Command, CommandRegistry
from pi.prompt.config import PromptSettings, get_config_dir, load_settings
from pi.prompt.frecency import FrecencyTracker
from pi.prompt.history import HistoryEntry, PromptHistory
from pi.prompt.parts import FilePart, TextPart, prepare_message_for_submit
from pi.prompt.providers import PromptOptionProvider
from pi.prompt.queue import MessageQueue
from pi.prompt.stash import PromptStash
from pi.prompt.types import (
    AgentDescriptor,
    AgentSnapshot,
    AgentStatus,
    Clipboard,
    KeyEvent,
    Transport,
)

logger = logging.getLogger(__name__)

PromptMode = Literal["normal", "shell"]

EXIT_WORDS = frozenset({"exit", "quit", ":q"})
PASTE_COMMAND_ID = "prompt.paste"
_URL_RE = re.compile(r"^https?://")


@dataclass
class PromptSessionConfig:
    """Collaborators and callbacks for a :class:`PromptSession`."""

    transport: Transport
    agent_snapshot: Callable[[], AgentSnapshot] | None = None
    config_dir: str | None = None
    cwd: str | None = None
    settings: PromptSettings | None = None
    agents: Callable[[], list[AgentDescriptor]] | None = None
    commands: CommandRegistry | None = None
    clipboard: Clipboard | None = None
    on_shell_command: Callable[[str], None] | None = None
    on_interrupt: Callable[[], None] | None = None
    on_exit: Callable[[], None] | None = None
    clock: Callable[[], float] = time.monotonic


class PromptSession:
    """One interactive prompt: compose, autocomplete, submit, queue."""

    def __init__(self, config: PromptSessionConfig) -> None:
        config_dir = config.config_dir or get_config_dir()
        self._settings = config.settings or load_settings(config_dir)
        settings = self._settings

        self._clipboard = config.clipboard
        self._on_shell_command = config.on_shell_command
        self._on_interrupt = config.on_interrupt
        self._on_exit = config.on_exit
        self._clock = config.clock

        # Persistent stores
        self.history = PromptHistory(config_dir, max_entries=settings.max_history_entries)
        self.stash_store = PromptStash(config_dir, max_entries=settings.max_stash_entries)
        self.frecency = FrecencyTracker(
            config_dir, max_entries=settings.max_frecency_entries, cwd=config.cwd
        )

        # Editing
        self.buffer = PromptBuffer()
        self.commands = config.commands or CommandRegistry()
        self.provider = PromptOptionProvider(
            cwd=config.cwd,
            frecency=self.frecency,
            agents=config.agents,
            commands=self.commands,
            search_limit=settings.file_search_limit,
        )
        self.autocomplete = AutocompleteSession(
            self.buffer, self.provider, max_visible=settings.max_visible_options
        )
        self.autocomplete.on_visibility_change = self._on_autocomplete_visibility

        # Delivery
        self.queue = MessageQueue(
            config.transport,
            config.agent_snapshot or dict,
            max_size=settings.max_queue_size,
        )

        self.mode: PromptMode = "normal"
        self.disabled = False
        self._interrupt_count = 0
        self._last_interrupt_at = 0.0

        self.on_change: Callable[[], None] | None = None
        self.buffer.on_change = self._on_buffer_change

        self._unregister_commands = self.commands.register(
            [
                Command(
                    id=PASTE_COMMAND_ID,
                    title="Paste",
                    category="Edit",
                    hidden=True,
                    on_select=self.paste_from_clipboard,
                )
            ]
        )

    # -- Factory / lifecycle -----------------------------------------------------

    @classmethod
    async def create(cls, config: PromptSessionConfig) -> PromptSession:
        """Construct a session and load its persistent stores."""
        session = cls(config)
        await session.load()
        return session

    async def load(self) -> None:
        await asyncio.gather(self.history.load(), self.stash_store.load(), self.frecency.load())

    @property
    def loaded(self) -> bool:
        return self.history.loaded and self.stash_store.loaded and self.frecency.loaded

    async def flush(self) -> None:
        """Wait for pending store writes."""
        await asyncio.gather(self.history.flush(), self.stash_store.flush(), self.frecency.flush())

    def dispose(self) -> None:
        self._unregister_commands()
        self.buffer.on_change = None

    # -- State -------------------------------------------------------------------

    @property
    def settings(self) -> PromptSettings:
        return self._settings

    @property
    def text(self) -> str:
        return self.buffer.text

    @property
    def is_streaming(self) -> bool:
        return self.queue.status in ("submitted", "streaming")

    @property
    def interrupt_pending(self) -> bool:
        """Whether one Escape was pressed and a second would interrupt."""
        if self._interrupt_count == 0:
            return False
        return self._clock() - self._last_interrupt_at <= self._settings.interrupt_window_s

    def set_status(self, status: AgentStatus) -> None:
        self.queue.set_status(status)
        if not self.is_streaming:
            self._interrupt_count = 0

    def _on_buffer_change(self, text: str, cursor: int) -> None:
        self.autocomplete.on_input(text, cursor)
        if self.on_change:
            self.on_change()

    def _on_autocomplete_visibility(self, visible: bool) -> None:
        self.commands.keybinds(not visible)

    # -- Typing --------------------------------------------------------------------

    def type_text(self, text: str) -> None:
        """Insert *text* at the cursor as if typed."""
        if self.disabled:
            return
        self.buffer.insert(text)

    async def handle_key(self, event: KeyEvent) -> bool:
        """Route a key press. Returns whether the key was consumed."""
        if self.disabled:
            return True

        if await self.autocomplete.handle_key(event):
            return True

        name = event.name.lower()
        cursor = self.buffer.cursor

        if event.ctrl_only and name == "v" and await self._paste_clipboard_image():
            return True

        if name == "!" and cursor == 0 and self.mode == "normal":
            self.mode = "shell"
            return True

        if self.mode == "shell" and ((name == "backspace" and cursor == 0) or name == "escape"):
            self.mode = "normal"
            return True

        if name == "escape" and self.is_streaming and not self.autocomplete.visible:
            if self.queue.has_queued_messages:
                self.queue.clear()
            else:
                self._register_interrupt()
            return True

        if event.ctrl and (name == "u" or (name == "c" and self.buffer.text)):
            self.clear()
            return True

        if name == "up" and cursor == 0:
            return self._recall(-1)
        if name == "down" and cursor == len(self.buffer.text):
            return self._recall(1)

        if name == "return":
            await self.submit()
            return True

        return self._edit_key(event, name)

    def _edit_key(self, event: KeyEvent, name: str) -> bool:
        if name == "backspace":
            self.buffer.backspace()
            return True
        if name == "delete":
            self.buffer.delete_forward()
            return True
        if name == "left":
            self.buffer.move_cursor(-1)
            return True
        if name == "right":
            self.buffer.move_cursor(1)
            return True
        if name == "home":
            self.buffer.set_cursor(0)
            return True
        if name == "end":
            self.buffer.set_cursor(len(self.buffer.text))
            return True
        if len(event.name) == 1 and not event.ctrl and not event.meta:
            self.buffer.insert(event.name)
            return True
        return False

    def _register_interrupt(self) -> None:
        if not self.interrupt_pending:
            self._interrupt_count = 0
        self._interrupt_count += 1
        self._last_interrupt_at = self._clock()
        if self._interrupt_count >= 2:
            self._interrupt_count = 0
            if self._on_interrupt:
                self._on_interrupt()

    def _recall(self, direction: int) -> bool:
        entry = self.history.move(direction, self.buffer.text)
        if entry is None:
            return False
        self._restore_history(entry, at_start=direction < 0)
        return True

    def _restore_history(self, entry: HistoryEntry, *, at_start: bool) -> None:
        info = entry.to_prompt_info()
        self.mode = info.mode
        with self.autocomplete.quiet():
            self.buffer.restore(info, cursor=0 if at_start else len(info.input))

    # -- Paste -----------------------------------------------------------------------

    async def handle_paste(self, text: str) -> None:
        """Insert pasted text, turning files and long pastes into badges."""
        if self.disabled:
            return

        normalized = text.replace("\r\n", "\n").replace("\r", "\n")
        content = normalized.strip()
        if not content:
            await self.commands.execute(PASTE_COMMAND_ID)
            return

        filepath = content.strip("'").replace("\\ ", " ")
        if not _URL_RE.match(filepath) and await self._paste_file(filepath):
            return

        line_count = content.count("\n") + 1
        if line_count >= self._settings.paste_min_lines or len(content) > self._settings.paste_max_chars:
            self.paste_text_with_badge(content, f"[Pasted ~{line_count} lines]")
            return

        self.buffer.insert(normalized)

    async def _paste_file(self, filepath: str) -> bool:
        path = Path(filepath)
        try:
            if not await asyncio.to_thread(path.is_file):
                return False
        except (OSError, ValueError):
            return False

        mime = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
        if mime == "image/svg+xml":
            try:
                svg = await asyncio.to_thread(path.read_text, encoding="utf-8")
            except (OSError, UnicodeDecodeError):
                logger.debug("Failed to read pasted SVG %s", path, exc_info=True)
                svg = ""
            if svg:
                self.paste_text_with_badge(svg, f"[SVG: {path.name}]")
                return True

        if mime.startswith("image/"):
            try:
                data = await asyncio.to_thread(path.read_bytes)
            except OSError:
                logger.debug("Failed to read pasted image %s", path, exc_info=True)
                data = b""
            if data:
                self.paste_image(base64.b64encode(data).decode("ascii"), mime, filename=path.name)
                return True
        return False

    def paste_image(self, content: str, mime: str, *, filename: str | None = None) -> int:
        """Insert an ``[Image N]`` badge for base64 *content*; returns the part index."""
        number = self.buffer.count_images() + 1
        part = FilePart(
            mime=mime,
            url=f"data:{mime};base64,{content}",
            filename=filename or f"image-{number}",
            path=filename or "clipboard",
        )
        return self.buffer.insert_part(part, f"[Image {number}]", space_after=True)

    def paste_text_with_badge(self, text: str, badge: str) -> int:
        """Insert *badge* in the buffer, keeping *text* as the part's content."""
        return self.buffer.insert_part(TextPart(text=text), badge, space_after=True)

    async def paste_from_clipboard(self) -> bool:
        return await self._paste_clipboard_image()

    async def _paste_clipboard_image(self) -> bool:
        if self._clipboard is None:
            return False
        try:
            content = await self._clipboard.read()
        except Exception:
            logger.debug("Clipboard read failed", exc_info=True)
            return False
        if content is None or not content.mime.startswith("image/"):
            return False
        self.paste_image(content.data, content.mime, filename="clipboard")
        return True

    # -- Submit ------------------------------------------------------------------------

    async def submit(self) -> bool:
        """Submit the prompt. Returns whether anything happened.

        Ignored while autocomplete is open, while disabled, or for blank
        input. Exit words go to ``on_exit``; ``/name`` runs a registered
        command; shell mode goes to ``on_shell_command``; everything else is
        rendered and handed to the queue, then recorded in history.
        """
        if self.disabled or self.autocomplete.visible:
            return False

        info = self.buffer.prompt_info(self.mode)
        trimmed = info.input.strip()
        if not trimmed:
            return False

        if trimmed in EXIT_WORDS:
            if self._on_exit:
                self._on_exit()
            return True

        if trimmed.startswith("/"):
            words = trimmed[1:].split()
            command = self.commands.get_by_slash(words[0]) if words else None
            if command is not None:
                self.buffer.clear()
                await self.commands.execute(command.id)
                return True

        if info.mode == "shell":
            if self._on_shell_command:
                self._on_shell_command(trimmed)
            self.mode = "normal"
        else:
            payload = prepare_message_for_submit(info.input, info.parts)
            self.queue.submit(payload.text, payload.files or None)

        self.history.append(info.input, info.parts, info.mode)
        self.buffer.clear()
        return True

    def clear(self) -> None:
        self.buffer.clear()
        self.history.reset()

    # -- Stash ---------------------------------------------------------------------------

    def stash(self) -> bool:
        """Save the current draft and clear the prompt."""
        info = self.buffer.prompt_info()
        if not self.stash_store.push(info.input, info.parts):
            return False
        self.clear()
        return True

    def stash_pop(self) -> bool:
        """Restore the most recently stashed draft."""
        entry = self.stash_store.pop()
        if entry is None:
            return False
        self.mode = "normal"
        with self.autocomplete.quiet():
            self.buffer.restore(entry.to_prompt_info())
        return True
