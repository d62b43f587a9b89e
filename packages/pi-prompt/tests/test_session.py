"""Tests for pi.prompt.session -- key routing, paste, submit and stash."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest

from pi.prompt.commands import Command, SlashName
from pi.prompt.config import SETTINGS_FILENAME, PromptSettings
from pi.prompt.file_search import build_file_url
from pi.prompt.history import HISTORY_FILENAME
from pi.prompt.parts import FilePart
from pi.prompt.session import PromptSession, PromptSessionConfig
from pi.prompt.stash import STASH_FILENAME
from pi.prompt.types import ClipboardContent, KeyEvent


class FakeTransport:
    def __init__(self) -> None:
        self.sent: list[tuple[str, Any, Any]] = []

    def send(self, text: str, files: Any, agent: Any) -> None:
        self.sent.append((text, files, agent))


class FakeClipboard:
    def __init__(self, content: ClipboardContent | None) -> None:
        self.content = content

    async def read(self) -> ClipboardContent | None:
        return self.content


class FakeClock:
    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


def _session(tmp_path: Path, transport: FakeTransport, **kwargs: Any) -> PromptSession:
    return PromptSession(
        PromptSessionConfig(
            transport=transport,
            agent_snapshot=lambda: {"agent": "build"},
            config_dir=str(tmp_path),
            cwd="/repo",
            **kwargs,
        )
    )


async def _type_and_submit(session: PromptSession, text: str) -> bool:
    session.type_text(text)
    return await session.submit()


class TestSubmit:
    @pytest.mark.asyncio
    async def test_file_reference_expands_to_absolute_path(
        self, tmp_path: Path, transport: FakeTransport
    ) -> None:
        session = _session(tmp_path, transport)
        session.type_text("check ")
        session.buffer.insert_part(
            FilePart(
                mime="text/plain",
                url=build_file_url("src/app.ts", "/repo"),
                filename="src/app.ts",
                path="src/app.ts",
            ),
            "#src/app.ts",
        )
        assert session.text == "check #src/app.ts "

        assert await session.submit() is True
        assert transport.sent == [("check /repo/src/app.ts", None, {"agent": "build"})]
        assert session.text == ""
        assert [e.input for e in session.history.items] == ["check #src/app.ts "]
        await session.flush()

    @pytest.mark.asyncio
    async def test_blank_input_ignored(self, tmp_path: Path, transport: FakeTransport) -> None:
        session = _session(tmp_path, transport)
        assert await _type_and_submit(session, "   ") is False
        assert transport.sent == []

    @pytest.mark.asyncio
    async def test_ignored_while_autocomplete_open(
        self, tmp_path: Path, transport: FakeTransport
    ) -> None:
        session = _session(tmp_path, transport)
        session.type_text("@")
        assert session.autocomplete.visible == "@"
        assert await session.submit() is False
        assert session.text == "@"
        await session.autocomplete.wait()

    @pytest.mark.asyncio
    async def test_disabled(self, tmp_path: Path, transport: FakeTransport) -> None:
        session = _session(tmp_path, transport)
        session.type_text("hello")
        session.disabled = True
        assert await session.submit() is False
        assert await session.handle_key(KeyEvent("x")) is True
        assert session.text == "hello"

    @pytest.mark.asyncio
    async def test_exit_word_calls_handler(self, tmp_path: Path, transport: FakeTransport) -> None:
        exits: list[bool] = []
        session = _session(tmp_path, transport, on_exit=lambda: exits.append(True))
        assert await _type_and_submit(session, " quit ") is True
        assert exits == [True]
        assert transport.sent == []
        assert session.history.items == []

    @pytest.mark.asyncio
    async def test_slash_command_executes(self, tmp_path: Path, transport: FakeTransport) -> None:
        ran: list[str] = []

        async def compact() -> None:
            ran.append("compact")

        session = _session(tmp_path, transport)
        session.commands.register(
            [Command(id="session.compact", title="Compact", slash=SlashName("compact"), on_select=compact)]
        )
        assert await _type_and_submit(session, "/compact now") is True
        assert ran == ["compact"]
        assert session.text == ""
        assert transport.sent == []
        assert session.history.items == []

    @pytest.mark.asyncio
    async def test_unknown_slash_is_sent_as_text(
        self, tmp_path: Path, transport: FakeTransport
    ) -> None:
        session = _session(tmp_path, transport)
        await _type_and_submit(session, "/nope please")
        assert transport.sent[0][0] == "/nope please"
        await session.flush()

    @pytest.mark.asyncio
    async def test_queued_while_streaming(self, tmp_path: Path, transport: FakeTransport) -> None:
        session = _session(tmp_path, transport)
        session.set_status("streaming")
        await _type_and_submit(session, "later")
        assert transport.sent == []
        assert [m.text for m in session.queue.queue] == ["later"]
        assert session.text == ""
        await session.flush()


class TestShellMode:
    @pytest.mark.asyncio
    async def test_bang_at_start_enters_shell_mode(
        self, tmp_path: Path, transport: FakeTransport
    ) -> None:
        commands: list[str] = []
        session = _session(tmp_path, transport, on_shell_command=commands.append)
        assert await session.handle_key(KeyEvent("!")) is True
        assert session.mode == "shell"
        assert session.text == ""

        session.type_text("ls -la")
        await session.handle_key(KeyEvent("return"))
        assert commands == ["ls -la"]
        assert session.mode == "normal"
        assert transport.sent == []
        assert session.history.items[-1].mode == "shell"
        await session.flush()

    @pytest.mark.asyncio
    async def test_bang_mid_text_is_typed(self, tmp_path: Path, transport: FakeTransport) -> None:
        session = _session(tmp_path, transport)
        session.type_text("hi")
        await session.handle_key(KeyEvent("!"))
        assert session.mode == "normal"
        assert session.text == "hi!"

    @pytest.mark.asyncio
    async def test_backspace_at_start_leaves_shell_mode(
        self, tmp_path: Path, transport: FakeTransport
    ) -> None:
        session = _session(tmp_path, transport)
        await session.handle_key(KeyEvent("!"))
        await session.handle_key(KeyEvent("backspace"))
        assert session.mode == "normal"

    @pytest.mark.asyncio
    async def test_escape_leaves_shell_mode(self, tmp_path: Path, transport: FakeTransport) -> None:
        session = _session(tmp_path, transport)
        await session.handle_key(KeyEvent("!"))
        session.type_text("git")
        await session.handle_key(KeyEvent("escape"))
        assert session.mode == "normal"
        assert session.text == "git"


class TestPaste:
    @pytest.mark.asyncio
    async def test_short_paste_inserted_verbatim(
        self, tmp_path: Path, transport: FakeTransport
    ) -> None:
        session = _session(tmp_path, transport)
        await session.handle_paste("hi\r\nthere")
        assert session.text == "hi\nthere"
        assert session.buffer.parts == []

    @pytest.mark.asyncio
    async def test_multiline_paste_becomes_badge(
        self, tmp_path: Path, transport: FakeTransport
    ) -> None:
        session = _session(tmp_path, transport)
        await session.handle_paste("a\nb\nc\n")
        assert session.text == "[Pasted ~3 lines] "

        await session.submit()
        assert transport.sent[0][0] == "a\nb\nc"
        await session.flush()

    @pytest.mark.asyncio
    async def test_long_single_line_becomes_badge(
        self, tmp_path: Path, transport: FakeTransport
    ) -> None:
        session = _session(tmp_path, transport)
        await session.handle_paste("x" * 200)
        assert session.text == "[Pasted ~1 lines] "

    @pytest.mark.asyncio
    async def test_image_file_path(self, tmp_path: Path, transport: FakeTransport) -> None:
        image = tmp_path / "shot.png"
        image.write_bytes(b"\x89PNG")
        session = _session(tmp_path, transport)

        await session.handle_paste(f"'{image}'")
        assert session.text == "[Image 1] "
        [part] = session.buffer.parts
        assert part.mime == "image/png"
        assert part.url.startswith("data:image/png;base64,")

        await session.submit()
        [(_, files, _)] = transport.sent
        assert [f.filename for f in files] == ["shot.png"]
        await session.flush()

    @pytest.mark.asyncio
    async def test_second_image_is_numbered(self, tmp_path: Path, transport: FakeTransport) -> None:
        session = _session(tmp_path, transport)
        session.paste_image("AAAA", "image/png")
        session.paste_image("BBBB", "image/jpeg")
        assert session.text == "[Image 1] [Image 2] "

    @pytest.mark.asyncio
    async def test_svg_file_pasted_as_text(self, tmp_path: Path, transport: FakeTransport) -> None:
        svg = tmp_path / "icon.svg"
        svg.write_text("<svg/>")
        session = _session(tmp_path, transport)
        await session.handle_paste(str(svg))
        assert session.text == "[SVG: icon.svg] "
        assert session.buffer.parts[0].text == "<svg/>"

    @pytest.mark.asyncio
    async def test_url_is_not_treated_as_file(
        self, tmp_path: Path, transport: FakeTransport
    ) -> None:
        session = _session(tmp_path, transport)
        await session.handle_paste("https://example.com/a.png")
        assert session.text == "https://example.com/a.png"

    @pytest.mark.asyncio
    async def test_empty_paste_reads_clipboard(
        self, tmp_path: Path, transport: FakeTransport
    ) -> None:
        clipboard = FakeClipboard(ClipboardContent(data="AAAA", mime="image/png"))
        session = _session(tmp_path, transport, clipboard=clipboard)
        await session.handle_paste("")
        assert session.text == "[Image 1] "

    @pytest.mark.asyncio
    async def test_ctrl_v_pastes_clipboard_image(
        self, tmp_path: Path, transport: FakeTransport
    ) -> None:
        clipboard = FakeClipboard(ClipboardContent(data="AAAA", mime="image/png"))
        session = _session(tmp_path, transport, clipboard=clipboard)
        assert await session.handle_key(KeyEvent("v", ctrl=True)) is True
        assert session.buffer.count_images() == 1

    @pytest.mark.asyncio
    async def test_ctrl_v_without_image_falls_through(
        self, tmp_path: Path, transport: FakeTransport
    ) -> None:
        clipboard = FakeClipboard(ClipboardContent(data="hello", mime="text/plain"))
        session = _session(tmp_path, transport, clipboard=clipboard)
        assert await session.handle_key(KeyEvent("v", ctrl=True)) is False
        assert session.text == ""

    @pytest.mark.asyncio
    async def test_clipboard_failure_is_ignored(
        self, tmp_path: Path, transport: FakeTransport
    ) -> None:
        class Broken:
            async def read(self) -> ClipboardContent | None:
                raise RuntimeError("no display")

        session = _session(tmp_path, transport, clipboard=Broken())
        assert await session.paste_from_clipboard() is False


class TestKeys:
    @pytest.mark.asyncio
    async def test_ctrl_u_clears(self, tmp_path: Path, transport: FakeTransport) -> None:
        session = _session(tmp_path, transport)
        session.type_text("draft")
        assert await session.handle_key(KeyEvent("u", ctrl=True)) is True
        assert session.text == ""

    @pytest.mark.asyncio
    async def test_typing_and_cursor_keys(self, tmp_path: Path, transport: FakeTransport) -> None:
        session = _session(tmp_path, transport)
        for key in "abc":
            await session.handle_key(KeyEvent(key))
        await session.handle_key(KeyEvent("left"))
        await session.handle_key(KeyEvent("backspace"))
        assert session.text == "ac"
        await session.handle_key(KeyEvent("home"))
        await session.handle_key(KeyEvent("delete"))
        assert session.text == "c"

    @pytest.mark.asyncio
    async def test_keybinds_suspended_while_autocomplete_open(
        self, tmp_path: Path, transport: FakeTransport
    ) -> None:
        session = _session(tmp_path, transport)
        session.type_text("@")
        assert session.commands.suspended
        session.type_text(" ")
        assert not session.commands.suspended
        await session.autocomplete.wait()


class TestInterrupt:
    @pytest.mark.asyncio
    async def test_escape_clears_queue_first(self, tmp_path: Path, transport: FakeTransport) -> None:
        interrupts: list[bool] = []
        session = _session(tmp_path, transport, on_interrupt=lambda: interrupts.append(True))
        session.set_status("streaming")
        await _type_and_submit(session, "queued")

        await session.handle_key(KeyEvent("escape"))
        assert not session.queue.has_queued_messages
        assert interrupts == []
        await session.flush()

    @pytest.mark.asyncio
    async def test_double_escape_interrupts(self, tmp_path: Path, transport: FakeTransport) -> None:
        clock = FakeClock()
        interrupts: list[bool] = []
        session = _session(
            tmp_path, transport, clock=clock, on_interrupt=lambda: interrupts.append(True)
        )
        session.set_status("streaming")

        await session.handle_key(KeyEvent("escape"))
        assert session.interrupt_pending
        assert interrupts == []
        clock.now += 1
        await session.handle_key(KeyEvent("escape"))
        assert interrupts == [True]
        assert not session.interrupt_pending

    @pytest.mark.asyncio
    async def test_presses_outside_window_do_not_interrupt(
        self, tmp_path: Path, transport: FakeTransport
    ) -> None:
        clock = FakeClock()
        interrupts: list[bool] = []
        session = _session(
            tmp_path, transport, clock=clock, on_interrupt=lambda: interrupts.append(True)
        )
        session.set_status("streaming")
        await session.handle_key(KeyEvent("escape"))
        clock.now += 10
        assert not session.interrupt_pending
        await session.handle_key(KeyEvent("escape"))
        assert interrupts == []
        assert session.interrupt_pending

    @pytest.mark.asyncio
    async def test_ready_resets_pending_interrupt(
        self, tmp_path: Path, transport: FakeTransport
    ) -> None:
        session = _session(tmp_path, transport, clock=FakeClock())
        session.set_status("streaming")
        await session.handle_key(KeyEvent("escape"))
        session.set_status("ready")
        assert not session.interrupt_pending


class TestHistoryNavigation:
    @pytest.mark.asyncio
    async def test_up_and_down(self, tmp_path: Path, transport: FakeTransport) -> None:
        session = _session(tmp_path, transport)
        await _type_and_submit(session, "one")
        await _type_and_submit(session, "two")
        assert [t for t, _, _ in transport.sent] == ["one", "two"]

        assert await session.handle_key(KeyEvent("up")) is True
        assert session.text == "two"
        assert session.buffer.cursor == 0
        await session.handle_key(KeyEvent("up"))
        assert session.text == "one"
        assert await session.handle_key(KeyEvent("up")) is False

        await session.handle_key(KeyEvent("end"))
        await session.handle_key(KeyEvent("down"))
        assert session.text == "two"
        assert session.buffer.cursor == 3
        await session.handle_key(KeyEvent("down"))
        assert session.text == ""
        await session.flush()

    @pytest.mark.asyncio
    async def test_recalls_shell_mode(self, tmp_path: Path, transport: FakeTransport) -> None:
        session = _session(tmp_path, transport)
        await session.handle_key(KeyEvent("!"))
        await _type_and_submit(session, "make")
        await session.handle_key(KeyEvent("up"))
        assert session.mode == "shell"
        assert session.text == "make"
        await session.flush()

    @pytest.mark.asyncio
    async def test_create_loads_history(self, tmp_path: Path, transport: FakeTransport) -> None:
        (tmp_path / HISTORY_FILENAME).write_text('{"input": "from disk", "parts": []}\n')
        session = await PromptSession.create(
            PromptSessionConfig(transport=transport, config_dir=str(tmp_path))
        )
        assert session.loaded
        await session.handle_key(KeyEvent("up"))
        assert session.text == "from disk"


class TestStash:
    @pytest.mark.asyncio
    async def test_stash_and_pop(self, tmp_path: Path, transport: FakeTransport) -> None:
        session = _session(tmp_path, transport)
        session.type_text("half-written")
        assert session.stash() is True
        assert session.text == ""
        assert session.stash_store.count() == 1

        assert session.stash_pop() is True
        assert session.text == "half-written"
        assert session.stash_pop() is False
        await session.flush()

    @pytest.mark.asyncio
    async def test_stash_blank_rejected(self, tmp_path: Path, transport: FakeTransport) -> None:
        session = _session(tmp_path, transport)
        assert session.stash() is False


class TestDispose:
    def test_unregisters_paste_command(self, tmp_path: Path, transport: FakeTransport) -> None:
        session = _session(tmp_path, transport)
        assert session.commands.get_by_id("prompt.paste") is not None
        session.dispose()
        assert session.commands.get_by_id("prompt.paste") is None


class TestSettings:
    def test_settings_file_in_config_dir(self, tmp_path: Path, transport: FakeTransport) -> None:
        (tmp_path / SETTINGS_FILENAME).write_text('{"maxQueueSize": 2}')
        session = _session(tmp_path, transport)
        assert session.settings.max_queue_size == 2

        session.set_status("streaming")
        for text in ("a", "b", "c"):
            session.queue.submit(text)
        assert [m.text for m in session.queue.queue] == ["b", "c"]

    def test_explicit_settings_win(self, tmp_path: Path, transport: FakeTransport) -> None:
        (tmp_path / SETTINGS_FILENAME).write_text('{"maxQueueSize": 2}')
        session = _session(tmp_path, transport, settings=PromptSettings(max_queue_size=5))
        assert session.settings.max_queue_size == 5


class TestRestoreDoesNotOpenAutocomplete:
    @pytest.mark.asyncio
    async def test_stash_pop_ending_in_trigger(
        self, tmp_path: Path, transport: FakeTransport
    ) -> None:
        (tmp_path / STASH_FILENAME).write_text('{"input": "/foo", "parts": [], "timestamp": 1}\n')
        session = _session(tmp_path, transport)
        await session.stash_store.load()
        assert session.stash_pop() is True
        assert session.text == "/foo"
        assert session.buffer.cursor == 4
        assert session.autocomplete.visible is None
        await session.flush()

    @pytest.mark.asyncio
    async def test_history_recall_ending_in_trigger(
        self, tmp_path: Path, transport: FakeTransport
    ) -> None:
        (tmp_path / HISTORY_FILENAME).write_text(
            '{"input": "/foo", "parts": []}\n{"input": "see #src", "parts": []}\n'
        )
        session = await PromptSession.create(
            PromptSessionConfig(transport=transport, config_dir=str(tmp_path), cwd="/repo")
        )
        await session.handle_key(KeyEvent("up"))
        await session.handle_key(KeyEvent("up"))
        assert session.text == "/foo"
        await session.handle_key(KeyEvent("end"))
        await session.handle_key(KeyEvent("down"))
        assert session.text == "see #src"
        assert session.buffer.cursor == len("see #src")
        assert session.autocomplete.visible is None


class TestSelectThenSubmit:
    @pytest.mark.asyncio
    async def test_return_after_mid_text_selection_submits(
        self, tmp_path: Path, transport: FakeTransport
    ) -> None:
        repo = tmp_path / "repo"
        (repo / "src").mkdir(parents=True)
        (repo / "src" / "app.ts").write_text("x")
        session = PromptSession(
            PromptSessionConfig(
                transport=transport, config_dir=str(tmp_path / "config"), cwd=str(repo)
            )
        )
        session.type_text("check  more")
        session.buffer.set_cursor(6)
        session.type_text("#app")
        await session.autocomplete.wait()

        await session.handle_key(KeyEvent("return"))
        assert session.text == "check #src/app.ts more"
        assert session.autocomplete.visible is None

        await session.handle_key(KeyEvent("return"))
        assert transport.sent == [(f"check {repo}/src/app.ts more", None, {})]
        [entry] = session.frecency.entries().values()
        assert entry.frequency == 1
        await session.flush()
