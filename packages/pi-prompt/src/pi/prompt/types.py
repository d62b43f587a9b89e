"""Types shared with the host application: transport, clipboard and keys."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, Protocol

AgentStatus = Literal["ready", "submitted", "streaming", "error"]

# Opaque metadata describing the agent a message was composed for
AgentSnapshot = dict[str, Any]


@dataclass
class FileAttachment:
    """A file sent alongside the message text (images, mostly)."""

    media_type: str
    url: str
    filename: str | None = None
    type: Literal["file"] = "file"


class Transport(Protocol):
    """The chat transport messages are handed to."""

    def send(
        self,
        text: str,
        files: list[FileAttachment] | None,
        agent: AgentSnapshot,
    ) -> None: ...


@dataclass
class AgentDescriptor:
    """A sub-agent that can be mentioned with ``@``."""

    id: str
    description: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class ClipboardContent:
    data: str  # base64 for binary content
    mime: str


class Clipboard(Protocol):
    async def read(self) -> ClipboardContent | None: ...


@dataclass
class KeyEvent:
    """A decoded key press, as delivered by the host's input layer."""

    name: str
    ctrl: bool = False
    meta: bool = False
    shift: bool = False

    @property
    def ctrl_only(self) -> bool:
        return self.ctrl and not self.meta and not self.shift
