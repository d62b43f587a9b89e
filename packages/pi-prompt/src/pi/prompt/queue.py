"""Message queue serializing submissions against the agent's response stream.

Messages submitted while the agent is busy wait here and are released one at
a time, oldest first, each time the agent's status goes from ``submitted``
or ``streaming`` back to ``ready``.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Callable, Literal

from pi.prompt.types import AgentSnapshot, AgentStatus, FileAttachment, Transport

logger = logging.getLogger(__name__)

DEFAULT_MAX_QUEUE_SIZE = 10

SubmitResult = Literal["sent", "queued", "ignored"]
QueueListener = Callable[[list["QueuedMessage"]], None]

_BUSY_STATUSES: frozenset[str] = frozenset({"submitted", "streaming"})


@dataclass
class QueuedMessage:
    id: str
    text: str
    agent: AgentSnapshot
    queued_at: int  # epoch milliseconds
    files: list[FileAttachment] | None = field(default=None)


class MessageQueue:
    """FIFO of pending messages with a single-flight drain.

    The drained message leaves the queue before its ``send`` is issued on the
    next event-loop tick; until that send has happened no second message is
    released and new submissions are queued.
    """

    def __init__(
        self,
        transport: Transport,
        agent_snapshot: Callable[[], AgentSnapshot],
        *,
        max_size: int = DEFAULT_MAX_QUEUE_SIZE,
        status: AgentStatus = "ready",
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._transport = transport
        self._agent_snapshot = agent_snapshot
        self._max_size = max(1, max_size)
        self._status: AgentStatus = status
        self._clock = clock
        self._queue: list[QueuedMessage] = []
        self._draining = False
        self._listeners: set[QueueListener] = set()

    @property
    def status(self) -> AgentStatus:
        return self._status

    @property
    def queue(self) -> list[QueuedMessage]:
        return list(self._queue)

    @property
    def has_queued_messages(self) -> bool:
        return bool(self._queue)

    @property
    def draining(self) -> bool:
        return self._draining

    def subscribe(self, fn: QueueListener) -> Callable[[], None]:
        """Listen for queue changes. Returns an unsubscribe function."""
        self._listeners.add(fn)

        def unsubscribe() -> None:
            self._listeners.discard(fn)

        return unsubscribe

    def _emit(self) -> None:
        snapshot = self.queue
        for listener in list(self._listeners):
            listener(snapshot)

    # -- Submission -------------------------------------------------------------

    def submit(self, text: str, files: list[FileAttachment] | None = None) -> SubmitResult:
        """Send now if the agent is idle, otherwise queue.

        Text is trimmed; a message with no text and no files is ignored. When
        the queue is full the oldest message is dropped.
        """
        text = text.strip()
        files = files or None
        if not text and not files:
            return "ignored"

        agent = self._agent_snapshot()
        if self._status == "ready" and not self._queue and not self._draining:
            self._transport.send(text, files, agent)
            return "sent"

        if len(self._queue) >= self._max_size:
            dropped = self._queue.pop(0)
            logger.debug("Queue full, dropping oldest message %s", dropped.id)
        self._queue.append(
            QueuedMessage(
                id=str(uuid.uuid4()),
                text=text,
                files=files,
                agent=agent,
                queued_at=int(self._clock() * 1000),
            )
        )
        self._emit()
        return "queued"

    def clear(self) -> None:
        if not self._queue:
            return
        self._queue = []
        self._emit()

    def remove(self, message_id: str) -> bool:
        remaining = [m for m in self._queue if m.id != message_id]
        if len(remaining) == len(self._queue):
            return False
        self._queue = remaining
        self._emit()
        return True

    # -- Draining ---------------------------------------------------------------

    def set_status(self, status: AgentStatus) -> None:
        """Record the agent's status; a busy-to-ready transition drains one."""
        previous = self._status
        self._status = status
        if previous not in _BUSY_STATUSES or status != "ready":
            return
        if not self._queue or self._draining:
            return

        self._draining = True
        message = self._queue.pop(0)
        self._emit()
        self._defer(lambda: self._send_drained(message))

    def _send_drained(self, message: QueuedMessage) -> None:
        try:
            self._transport.send(message.text, message.files, message.agent)
        finally:
            self._draining = False

    def _defer(self, fn: Callable[[], None]) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            fn()
            return
        loop.call_soon(fn)
