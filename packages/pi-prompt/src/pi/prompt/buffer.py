"""Editable prompt buffer with position-tracked parts.

The buffer owns the text, the cursor, the prompt parts and the annotation
arena that ties parts to their badge text. Every edit goes through
:meth:`PromptBuffer._splice`, which keeps all three in step.
"""

from __future__ import annotations

import copy
from typing import Callable

from pi.prompt.annotations import Annotation, AnnotationKind, AnnotationStore
from pi.prompt.parts import (
    AgentPart,
    FilePart,
    PromptInfo,
    PromptPart,
    Segment,
    SourceText,
    derive_segments,
)
from pi.prompt.text import (
    is_whitespace_char,
    next_grapheme_length,
    previous_grapheme_length,
)


def annotation_kind_for(part: PromptPart) -> AnnotationKind:
    if isinstance(part, FilePart):
        return "image" if part.is_image else "file"
    if isinstance(part, AgentPart):
        return "agent"
    return "paste"


class PromptBuffer:
    """Text, cursor, parts and annotations for one compose-then-submit cycle.

    Offsets are code point indices into :attr:`text`.
    """

    def __init__(self) -> None:
        self._text = ""
        self._cursor = 0
        self._parts: list[PromptPart] = []
        self._annotations = AnnotationStore()

        self.on_change: Callable[[str, int], None] | None = None

    # -- Accessors ----------------------------------------------------------

    @property
    def text(self) -> str:
        return self._text

    @property
    def cursor(self) -> int:
        return self._cursor

    @property
    def parts(self) -> list[PromptPart]:
        """Detached copies of the parts; edit through the buffer instead."""
        return copy.deepcopy(self._parts)

    @property
    def annotations(self) -> list[Annotation]:
        return self._annotations.all()

    def annotation(self, annotation_id: int) -> Annotation | None:
        return self._annotations.get(annotation_id)

    def is_empty(self) -> bool:
        return not self._text

    def char_at(self, offset: int) -> str:
        return self._text[offset] if 0 <= offset < len(self._text) else ""

    def count_images(self) -> int:
        return sum(1 for p in self._parts if isinstance(p, FilePart) and p.is_image)

    def segments(self) -> list[Segment]:
        return derive_segments(self._text, self._parts)

    def prompt_info(self, mode: str = "normal") -> PromptInfo:
        return PromptInfo(
            input=self._text,
            parts=copy.deepcopy(self._parts),
            mode="shell" if mode == "shell" else "normal",
        )

    # -- Cursor ---------------------------------------------------------------

    def set_cursor(self, offset: int) -> None:
        self._cursor = max(0, min(offset, len(self._text)))

    def move_cursor(self, delta: int) -> None:
        """Move by *delta* code points, stepping over annotated spans whole."""
        target = max(0, min(self._cursor + delta, len(self._text)))
        mark = self._annotations.at(target)
        if mark is not None and mark.start < target:
            target = mark.end if delta > 0 else mark.start
        self._cursor = target

    # -- Editing --------------------------------------------------------------

    def insert(self, text: str) -> None:
        """Insert *text* at the cursor and move the cursor past it."""
        if not text:
            return
        at = self._cursor
        self._splice(at, at, text)
        self._cursor = at + len(text)
        self._notify()

    def replace_range(self, start: int, end: int, text: str) -> None:
        """Replace ``[start, end)`` with *text*; the cursor ends after it."""
        start, end = self._clamp_range(start, end)
        self._splice(start, end, text)
        self._cursor = start + len(text)
        self._notify()

    def delete_range(self, start: int, end: int) -> None:
        start, end = self._clamp_range(start, end)
        if start == end:
            return
        self._splice(start, end, "")
        if self._cursor >= end:
            self._cursor -= end - start
        elif self._cursor > start:
            self._cursor = start
        self._notify()

    def backspace(self) -> bool:
        """Delete backwards; an annotated span before the cursor goes whole."""
        if self._cursor == 0:
            return False
        mark = self._annotations.at(self._cursor - 1)
        if mark is not None:
            self.delete_range(mark.start, mark.end)
        else:
            size = previous_grapheme_length(self._text, self._cursor)
            self.delete_range(self._cursor - size, self._cursor)
        return True

    def delete_forward(self) -> bool:
        if self._cursor >= len(self._text):
            return False
        mark = self._annotations.at(self._cursor)
        if mark is not None:
            self.delete_range(mark.start, mark.end)
        else:
            size = next_grapheme_length(self._text, self._cursor)
            self.delete_range(self._cursor, self._cursor + size)
        return True

    def insert_part(
        self,
        part: PromptPart,
        display_text: str,
        *,
        start: int | None = None,
        end: int | None = None,
        space_after: bool | None = None,
    ) -> int:
        """Insert *display_text* for *part* and annotate it.

        ``[start, end)`` (default: the cursor) is replaced by the display text
        plus a separating space. ``space_after=None`` only adds the space when
        the following character is not already whitespace. Returns the new
        part's index.
        """
        start = self._cursor if start is None else start
        end = start if end is None else end
        start, end = self._clamp_range(start, end)

        if space_after is None:
            following = self.char_at(end)
            space_after = not (following and is_whitespace_char(following))
        inserted = display_text + (" " if space_after else "")

        self._splice(start, end, inserted)
        part_end = start + len(display_text)
        part_index = len(self._parts)
        part.source = SourceText(start=start, end=part_end, value=display_text)
        self._parts.append(part)
        self._annotations.create(start, part_end, annotation_kind_for(part), part_index)

        self._cursor = start + len(inserted)
        self._notify()
        return part_index

    def set_text(self, text: str) -> None:
        """Replace everything with plain *text*; parts are dropped."""
        self._text = text
        self._parts = []
        self._annotations.clear()
        self._cursor = len(text)
        self._notify()

    def restore(self, info: PromptInfo, *, cursor: int | None = None) -> None:
        """Load a saved prompt, re-annotating parts whose text still matches."""
        self._text = info.input
        self._parts = copy.deepcopy(info.parts)
        self._annotations.clear()
        for index, part in enumerate(self._parts):
            src = part.source
            if src is None:
                continue
            valid = (
                0 <= src.start < src.end <= len(self._text)
                and self._text[src.start : src.end] == src.value
                and not any(
                    a.overlaps(src.start, src.end) for a in self._annotations.all()
                )
            )
            if valid:
                self._annotations.create(
                    src.start, src.end, annotation_kind_for(part), index
                )
            else:
                part.source = None
        self.set_cursor(len(self._text) if cursor is None else cursor)
        self._notify()

    def clear(self) -> None:
        self._text = ""
        self._cursor = 0
        self._parts = []
        self._annotations.clear()
        self._notify()

    # -- Internals ------------------------------------------------------------

    def _clamp_range(self, start: int, end: int) -> tuple[int, int]:
        start = max(0, min(start, len(self._text)))
        end = max(start, min(end, len(self._text)))
        return start, end

    def _splice(self, start: int, end: int, insert: str) -> None:
        self._text = self._text[:start] + insert + self._text[end:]
        removed: list[Annotation] = []
        if end > start:
            removed += self._annotations.shift(start, -(end - start))
        if insert:
            removed += self._annotations.shift(start, len(insert))

        # Orphaned parts stay in the list but drop out of the segment walk
        for mark in removed:
            if 0 <= mark.part_index < len(self._parts):
                self._parts[mark.part_index].source = None
        for mark in self._annotations.all():
            src = self._parts[mark.part_index].source
            if src is not None:
                src.start = mark.start
                src.end = mark.end

    def _notify(self) -> None:
        if self.on_change:
            self.on_change(self._text, self._cursor)
