"""Position-tracked annotations over the prompt buffer.

An annotation decorates a ``[start, end)`` range of the buffer (a file
reference, an agent mention, a paste or image badge) and points at the prompt
part it stands for. Annotations are owned by an :class:`AnnotationStore`
arena; callers only ever see immutable :class:`Annotation` snapshots.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Literal

AnnotationKind = Literal["file", "agent", "paste", "image"]


@dataclass(frozen=True)
class Annotation:
    id: int
    start: int
    end: int
    kind: AnnotationKind
    part_index: int

    @property
    def length(self) -> int:
        return self.end - self.start

    def overlaps(self, start: int, end: int) -> bool:
        """True if ``[start, end)`` shares at least one offset with this range."""
        return self.start < end and start < self.end


class AnnotationStore:
    """Arena of non-overlapping annotations keyed by stable integer IDs.

    Every buffer edit must be reported through :meth:`shift` so annotations
    after the edit point move with the text and annotations whose text was
    touched disappear.
    """

    def __init__(self) -> None:
        self._marks: dict[int, Annotation] = {}
        self._next_id = 1

    def __len__(self) -> int:
        return len(self._marks)

    def __iter__(self):
        return iter(self.all())

    # -- Queries --------------------------------------------------------------

    def get(self, annotation_id: int) -> Annotation | None:
        return self._marks.get(annotation_id)

    def all(self) -> list[Annotation]:
        """All annotations ordered by start offset."""
        return sorted(self._marks.values(), key=lambda a: (a.start, a.end))

    def at(self, offset: int) -> Annotation | None:
        """The annotation whose range contains *offset* (start inclusive)."""
        for mark in self._marks.values():
            if mark.start <= offset < mark.end:
                return mark
        return None

    def ending_at(self, offset: int) -> Annotation | None:
        for mark in self._marks.values():
            if mark.end == offset and mark.length > 0:
                return mark
        return None

    def for_part(self, part_index: int) -> Annotation | None:
        for mark in self._marks.values():
            if mark.part_index == part_index:
                return mark
        return None

    # -- Mutation -------------------------------------------------------------

    def create(
        self, start: int, end: int, kind: AnnotationKind, part_index: int
    ) -> int:
        """Create an annotation and return its ID.

        Older annotations overlapping the new range are deleted first.
        """
        if start < 0 or end < start:
            raise ValueError(f"Invalid annotation range [{start}, {end})")
        self.delete_overlapping(start, end)
        annotation_id = self._next_id
        self._next_id += 1
        self._marks[annotation_id] = Annotation(
            id=annotation_id,
            start=start,
            end=end,
            kind=kind,
            part_index=part_index,
        )
        return annotation_id

    def delete(self, annotation_id: int) -> Annotation | None:
        return self._marks.pop(annotation_id, None)

    def delete_overlapping(self, start: int, end: int) -> list[Annotation]:
        """Remove every annotation sharing an offset with ``[start, end)``.

        An empty range removes annotations that strictly contain it.
        """
        removed = [
            mark
            for mark in self._marks.values()
            if mark.overlaps(start, end)
            or (start == end and mark.start < start < mark.end)
        ]
        for mark in removed:
            del self._marks[mark.id]
        return removed

    def shift(self, edit_point: int, delta: int) -> list[Annotation]:
        """Track an edit of *delta* code points at *edit_point*.

        ``delta > 0`` is an insertion at *edit_point*; ``delta < 0`` deletes
        ``[edit_point, edit_point - delta)``. Annotations after the edit move,
        annotations whose text is touched by the edit are removed and
        returned.
        """
        if delta == 0:
            return []

        if delta > 0:
            removed = self.delete_overlapping(edit_point, edit_point)
            for mark in list(self._marks.values()):
                if mark.start >= edit_point:
                    self._marks[mark.id] = replace(
                        mark, start=mark.start + delta, end=mark.end + delta
                    )
            return removed

        deleted_end = edit_point - delta
        removed = self.delete_overlapping(edit_point, deleted_end)
        for mark in list(self._marks.values()):
            if mark.start >= deleted_end:
                self._marks[mark.id] = replace(
                    mark, start=mark.start + delta, end=mark.end + delta
                )
        return removed

    def clear(self) -> None:
        self._marks.clear()
