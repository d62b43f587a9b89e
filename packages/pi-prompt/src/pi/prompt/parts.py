"""Prompt parts, display segments and the submit payload.

A prompt is plain text plus a list of parts. Parts that decorate the text
carry a ``source`` range pointing at their badge text in the buffer; the
segment walk in :func:`derive_segments` is the single place that turns
``(text, parts)`` into what is shown and what is sent.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, Union
from urllib.parse import parse_qs, unquote, urlparse

from pi.prompt.types import FileAttachment

def is_image_mime(mime: str) -> bool:
    return mime.startswith("image/")


# ---------------------------------------------------------------------------
# Parts
# ---------------------------------------------------------------------------


@dataclass
class SourceText:
    """The buffer range a part is displayed as."""

    start: int
    end: int
    value: str

    def to_dict(self) -> dict[str, Any]:
        return {"start": self.start, "end": self.end, "value": self.value}

    @classmethod
    def from_dict(cls, d: dict[str, Any] | None) -> SourceText | None:
        if not isinstance(d, dict):
            return None
        return cls(
            start=int(d.get("start", 0)),
            end=int(d.get("end", 0)),
            value=str(d.get("value", "")),
        )


@dataclass
class TextPart:
    """Pasted content shown as a badge; ``text`` is the full content."""

    text: str
    source: SourceText | None = None
    type: Literal["text"] = "text"


@dataclass
class FilePart:
    """A file reference or an attached (usually embedded) image."""

    mime: str
    url: str
    filename: str | None = None
    path: str | None = None
    source: SourceText | None = None
    type: Literal["file"] = "file"

    @property
    def is_image(self) -> bool:
        return is_image_mime(self.mime)


@dataclass
class AgentPart:
    """A mention of a sub-agent by ID."""

    id: str
    source: SourceText | None = None
    type: Literal["agent"] = "agent"


PromptPart = Union[TextPart, FilePart, AgentPart]


def part_to_dict(part: PromptPart) -> dict[str, Any]:
    """Serialize a part for JSONL persistence."""
    d: dict[str, Any] = {"type": part.type}
    if isinstance(part, TextPart):
        d["text"] = part.text
        if part.source is not None:
            d["source"] = {"text": part.source.to_dict()}
    elif isinstance(part, FilePart):
        d["mime"] = part.mime
        d["url"] = part.url
        if part.filename is not None:
            d["filename"] = part.filename
        source: dict[str, Any] = {"type": "file"}
        if part.path is not None:
            source["path"] = part.path
        if part.source is not None:
            source["text"] = part.source.to_dict()
        d["source"] = source
    else:
        d["id"] = part.id
        if part.source is not None:
            d["source"] = {"text": part.source.to_dict()}
    return d


def part_from_dict(d: dict[str, Any]) -> PromptPart | None:
    """Inverse of :func:`part_to_dict`; returns ``None`` for unknown records."""
    if not isinstance(d, dict):
        return None
    source = d.get("source") if isinstance(d.get("source"), dict) else {}
    text_range = SourceText.from_dict(source.get("text"))
    kind = d.get("type")
    if kind == "text" and isinstance(d.get("text"), str):
        return TextPart(text=d["text"], source=text_range)
    if kind == "file" and isinstance(d.get("url"), str):
        return FilePart(
            mime=str(d.get("mime", "text/plain")),
            url=d["url"],
            filename=d.get("filename"),
            path=source.get("path"),
            source=text_range,
        )
    if kind == "agent" and isinstance(d.get("id"), str):
        return AgentPart(id=d["id"], source=text_range)
    return None


def parts_from_list(items: Any) -> list[PromptPart]:
    if not isinstance(items, list):
        return []
    parts = (part_from_dict(item) for item in items)
    return [p for p in parts if p is not None]


@dataclass
class PromptInfo:
    """Complete prompt state: the input text and its parts."""

    input: str = ""
    parts: list[PromptPart] = field(default_factory=list)
    mode: Literal["normal", "shell"] = "normal"


# ---------------------------------------------------------------------------
# Segments
# ---------------------------------------------------------------------------


@dataclass
class TextSegment:
    text: str
    type: Literal["text"] = "text"

    @property
    def display_text(self) -> str:
        return self.text


@dataclass
class ImageSegment:
    mime: str
    url: str
    display_text: str
    filename: str | None = None
    type: Literal["image"] = "image"


@dataclass
class FileRefSegment:
    url: str
    display_text: str
    type: Literal["fileRef"] = "fileRef"


@dataclass
class AgentSegment:
    id: str
    display_text: str
    type: Literal["agent"] = "agent"


@dataclass
class PasteSegment:
    text: str
    display_text: str
    type: Literal["paste"] = "paste"


Segment = Union[TextSegment, ImageSegment, FileRefSegment, AgentSegment, PasteSegment]


def _segment_for(part: PromptPart, display_text: str) -> Segment:
    if isinstance(part, FilePart):
        if part.is_image:
            return ImageSegment(
                mime=part.mime,
                url=part.url,
                display_text=display_text,
                filename=part.filename,
            )
        return FileRefSegment(url=part.url, display_text=display_text)
    if isinstance(part, AgentPart):
        return AgentSegment(id=part.id, display_text=display_text)
    return PasteSegment(text=part.text, display_text=display_text)


def derive_segments(text: str, parts: list[PromptPart]) -> list[Segment]:
    """Split *text* into plain-text and part segments, left to right.

    Parts without a source range are skipped. A part whose range falls
    outside the text, overlaps an earlier part or no longer matches its
    recorded value is not trusted and its span stays plain text.
    """
    ranges = sorted(
        (p for p in parts if p.source is not None),
        key=lambda p: p.source.start,  # type: ignore[union-attr]
    )

    segments: list[Segment] = []
    cursor = 0

    for part in ranges:
        src = part.source
        assert src is not None
        if src.start < cursor or src.end > len(text) or src.end <= src.start:
            continue
        display_text = text[src.start : src.end]
        if src.value and display_text != src.value:
            continue

        if src.start > cursor:
            segments.append(TextSegment(text=text[cursor : src.start]))
        segments.append(_segment_for(part, display_text))
        cursor = src.end

    if cursor < len(text):
        segments.append(TextSegment(text=text[cursor:]))

    return segments


def render_segments(segments: list[Segment]) -> str:
    """Flatten segments back into the text the user sees."""
    return "".join(seg.display_text for seg in segments)


# ---------------------------------------------------------------------------
# Submit payload
# ---------------------------------------------------------------------------


def extract_absolute_path(url: str) -> str:
    """Turn a ``file://`` URL back into a path, keeping any line range.

    ``file:///repo/app.py?start=10&end=20`` becomes ``/repo/app.py#10-20``.
    Anything that is not a file URL is returned unchanged.
    """
    parsed = urlparse(url)
    if parsed.scheme != "file":
        return url
    path = unquote(parsed.path)
    query = parse_qs(parsed.query)
    start = query.get("start", [""])[0]
    end = query.get("end", [""])[0]
    if start:
        path += f"#{start}" + (f"-{end}" if end else "")
    return path


@dataclass
class SubmitPayload:
    text: str
    files: list[FileAttachment] = field(default_factory=list)


def prepare_message_for_submit(text: str, parts: list[PromptPart]) -> SubmitPayload:
    """Fold the segment walk into outgoing text and file attachments."""
    payload = SubmitPayload(text="")
    chunks: list[str] = []

    for seg in derive_segments(text, parts):
        if isinstance(seg, TextSegment):
            chunks.append(seg.text)
        elif isinstance(seg, ImageSegment):
            chunks.append(seg.display_text)
            payload.files.append(
                FileAttachment(
                    media_type=seg.mime,
                    filename=seg.filename,
                    url=seg.url,
                )
            )
        elif isinstance(seg, FileRefSegment):
            chunks.append(extract_absolute_path(seg.url))
        elif isinstance(seg, AgentSegment):
            chunks.append(seg.display_text)
        else:
            chunks.append(seg.text)

    payload.text = "".join(chunks)
    return payload
