"""pi-prompt: interactive prompt composition and message queuing."""

# Position-tracked annotations
from pi.prompt.annotations import Annotation, AnnotationKind, AnnotationStore

# Autocomplete
from pi.prompt.autocomplete import (
    AutocompleteOption,
    AutocompleteSession,
    AutocompleteState,
    OptionProvider,
    Trigger,
    find_trigger,
)

# Text buffer
from pi.prompt.buffer import PromptBuffer

# Commands
from pi.prompt.commands import Command, CommandRegistry, SlashName

# Configuration
from pi.prompt.config import PromptSettings, get_config_dir, load_settings

# File search
from pi.prompt.file_search import (
    LineRange,
    build_file_url,
    extract_line_range,
    remove_line_range,
    search_files,
)

# Frecency
from pi.prompt.frecency import FrecencyEntry, FrecencyTracker, frecency_score

# Fuzzy matching
from pi.prompt.fuzzy import FuzzyMatch, fuzzy_filter, fuzzy_match

# History
from pi.prompt.history import HistoryEntry, PromptHistory

# Prompt parts and segments
from pi.prompt.parts import (
    AgentPart,
    AgentSegment,
    FilePart,
    FileRefSegment,
    ImageSegment,
    PasteSegment,
    PromptInfo,
    PromptPart,
    Segment,
    SourceText,
    SubmitPayload,
    TextPart,
    TextSegment,
    derive_segments,
    extract_absolute_path,
    prepare_message_for_submit,
    render_segments,
)

# Autocomplete providers
from pi.prompt.providers import PromptOptionProvider

# Message queue
from pi.prompt.queue import MessageQueue, QueuedMessage

# Session
from pi.prompt.session import PromptSession, PromptSessionConfig

# Stash
from pi.prompt.stash import PromptStash, StashEntry

# JSONL persistence
from pi.prompt.storage import JsonlFile, parse_jsonl

# Host-facing types
from pi.prompt.types import (
    AgentDescriptor,
    AgentSnapshot,
    AgentStatus,
    Clipboard,
    ClipboardContent,
    FileAttachment,
    KeyEvent,
    Transport,
)

__all__ = [
    "AgentDescriptor",
    "AgentPart",
    "AgentSegment",
    "AgentSnapshot",
    "AgentStatus",
    "Annotation",
    "AnnotationKind",
    "AnnotationStore",
    "AutocompleteOption",
    "AutocompleteSession",
    "AutocompleteState",
    "Clipboard",
    "ClipboardContent",
    "Command",
    "CommandRegistry",
    "FileAttachment",
    "FilePart",
    "FileRefSegment",
    "FrecencyEntry",
    "FrecencyTracker",
    "FuzzyMatch",
    "HistoryEntry",
    "ImageSegment",
    "JsonlFile",
    "KeyEvent",
    "LineRange",
    "MessageQueue",
    "OptionProvider",
    "PasteSegment",
    "PromptBuffer",
    "PromptHistory",
    "PromptInfo",
    "PromptOptionProvider",
    "PromptPart",
    "PromptSession",
    "PromptSessionConfig",
    "PromptSettings",
    "PromptStash",
    "QueuedMessage",
    "Segment",
    "SlashName",
    "SourceText",
    "StashEntry",
    "SubmitPayload",
    "TextPart",
    "TextSegment",
    "Transport",
    "Trigger",
    "build_file_url",
    "derive_segments",
    "extract_absolute_path",
    "extract_line_range",
    "find_trigger",
    "frecency_score",
    "fuzzy_filter",
    "fuzzy_match",
    "get_config_dir",
    "load_settings",
    "parse_jsonl",
    "prepare_message_for_submit",
    "remove_line_range",
    "render_segments",
    "search_files",
]
