"""Terminal output normalization module."""

from shellsense.terminal.buffer import TextBuffer
from shellsense.terminal.normalizer import (
    CommandEnd,
    CommandStart,
    DirectoryChanged,
    EscapeNormalizer,
    MetadataEvent,
    NormalizedChunk,
    NormalizerState,
    OutputStart,
    PromptStart,
    TitleChanged,
)

__all__ = [
    # Buffer
    "TextBuffer",
    # Normalizer
    "EscapeNormalizer",
    "NormalizedChunk",
    "NormalizerState",
    # Events
    "MetadataEvent",
    "TitleChanged",
    "DirectoryChanged",
    "PromptStart",
    "CommandStart",
    "OutputStart",
    "CommandEnd",
]
