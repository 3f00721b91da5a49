"""Escape-sequence normalizer for raw terminal output.

Strips control sequences from the output stream, producing plain text for
pattern matching, and extracts shell metadata carried in OSC sequences:

- OSC 0 / OSC 2: window title
- OSC 7: working directory as a file:// URI
- OSC 133: prompt/command boundaries (A, B, C, D[;exit])

State is kept between chunks, so sequences (and UTF-8 characters) split
across chunk boundaries are handled.
"""

import codecs
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Union
from urllib.parse import unquote, urlsplit

logger = logging.getLogger(__name__)

ESC = "\x1b"
BEL = "\x07"
ST_8BIT = "\x9c"

MAX_OSC_LENGTH = 8192
MAX_CSI_LENGTH = 64

# CSI sequences (params + final byte) that enter the alternate screen
ALT_SCREEN_ENTER = frozenset({"?1049h", "?1047h", "?47h"})

# Erase-display sequences that, next to a cursor-home, signal a full redraw
ERASE_DISPLAY = frozenset({"2J", "3J"})
CURSOR_HOME = frozenset({"H", "f", "1;1H", ";H", "1H", "1;1f"})


class NormalizerState(Enum):
    """Parser states."""

    GROUND = "ground"
    ESCAPE = "escape"
    ESCAPE_INTERMEDIATE = "escape_intermediate"
    CSI = "csi"
    OSC = "osc"
    OSC_ESCAPE = "osc_escape"
    STRING = "string"  # DCS, SOS, PM, APC, over-long OSC: discarded
    STRING_ESCAPE = "string_escape"


@dataclass(frozen=True)
class TitleChanged:
    """OSC 0/2 title report."""

    title: str


@dataclass(frozen=True)
class DirectoryChanged:
    """OSC 7 working directory report."""

    path: str
    host: Optional[str] = None


@dataclass(frozen=True)
class PromptStart:
    """OSC 133;A"""


@dataclass(frozen=True)
class CommandStart:
    """OSC 133;B"""


@dataclass(frozen=True)
class OutputStart:
    """OSC 133;C"""


@dataclass(frozen=True)
class CommandEnd:
    """OSC 133;D with optional exit code."""

    exit_code: Optional[int] = None


MetadataEvent = Union[
    TitleChanged, DirectoryChanged, PromptStart, CommandStart, OutputStart, CommandEnd
]


@dataclass
class NormalizedChunk:
    """Result of normalizing one output chunk.

    If cleared is True, a full-screen redraw was detected and text holds
    only what followed the last clear point; the consumer should clear its
    buffer before appending.
    """

    text: str = ""
    events: list[MetadataEvent] = field(default_factory=list)
    cleared: bool = False


def parse_osc7(payload: str) -> Optional[DirectoryChanged]:
    """Parse an OSC 7 payload (scheme://host/path) into a DirectoryChanged.

    Args:
        payload: The part of the OSC after "7;".

    Returns:
        DirectoryChanged, or None if the payload holds no usable path.
    """
    payload = payload.strip()
    if not payload:
        return None

    if "://" not in payload:
        # Some shells report a bare path
        if payload.startswith("/"):
            return DirectoryChanged(path=unquote(payload))
        return None

    parts = urlsplit(payload)
    path = unquote(parts.path)
    if not path:
        return None
    host = parts.hostname or None
    return DirectoryChanged(path=path, host=host)


def parse_osc133(payload: str) -> Optional[MetadataEvent]:
    """Parse an OSC 133 payload (the part after "133;")."""
    fields = payload.split(";")
    marker = fields[0].strip()
    if marker == "A":
        return PromptStart()
    if marker == "B":
        return CommandStart()
    if marker == "C":
        return OutputStart()
    if marker == "D":
        exit_code = None
        if len(fields) > 1:
            try:
                exit_code = int(fields[1])
            except ValueError:
                exit_code = None
        return CommandEnd(exit_code=exit_code)
    return None


class EscapeNormalizer:
    """Strips escape sequences and extracts metadata events.

    Usage:
        normalizer = EscapeNormalizer()
        for chunk in output_stream:
            result = normalizer.feed(chunk)
            if result.cleared:
                buffer.clear()
            buffer.append(result.text)
            for event in result.events:
                # Handle metadata
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._state = NormalizerState.GROUND
        self._sequence: list[str] = []
        self._last_csi: Optional[str] = None

    @property
    def state(self) -> NormalizerState:
        """Current parser state."""
        return self._state

    def reset(self) -> None:
        """Reset parser state."""
        self._decoder.reset()
        self._state = NormalizerState.GROUND
        self._sequence = []
        self._last_csi = None

    def feed(self, chunk: Union[bytes, str]) -> NormalizedChunk:
        """Normalize one raw output chunk.

        Args:
            chunk: Raw terminal output (bytes are decoded as UTF-8).

        Returns:
            NormalizedChunk with stripped text and metadata events.
        """
        if isinstance(chunk, bytes):
            data = self._decoder.decode(chunk)
        else:
            data = chunk

        result = NormalizedChunk()
        out: list[str] = []

        for ch in data:
            state = self._state

            if state is NormalizerState.GROUND:
                if ch == ESC:
                    self._state = NormalizerState.ESCAPE
                elif ch == "\n" or ch == "\t":
                    out.append(ch)
                    self._last_csi = None
                elif ch < " " or ch == "\x7f" or "\x80" <= ch <= "\x9f":
                    # CR, BEL, backspace and other controls carry no text
                    pass
                else:
                    out.append(ch)
                    self._last_csi = None

            elif state is NormalizerState.ESCAPE:
                self._handle_escape(ch, out, result)

            elif state is NormalizerState.ESCAPE_INTERMEDIATE:
                if not (" " <= ch <= "/"):
                    self._state = NormalizerState.GROUND

            elif state is NormalizerState.CSI:
                if "@" <= ch <= "~":
                    sequence = "".join(self._sequence) + ch
                    self._sequence = []
                    self._state = NormalizerState.GROUND
                    if self._is_redraw(sequence):
                        out.clear()
                        result.cleared = True
                elif ch == ESC:
                    self._sequence = []
                    self._state = NormalizerState.ESCAPE
                elif " " <= ch <= "?":
                    if len(self._sequence) < MAX_CSI_LENGTH:
                        self._sequence.append(ch)
                # Other controls inside CSI are ignored

            elif state is NormalizerState.OSC:
                if ch == BEL or ch == ST_8BIT:
                    self._finish_osc(result)
                elif ch == ESC:
                    self._state = NormalizerState.OSC_ESCAPE
                else:
                    self._sequence.append(ch)
                    if len(self._sequence) > MAX_OSC_LENGTH:
                        logger.debug("Dropping over-long OSC payload")
                        self._sequence = []
                        self._state = NormalizerState.STRING

            elif state is NormalizerState.OSC_ESCAPE:
                if ch == "\\":
                    self._finish_osc(result)
                else:
                    # Unterminated OSC interrupted by a new escape
                    self._sequence = []
                    self._state = NormalizerState.ESCAPE
                    self._handle_escape(ch, out, result)

            elif state is NormalizerState.STRING:
                if ch == ESC:
                    self._state = NormalizerState.STRING_ESCAPE
                elif ch == ST_8BIT or ch == BEL:
                    self._state = NormalizerState.GROUND

            elif state is NormalizerState.STRING_ESCAPE:
                if ch == "\\":
                    self._state = NormalizerState.GROUND
                else:
                    self._state = NormalizerState.ESCAPE
                    self._handle_escape(ch, out, result)

        result.text = "".join(out)
        return result

    def _handle_escape(
        self, ch: str, out: list[str], result: NormalizedChunk
    ) -> None:
        """Handle the character following ESC."""
        if ch == "[":
            self._sequence = []
            self._state = NormalizerState.CSI
        elif ch == "]":
            self._sequence = []
            self._state = NormalizerState.OSC
        elif ch in "PX^_":
            self._state = NormalizerState.STRING
        elif " " <= ch <= "/":
            self._state = NormalizerState.ESCAPE_INTERMEDIATE
        elif ch == ESC:
            self._state = NormalizerState.ESCAPE
        elif ch == "c":
            # RIS: full terminal reset
            out.clear()
            result.cleared = True
            self._state = NormalizerState.GROUND
        else:
            self._state = NormalizerState.GROUND

    def _is_redraw(self, sequence: str) -> bool:
        """Track CSI sequences and report clear + home pairs."""
        if sequence.endswith("m"):
            # SGR does not break a clear/home pair
            return False

        previous = self._last_csi
        self._last_csi = sequence

        if sequence in ALT_SCREEN_ENTER:
            logger.debug("Alternate screen entered: %r", sequence)
            return True
        if sequence in ERASE_DISPLAY and previous in CURSOR_HOME:
            return True
        if sequence in CURSOR_HOME and previous in ERASE_DISPLAY:
            return True
        return False

    def _finish_osc(self, result: NormalizedChunk) -> None:
        """Dispatch a complete OSC payload."""
        payload = "".join(self._sequence)
        self._sequence = []
        self._state = NormalizerState.GROUND

        code, _, rest = payload.partition(";")
        event: Optional[MetadataEvent] = None
        if code in ("0", "2"):
            event = TitleChanged(title=rest)
        elif code == "7":
            event = parse_osc7(rest)
        elif code == "133":
            event = parse_osc133(rest)

        if event is not None:
            result.events.append(event)
