"""Working-directory resolution for a terminal session.

Three sources feed the resolver:

- the directory reported by the shell via OSC 7,
- the local directory of the foreground process (process-tree lookup),
- the prompt line in the output buffer, matched with prompt templates.

An OSC 7 report equal to the local directory is treated as stale: it was
set by the local shell before a remote session (e.g. ssh) started, and the
remote side never sent its own. In that case, or when no report exists,
the directory is extracted from the latest prompt line instead.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional

from shellsense.directory.prompt_pattern import (
    PromptPattern,
    extract_directory,
    get_prompt_patterns,
)

logger = logging.getLogger(__name__)

# Number of non-empty lines (from the bottom) searched for a prompt
PROMPT_SCAN_LINES = 6


class DirectorySource(Enum):
    """Which input produced the resolved directory."""

    REPORTED = "reported"
    PROMPT = "prompt"


@dataclass
class DirectoryState:
    """Per-session directory state."""

    reported_dir: Optional[str] = None
    reported_host: Optional[str] = None
    local_dir: Optional[str] = None
    resolved_dir: Optional[str] = None
    stale: bool = False
    source: Optional[DirectorySource] = None


def _normalize(path: Optional[str]) -> Optional[str]:
    """Normalize a path for equality comparison."""
    if not path:
        return None
    if len(path) > 1:
        path = path.rstrip("/") or "/"
    return path


def find_prompt_directory(
    text: str,
    patterns: Iterable[PromptPattern],
    max_lines: int = PROMPT_SCAN_LINES,
) -> Optional[str]:
    """Find the directory in the latest prompt line of text.

    Scans up to max_lines non-empty lines from the bottom.

    Args:
        text: Normalized buffer text.
        patterns: Compiled prompt patterns, tried in order per line.
        max_lines: Number of non-empty lines to inspect.

    Returns:
        Captured directory, or None.
    """
    patterns = list(patterns)
    if not patterns:
        return None

    scanned = 0
    for line in reversed(text.split("\n")):
        line = line.strip()
        if not line:
            continue
        directory = extract_directory(line, patterns)
        if directory:
            return directory
        scanned += 1
        if scanned >= max_lines:
            break
    return None


class DirectoryResolver:
    """Resolves a single authoritative working directory for a session."""

    def __init__(self, prompt_templates: Iterable[str] = ()):
        """Initialize DirectoryResolver.

        Args:
            prompt_templates: Prompt templates used for the prompt fallback.
        """
        self._templates: tuple[str, ...] = ()
        self._patterns: list[PromptPattern] = []
        self.state = DirectoryState()
        self.set_prompt_templates(prompt_templates)

    @property
    def resolved_dir(self) -> Optional[str]:
        """The current resolved directory."""
        return self.state.resolved_dir

    def set_prompt_templates(self, templates: Iterable[str]) -> None:
        """Replace prompt templates. Recompiles only if the text changed."""
        templates = tuple(templates)
        if templates == self._templates:
            return
        self._templates = templates
        self._patterns = get_prompt_patterns(templates)

    def on_directory_changed(self, path: str, host: Optional[str] = None) -> None:
        """Record an OSC 7 directory report."""
        self.state.reported_dir = path
        self.state.reported_host = host

    def update_local(self, local_dir: Optional[str]) -> None:
        """Record the result of a process-tree directory lookup."""
        self.state.local_dir = local_dir

    def resolve(self, buffer_text: str = "") -> Optional[str]:
        """Re-evaluate the resolved directory.

        Args:
            buffer_text: Current normalized buffer contents.

        Returns:
            The resolved directory, or None if no source is available.
        """
        state = self.state
        reported = _normalize(state.reported_dir)
        local = _normalize(state.local_dir)

        state.stale = reported is not None and local is not None and reported == local

        if reported is not None and not state.stale:
            state.resolved_dir = state.reported_dir
            state.source = DirectorySource.REPORTED
            return state.resolved_dir

        if state.stale:
            logger.debug(
                "Reported directory %s equals local directory; "
                "treating as stale and using prompt fallback",
                state.reported_dir,
            )

        prompt_dir = find_prompt_directory(buffer_text, self._patterns)
        if prompt_dir is not None:
            state.resolved_dir = prompt_dir
            state.source = DirectorySource.PROMPT
        else:
            state.resolved_dir = None
            state.source = None
        return state.resolved_dir
