"""Compile PS1-like prompt templates into directory-extracting regexes.

Placeholders:
    \\h  hostname            -> \\S+
    \\u  username            -> \\S+
    \\d  directory (captured) -> (.+?)   exactly one required
    \\p  prompt terminator   -> [$#%>]

All other characters are literals. Interior whitespace matches \\s+ and
the pattern is anchored to the end of the line with \\s*$.

Known limitation: there is no way to write a literal "\\d", "\\h", "\\u"
or "\\p" in a template.
"""

import logging
import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Iterable, Optional

from shellsense.errors import PromptPatternError

logger = logging.getLogger(__name__)

PROMPT_CHARS = "[$#%>]"

# Templates already reported as invalid (logged once each)
_reported_invalid: set[str] = set()


@dataclass(frozen=True)
class PromptPattern:
    """A compiled prompt template."""

    template: str
    regex: re.Pattern
    directory_group: int = 1

    def match_directory(self, text: str) -> Optional[str]:
        """Return the captured directory if text matches, else None."""
        match = self.regex.search(text)
        if match is None:
            return None
        return match.group(self.directory_group) or None


def _translate(template: str, optional_prompt: bool) -> str:
    """Translate a template into regex source."""
    parts: list[str] = []
    directory_count = 0
    i = 0
    n = len(template)

    while i < n:
        ch = template[i]
        if ch == "\\" and i + 1 < n:
            placeholder = template[i + 1]
            if placeholder in ("h", "u"):
                parts.append(r"\S+")
                i += 2
                continue
            if placeholder == "d":
                parts.append("(.+?)")
                directory_count += 1
                i += 2
                continue
            if placeholder == "p":
                parts.append(PROMPT_CHARS + ("?" if optional_prompt else ""))
                i += 2
                continue
            # Unknown escape: the backslash is a literal
            parts.append(re.escape("\\"))
            i += 1
            continue

        if ch.isspace():
            while i < n and template[i].isspace():
                i += 1
            if i < n:
                parts.append(r"\s+")
            # Trailing whitespace is absorbed by the end anchor
            continue

        parts.append(re.escape(ch))
        i += 1

    if directory_count != 1:
        raise PromptPatternError(
            f"prompt template {template!r} must contain exactly one \\d "
            f"(found {directory_count})"
        )

    parts.append(r"\s*$")
    return "".join(parts)


@lru_cache(maxsize=256)
def compile_prompt_pattern(template: str, optional_prompt: bool = False) -> PromptPattern:
    """Compile a prompt template.

    Results are cached by (template, optional_prompt) for the lifetime of
    the process.

    Args:
        template: Prompt template with \\h, \\u, \\d, \\p placeholders.
        optional_prompt: Make \\p optional (for terminal titles, which
            omit the prompt character).

    Returns:
        Compiled PromptPattern.

    Raises:
        PromptPatternError: If the template is invalid.
    """
    source = _translate(template, optional_prompt)
    try:
        regex = re.compile(source)
    except re.error as e:
        raise PromptPatternError(
            f"prompt template {template!r} does not compile: {e}"
        ) from e
    return PromptPattern(template=template, regex=regex)


def get_prompt_patterns(
    templates: Iterable[str], optional_prompt: bool = False
) -> list[PromptPattern]:
    """Compile a list of templates, skipping (and logging once) invalid ones."""
    patterns = []
    for template in templates:
        try:
            patterns.append(compile_prompt_pattern(template, optional_prompt))
        except PromptPatternError as e:
            if template not in _reported_invalid:
                _reported_invalid.add(template)
                logger.warning("Ignoring prompt pattern: %s", e)
    return patterns


def extract_directory(text: str, patterns: Iterable[PromptPattern]) -> Optional[str]:
    """Return the first directory captured by any pattern, or None."""
    for pattern in patterns:
        directory = pattern.match_directory(text)
        if directory:
            return directory
    return None


def extract_dir_from_title(title: str, templates: Iterable[str]) -> str:
    """Extract the directory from a terminal title.

    Returns the captured directory, or the title itself if no template
    matches.
    """
    patterns = get_prompt_patterns(templates, optional_prompt=True)
    return extract_directory(title, patterns) or title
