"""Compiled trigger snapshots with atomic replacement.

Configuration edits build a new immutable TriggerSnapshot; the registry
swaps the reference in one assignment. An evaluation pass reads the
snapshot once at its start, so an edit is observed only by the next pass.
"""

import logging
import re
from dataclasses import dataclass
from typing import Iterable, Optional

from shellsense.errors import ConditionSyntaxError, ConfigError, TriggerPatternError
from shellsense.triggers.conditions import ConditionNode, parse_condition
from shellsense.triggers.types import MatchMode, Trigger

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CompiledTrigger:
    """A trigger with its pattern compiled for its match mode."""

    trigger: Trigger
    regex: Optional[re.Pattern] = None
    condition: Optional[ConditionNode] = None


def compile_trigger(trigger: Trigger) -> CompiledTrigger:
    """Compile a trigger's pattern.

    Regex patterns use DOTALL so '.' spans line breaks in the buffer.
    Plain-text patterns match as a literal substring.

    Raises:
        TriggerPatternError: If the pattern or a variable binding is invalid.
    """
    mode = trigger.match_mode

    if mode is MatchMode.VARIABLE:
        try:
            condition = parse_condition(trigger.pattern)
        except ConditionSyntaxError as e:
            raise TriggerPatternError(trigger.id, f"invalid condition: {e}") from e
        if trigger.variables:
            logger.warning(
                "Trigger %r: variable bindings are ignored in variable mode",
                trigger.id,
            )
        return CompiledTrigger(trigger=trigger, condition=condition)

    if mode is MatchMode.REGEX:
        try:
            regex = re.compile(trigger.pattern, re.DOTALL)
        except re.error as e:
            raise TriggerPatternError(trigger.id, f"invalid regex: {e}") from e
        if regex.match("") is not None:
            logger.warning(
                "Trigger %r: pattern can match empty text; empty matches never fire",
                trigger.id,
            )
    elif mode is MatchMode.PLAIN_TEXT:
        regex = re.compile(re.escape(trigger.pattern))
    else:
        raise TriggerPatternError(trigger.id, f"unknown match mode: {mode!r}")

    for binding in trigger.variables:
        if binding.group > regex.groups:
            raise TriggerPatternError(
                trigger.id,
                f"variable {binding.name!r} uses group {binding.group} "
                f"but the pattern has {regex.groups} group(s)",
            )

    return CompiledTrigger(trigger=trigger, regex=regex)


@dataclass(frozen=True)
class TriggerSnapshot:
    """Immutable, compiled view of the trigger configuration."""

    triggers: tuple[CompiledTrigger, ...] = ()
    errors: tuple[ConfigError, ...] = ()
    version: int = 0

    def __len__(self) -> int:
        return len(self.triggers)

    @classmethod
    def build(cls, triggers: Iterable[Trigger], version: int = 0) -> "TriggerSnapshot":
        """Compile triggers, collecting (and logging) configuration errors.

        Disabled triggers and triggers with an empty pattern are left out.
        """
        compiled: list[CompiledTrigger] = []
        errors: list[ConfigError] = []
        for trigger in triggers:
            if not trigger.enabled or not trigger.pattern:
                continue
            try:
                compiled.append(compile_trigger(trigger))
            except ConfigError as e:
                logger.warning("Trigger %r disabled: %s", trigger.name, e)
                errors.append(e)
        return cls(triggers=tuple(compiled), errors=tuple(errors), version=version)


class TriggerRegistry:
    """Holds the active trigger snapshot.

    Usage:
        registry = TriggerRegistry(config.triggers.items)
        snapshot = registry.snapshot  # read once per pass
        registry.update(new_triggers)  # takes effect on the next pass
    """

    def __init__(self, triggers: Iterable[Trigger] = ()):
        self._version = 0
        self._snapshot = TriggerSnapshot.build(triggers, version=self._version)

    @property
    def snapshot(self) -> TriggerSnapshot:
        """The active snapshot."""
        return self._snapshot

    def update(self, triggers: Iterable[Trigger]) -> tuple[ConfigError, ...]:
        """Compile and activate a new trigger list.

        Returns:
            Configuration errors for triggers that were left out.
        """
        self._version += 1
        snapshot = TriggerSnapshot.build(triggers, version=self._version)
        self._snapshot = snapshot
        logger.info(
            "Trigger configuration v%d active: %d trigger(s), %d invalid",
            snapshot.version,
            len(snapshot.triggers),
            len(snapshot.errors),
        )
        return snapshot.errors
