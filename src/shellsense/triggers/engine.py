"""Trigger matching engine.

Evaluates a trigger snapshot against one session's buffer and variables,
captures variables, consumes matched text and enforces cooldowns.
"""

import logging
import re
import signal
import time
from typing import MutableMapping, Optional

from shellsense.terminal.buffer import TextBuffer
from shellsense.triggers.conditions import evaluate_condition
from shellsense.triggers.registry import CompiledTrigger, TriggerSnapshot
from shellsense.triggers.types import FiredTrigger, MatchMode
from shellsense.variables import VariableStore

logger = logging.getLogger(__name__)


class RegexTimeoutError(Exception):
    """Regex execution timed out (ReDoS protection)."""

    pass


class TriggerEngine:
    """Determines which triggers fire on an evaluation pass.

    Features:
    - Workspace scope filtering
    - Per-trigger cooldown (monotonic clock)
    - Regex, plain-text and variable-condition matching
    - Capture groups stored as session variables
    - Matched text removed from the buffer so it cannot refire
    - ReDoS protection with timeout

    Usage:
        engine = TriggerEngine()
        fired = engine.evaluate(snapshot, buffer, variables, last_fire, "ws-1")
        for item in fired:
            await dispatcher.dispatch(session, item)
    """

    def __init__(self, regex_timeout_ms: int = 100):
        """Initialize TriggerEngine.

        Args:
            regex_timeout_ms: Per-search timeout; 0 disables the guard.
        """
        self._regex_timeout_ms = regex_timeout_ms

    def evaluate(
        self,
        snapshot: TriggerSnapshot,
        buffer: TextBuffer,
        variables: VariableStore,
        last_fire: MutableMapping[str, float],
        workspace_id: Optional[str] = None,
        now: Optional[float] = None,
    ) -> list[FiredTrigger]:
        """Run one evaluation pass.

        Triggers are processed in configured order; later triggers see
        variables captured and text consumed by earlier ones.

        Args:
            snapshot: Compiled trigger configuration for this pass.
            buffer: Session text buffer (matched spans are removed).
            variables: Session variables (captures are written here).
            last_fire: Session table of trigger id -> last fire time.
            workspace_id: Session workspace, for scope filtering.
            now: Monotonic timestamp; defaults to time.monotonic().

        Returns:
            Fired triggers, in order.
        """
        if now is None:
            now = time.monotonic()

        fired: list[FiredTrigger] = []
        for compiled in snapshot.triggers:
            trigger = compiled.trigger

            if not trigger.in_scope(workspace_id):
                continue

            last = last_fire.get(trigger.id)
            if last is not None and now - last < trigger.cooldown_seconds:
                logger.debug("Trigger %r in cooldown", trigger.id)
                continue

            if trigger.match_mode is MatchMode.VARIABLE:
                result = self._match_condition(compiled, variables)
            else:
                result = self._match_buffer(compiled, buffer, variables)

            if result is None:
                continue

            last_fire[trigger.id] = now
            fired.append(
                FiredTrigger(
                    trigger=trigger,
                    variables=variables.as_dict(),
                    match_text=result,
                )
            )
            logger.info("Trigger fired: %s", trigger.name)

        return fired

    def _match_condition(
        self, compiled: CompiledTrigger, variables: VariableStore
    ) -> Optional[str]:
        """Evaluate a variable-mode trigger. Returns "" on success."""
        if compiled.condition is None:
            return None
        if evaluate_condition(compiled.condition, variables.as_dict()):
            return ""
        return None

    def _match_buffer(
        self,
        compiled: CompiledTrigger,
        buffer: TextBuffer,
        variables: VariableStore,
    ) -> Optional[str]:
        """Search the buffer; on match, consume the text and capture variables."""
        if compiled.regex is None:
            return None

        regex = compiled.regex
        match = buffer.consume_match(lambda text: self._safe_search(regex, text))
        if match is None:
            return None

        captured: dict[str, str] = {}
        for binding in compiled.trigger.variables:
            raw = match.group(binding.group)
            if raw is None:
                # Group did not participate in the match
                continue
            if binding.template:
                captured[binding.name] = binding.template.replace("%", raw)
            else:
                captured[binding.name] = raw
        if captured:
            variables.update(captured)

        return match.group(0)

    def _safe_search(self, regex: re.Pattern, text: str) -> Optional[re.Match]:
        """Search with timeout protection against ReDoS.

        Only non-empty matches count: an empty span could never be consumed
        and would fire again on every pass.

        Args:
            regex: Compiled regex pattern.
            text: Text to search.

        Returns:
            First non-empty match if found, None otherwise.
        """
        if self._regex_timeout_ms <= 0:
            return _first_nonempty(regex, text)

        timeout_sec = self._regex_timeout_ms / 1000.0

        # Signal-based timeout is Unix-only and main-thread-only
        try:
            return self._search_with_signal_timeout(regex, text, timeout_sec)
        except (AttributeError, ValueError):
            return _first_nonempty(regex, text)

    def _search_with_signal_timeout(
        self, regex: re.Pattern, text: str, timeout_sec: float
    ) -> Optional[re.Match]:
        """Search with signal-based timeout (Unix only)."""

        def timeout_handler(signum, frame):
            raise RegexTimeoutError(f"Regex timed out after {timeout_sec}s")

        old_handler = signal.signal(signal.SIGALRM, timeout_handler)
        signal.setitimer(signal.ITIMER_REAL, timeout_sec)

        try:
            return _first_nonempty(regex, text)
        except RegexTimeoutError:
            logger.warning(
                "Regex timed out: pattern=%s, text_len=%d",
                regex.pattern[:50],
                len(text),
            )
            return None
        finally:
            signal.setitimer(signal.ITIMER_REAL, 0)
            signal.signal(signal.SIGALRM, old_handler)


def _first_nonempty(regex: re.Pattern, text: str) -> Optional[re.Match]:
    pos = 0
    while pos <= len(text):
        match = regex.search(text, pos)
        if match is None:
            return None
        if match.end() > match.start():
            return match
        pos = match.end() + 1
    return None
