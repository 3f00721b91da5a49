"""Trigger types and action definitions."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Union


class MatchMode(Enum):
    """How a trigger's pattern is evaluated."""

    REGEX = "regex"
    PLAIN_TEXT = "plain_text"
    VARIABLE = "variable"


class TabState(Enum):
    """Externally visible tab status, consumed by UI indicators."""

    NONE = "none"
    ALERT = "alert"
    QUESTION = "question"
    BUSY = "busy"
    DONE = "done"
    ERROR = "error"


@dataclass(frozen=True)
class NotifyAction:
    """Send a notification. Empty title falls back to the tab title."""

    title: Optional[str] = None
    message: str = ""


@dataclass(frozen=True)
class SendCommandAction:
    """Write an interpolated command (plus newline) to the PTY."""

    command: str


@dataclass(frozen=True)
class EnableAutoResumeAction:
    """Remember an interpolated resume command and enable auto-resume."""

    command: str


@dataclass(frozen=True)
class SetTabStateAction:
    """Set the tab's status indicator."""

    state: TabState = TabState.ALERT


Action = Union[NotifyAction, SendCommandAction, EnableAutoResumeAction, SetTabStateAction]


@dataclass(frozen=True)
class VariableBinding:
    """Stores a capture group in a session variable.

    If template is set, every '%' in it is replaced by the captured text.
    """

    name: str
    group: int
    template: Optional[str] = None


@dataclass(frozen=True)
class Trigger:
    """User-configured trigger. Treated as read-only input."""

    id: str
    name: str
    pattern: str
    match_mode: MatchMode = MatchMode.REGEX
    actions: tuple[Action, ...] = ()
    variables: tuple[VariableBinding, ...] = ()
    enabled: bool = True
    cooldown_seconds: float = 0.0
    workspaces: frozenset[str] = frozenset()
    description: Optional[str] = None
    default_id: Optional[str] = None
    user_modified: bool = False

    def in_scope(self, workspace_id: Optional[str]) -> bool:
        """True if the trigger applies to the given workspace."""
        if not self.workspaces:
            return True
        return workspace_id in self.workspaces


@dataclass
class FiredTrigger:
    """A trigger that fired during an evaluation pass.

    variables is a copy of the session variables taken at firing time,
    so payloads see exactly what this trigger saw.
    """

    trigger: Trigger
    variables: dict[str, str] = field(default_factory=dict)
    match_text: str = ""
