"""Built-in default trigger templates."""

import uuid
from dataclasses import dataclass, replace
from typing import Iterable, Optional

from shellsense.triggers.types import (
    Action,
    EnableAutoResumeAction,
    MatchMode,
    NotifyAction,
    SetTabStateAction,
    TabState,
    Trigger,
    VariableBinding,
)

# Shared by the auto-resume default and user presets
CLAUDE_RESUME_COMMAND = (
    'if [ -n "%claudeSessionId" ]; then claude --resume %claudeSessionId; '
    'elif [ -n "%claudeResumeCommand" ]; then eval %claudeResumeCommand; '
    "else claude --continue; fi"
)


@dataclass(frozen=True)
class TriggerTemplate:
    """Default trigger definition, keyed by a stable default id."""

    name: str
    description: str
    pattern: str
    match_mode: MatchMode
    actions: tuple[Action, ...]
    cooldown_seconds: float
    variables: tuple[VariableBinding, ...] = ()


DEFAULT_TRIGGERS: dict[str, TriggerTemplate] = {
    "claude-resume": TriggerTemplate(
        name="Claude Resume",
        description=(
            "Captures the claude --resume command and session ID when "
            "Claude Code exits."
        ),
        pattern=r'Resume this session with:.*?(claude --resume (?:"[^"\n]+"|([^\s"\n]+)))',
        match_mode=MatchMode.REGEX,
        actions=(NotifyAction(message="Captured: %claudeResumeCommand"),),
        cooldown_seconds=1.0,
        variables=(
            VariableBinding(name="claudeResumeCommand", group=1),
            VariableBinding(name="claudeSessionId", group=2),
        ),
    ),
    "claude-session-id": TriggerTemplate(
        name="Claude Session ID",
        description="Captures the session UUID printed by Claude Code's /status.",
        pattern=(
            r"Session\s*ID:\s*([0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-"
            r"[0-9a-f]{4}-[0-9a-f]{12})"
        ),
        match_mode=MatchMode.REGEX,
        actions=(NotifyAction(message="Captured: claudeSessionId `%claudeSessionId`"),),
        cooldown_seconds=0.3,
        variables=(VariableBinding(name="claudeSessionId", group=1),),
    ),
    "claude-question": TriggerTemplate(
        name="Claude Asking Question",
        description=(
            "Detects when Claude Code stops to ask a question or request "
            "confirmation."
        ),
        pattern=(
            r"Do\s*you\s*want\s*to\s*proceed\?|Do\s*you\s*want\s*to\s*make\s*this\s*edit"
            r"|Enter\s*to\s*confirm\s*·\s*Esc\s*to\s*cancel"
        ),
        match_mode=MatchMode.REGEX,
        actions=(
            NotifyAction(message="Claude needs your attention."),
            SetTabStateAction(state=TabState.QUESTION),
        ),
        cooldown_seconds=0.3,
    ),
    "claude-plan-ready": TriggerTemplate(
        name="Claude Plan Ready",
        description="Detects when Claude has a plan ready for review.",
        pattern="has written up a plan and is ready to execute",
        match_mode=MatchMode.PLAIN_TEXT,
        actions=(
            SetTabStateAction(state=TabState.ALERT),
            NotifyAction(message="Claude has a plan ready for review"),
        ),
        cooldown_seconds=0.3,
    ),
    "claude-compacting": TriggerTemplate(
        name="Claude Compacting",
        description="Notifies when Claude Code is compacting the conversation.",
        pattern="Compacting conversation…",
        match_mode=MatchMode.PLAIN_TEXT,
        actions=(NotifyAction(message="Claude is compacting..."),),
        cooldown_seconds=0.3,
    ),
    "claude-compaction-complete": TriggerTemplate(
        name="Claude Compaction Complete",
        description="Sets the tab to alert when compaction finishes.",
        pattern="Conversation compacted",
        match_mode=MatchMode.PLAIN_TEXT,
        actions=(SetTabStateAction(state=TabState.ALERT),),
        cooldown_seconds=0.3,
    ),
    "claude-auto-resume": TriggerTemplate(
        name="Claude Auto-Resume",
        description=(
            "Enables auto-resume once a Claude session ID or resume command "
            "has been captured."
        ),
        pattern="claudeSessionId || claudeResumeCommand",
        match_mode=MatchMode.VARIABLE,
        actions=(EnableAutoResumeAction(command=CLAUDE_RESUME_COMMAND),),
        cooldown_seconds=5.0,
    ),
}


def _apply_template(trigger: Trigger, template: TriggerTemplate) -> Trigger:
    return replace(
        trigger,
        name=template.name,
        description=template.description,
        pattern=template.pattern,
        match_mode=template.match_mode,
        actions=template.actions,
        variables=template.variables,
        cooldown_seconds=template.cooldown_seconds,
    )


def seed_default_triggers(
    existing: Iterable[Trigger],
    hidden_ids: Iterable[str] = (),
    enable_all: bool = False,
) -> Optional[list[Trigger]]:
    """Seed default triggers into an existing trigger list.

    - Linked defaults not modified by the user are refreshed from the template.
    - A user trigger with a default's name is adopted (linked) as that default.
    - Missing defaults are prepended in template order, disabled unless
      enable_all is set.

    Args:
        existing: Current trigger list.
        hidden_ids: Default ids the user removed; never re-seeded.
        enable_all: Enable newly seeded defaults.

    Returns:
        The updated list, or None if nothing changed.
    """
    triggers = list(existing)
    hidden = set(hidden_ids)
    changed = False
    insert_at = 0

    for default_id, template in DEFAULT_TRIGGERS.items():
        if default_id in hidden:
            continue

        linked = next(
            (i for i, t in enumerate(triggers) if t.default_id == default_id), None
        )
        if linked is not None:
            current = triggers[linked]
            if not current.user_modified:
                refreshed = _apply_template(current, template)
                if refreshed != current:
                    triggers[linked] = refreshed
                    changed = True
            continue

        adopted = next(
            (
                i
                for i, t in enumerate(triggers)
                if t.default_id is None and t.name == template.name
            ),
            None,
        )
        if adopted is not None:
            current = triggers[adopted]
            triggers[adopted] = replace(
                current,
                default_id=default_id,
                description=current.description or template.description,
            )
            changed = True
            continue

        seeded = Trigger(
            id=str(uuid.uuid4()),
            name=template.name,
            pattern=template.pattern,
            match_mode=template.match_mode,
            actions=template.actions,
            variables=template.variables,
            enabled=enable_all,
            cooldown_seconds=template.cooldown_seconds,
            description=template.description,
            default_id=default_id,
        )
        triggers.insert(insert_at, seeded)
        insert_at += 1
        changed = True

    return triggers if changed else None
