"""Trigger system for reacting to terminal output."""

from .types import (
    Action,
    EnableAutoResumeAction,
    FiredTrigger,
    MatchMode,
    NotifyAction,
    SendCommandAction,
    SetTabStateAction,
    TabState,
    Trigger,
    VariableBinding,
)
from .conditions import ConditionNode, evaluate_condition, parse_condition
from .registry import CompiledTrigger, TriggerRegistry, TriggerSnapshot, compile_trigger
from .engine import TriggerEngine
from .defaults import CLAUDE_RESUME_COMMAND, DEFAULT_TRIGGERS, seed_default_triggers

__all__ = [
    "Action",
    "EnableAutoResumeAction",
    "FiredTrigger",
    "MatchMode",
    "NotifyAction",
    "SendCommandAction",
    "SetTabStateAction",
    "TabState",
    "Trigger",
    "VariableBinding",
    "ConditionNode",
    "evaluate_condition",
    "parse_condition",
    "CompiledTrigger",
    "TriggerRegistry",
    "TriggerSnapshot",
    "compile_trigger",
    "TriggerEngine",
    "CLAUDE_RESUME_COMMAND",
    "DEFAULT_TRIGGERS",
    "seed_default_triggers",
]
