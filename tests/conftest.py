"""Pytest configuration and shared fixtures."""

import pytest

from shellsense.config import Config, TriggersConfig
from shellsense.triggers.types import (
    MatchMode,
    NotifyAction,
    Trigger,
    VariableBinding,
)


@pytest.fixture(autouse=True)
def reset_logging_state():
    """Reset logging state before each test."""
    from shellsense.logging import reset_logging

    reset_logging()
    yield
    reset_logging()


@pytest.fixture
def session_id_trigger():
    """Regex trigger capturing a session UUID."""
    return Trigger(
        id="session-id",
        name="Session ID",
        pattern=r"Session ID: ([0-9a-f-]{36})",
        match_mode=MatchMode.REGEX,
        actions=(NotifyAction(message="Captured %sid"),),
        variables=(VariableBinding(name="sid", group=1),),
    )


@pytest.fixture
def config_with(session_id_trigger):
    """Build a Config holding the given triggers (default: session id)."""

    def _build(*triggers, **kwargs):
        items = list(triggers) if triggers else [session_id_trigger]
        return Config(triggers=TriggersConfig(items=items), **kwargs)

    return _build
