"""Tests for TriggerEngine.

Covers:
- Capture, consumption and no re-fire on unchanged text
- Cooldown
- Workspace scope
- Variable-condition triggers
- Ordering within one pass
- ReDoS guard fallbacks
"""

import re
from unittest.mock import Mock, patch

import pytest

from shellsense.terminal.buffer import TextBuffer
from shellsense.triggers.engine import RegexTimeoutError, TriggerEngine
from shellsense.triggers.registry import TriggerSnapshot
from shellsense.triggers.types import (
    EnableAutoResumeAction,
    MatchMode,
    Trigger,
    VariableBinding,
)
from shellsense.variables import VariableStore

SESSION_UUID = "0f8fad5b-d9cb-469f-a165-70867728950e"


@pytest.fixture
def engine():
    return TriggerEngine(regex_timeout_ms=0)


@pytest.fixture
def buffer():
    return TextBuffer(4096)


@pytest.fixture
def variables():
    return VariableStore()


def snapshot_of(*triggers):
    return TriggerSnapshot.build(triggers)


class TestCaptureAndConsume:
    """Matching, variable capture and text consumption."""

    def test_session_id_captured(self, engine, buffer, variables, session_id_trigger):
        buffer.append(f"Session ID: {SESSION_UUID}\n")

        fired = engine.evaluate(snapshot_of(session_id_trigger), buffer, variables, {})

        assert len(fired) == 1
        assert fired[0].trigger.id == "session-id"
        assert variables.get("sid") == SESSION_UUID
        assert fired[0].variables == {"sid": SESSION_UUID}

    def test_matched_text_removed(self, engine, buffer, variables, session_id_trigger):
        buffer.append(f"before Session ID: {SESSION_UUID} after")

        fired = engine.evaluate(snapshot_of(session_id_trigger), buffer, variables, {})

        assert fired[0].match_text == f"Session ID: {SESSION_UUID}"
        assert buffer.text == "before  after"

    def test_no_refire_without_new_output(self, engine, buffer, variables, session_id_trigger):
        snapshot = snapshot_of(session_id_trigger)
        buffer.append(f"Session ID: {SESSION_UUID}")
        last_fire = {}

        first = engine.evaluate(snapshot, buffer, variables, last_fire, now=10.0)
        second = engine.evaluate(snapshot, buffer, variables, last_fire, now=20.0)

        assert len(first) == 1
        assert second == []

    def test_fires_again_on_new_output(self, engine, buffer, variables, session_id_trigger):
        snapshot = snapshot_of(session_id_trigger)
        last_fire = {}
        buffer.append(f"Session ID: {SESSION_UUID}")
        engine.evaluate(snapshot, buffer, variables, last_fire, now=10.0)

        other = "6ba7b810-9dad-11d1-80b4-00c04fd430c8"
        buffer.append(f"Session ID: {other}")
        fired = engine.evaluate(snapshot, buffer, variables, last_fire, now=20.0)

        assert len(fired) == 1
        assert variables.get("sid") == other

    def test_binding_template(self, engine, buffer, variables):
        trigger = Trigger(
            id="resume",
            name="Resume",
            pattern=r"session (\S+)",
            variables=(
                VariableBinding(name="resumeCommand", group=1, template="claude --resume %"),
            ),
        )
        buffer.append("session abc123\n")

        engine.evaluate(snapshot_of(trigger), buffer, variables, {})

        assert variables.get("resumeCommand") == "claude --resume abc123"

    def test_unmatched_group_not_stored(self, engine, buffer, variables):
        trigger = Trigger(
            id="opt",
            name="Optional",
            pattern=r"done(?: in (\d+)s)?",
            variables=(VariableBinding(name="secs", group=1),),
        )
        variables.set("secs", "old")
        buffer.append("done\n")

        fired = engine.evaluate(snapshot_of(trigger), buffer, variables, {})

        assert len(fired) == 1
        assert variables.get("secs") == "old"

    def test_plain_text_match(self, engine, buffer, variables):
        trigger = Trigger(
            id="plan",
            name="Plan",
            pattern="ready to execute?",
            match_mode=MatchMode.PLAIN_TEXT,
        )
        buffer.append("Claude is ready to execute? yes")

        assert len(engine.evaluate(snapshot_of(trigger), buffer, variables, {})) == 1

    def test_regex_spans_lines(self, engine, buffer, variables):
        trigger = Trigger(id="multi", name="Multi", pattern=r"Resume.*?--resume (\S+)")
        buffer.append("Resume this session with:\nclaude --resume abc\n")

        assert len(engine.evaluate(snapshot_of(trigger), buffer, variables, {})) == 1

    def test_evicted_text_never_matches(self, engine, variables):
        buffer = TextBuffer(16)
        trigger = Trigger(id="t", name="T", pattern="NEEDLE")
        buffer.append("NEEDLE" + "x" * 20)

        assert engine.evaluate(snapshot_of(trigger), buffer, variables, {}) == []

class TestEmptyMatches:
    """Zero-width matches cannot be consumed, so they never fire."""

    def test_lookahead_never_fires(self, engine, buffer, variables):
        trigger = Trigger(id="t", name="T", pattern="(?=done)")
        snapshot = snapshot_of(trigger)
        buffer.append("done\n")
        last_fire = {}

        first = engine.evaluate(snapshot, buffer, variables, last_fire, now=0.0)
        later = engine.evaluate(snapshot, buffer, variables, last_fire, now=10.0)

        assert first == []
        assert later == []
        assert buffer.text == "done\n"

    def test_optional_pattern_skips_to_nonempty_match(self, engine, buffer, variables):
        trigger = Trigger(id="t", name="T", pattern="x*")
        snapshot = snapshot_of(trigger)
        buffer.append("abxxc")
        last_fire = {}

        fired = engine.evaluate(snapshot, buffer, variables, last_fire, now=0.0)
        again = engine.evaluate(snapshot, buffer, variables, last_fire, now=10.0)

        assert fired[0].match_text == "xx"
        assert buffer.text == "abc"
        assert again == []

    def test_guarded_search_skips_empty_matches(self, buffer, variables):
        engine = TriggerEngine(regex_timeout_ms=100)
        trigger = Trigger(id="t", name="T", pattern="^")
        buffer.append("text")

        assert engine.evaluate(snapshot_of(trigger), buffer, variables, {}) == []



class TestCooldown:
    """Per-trigger cooldown."""

    def test_trigger_in_cooldown_skipped(self, engine, buffer, variables):
        trigger = Trigger(id="err", name="Error", pattern="ERROR", cooldown_seconds=5.0)
        snapshot = snapshot_of(trigger)
        last_fire = {}

        buffer.append("ERROR 1\n")
        assert len(engine.evaluate(snapshot, buffer, variables, last_fire, now=100.0)) == 1

        buffer.append("ERROR 2\n")
        assert engine.evaluate(snapshot, buffer, variables, last_fire, now=102.0) == []

        # Unconsumed text fires once the cooldown has elapsed
        fired = engine.evaluate(snapshot, buffer, variables, last_fire, now=105.5)
        assert len(fired) == 1
        assert last_fire["err"] == 105.5

    def test_cooldown_is_per_trigger(self, engine, buffer, variables):
        a = Trigger(id="a", name="A", pattern="alpha", cooldown_seconds=10.0)
        b = Trigger(id="b", name="B", pattern="beta", cooldown_seconds=10.0)
        last_fire = {"a": 99.0}
        buffer.append("alpha beta")

        fired = engine.evaluate(snapshot_of(a, b), buffer, variables, last_fire, now=100.0)

        assert [f.trigger.id for f in fired] == ["b"]


class TestScope:
    """Workspace filtering."""

    def test_out_of_scope_trigger_skipped(self, engine, buffer, variables):
        trigger = Trigger(id="t", name="T", pattern="hit", workspaces=frozenset({"ws-a"}))
        buffer.append("hit")

        assert engine.evaluate(snapshot_of(trigger), buffer, variables, {}, "ws-b") == []
        assert buffer.text == "hit"

    def test_in_scope_trigger_fires(self, engine, buffer, variables):
        trigger = Trigger(id="t", name="T", pattern="hit", workspaces=frozenset({"ws-a"}))
        buffer.append("hit")

        assert len(engine.evaluate(snapshot_of(trigger), buffer, variables, {}, "ws-a")) == 1

    def test_empty_scope_is_global(self, engine, buffer, variables):
        trigger = Trigger(id="t", name="T", pattern="hit")
        buffer.append("hit")

        assert len(engine.evaluate(snapshot_of(trigger), buffer, variables, {}, "any")) == 1


class TestVariableTriggers:
    """Condition triggers evaluated against session variables."""

    def test_condition_false(self, engine, buffer, variables):
        trigger = Trigger(id="v", name="V", pattern="sid", match_mode=MatchMode.VARIABLE)

        assert engine.evaluate(snapshot_of(trigger), buffer, variables, {}) == []

    def test_condition_true(self, engine, buffer, variables):
        trigger = Trigger(id="v", name="V", pattern="sid", match_mode=MatchMode.VARIABLE)
        variables.set("sid", "abc")

        fired = engine.evaluate(snapshot_of(trigger), buffer, variables, {})

        assert len(fired) == 1
        assert fired[0].match_text == ""

    def test_refires_after_cooldown_while_true(self, engine, buffer, variables):
        trigger = Trigger(
            id="v",
            name="V",
            pattern="sid",
            match_mode=MatchMode.VARIABLE,
            cooldown_seconds=5.0,
        )
        snapshot = snapshot_of(trigger)
        variables.set("sid", "abc")
        last_fire = {}

        assert len(engine.evaluate(snapshot, buffer, variables, last_fire, now=0.0)) == 1
        assert engine.evaluate(snapshot, buffer, variables, last_fire, now=1.0) == []
        assert len(engine.evaluate(snapshot, buffer, variables, last_fire, now=6.0)) == 1

    def test_sees_capture_from_earlier_trigger(self, engine, buffer, variables, session_id_trigger):
        auto = Trigger(
            id="auto",
            name="Auto",
            pattern="sid",
            match_mode=MatchMode.VARIABLE,
            actions=(EnableAutoResumeAction(command="claude --resume %sid"),),
        )
        buffer.append(f"Session ID: {SESSION_UUID}")

        fired = engine.evaluate(snapshot_of(session_id_trigger, auto), buffer, variables, {})

        assert [f.trigger.id for f in fired] == ["session-id", "auto"]
        assert fired[1].variables["sid"] == SESSION_UUID


class TestOrdering:
    """Configured order and consumption between triggers."""

    def test_earlier_trigger_consumes_overlap(self, engine, buffer, variables):
        first = Trigger(id="first", name="First", pattern="Do you want to proceed\\?")
        second = Trigger(id="second", name="Second", pattern="proceed")
        buffer.append("Do you want to proceed?")

        fired = engine.evaluate(snapshot_of(first, second), buffer, variables, {})

        assert [f.trigger.id for f in fired] == ["first"]

    def test_fired_variables_are_a_snapshot(self, engine, buffer, variables, session_id_trigger):
        buffer.append(f"Session ID: {SESSION_UUID}")
        fired = engine.evaluate(snapshot_of(session_id_trigger), buffer, variables, {})

        variables.set("sid", "changed")

        assert fired[0].variables["sid"] == SESSION_UUID


class TestRegexGuard:
    """ReDoS protection."""

    def test_timeout_returns_no_match(self):
        engine = TriggerEngine(regex_timeout_ms=50)
        regex = Mock()
        regex.pattern = "(a+)+$"
        regex.search.side_effect = RegexTimeoutError("slow")

        assert engine._safe_search(regex, "aaaa") is None

    def test_signal_unavailable_falls_back(self):
        engine = TriggerEngine(regex_timeout_ms=50)

        with patch.object(
            engine, "_search_with_signal_timeout", side_effect=ValueError("not main thread")
        ):
            match = engine._safe_search(re.compile("b"), "abc")

        assert match is not None
        assert match.group(0) == "b"

    def test_guarded_search_matches(self, buffer, variables):
        engine = TriggerEngine(regex_timeout_ms=100)
        trigger = Trigger(id="t", name="T", pattern="needle")
        buffer.append("haystack needle")

        assert len(engine.evaluate(snapshot_of(trigger), buffer, variables, {})) == 1
