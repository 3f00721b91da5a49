"""Tests for ActionDispatcher."""

import asyncio
from unittest.mock import AsyncMock, Mock

import pytest

from shellsense.actions import ActionDispatcher, NotificationRequest
from shellsense.errors import DispatchError
from shellsense.triggers.types import (
    EnableAutoResumeAction,
    FiredTrigger,
    NotifyAction,
    SendCommandAction,
    SetTabStateAction,
    TabState,
    Trigger,
)


class FakeTarget:
    """Minimal dispatch target."""

    def __init__(self):
        self.tab_id = "tab-1"
        self.workspace_id = "ws-1"
        self.tab_state = TabState.NONE
        self.write = AsyncMock()
        self.auto_resume_command = None

    def builtin_variables(self):
        return {"title": "vim", "tab": "Terminal", "tabtitle": "Build tab", "dir": "/srv"}

    def enable_auto_resume(self, command):
        self.auto_resume_command = command


def fired_with(*actions, variables=None):
    trigger = Trigger(id="t1", name="Test", pattern="x", actions=tuple(actions))
    return FiredTrigger(trigger=trigger, variables=variables or {})


@pytest.fixture
def target():
    return FakeTarget()


@pytest.fixture
def notifier():
    return AsyncMock()


class TestNotify:
    """Notify actions."""

    @pytest.mark.asyncio
    async def test_notification_interpolated(self, target, notifier):
        dispatcher = ActionDispatcher(notifier)
        fired = fired_with(
            NotifyAction(title="%tab", message="Captured %sid in %dir"),
            variables={"sid": "abc"},
        )

        await dispatcher.dispatch(target, fired)
        await dispatcher.drain()

        notifier.assert_awaited_once_with(
            NotificationRequest(
                title="Terminal",
                body="Captured abc in /srv",
                source_workspace_id="ws-1",
                source_tab_id="tab-1",
            )
        )

    @pytest.mark.asyncio
    async def test_default_title_is_tab_title(self, target, notifier):
        dispatcher = ActionDispatcher(notifier)

        await dispatcher.dispatch(target, fired_with(NotifyAction(message="hi")))
        await dispatcher.drain("tab-1")

        request = notifier.await_args.args[0]
        assert request.title == "Build tab"

    @pytest.mark.asyncio
    async def test_disabled_notifications_skipped(self, target, notifier):
        dispatcher = ActionDispatcher(notifier, notifications_enabled=False)

        completed = await dispatcher.dispatch(target, fired_with(NotifyAction(message="x")))
        await dispatcher.drain()

        notifier.assert_not_awaited()
        assert completed == 1
        assert dispatcher.pending_count() == 0

    @pytest.mark.asyncio
    async def test_notifier_failure_reported(self, target):
        on_error = Mock()
        dispatcher = ActionDispatcher(
            AsyncMock(side_effect=ConnectionError("down")), on_error=on_error
        )

        completed = await dispatcher.dispatch(target, fired_with(NotifyAction(message="x")))
        await dispatcher.drain()

        assert completed == 1
        error = on_error.call_args.args[0]
        assert isinstance(error, DispatchError)
        assert error.action == "notify"
        assert error.trigger_id == "t1"
        assert dispatcher.pending_count() == 0


class TestNotificationDelivery:
    """Notifications are delivered in the background."""

    @pytest.mark.asyncio
    async def test_dispatch_does_not_wait_for_delivery(self, target):
        release = asyncio.Event()
        delivered = []

        async def slow_notifier(request):
            await release.wait()
            delivered.append(request.body)

        dispatcher = ActionDispatcher(slow_notifier)
        fired = fired_with(
            NotifyAction(message="hello"),
            SetTabStateAction(state=TabState.DONE),
        )

        completed = await asyncio.wait_for(dispatcher.dispatch(target, fired), timeout=1.0)

        assert completed == 2
        assert target.tab_state is TabState.DONE
        assert dispatcher.pending_count("tab-1") == 1
        assert delivered == []

        release.set()
        await dispatcher.drain("tab-1")

        assert delivered == ["hello"]
        assert dispatcher.pending_count() == 0

    @pytest.mark.asyncio
    async def test_cancel_pending_stops_hung_delivery(self, target):
        cancelled = asyncio.Event()

        async def hung_notifier(request):
            try:
                await asyncio.Event().wait()
            except asyncio.CancelledError:
                cancelled.set()
                raise

        on_error = Mock()
        dispatcher = ActionDispatcher(hung_notifier, on_error=on_error)
        await dispatcher.dispatch(target, fired_with(NotifyAction(message="x")))
        await asyncio.sleep(0)

        count = await dispatcher.cancel_pending("tab-1")

        assert count == 1
        assert cancelled.is_set()
        assert dispatcher.pending_count() == 0
        on_error.assert_not_called()

    @pytest.mark.asyncio
    async def test_pending_tracked_per_tab(self, target):
        other = FakeTarget()
        other.tab_id = "tab-2"

        async def hung_notifier(request):
            await asyncio.Event().wait()

        dispatcher = ActionDispatcher(hung_notifier)
        await dispatcher.dispatch(target, fired_with(NotifyAction(message="a")))
        await dispatcher.dispatch(other, fired_with(NotifyAction(message="b")))

        assert await dispatcher.cancel_pending("tab-1") == 1
        assert dispatcher.pending_count("tab-2") == 1

        await dispatcher.cancel_pending()
        assert dispatcher.pending_count() == 0


class TestSendCommand:
    """SendCommand actions."""

    @pytest.mark.asyncio
    async def test_command_written_with_newline(self, target):
        dispatcher = ActionDispatcher()
        fired = fired_with(
            SendCommandAction(command="claude --resume %sid"), variables={"sid": "abc"}
        )

        await dispatcher.dispatch(target, fired)

        target.write.assert_awaited_once_with("claude --resume abc\n")

    @pytest.mark.asyncio
    async def test_write_failure_does_not_stop_remaining_actions(self, target):
        on_error = Mock()
        target.write.side_effect = OSError("pty closed")
        dispatcher = ActionDispatcher(on_error=on_error)
        fired = fired_with(
            SendCommandAction(command="ls"),
            SetTabStateAction(state=TabState.ERROR),
        )

        completed = await dispatcher.dispatch(target, fired)

        assert completed == 1
        assert target.tab_state is TabState.ERROR
        assert on_error.call_args.args[0].action == "send_command"


class TestSessionActions:
    """Actions acting on session state."""

    @pytest.mark.asyncio
    async def test_enable_auto_resume(self, target):
        fired = fired_with(
            EnableAutoResumeAction(command="claude --resume %sid"), variables={"sid": "abc"}
        )

        await ActionDispatcher().dispatch(target, fired)

        assert target.auto_resume_command == "claude --resume abc"

    @pytest.mark.asyncio
    async def test_set_tab_state(self, target):
        await ActionDispatcher().dispatch(
            target, fired_with(SetTabStateAction(state=TabState.QUESTION))
        )

        assert target.tab_state is TabState.QUESTION

    @pytest.mark.asyncio
    async def test_actions_run_in_order(self, target, notifier):
        calls = []
        target.write.side_effect = lambda text: calls.append(f"write {text.strip()}")
        fired = fired_with(
            NotifyAction(message="first"),
            SendCommandAction(command="second"),
            SetTabStateAction(state=TabState.DONE),
            NotifyAction(message="third"),
        )
        dispatcher = ActionDispatcher(notifier)

        completed = await dispatcher.dispatch(target, fired)
        await dispatcher.drain()

        assert completed == 4
        assert calls == ["write second"]
        assert target.tab_state is TabState.DONE
        assert [c.args[0].body for c in notifier.await_args_list] == ["first", "third"]

    @pytest.mark.asyncio
    async def test_error_callback_failure_is_contained(self, target):
        target.write.side_effect = OSError("closed")
        dispatcher = ActionDispatcher(on_error=Mock(side_effect=RuntimeError("ui gone")))

        completed = await dispatcher.dispatch(target, fired_with(SendCommandAction(command="x")))

        assert completed == 0
