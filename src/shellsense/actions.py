"""Action dispatcher for fired triggers."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Protocol

from shellsense.errors import DispatchError
from shellsense.triggers.types import (
    Action,
    EnableAutoResumeAction,
    FiredTrigger,
    NotifyAction,
    SendCommandAction,
    SetTabStateAction,
    TabState,
)
from shellsense.variables import interpolate

logger = logging.getLogger(__name__)

DEFAULT_NOTIFY_TITLE = "%tabtitle"


@dataclass(frozen=True)
class NotificationRequest:
    """Notification handed to the delivery collaborator."""

    title: str
    body: str
    source_workspace_id: str
    source_tab_id: str


Notifier = Callable[[NotificationRequest], Awaitable[None]]
ErrorCallback = Callable[[DispatchError], None]


class DispatchTarget(Protocol):
    """Session-side capabilities used by the dispatcher."""

    tab_id: str
    workspace_id: str
    tab_state: TabState

    def builtin_variables(self) -> dict[str, str]:
        """Reserved interpolation names (title, tab, tabtitle, dir)."""
        ...

    async def write(self, text: str) -> None:
        """Write text to the session's PTY."""
        ...

    def enable_auto_resume(self, command: str) -> None:
        """Remember command and set the auto-resume flag."""
        ...


class ActionDispatcher:
    """Executes the actions of fired triggers.

    Actions of one trigger run in list order. A failing action is logged
    and reported through on_error; the remaining actions still run and
    trigger state is not changed.

    Notifications are handed to the notifier in a background task per
    request, so a slow delivery never holds up the evaluation pass.
    Pending deliveries are tracked per tab and can be awaited with
    drain() or cancelled with cancel_pending().

    Usage:
        dispatcher = ActionDispatcher(notifier)
        for fired in engine.evaluate(...):
            await dispatcher.dispatch(session, fired)
        await dispatcher.cancel_pending(session.tab_id)  # on close
    """

    def __init__(
        self,
        notifier: Optional[Notifier] = None,
        on_error: Optional[ErrorCallback] = None,
        notifications_enabled: bool = True,
    ):
        """Initialize ActionDispatcher.

        Args:
            notifier: Async function delivering notification requests.
            on_error: Called with a DispatchError to surface it to the user.
            notifications_enabled: Master toggle for Notify actions.
        """
        self._notifier = notifier
        self._on_error = on_error
        self._notifications_enabled = notifications_enabled
        self._deliveries: dict[str, set[asyncio.Task]] = {}

    def pending_count(self, tab_id: Optional[str] = None) -> int:
        """Number of notification deliveries still in flight."""
        if tab_id is not None:
            return len(self._deliveries.get(tab_id, ()))
        return sum(len(tasks) for tasks in self._deliveries.values())

    async def drain(self, tab_id: Optional[str] = None) -> None:
        """Wait for pending notification deliveries to finish.

        Args:
            tab_id: Only wait for this tab's deliveries; all tabs if None.
        """
        tasks = self._pending_tasks(tab_id)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def cancel_pending(self, tab_id: Optional[str] = None) -> int:
        """Cancel pending notification deliveries.

        Args:
            tab_id: Only cancel this tab's deliveries; all tabs if None.

        Returns:
            Number of deliveries cancelled.
        """
        tasks = [task for task in self._pending_tasks(tab_id) if not task.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.debug("Cancelled %d pending notifications", len(tasks))
        return len(tasks)

    def _pending_tasks(self, tab_id: Optional[str]) -> list[asyncio.Task]:
        if tab_id is not None:
            return list(self._deliveries.get(tab_id, ()))
        return [task for tasks in self._deliveries.values() for task in tasks]

    async def dispatch(self, target: DispatchTarget, fired: FiredTrigger) -> int:
        """Execute a fired trigger's actions in order.

        Notify actions count as completed once handed off; delivery
        failures are reported later through on_error.

        Args:
            target: Session the trigger fired in.
            fired: Fired trigger with its variable snapshot.

        Returns:
            Number of actions that completed or were handed off.
        """
        completed = 0
        for action in fired.trigger.actions:
            try:
                await self._execute(target, fired, action)
                completed += 1
            except DispatchError as e:
                self._report(e)
        return completed

    async def _execute(
        self, target: DispatchTarget, fired: FiredTrigger, action: Action
    ) -> None:
        trigger = fired.trigger

        if isinstance(action, NotifyAction):
            self._notify(target, fired, action)
        elif isinstance(action, SendCommandAction):
            command = interpolate(action.command, fired.variables)
            try:
                await target.write(command + "\n")
            except Exception as e:
                raise DispatchError(trigger.id, "send_command", str(e)) from e
            logger.info(
                "Trigger %r sent command to tab %s", trigger.name, target.tab_id
            )
        elif isinstance(action, EnableAutoResumeAction):
            command = interpolate(action.command, fired.variables)
            target.enable_auto_resume(command)
            logger.info("Auto-resume enabled for tab %s", target.tab_id)
        elif isinstance(action, SetTabStateAction):
            target.tab_state = action.state
            logger.debug("Tab %s state -> %s", target.tab_id, action.state.value)
        else:
            raise TypeError(f"Unknown action: {action!r}")

    def _notify(
        self, target: DispatchTarget, fired: FiredTrigger, action: NotifyAction
    ) -> None:
        if not self._notifications_enabled or self._notifier is None:
            logger.debug("Notification skipped (disabled): %s", fired.trigger.name)
            return

        builtins = target.builtin_variables()
        request = NotificationRequest(
            title=interpolate(action.title or DEFAULT_NOTIFY_TITLE, fired.variables, builtins),
            body=interpolate(action.message, fired.variables, builtins),
            source_workspace_id=target.workspace_id,
            source_tab_id=target.tab_id,
        )

        tasks = self._deliveries.setdefault(target.tab_id, set())
        task = asyncio.create_task(self._deliver(fired.trigger.id, request))
        tasks.add(task)

        def _discard(done: asyncio.Task) -> None:
            tasks.discard(done)
            if not tasks and self._deliveries.get(target.tab_id) is tasks:
                del self._deliveries[target.tab_id]

        task.add_done_callback(_discard)

    async def _deliver(self, trigger_id: str, request: NotificationRequest) -> None:
        """Send one notification request; failures are reported, not raised."""
        try:
            await self._notifier(request)
        except asyncio.CancelledError:
            logger.debug("Notification cancelled: tab=%s", request.source_tab_id)
            raise
        except Exception as e:
            self._report(DispatchError(trigger_id, "notify", str(e)))
            return
        logger.info(
            "Notification sent: tab=%s, title=%s, body=%s",
            request.source_tab_id,
            request.title[:40],
            request.body[:40],
        )

    def _report(self, error: DispatchError) -> None:
        logger.error("%s", error)
        if self._on_error is not None:
            try:
                self._on_error(error)
            except Exception as e:
                logger.error("Dispatch error callback failed: %s", e)
