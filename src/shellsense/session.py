"""Per-tab terminal session state and evaluation loop."""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Iterable, Optional, Protocol, Union

from shellsense.actions import ActionDispatcher
from shellsense.directory.prompt_pattern import extract_dir_from_title
from shellsense.directory.resolver import DirectoryResolver, DirectoryState
from shellsense.persistence import PersistedTabState
from shellsense.terminal.buffer import TextBuffer
from shellsense.terminal.normalizer import (
    CommandEnd,
    CommandStart,
    DirectoryChanged,
    EscapeNormalizer,
    MetadataEvent,
    NormalizedChunk,
    OutputStart,
    PromptStart,
    TitleChanged,
)
from shellsense.triggers.engine import TriggerEngine
from shellsense.triggers.registry import TriggerRegistry
from shellsense.triggers.types import FiredTrigger, TabState
from shellsense.variables import VariableStore, interpolate

logger = logging.getLogger(__name__)

DEFAULT_TAB_NAME = "Terminal"


class ShellStatus(Enum):
    """Shell activity reported through OSC 133."""

    PROMPT = "prompt"
    RUNNING = "running"
    COMPLETED = "completed"


@dataclass
class ShellState:
    status: ShellStatus
    exit_code: Optional[int] = None


@dataclass
class AutoResumeState:
    """Remembered resume command and whether auto-resume is on."""

    command: Optional[str] = None
    enabled: bool = False


@dataclass(frozen=True)
class ProcessInfo:
    """Result of a process-tree lookup for a tab."""

    local_directory: Optional[str] = None
    foreground_command: Optional[str] = None


class ProcessInfoProvider(Protocol):
    """Protocol for looking up the foreground process of a tab."""

    async def get_process_info(self, tab_id: str) -> ProcessInfo:
        """Return the local directory and foreground command for a tab."""
        ...


PtyWriter = Callable[[str], Awaitable[None]]
Renderer = Callable[[bytes], None]


class TerminalSession:
    """One live terminal tab.

    Owns the text buffer, variables, directory state, trigger cooldown
    table, tab state and auto-resume state. Output is fed in order through
    feed(); trigger evaluation runs in a separate task so it never delays
    forwarding output to the renderer.

    Usage:
        session = TerminalSession("tab-1", "ws-1", registry, engine, dispatcher)
        await session.start()
        session.feed(chunk)  # from the PTY reader
        ...
        await session.stop()
    """

    def __init__(
        self,
        tab_id: str,
        workspace_id: str,
        registry: TriggerRegistry,
        engine: TriggerEngine,
        dispatcher: ActionDispatcher,
        writer: Optional[PtyWriter] = None,
        renderer: Optional[Renderer] = None,
        process_info: Optional[ProcessInfoProvider] = None,
        prompt_templates: Iterable[str] = (),
        buffer_size: int = 4096,
        tab_name: str = DEFAULT_TAB_NAME,
        custom_name: bool = False,
    ):
        """Initialize the session.

        Args:
            tab_id: Unique tab identifier.
            workspace_id: Workspace the tab belongs to (trigger scope).
            registry: Shared trigger registry.
            engine: Trigger matching engine.
            dispatcher: Action dispatcher.
            writer: Async function writing text to the PTY.
            renderer: Receives every raw output chunk, unmodified.
            process_info: Process-tree lookup collaborator.
            prompt_templates: Prompt templates for directory fallback.
            buffer_size: Text buffer size in characters.
            tab_name: Stored tab name (may contain %title, %dir, %var).
            custom_name: True if tab_name was set by the user.
        """
        self.tab_id = tab_id
        self.workspace_id = workspace_id
        self.tab_name = tab_name
        self.custom_name = custom_name
        self.tab_state = TabState.NONE
        self.title = ""
        self.shell_state: Optional[ShellState] = None
        self.auto_resume = AutoResumeState()
        self.foreground_command: Optional[str] = None

        self.buffer = TextBuffer(buffer_size)
        self.variables = VariableStore()
        self.last_fire: dict[str, float] = {}

        self._registry = registry
        self._engine = engine
        self._dispatcher = dispatcher
        self._writer = writer
        self._renderer = renderer
        self._process_info = process_info
        self._prompt_templates = tuple(prompt_templates)
        self._normalizer = EscapeNormalizer()
        self._resolver = DirectoryResolver(self._prompt_templates)

        self._pending = asyncio.Event()
        self._task: Optional[asyncio.Task] = None
        self._running = False

    # ------------------------------------------------------------------
    # Output path
    # ------------------------------------------------------------------

    def feed(self, chunk: Union[bytes, str]) -> NormalizedChunk:
        """Process one raw output chunk.

        The chunk is forwarded to the renderer first, then normalized into
        the buffer. Metadata events update title, shell and directory state.

        Args:
            chunk: Raw PTY output.

        Returns:
            The normalization result.
        """
        if self._renderer is not None:
            raw = chunk.encode("utf-8") if isinstance(chunk, str) else chunk
            try:
                self._renderer(raw)
            except Exception as e:
                logger.error("Renderer callback error: %s", e)

        result = self._normalizer.feed(chunk)
        if result.cleared:
            logger.debug("Full-screen redraw in tab %s; clearing buffer", self.tab_id)
            self.buffer.clear()
        self.buffer.append(result.text)

        resolve = False
        for event in result.events:
            resolve = self._handle_event(event) or resolve
        if resolve:
            self._resolver.resolve(self.buffer.text)

        self._pending.set()
        return result

    def _handle_event(self, event: MetadataEvent) -> bool:
        """Apply a metadata event. Returns True if the directory needs resolving."""
        if isinstance(event, TitleChanged):
            self.title = event.title
            return False
        if isinstance(event, DirectoryChanged):
            self._resolver.on_directory_changed(event.path, event.host)
            return True
        if isinstance(event, PromptStart):
            # A finished command stays visible until the next command starts
            if self.shell_state is None or self.shell_state.status is not ShellStatus.COMPLETED:
                self.shell_state = ShellState(ShellStatus.PROMPT)
            return True
        if isinstance(event, (CommandStart, OutputStart)):
            self.shell_state = ShellState(ShellStatus.RUNNING)
            return False
        if isinstance(event, CommandEnd):
            self.shell_state = ShellState(ShellStatus.COMPLETED, event.exit_code)
            return False
        raise TypeError(f"Unknown metadata event: {event!r}")

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    async def evaluate_once(self) -> list[FiredTrigger]:
        """Run one trigger evaluation pass and dispatch fired actions.

        Notifications are handed off without waiting for delivery.

        Returns:
            Triggers that fired on this pass.
        """
        snapshot = self._registry.snapshot
        fired = self._engine.evaluate(
            snapshot,
            self.buffer,
            self.variables,
            self.last_fire,
            workspace_id=self.workspace_id,
        )
        for item in fired:
            await self._dispatcher.dispatch(self, item)
        return fired

    async def start(self) -> None:
        """Start the evaluation task."""
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._evaluation_loop())

    async def stop(self) -> None:
        """Stop the evaluation task and cancel undelivered notifications."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        await self._dispatcher.cancel_pending(self.tab_id)

    async def flush_notifications(self) -> None:
        """Wait until this tab's pending notifications are delivered."""
        await self._dispatcher.drain(self.tab_id)

    @property
    def is_running(self) -> bool:
        """Return True if the evaluation task is running."""
        return self._running

    async def _evaluation_loop(self) -> None:
        """Run a pass whenever new output or variables arrive."""
        try:
            while self._running:
                await self._pending.wait()
                self._pending.clear()
                try:
                    await self.evaluate_once()
                except Exception as e:
                    logger.error("Trigger evaluation error in tab %s: %s", self.tab_id, e)
        except asyncio.CancelledError:
            raise

    # ------------------------------------------------------------------
    # Directory
    # ------------------------------------------------------------------

    @property
    def directory(self) -> DirectoryState:
        """Current directory state."""
        return self._resolver.state

    @property
    def resolved_dir(self) -> Optional[str]:
        """Authoritative current directory, if known."""
        return self._resolver.resolved_dir

    def set_prompt_templates(self, templates: Iterable[str]) -> None:
        """Replace prompt templates and re-resolve the directory."""
        self._prompt_templates = tuple(templates)
        self._resolver.set_prompt_templates(self._prompt_templates)
        self._resolver.resolve(self.buffer.text)

    async def refresh_local_directory(self) -> Optional[str]:
        """Query the process tree and re-resolve the directory.

        Returns:
            The resolved directory after the refresh.
        """
        if self._process_info is not None:
            try:
                info = await self._process_info.get_process_info(self.tab_id)
            except Exception as e:
                logger.warning("Process lookup failed for tab %s: %s", self.tab_id, e)
            else:
                self._resolver.update_local(info.local_directory)
                self.foreground_command = info.foreground_command
        return self._resolver.resolve(self.buffer.text)

    # ------------------------------------------------------------------
    # Dispatch target
    # ------------------------------------------------------------------

    @property
    def display_name(self) -> str:
        """Tab title as shown in the tab header."""
        if not self.custom_name:
            return self.title or self.tab_name
        name = self.tab_name
        if self.title:
            name = name.replace("%title", self.title)
            if "%dir" in name:
                name = name.replace(
                    "%dir", extract_dir_from_title(self.title, self._prompt_templates)
                )
        if "%" in name:
            name = interpolate(name, self.variables.as_dict())
        return name

    def builtin_variables(self) -> dict[str, str]:
        """Reserved interpolation names for notification text."""
        return {
            "title": self.title,
            "tab": self.tab_name,
            "tabtitle": self.display_name,
            "dir": self.resolved_dir or "",
        }

    async def write(self, text: str) -> None:
        """Write text to the PTY.

        Raises:
            RuntimeError: If the session has no writer.
        """
        if self._writer is None:
            raise RuntimeError(f"tab {self.tab_id} has no PTY writer")
        await self._writer(text)

    def enable_auto_resume(self, command: str) -> None:
        """Remember command as the resume command and enable auto-resume."""
        self.auto_resume = AutoResumeState(command=command, enabled=True)

    # ------------------------------------------------------------------
    # Variables and persistence
    # ------------------------------------------------------------------

    def load_variables(self, values: dict[str, str]) -> None:
        """Replace variables and schedule an evaluation pass."""
        self.variables.load(values)
        self._pending.set()

    def clear_variables(self) -> None:
        """Remove all variables."""
        self.variables.clear()
        self._pending.set()

    def export_state(self) -> PersistedTabState:
        """State carried across restarts (independent of scrollback)."""
        return PersistedTabState(
            tab_id=self.tab_id,
            workspace_id=self.workspace_id,
            variables=self.variables.as_dict(),
            auto_resume_command=self.auto_resume.command,
            auto_resume_enabled=self.auto_resume.enabled,
        )

    def restore_state(self, state: PersistedTabState) -> None:
        """Restore variables and auto-resume state."""
        if state.variables:
            self.load_variables(state.variables)
        self.auto_resume = AutoResumeState(
            command=state.auto_resume_command,
            enabled=state.auto_resume_enabled,
        )
