"""Session manager - main coordinator."""

import logging
from typing import Iterable, Optional, Union

from shellsense.actions import ActionDispatcher, ErrorCallback, Notifier
from shellsense.config import Config
from shellsense.directory.prompt_pattern import compile_prompt_pattern
from shellsense.errors import ConfigError, PromptPatternError
from shellsense.persistence import PersistedTabState, TabStatePersistence
from shellsense.session import (
    DEFAULT_TAB_NAME,
    ProcessInfoProvider,
    PtyWriter,
    Renderer,
    TerminalSession,
)
from shellsense.terminal.normalizer import NormalizedChunk
from shellsense.triggers.engine import TriggerEngine
from shellsense.triggers.registry import TriggerRegistry
from shellsense.triggers.types import Trigger

logger = logging.getLogger(__name__)


class SessionManager:
    """Manages terminal sessions and the shared trigger configuration.

    The trigger configuration is shared by all sessions as an immutable
    snapshot; update_triggers() swaps it between evaluation passes.
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        notifier: Optional[Notifier] = None,
        on_dispatch_error: Optional[ErrorCallback] = None,
        process_info: Optional[ProcessInfoProvider] = None,
        persistence: Optional[TabStatePersistence] = None,
    ):
        """Initialize the session manager.

        Args:
            config: Configuration (defaults if None).
            notifier: Async notification delivery function.
            on_dispatch_error: Called with dispatch errors to surface them.
            process_info: Process-tree lookup shared by all sessions.
            persistence: Tab state store for variables and auto-resume.
        """
        self._config = config or Config()
        self._registry = TriggerRegistry(self._config.triggers.items)
        self._engine = TriggerEngine(regex_timeout_ms=self._config.regex_timeout_ms)
        self._dispatcher = ActionDispatcher(
            notifier,
            on_error=on_dispatch_error,
            notifications_enabled=self._config.notifications.enabled,
        )
        self._process_info = process_info
        self._persistence = persistence
        self._prompt_templates: list[str] = list(self._config.prompt_patterns)
        self._sessions: dict[str, TerminalSession] = {}
        self._restored: dict[str, PersistedTabState] = {}

    @property
    def registry(self) -> TriggerRegistry:
        return self._registry

    @property
    def config_errors(self) -> tuple[ConfigError, ...]:
        """Errors from the active trigger configuration."""
        return self._registry.snapshot.errors

    @property
    def session_count(self) -> int:
        """Number of live sessions."""
        return len(self._sessions)

    def get_session(self, tab_id: str) -> Optional[TerminalSession]:
        """Get a live session by tab id."""
        return self._sessions.get(tab_id)

    async def create_session(
        self,
        tab_id: str,
        workspace_id: str,
        writer: Optional[PtyWriter] = None,
        renderer: Optional[Renderer] = None,
        tab_name: str = DEFAULT_TAB_NAME,
        custom_name: bool = False,
        start: bool = True,
    ) -> TerminalSession:
        """Create a session for a newly started tab.

        Persisted variables and auto-resume state for the tab, if loaded,
        are restored.

        Raises:
            ValueError: If a session already exists for tab_id.
        """
        if tab_id in self._sessions:
            raise ValueError(f"Session already exists: {tab_id}")

        session = TerminalSession(
            tab_id=tab_id,
            workspace_id=workspace_id,
            registry=self._registry,
            engine=self._engine,
            dispatcher=self._dispatcher,
            writer=writer,
            renderer=renderer,
            process_info=self._process_info,
            prompt_templates=self._prompt_templates,
            buffer_size=self._config.buffer_size,
            tab_name=tab_name,
            custom_name=custom_name,
        )

        restored = self._restored.pop(tab_id, None)
        if restored is not None:
            session.restore_state(restored)
            logger.debug("Restored state for tab %s", tab_id)

        self._sessions[tab_id] = session
        if start:
            await session.start()

        logger.info("Session created: tab=%s, workspace=%s", tab_id, workspace_id)
        return session

    async def close_session(self, tab_id: str) -> None:
        """Stop and discard a session. Its state is dropped."""
        session = self._sessions.pop(tab_id, None)
        if session is None:
            return
        await session.stop()
        logger.info("Session closed: tab=%s", tab_id)

    async def close_all(self) -> None:
        """Stop all sessions."""
        for tab_id in list(self._sessions):
            await self.close_session(tab_id)

    def feed(self, tab_id: str, chunk: Union[bytes, str]) -> Optional[NormalizedChunk]:
        """Route an output chunk to its session."""
        session = self._sessions.get(tab_id)
        if session is None:
            logger.warning("Output for unknown tab: %s", tab_id)
            return None
        return session.feed(chunk)

    def update_triggers(self, triggers: Iterable[Trigger]) -> tuple[ConfigError, ...]:
        """Activate a new trigger list for all sessions.

        Returns:
            Configuration errors for triggers that were left out.
        """
        return self._registry.update(triggers)

    def update_prompt_patterns(self, templates: Iterable[str]) -> list[PromptPatternError]:
        """Replace prompt templates for all sessions.

        Returns:
            Errors for templates that failed to compile (they are ignored).
        """
        templates = list(templates)
        errors: list[PromptPatternError] = []
        for template in templates:
            try:
                compile_prompt_pattern(template)
            except PromptPatternError as e:
                errors.append(e)

        self._prompt_templates = templates
        for session in self._sessions.values():
            session.set_prompt_templates(templates)
        return errors

    async def load_state(self) -> int:
        """Load persisted tab state for sessions created later.

        Returns:
            Number of tab states loaded.
        """
        if self._persistence is None:
            return 0
        self._restored = await self._persistence.load()
        return len(self._restored)

    async def save_state(self) -> None:
        """Persist variables and auto-resume state of all live sessions."""
        if self._persistence is None:
            return
        states = [session.export_state() for session in self._sessions.values()]
        await self._persistence.save(states)
