"""Per-tab trigger state persistence via JSON file."""

import asyncio
import json
import logging
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


@dataclass
class PersistedTabState:
    """Tab state carried across restarts, alongside scrollback."""

    tab_id: str
    workspace_id: str
    variables: dict[str, str] = field(default_factory=dict)
    auto_resume_command: Optional[str] = None
    auto_resume_enabled: bool = False


class TabStatePersistence:
    """Handles loading and saving tab state to JSON.

    Uses atomic writes to prevent corruption.
    """

    def __init__(
        self,
        path: Path | str | None = None,
        file_ops: dict[str, Callable[..., Any]] | None = None,
    ):
        """Initialize persistence.

        Args:
            path: Path to JSON file. Defaults to ~/.config/shellsense/tabs.json.
            file_ops: Injectable file operations for testing.
        """
        if path is None:
            path = Path.home() / ".config" / "shellsense" / "tabs.json"
        self._path = Path(path)

        self._file_ops = file_ops or {
            "exists": lambda p: p.exists(),
            "read": lambda p: p.read_text(),
            "write": self._atomic_write,
            "mkdir": lambda p: p.mkdir(parents=True, exist_ok=True),
        }

    @property
    def path(self) -> Path:
        return self._path

    def _atomic_write(self, path: Path, content: str) -> None:
        """Write atomically via temp file and rename."""
        temp_path = path.with_suffix(".tmp")
        temp_path.write_text(content)
        temp_path.replace(path)

    async def load(self) -> dict[str, PersistedTabState]:
        """Load tab states keyed by tab id.

        Returns:
            Mapping of tab id to state, or empty dict if the file is missing.
        """
        return await asyncio.to_thread(self._load_sync)

    def _load_sync(self) -> dict[str, PersistedTabState]:
        """Synchronous load implementation."""
        if not self._file_ops["exists"](self._path):
            return {}

        try:
            content = self._file_ops["read"](self._path)
            data = json.loads(content)
        except json.JSONDecodeError as e:
            logger.error("Invalid JSON in tab state file: %s", e)
            return {}
        except OSError as e:
            logger.error("Failed to read tab state file: %s", e)
            return {}

        if not isinstance(data, dict):
            logger.error("Invalid tab state file: expected an object, got %s", type(data).__name__)
            return {}
        tabs = data.get("tabs", [])
        if not isinstance(tabs, list):
            logger.error("Invalid tab state file: \"tabs\" must be a list")
            return {}

        states: dict[str, PersistedTabState] = {}
        for item in tabs:
            try:
                variables = item.get("variables") or {}
                if not isinstance(variables, dict):
                    raise TypeError("variables must be an object")
                state = PersistedTabState(
                    tab_id=item["tab_id"],
                    workspace_id=item["workspace_id"],
                    variables={str(k): str(v) for k, v in variables.items()},
                    auto_resume_command=item.get("auto_resume_command"),
                    auto_resume_enabled=bool(item.get("auto_resume_enabled", False)),
                )
            except (KeyError, TypeError, AttributeError) as e:
                logger.warning("Skipping invalid tab state entry: %s", e)
                continue
            states[state.tab_id] = state

        logger.debug("Loaded %d tab states from %s", len(states), self._path)
        return states

    async def save(self, states: list[PersistedTabState]) -> None:
        """Save tab states to JSON file.

        Args:
            states: Tab states to save.
        """
        await asyncio.to_thread(self._save_sync, states)

    def _save_sync(self, states: list[PersistedTabState]) -> None:
        """Synchronous save implementation."""
        self._file_ops["mkdir"](self._path.parent)

        data = {"tabs": [asdict(s) for s in states]}
        content = json.dumps(data, indent=2)
        self._file_ops["write"](self._path, content)

        logger.debug("Saved %d tab states to %s", len(states), self._path)
