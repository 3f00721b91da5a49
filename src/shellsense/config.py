"""Configuration management for shellsense."""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable

import yaml

from shellsense.errors import ConfigError, ConfigFileError
from shellsense.triggers.types import (
    Action,
    EnableAutoResumeAction,
    MatchMode,
    NotifyAction,
    SendCommandAction,
    SetTabStateAction,
    TabState,
    Trigger,
    VariableBinding,
)

logger = logging.getLogger(__name__)


DEFAULT_PROMPT_PATTERNS = [
    "\\u@\\h:\\d\\p ",
]


@dataclass
class NotificationsConfig:
    """Notification delivery configuration."""

    enabled: bool = True  # Master toggle


@dataclass
class TriggersConfig:
    """Trigger list configuration."""

    items: list[Trigger] = field(default_factory=list)
    seed_defaults: bool = False
    enable_defaults: bool = False  # Seeded defaults start enabled
    hidden_defaults: list[str] = field(default_factory=list)


@dataclass
class Config:
    """shellsense configuration."""

    log_level: str = "INFO"
    log_file: str | None = None
    log_levels: dict[str, str] = field(default_factory=dict)  # Per-subsystem overrides
    buffer_size: int = 4096  # Characters of stripped text kept per session
    regex_timeout_ms: int = 100  # ReDoS protection timeout
    prompt_patterns: list[str] = field(
        default_factory=lambda: DEFAULT_PROMPT_PATTERNS.copy()
    )
    notifications: NotificationsConfig = field(default_factory=NotificationsConfig)
    triggers: TriggersConfig = field(default_factory=TriggersConfig)


def get_config_path(custom_path: Path | None = None) -> Path:
    """Get the configuration file path.

    Args:
        custom_path: Override path. If None, returns default.

    Returns:
        Path to config file.
    """
    if custom_path is not None:
        return custom_path
    return Path.home() / ".config" / "shellsense" / "config.yaml"


def _default_file_reader(path: Path) -> dict[str, Any] | None:
    """Default file reader that loads YAML from disk."""
    if not path.exists():
        return None
    try:
        content = path.read_text()
        if not content.strip():
            return None
        return yaml.safe_load(content)
    except yaml.YAMLError as e:
        logger.warning("Invalid YAML in %s: %s", path, e)
        return None


def _parse_action(data: dict[str, Any]) -> Action:
    """Parse one action entry."""
    if not isinstance(data, dict):
        raise ConfigError(f"action must be a mapping, got {data!r}")
    action_type = data.get("type") or data.get("action_type")
    if action_type == "notify":
        return NotifyAction(
            title=data.get("title") or None,
            message=data.get("message") or "",
        )
    if action_type == "send_command":
        command = data.get("command")
        if not command:
            raise ConfigError("send_command action requires 'command'")
        return SendCommandAction(command=command)
    if action_type == "enable_auto_resume":
        command = data.get("command")
        if not command:
            raise ConfigError("enable_auto_resume action requires 'command'")
        return EnableAutoResumeAction(command=command)
    if action_type == "set_tab_state":
        raw_state = data.get("state") or data.get("tab_state") or "alert"
        try:
            state = TabState(raw_state)
        except ValueError:
            raise ConfigError(f"unknown tab state: {raw_state!r}") from None
        return SetTabStateAction(state=state)
    raise ConfigError(f"unknown action type: {action_type!r}")


def _parse_binding(data: dict[str, Any]) -> VariableBinding:
    """Parse one variable binding entry."""
    if not isinstance(data, dict):
        raise ConfigError(f"variable binding must be a mapping, got {data!r}")
    name = data.get("name")
    if not name:
        raise ConfigError("variable binding requires 'name'")
    try:
        group = int(data.get("group", 0))
    except (TypeError, ValueError):
        raise ConfigError(f"variable {name!r}: group must be an integer") from None
    if group < 0:
        raise ConfigError(f"variable {name!r}: group must be >= 0")
    return VariableBinding(name=name, group=group, template=data.get("template"))


def parse_trigger(data: dict[str, Any], index: int = 0) -> Trigger:
    """Build a Trigger from a configuration mapping.

    Args:
        data: Mapping as found in the YAML 'triggers.items' list.
        index: Position in the list, used for the fallback id.

    Returns:
        Parsed Trigger.

    Raises:
        ConfigError: If the entry is structurally invalid.
    """
    if not isinstance(data, dict):
        raise ConfigError(f"trigger #{index} must be a mapping")

    pattern = data.get("pattern")
    if not pattern or not isinstance(pattern, str):
        raise ConfigError(f"trigger #{index} requires a string 'pattern'")

    raw_mode = data.get("match_mode")
    if raw_mode is None:
        # Legacy boolean flag
        mode = MatchMode.PLAIN_TEXT if data.get("plain_text") else MatchMode.REGEX
    else:
        try:
            mode = MatchMode(raw_mode)
        except ValueError:
            raise ConfigError(f"trigger #{index}: unknown match_mode {raw_mode!r}") from None

    try:
        cooldown = float(data.get("cooldown", data.get("cooldown_seconds", 0.0)))
    except (TypeError, ValueError):
        raise ConfigError(f"trigger #{index}: cooldown must be a number") from None

    return Trigger(
        id=str(data.get("id") or f"trigger-{index}"),
        name=data.get("name") or f"Trigger {index}",
        pattern=pattern,
        match_mode=mode,
        actions=tuple(_parse_action(a) for a in data.get("actions") or []),
        variables=tuple(_parse_binding(v) for v in data.get("variables") or []),
        enabled=bool(data.get("enabled", True)),
        cooldown_seconds=cooldown,
        workspaces=frozenset(data.get("workspaces") or []),
        description=data.get("description"),
        default_id=data.get("default_id"),
        user_modified=bool(data.get("user_modified", False)),
    )


def _parse_triggers(data: dict[str, Any]) -> TriggersConfig:
    """Parse the triggers section, skipping invalid entries."""
    items: list[Trigger] = []
    for index, item in enumerate(data.get("items") or []):
        try:
            items.append(parse_trigger(item, index))
        except ConfigError as e:
            logger.warning("Skipping invalid trigger entry: %s", e)

    triggers_config = TriggersConfig(
        items=items,
        seed_defaults=data.get("seed_defaults", TriggersConfig.seed_defaults),
        enable_defaults=data.get("enable_defaults", TriggersConfig.enable_defaults),
        hidden_defaults=list(data.get("hidden_defaults") or []),
    )

    if triggers_config.seed_defaults:
        from shellsense.triggers.defaults import seed_default_triggers

        seeded = seed_default_triggers(
            triggers_config.items,
            triggers_config.hidden_defaults,
            enable_all=triggers_config.enable_defaults,
        )
        if seeded is not None:
            triggers_config.items = seeded

    return triggers_config


def validate_config_file(path: Path) -> list[ConfigError]:
    """Strictly validate a configuration file.

    Unlike load_config(), nothing is skipped silently: every structurally
    invalid trigger entry is returned as an error.

    Args:
        path: Path to config file.

    Returns:
        Errors for invalid trigger entries.

    Raises:
        ConfigFileError: If the file cannot be read or is not a YAML mapping.
    """
    try:
        data = yaml.safe_load(path.read_text())
    except OSError as e:
        raise ConfigFileError(f"cannot read {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigFileError(f"invalid YAML in {path}: {e}") from e

    if data is None:
        return []
    if not isinstance(data, dict):
        raise ConfigFileError(f"{path}: top level must be a mapping")

    errors: list[ConfigError] = []
    triggers_data = data.get("triggers") or {}
    for index, item in enumerate(triggers_data.get("items") or []):
        try:
            parse_trigger(item, index)
        except ConfigError as e:
            errors.append(e)
    return errors


def load_config(
    path: Path | None = None,
    file_reader: Callable[[Path], dict[str, Any] | None] | None = None,
) -> Config:
    """Load configuration from file.

    Args:
        path: Path to config file. If None, uses default path.
        file_reader: Injectable file reader for testing.

    Returns:
        Config object with values from file or defaults.
    """
    config_path = get_config_path(path)
    reader = file_reader or _default_file_reader

    data = reader(config_path)

    if data is None:
        return Config()

    notifications_data = data.get("notifications", {}) or {}
    notifications_config = NotificationsConfig(
        enabled=notifications_data.get("enabled", NotificationsConfig.enabled),
    )

    return Config(
        log_level=data.get("log_level", Config.log_level),
        log_file=data.get("log_file", Config.log_file),
        log_levels=dict(data.get("log_levels") or {}),
        buffer_size=data.get("buffer_size", Config.buffer_size),
        regex_timeout_ms=data.get("regex_timeout_ms", Config.regex_timeout_ms),
        prompt_patterns=data.get("prompt_patterns", DEFAULT_PROMPT_PATTERNS.copy()),
        notifications=notifications_config,
        triggers=_parse_triggers(data.get("triggers", {}) or {}),
    )
