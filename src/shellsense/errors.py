"""Base exceptions for shellsense."""


class ShellSenseError(Exception):
    """Base exception for all shellsense errors."""

    pass


class ConfigError(ShellSenseError):
    """Invalid configuration (trigger pattern, condition, prompt template)."""

    pass


class ConfigFileError(ConfigError):
    """Configuration file could not be read or parsed."""

    pass


class ConditionSyntaxError(ConfigError):
    """Condition expression failed to parse."""

    def __init__(self, message: str, position: int):
        super().__init__(f"{message} (at position {position})")
        self.position = position


class PromptPatternError(ConfigError):
    """Prompt template could not be compiled."""

    pass


class TriggerPatternError(ConfigError):
    """Trigger pattern or variable binding is invalid."""

    def __init__(self, trigger_id: str, message: str):
        super().__init__(f"trigger {trigger_id!r}: {message}")
        self.trigger_id = trigger_id


class DispatchError(ShellSenseError):
    """Side effect of a fired trigger failed (write or notification)."""

    def __init__(self, trigger_id: str, action: str, message: str):
        super().__init__(f"trigger {trigger_id!r} {action} failed: {message}")
        self.trigger_id = trigger_id
        self.action = action
