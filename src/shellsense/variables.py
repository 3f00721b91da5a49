"""Per-session trigger variables and %name interpolation."""

import logging
import re
from typing import Callable, Mapping, Optional

logger = logging.getLogger(__name__)

VARIABLE_REF = re.compile(r"%([A-Za-z0-9_]+)")

VariableChangeCallback = Callable[[dict[str, str]], None]


def interpolate(
    template: str,
    variables: Mapping[str, str],
    builtins: Optional[Mapping[str, str]] = None,
) -> str:
    """Replace %name tokens with variable values.

    Builtins take precedence over variables. Unset names become the empty
    string. Substituted values are not scanned again.

    Args:
        template: Text containing %name tokens.
        variables: Session variables.
        builtins: Optional reserved names (e.g. title, tab, dir).

    Returns:
        Interpolated text.
    """
    if "%" not in template:
        return template

    def replace(match: re.Match) -> str:
        name = match.group(1)
        if builtins is not None and name in builtins:
            return builtins[name]
        return variables.get(name, "")

    return VARIABLE_REF.sub(replace, template)


class VariableStore:
    """Named variables captured by triggers for one session.

    Entries persist for the session lifetime and are overwritten on
    re-capture. Listeners are notified after each change.
    """

    def __init__(self, initial: Optional[Mapping[str, str]] = None):
        self._values: dict[str, str] = dict(initial or {})
        self._listeners: list[VariableChangeCallback] = []

    def __contains__(self, name: str) -> bool:
        return name in self._values

    def __len__(self) -> int:
        return len(self._values)

    def get(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """Get a variable value."""
        return self._values.get(name, default)

    def set(self, name: str, value: str) -> bool:
        """Set a variable. Returns True if the value changed."""
        if self._values.get(name) == value:
            return False
        self._values[name] = value
        self._notify()
        return True

    def update(self, values: Mapping[str, str]) -> bool:
        """Set several variables at once. Returns True if any changed."""
        changed = False
        for name, value in values.items():
            if self._values.get(name) != value:
                self._values[name] = value
                changed = True
        if changed:
            self._notify()
        return changed

    def load(self, values: Mapping[str, str]) -> None:
        """Replace all variables (e.g. restored from persistence)."""
        self._values = dict(values)
        self._notify()

    def clear(self) -> None:
        """Remove all variables."""
        if not self._values:
            return
        self._values.clear()
        self._notify()

    def as_dict(self) -> dict[str, str]:
        """Return a copy of the variables."""
        return dict(self._values)

    def on_change(self, callback: VariableChangeCallback) -> Callable[[], None]:
        """Subscribe to changes. Returns an unsubscribe function."""
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def _notify(self) -> None:
        snapshot = self.as_dict()
        for callback in list(self._listeners):
            try:
                callback(snapshot)
            except Exception as e:
                logger.error("Variable change listener failed: %s", e)
