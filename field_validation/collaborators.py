"""
Collaborators of a validation session.

The session reads field values through a FieldValueSource, shows and clears
messages through an ErrorRenderer, and resets itself when a LifecycleHook
fires. UI adapters implement these; the in-memory versions here serve tests,
the JSON-RPC bridge and headless use.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, Set

logger = logging.getLogger(__name__)


class FieldValueSource(ABC):
    """Live access to field values."""

    @abstractmethod
    def current_value(self, field_name: str) -> Any:
        """Current value of a field, None when the field is unknown."""

    @abstractmethod
    def is_disabled(self, field_name: str) -> bool:
        """Disabled fields are never invalid."""


class DictValueSource(FieldValueSource):
    """FieldValueSource over a plain dict of values."""

    def __init__(self, values: Optional[Dict[str, Any]] = None):
        self.values: Dict[str, Any] = dict(values or {})
        self.disabled: Set[str] = set()

    def set_value(self, field_name: str, value: Any) -> None:
        self.values[field_name] = value

    def set_disabled(self, field_name: str, disabled: bool = True) -> None:
        if disabled:
            self.disabled.add(field_name)
        else:
            self.disabled.discard(field_name)

    def current_value(self, field_name: str) -> Any:
        return self.values.get(field_name)

    def is_disabled(self, field_name: str) -> bool:
        return field_name in self.disabled


class ErrorRenderer(ABC):
    """Shows and clears the message next to a field."""

    @abstractmethod
    def show(self, field_name: str, message: str, target: Optional[str] = None) -> None:
        """
        Display a message for a field.

        Args:
            field_name: Field the message belongs to
            message: Rendered message
            target: CSS selector ("#id" or ".class") overriding the default
                placement, or None
        """

    @abstractmethod
    def clear(self, field_name: str) -> None:
        """Remove any message shown for a field."""


class LoggingRenderer(ErrorRenderer):
    """Renderer that only logs; used when no UI is attached."""

    def show(self, field_name: str, message: str, target: Optional[str] = None) -> None:
        logger.info(
            f"Field {field_name} invalid: {message}",
            extra={"field": field_name, "target": target},
        )

    def clear(self, field_name: str) -> None:
        logger.debug(f"Field {field_name} message cleared", extra={"field": field_name})


class RecordingRenderer(ErrorRenderer):
    """Renderer that keeps every show/clear call, in order."""

    def __init__(self):
        self.events: List[Dict[str, Any]] = []
        self.shown: Dict[str, str] = {}

    def show(self, field_name: str, message: str, target: Optional[str] = None) -> None:
        self.events.append(
            {"action": "show", "field": field_name, "message": message, "target": target}
        )
        self.shown[field_name] = message

    def clear(self, field_name: str) -> None:
        self.events.append({"action": "clear", "field": field_name})
        self.shown.pop(field_name, None)

    def drain(self) -> List[Dict[str, Any]]:
        """Return and forget the recorded events."""
        events, self.events = self.events, []
        return events


class LifecycleHook:
    """Fires once per page/route transition."""

    def __init__(self):
        self._subscribers: List[Callable[[], None]] = []

    def subscribe(self, callback: Callable[[], None]) -> Callable[[], None]:
        """
        Register a callback.

        Returns:
            A function that removes the subscription
        """
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def fire(self) -> None:
        logger.debug(f"Page transition, notifying {len(self._subscribers)} subscriber(s)")
        for callback in list(self._subscribers):
            callback()
