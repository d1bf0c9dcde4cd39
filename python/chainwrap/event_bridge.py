"""In-process event bridge for engine notifications.

This module provides the EventBridge class that wraps pyee's EventEmitter
to publish registration lifecycle notifications towards external
collaborators (settings screens, conflict reporters, telemetry). The
engine never depends on anyone listening.

Example:
    >>> from chainwrap import EventBridge, EventNames
    >>>
    >>> bridge = EventBridge.instance()
    >>> bridge.start()
    >>>
    >>> def on_override_lost(loser_id, winner_id, wrapper_name, target):
    ...     print(f"{winner_id} took the OVERRIDE of {wrapper_name} from {loser_id}")
    ...
    >>> bridge.subscribe(EventNames.OVERRIDE_LOST, on_override_lost)
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from pyee.base import EventEmitter

from .logging import log_debug, log_info


class EventNames:
    """Constants for event names published by the engine.

    Attributes:
        REGISTER: A registration was added (package_id, target, type, options).
        UNREGISTER: A registration was removed (package_id, target).
        UNREGISTER_ALL: Every registration of a package was removed (package_id).
        OVERRIDE_LOST: An OVERRIDE was displaced by a higher-priority one
            (loser_id, winner_id, wrapper_name, target).
        CONFLICT: A conflict was recorded (ConflictRecord).
        READY: The engine accepts registrations (engine).
    """

    REGISTER = "chainwrap.register"
    UNREGISTER = "chainwrap.unregister"
    UNREGISTER_ALL = "chainwrap.unregister_all"
    OVERRIDE_LOST = "chainwrap.override_lost"
    CONFLICT = "chainwrap.conflict"
    READY = "chainwrap.ready"


class EventBridge:
    """In-process event bus for engine notifications.

    The EventBridge is usually used as a singleton so that every engine
    and collaborator in the process shares the same bus, but separate
    instances can be created for isolated engines.

    Events:
        chainwrap.register: (package_id, target, type, options)
        chainwrap.unregister: (package_id, target)
        chainwrap.unregister_all: (package_id,)
        chainwrap.override_lost: (loser_id, winner_id, wrapper_name, target)
        chainwrap.conflict: (ConflictRecord,)
        chainwrap.ready: (ChainWrap,)
    """

    _instance: EventBridge | None = None

    def __init__(self) -> None:
        """Create an inactive bus. Prefer EventBridge.instance()."""
        self._emitter = EventEmitter()
        self._active = False
        self._event_schema = self._payload_schema()

    @classmethod
    def instance(cls) -> EventBridge:
        """Get the singleton EventBridge instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        """Reset the singleton instance.

        Stops the current instance if active before resetting.
        """
        if cls._instance is not None:
            cls._instance.stop()
        cls._instance = None

    @staticmethod
    def _payload_schema() -> dict[str, str]:
        return {
            EventNames.REGISTER: "tuple[str, str, WrapperType, RegisterOptions]",
            EventNames.UNREGISTER: "tuple[str, str]",
            EventNames.UNREGISTER_ALL: "str",
            EventNames.OVERRIDE_LOST: "tuple[str, str, str, str]",
            EventNames.CONFLICT: "ConflictRecord",
            EventNames.READY: "ChainWrap",
        }

    def start(self) -> None:
        """Begin delivering notifications. Idempotent."""
        if not self._active:
            self._active = True
            log_info("Engine notifications enabled")

    def stop(self) -> None:
        """Stop delivering notifications and forget every listener."""
        if self._active:
            self._active = False
            self._emitter.remove_all_listeners()
            log_info("Engine notifications disabled")

    def subscribe(self, event: str, handler: Callable[..., Any]) -> None:
        """Listen for an engine notification.

        Args:
            event: One of the EventNames constants.
            handler: Called with the payload listed in the class docstring.
        """
        self._emitter.on(event, handler)
        self._log_listener("listening", event, handler)

    def subscribe_once(self, event: str, handler: Callable[..., Any]) -> None:
        """Listen for the next occurrence of an engine notification only."""
        self._emitter.once(event, handler)
        self._log_listener("listening once", event, handler)

    def unsubscribe(self, event: str, handler: Callable[..., Any]) -> None:
        self._emitter.remove_listener(event, handler)
        self._log_listener("stopped listening", event, handler)

    @staticmethod
    def _log_listener(action: str, event: str, handler: Callable[..., Any]) -> None:
        name = getattr(handler, "__qualname__", None) or repr(handler)
        log_debug(f"Listener {action}", {"event": event, "listener": name})

    def publish(self, event: str, *args: Any, **kwargs: Any) -> bool:
        """Publish an event to all subscribers.

        Events are only delivered while the bridge is active; otherwise the
        event is dropped.

        Returns:
            True if at least one listener received the event.
        """
        if not self._active:
            log_debug("Notification dropped, bridge inactive", {"event": event})
            return False

        log_debug("Notification published", {"event": event})
        return self._emitter.emit(event, *args, **kwargs)

    def listeners(self, event: str) -> list[Callable[..., Any]]:
        return list(self._emitter.listeners(event))

    def listener_count(self, event: str) -> int:
        return len(self.listeners(event))

    @property
    def is_active(self) -> bool:
        return self._active

    @property
    def event_schema(self) -> dict[str, str]:
        """Dict mapping event names to their payload types."""
        return self._event_schema.copy()


__all__ = ["EventBridge", "EventNames"]
