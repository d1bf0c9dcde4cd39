"""Process-wide registry of live Wrapper entities.

Wrappers are created on demand by the first registration for a slot and
dropped only when they are torn down, either because they became empty
(and slots are configurable) or through unwrap_all().

Example:
    >>> registry = WrapperRegistry.instance()
    >>> wrapper = registry.find_or_create(resolved, lambda: Wrapper(...))
    >>> registry.find("Token.draw") is wrapper
    True
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from typing import TYPE_CHECKING, Any

from ..logging import log_debug, log_info
from .target_resolver import split_target

if TYPE_CHECKING:
    from .target_resolver import ResolvedTarget
    from .wrapper import Wrapper


class WrapperRegistry:
    """Set of live wrappers, unique by canonical name.

    Use WrapperRegistry.instance() to share the process-wide registry, or
    construct one directly for an isolated engine.
    """

    _instance: WrapperRegistry | None = None

    def __init__(self) -> None:
        self._wrappers: list[Wrapper] = []

    @classmethod
    def instance(cls) -> WrapperRegistry:
        """Get the singleton registry instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        """Reset the singleton, restoring every wrapped slot first."""
        if cls._instance is not None:
            cls._instance.unwrap_all()
        cls._instance = None

    def find(self, name: str) -> Wrapper | None:
        """Look up a wrapper by canonical name or alias."""
        path, _ = split_target(name)
        for wrapper in self._wrappers:
            if path in wrapper.names:
                return wrapper
        return None

    def find_for_slot(self, host: Any, name: str) -> Wrapper | None:
        for wrapper in self._wrappers:
            if wrapper.slot_name == name and wrapper.host is host:
                return wrapper
        return None

    def find_or_create(
        self,
        resolved: ResolvedTarget,
        factory: Callable[[], Wrapper],
    ) -> Wrapper:
        """Return the wrapper for a resolved slot, creating it if needed.

        A wrapper reached through a different path gains that path as alias.
        """
        wrapper = self.find_for_slot(resolved.host, resolved.name)
        if wrapper is not None:
            wrapper.add_alias(resolved.path)
            return wrapper

        wrapper = factory()
        self._wrappers.append(wrapper)
        log_debug(f"Created wrapper for '{wrapper.name}'", {"kind": wrapper.kind.value})
        return wrapper

    def discard(self, wrapper: Wrapper) -> None:
        if wrapper in self._wrappers:
            self._wrappers.remove(wrapper)

    def detach_if_possible(self, wrapper: Wrapper) -> bool:
        """Tear down an empty wrapper when slots are configurable.

        Returns:
            True if the wrapper was unwrapped and dropped.
        """
        if not wrapper.is_empty():
            return False
        if not wrapper.settings.slots_configurable:
            log_debug(f"Keeping empty pass-through wrapper for '{wrapper.name}'")
            return False

        wrapper.unwrap()
        self.discard(wrapper)
        return True

    def clear(self, target: str) -> bool:
        """Remove every registration of a wrapper and detach it if possible.

        Returns:
            True if a wrapper was found.
        """
        wrapper = self.find(target)
        if wrapper is None:
            return False

        wrapper.clear()
        self.detach_if_possible(wrapper)
        log_info(f"Cleared all registrations for '{wrapper.name}'", {"target": wrapper.name})
        return True

    def unwrap_all(self) -> None:
        """Clear and unwrap every wrapper, then empty the registry.

        Not safe while any affected slot is mid-call.
        """
        # Newest first, so descendants are restored before their ancestors.
        for wrapper in reversed(self._wrappers):
            wrapper.clear()
            wrapper.unwrap()
        self._wrappers.clear()

    def __iter__(self) -> Iterator[Wrapper]:
        return iter(list(self._wrappers))

    def __len__(self) -> int:
        return len(self._wrappers)

    def __contains__(self, wrapper: object) -> bool:
        return wrapper in self._wrappers


__all__ = ["WrapperRegistry"]
