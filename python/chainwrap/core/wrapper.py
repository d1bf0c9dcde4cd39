"""Wrapper - Interception State for One Host Slot.

A Wrapper owns everything the engine knows about one slot: the host it
lives on, the history of originals, the registrations of
each half and their compiled chains, and the object installed on the host.

Call Flow:
1. The installed slot calls Wrapper.invoke(half, receiver, args, kwargs)
2. If an original of this slot is already running for the receiver, the
   registrations are skipped and the next older original is called
3. Otherwise the own chain runs, followed by the chain of the nearest
   wrapped ancestor, ending in the newest original

Originals:
    The history starts with whatever the host held when the slot was
    wrapped (or INHERITED when the host did not own it). Every adopted
    reassignment is appended. The newest original is the terminal; older
    ones are reached when an original calls back into the slot.
"""

from __future__ import annotations

import weakref
from collections.abc import Callable
from types import ModuleType
from typing import TYPE_CHECKING, Any

from ..exceptions import ConfigurationError, InternalError
from ..logging import log_debug, log_error, log_info
from ..settings import EngineSettings
from ..types import AccessorHalf, LogContext, SlotKind
from .chain_builder import EMPTY_CHAIN, ChainBuilder, ChainLink, ChainRun, CompiledChain
from .slots import (
    INHERITED,
    MISSING,
    SlotDescriptor,
    bind_original,
    call_marked,
    detect_slot_kind,
    entry_wrapper,
    find_in_mro,
    instance_overrides,
    intercept,
    make_entry,
    reentry_key,
    reentry_level,
    release,
)

if TYPE_CHECKING:
    from ..package_info import PackageInfo
    from .registration import Registration

ConflictCallback = Callable[["Wrapper", "Registration", "Registration"], None]
EmptyCallback = Callable[["Wrapper"], Any]

_ACCESSOR_HALVES = (AccessorHalf.GET, AccessorHalf.SET)
_VALUE_HALVES = (AccessorHalf.VALUE,)


class Wrapper:
    """Per-slot interception state.

    Attributes:
        names: Canonical target paths, the first being the display name.
        slot_name: Attribute name on the host.
        kind: How the slot binds its receiver.

    Example:
        >>> wrapper = Wrapper(Token, "draw", "Token.draw")
        >>> wrapper.add(registration)
        >>> Token().draw()  # runs the chain
        >>> wrapper.unwrap()
    """

    def __init__(
        self,
        host: Any,
        name: str,
        path: str,
        *,
        settings: EngineSettings | None = None,
        package_info: PackageInfo | None = None,
        on_conflict: ConflictCallback | None = None,
        on_empty: EmptyCallback | None = None,
    ) -> None:
        """Initialize the wrapper without touching the host.

        The slot is installed by the first add().

        Raises:
            ConfigurationError: If the slot cannot be wrapped.
        """
        kind, raw, owned = detect_slot_kind(host, name, package_info)

        self._names: list[str] = [path]
        self._slot_name = name
        self._kind = kind
        self._is_class_host = isinstance(host, type)
        self._is_module_host = isinstance(host, ModuleType)
        self._host_ref = _reference(host)
        self._originals: list[Any] = [raw if owned else INHERITED]
        self._template = raw

        halves = _ACCESSOR_HALVES if kind.is_accessor else _VALUE_HALVES
        self._registrations: dict[AccessorHalf, list[Registration]] = {h: [] for h in halves}
        self._chains: dict[AccessorHalf, CompiledChain] = {h: EMPTY_CHAIN for h in halves}

        self._settings = settings or EngineSettings()
        self._on_conflict = on_conflict
        self._on_empty = on_empty

        self._slot: Any = None
        self._intercepted = False

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def name(self) -> str:
        return self._names[0]

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(self._names)

    @property
    def slot_name(self) -> str:
        return self._slot_name

    @property
    def kind(self) -> SlotKind:
        return self._kind

    @property
    def host(self) -> Any:
        """The host object, or None if it has been garbage collected."""
        return self._host_ref()

    @property
    def halves(self) -> tuple[AccessorHalf, ...]:
        return tuple(self._registrations)

    @property
    def settings(self) -> EngineSettings:
        return self._settings

    @property
    def is_installed(self) -> bool:
        return self._slot is not None

    @property
    def originals(self) -> tuple[Any, ...]:
        """History of originals, oldest first."""
        return tuple(self._originals)

    def add_alias(self, path: str) -> None:
        if path not in self._names:
            self._names.append(path)

    def newest_original(self) -> Any:
        return self._originals[-1]

    # -------------------------------------------------------------------------
    # Registrations
    # -------------------------------------------------------------------------

    def registrations(self, half: AccessorHalf | None = None) -> list[Registration]:
        """Registrations of one half (or all halves), in registration order."""
        if half is not None:
            return list(self._registrations[half])
        return [r for regs in self._registrations.values() for r in regs]

    def chain(self, half: AccessorHalf) -> CompiledChain:
        return self._chains[half]

    def find(self, package_info: PackageInfo, half: AccessorHalf) -> Registration | None:
        for registration in self._registrations[half]:
            if registration.package_info == package_info:
                return registration
        return None

    def is_empty(self) -> bool:
        return not any(self._registrations.values())

    def add(self, registration: Registration) -> None:
        """Append a registration and recompile its half.

        Conflict rules are enforced by ConflictDetector before this is called.
        """
        if registration.half not in self._registrations:
            message = f"Wrapper '{self.name}' has no {registration.half.value} half."
            log_error(message, LogContext(package_id=registration.package_info.id, target=self.name))
            raise InternalError(message, metadata={"target": self.name})

        self._sync_slot()
        registrations = self._registrations[registration.half]
        registrations.append(registration)
        try:
            self._rebuild()
        except ConfigurationError:
            # The slot could not be installed: leave no trace of the registration.
            registrations.remove(registration)
            self._compile()
            raise

    def remove(self, registration: Registration) -> bool:
        """Detach a registration and recompile.

        Returns:
            True if the wrapper is now empty.

        Raises:
            InternalError: If the registration is not held by this wrapper.
        """
        registrations = self._registrations.get(registration.half, [])
        if registration not in registrations:
            message = f"Registration {registration!r} is not part of wrapper '{self.name}'."
            log_error(message, LogContext(package_id=registration.package_info.id, target=self.name))
            raise InternalError(message, metadata={"target": self.name})

        self._sync_slot()
        registrations.remove(registration)
        self._rebuild()
        return self.is_empty()

    def clear(self) -> None:
        """Remove every registration of every half."""
        self._sync_slot()
        for registrations in self._registrations.values():
            registrations.clear()
        self._rebuild()

    def self_heal(self, registration: Registration) -> None:
        """Drop a WRAPPER registration that did not call its continuation."""
        registrations = self._registrations[registration.half]
        if registration not in registrations:
            return

        registrations.remove(registration)
        self._rebuild()
        log_info(
            f"Removed the WRAPPER for '{self.name}' registered by "
            f"{registration.package_info.log_string}: it did not call the wrapped function.",
            LogContext(
                package_id=registration.package_info.id,
                target=registration.target,
                wrapper_type=registration.type.value,
                operation="self_heal",
            ),
        )
        if self.is_empty() and self._on_empty is not None:
            self._on_empty(self)

    def report_conflict(self, registration: Registration, blocked: Registration) -> None:
        """A MIXED registration stopped the chain in front of ``blocked``."""
        if self._on_conflict is not None:
            self._on_conflict(self, registration, blocked)

    # -------------------------------------------------------------------------
    # Originals
    # -------------------------------------------------------------------------

    def adopt(self, value: Any) -> None:
        """Make ``value`` the newest original, beneath every registration."""
        if value is self._slot or entry_wrapper(value) is self:
            return
        self._originals.append(value)
        log_debug(
            f"Adopted a reassigned original for '{self.name}'",
            {"target": self.name, "depth": len(self._originals)},
        )

    def _sync_slot(self) -> None:
        """Adopt whatever external code put in place of the installed slot."""
        host = self.host
        if self._slot is None or host is None:
            return

        current = host.__dict__.get(self._slot_name, MISSING)
        if current is self._slot:
            return

        self.adopt(INHERITED if current is MISSING else current)
        self._install(host)

    # -------------------------------------------------------------------------
    # Installation
    # -------------------------------------------------------------------------

    def _compile(self) -> None:
        high_performance = self._settings.high_performance
        for half, registrations in self._registrations.items():
            self._chains[half] = ChainBuilder.compile(
                registrations, high_performance=high_performance
            )

    def _rebuild(self) -> None:
        self._compile()

        # Installed lazily, and never just to be emptied again.
        host = self.host
        if self._slot is None and host is not None and not self.is_empty():
            self._install(host)

        log_debug(
            f"Compiled chain for '{self.name}'",
            {half.value: len(chain) for half, chain in self._chains.items()},
        )

    def _install(self, host: Any) -> None:
        if self._is_class_host:
            if self._slot is None:
                entry = make_entry(self, self._kind, self._template)
                self._slot = SlotDescriptor(self, entry, self._template)
            try:
                type.__setattr__(host, self._slot_name, self._slot)
            except TypeError as e:
                self._slot = None
                raise ConfigurationError(f"Slot '{self.name}' is not configurable: {e}") from e
            return

        if self._slot is None:
            self._slot = make_entry(self, self._kind, self._template)
        host.__dict__[self._slot_name] = self._slot
        self._intercepted = intercept(host)

    def unwrap(self) -> None:
        """Remove the installed slot and restore the newest original.

        A slot that external code has already replaced is left alone.
        """
        host = self.host
        if self._slot is None or host is None:
            self._slot = None
            return

        name = self._slot_name
        current = host.__dict__.get(name, MISSING)
        newest = self._originals[-1]

        if current is not self._slot:
            log_debug(f"Slot '{self.name}' was replaced externally, leaving it in place")
        elif self._is_class_host:
            if newest is INHERITED:
                type.__delattr__(host, name)
            else:
                type.__setattr__(host, name, newest)
        elif newest is INHERITED:
            del host.__dict__[name]
        else:
            host.__dict__[name] = newest

        if self._intercepted:
            release(host)
            self._intercepted = False

        self._slot = None
        self._chains = {half: EMPTY_CHAIN for half in self._chains}
        log_debug(f"Unwrapped '{self.name}'")

    # -------------------------------------------------------------------------
    # Invocation
    # -------------------------------------------------------------------------

    def invoke(
        self,
        half: AccessorHalf,
        receiver: Any,
        args: tuple[Any, ...],
        kwargs: dict[str, Any],
    ) -> Any:
        """Run one call through the slot.

        Args:
            half: VALUE for callables, GET or SET for accessors.
            receiver: Instance (methods, accessors), class (classmethods),
                or None (static methods, module and instance functions).
            args: Call arguments, without the receiver.
            kwargs: Call keyword arguments.
        """
        key = reentry_key(self, half, receiver)
        level = reentry_level(key)
        if level is not None:
            stack = self._terminal_stack(half, receiver)
            target = min(level + 1, len(stack) - 1)
            if target < 0:
                raise self._missing_original()
            return call_marked({key: target}, stack[target], args, kwargs)

        links: list[ChainLink] = []
        marks = {key: 0}
        wrapper: Wrapper | None = self
        current_receiver = receiver
        while wrapper is not None:
            chain = wrapper._chains[half]
            receiver_args = wrapper._receiver_args(current_receiver)
            links.extend(
                ChainLink(registration, receiver_args, wrapper, chain.strict)
                for registration in chain.entries
            )
            wrapper, current_receiver = wrapper._parent(current_receiver)
            if wrapper is not None:
                marks.setdefault(reentry_key(wrapper, half, current_receiver), -1)

        stack = self._terminal_stack(half, receiver)
        if not stack:
            raise self._missing_original()

        original = stack[0]
        if not links:
            return call_marked(marks, original, args, kwargs)

        def terminal(*call_args: Any, **call_kwargs: Any) -> Any:
            return call_marked(marks, original, call_args, call_kwargs)

        return ChainRun(links, terminal).start(args, kwargs)

    def _receiver_args(self, receiver: Any) -> tuple[Any, ...]:
        return (receiver,) if self._kind.passes_receiver else ()

    def _parent(self, receiver: Any) -> tuple[Wrapper | None, Any]:
        """Nearest wrapped ancestor slot and the receiver it is called with."""
        host = self.host
        if host is None or self._is_module_host:
            return None, receiver

        if self._is_class_host:
            mro = host.__mro__[1:]
            parent_receiver = receiver
        else:
            mro = type(host).__mro__
            parent_receiver = host

        _, raw = find_in_mro(mro, self._slot_name)
        if not isinstance(raw, SlotDescriptor):
            return None, receiver

        parent = raw.wrapper
        if parent._kind is self._kind or (
            self._kind is SlotKind.FUNCTION and parent._kind is SlotKind.METHOD
        ):
            return parent, parent_receiver
        return None, receiver

    def _terminal_stack(self, half: AccessorHalf, receiver: Any) -> list[Callable[..., Any]]:
        """Originals for this receiver, newest first."""
        stack: list[Callable[..., Any]] = []
        if self._is_class_host and self._kind is SlotKind.METHOD:
            stack.extend(reversed(instance_overrides(receiver, self._slot_name)))

        for raw in reversed(self._originals):
            if raw is INHERITED:
                stack.extend(self._inherited_stack(half, receiver))
                break
            stack.append(self._bind(raw, half, receiver))
        return stack

    def _inherited_stack(self, half: AccessorHalf, receiver: Any) -> list[Callable[..., Any]]:
        parent, parent_receiver = self._parent(receiver)
        if parent is not None:
            return parent._terminal_stack(half, parent_receiver)

        host = self.host
        if host is None:
            return []

        if self._is_class_host:
            _, raw = find_in_mro(host.__mro__[1:], self._slot_name)
            if raw is MISSING:
                return []
            return [self._bind(raw, half, receiver)]

        _, raw = find_in_mro(type(host).__mro__, self._slot_name)
        if raw is MISSING:
            return []
        return [bind_original(raw, SlotKind.METHOD, half, host, type(host))]

    def _bind(self, raw: Any, half: AccessorHalf, receiver: Any) -> Callable[..., Any]:
        kind = self._kind
        if kind in (SlotKind.METHOD, SlotKind.ACCESSOR):
            owner = type(receiver)
        else:
            owner = self.host
        return bind_original(raw, kind, half, receiver, owner)

    def _missing_original(self) -> AttributeError:
        return AttributeError(f"'{self.name}' has no original to call")

    def __repr__(self) -> str:
        counts = ", ".join(f"{h.value}={len(r)}" for h, r in self._registrations.items())
        return f"Wrapper({self.name!r}, kind={self._kind.value}, {counts})"


def _reference(host: Any) -> Callable[[], Any]:
    """Weak reference to the host, or a strong one if it cannot be weakly referenced."""
    try:
        return weakref.ref(host)
    except TypeError:
        return lambda: host


__all__ = ["Wrapper"]
