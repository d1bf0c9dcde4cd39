"""Slot installation on host objects.

A wrapped slot is replaced on its host by an object that routes every call
into the owning Wrapper:

- Class hosts get a SlotDescriptor, a data descriptor placed in the class
  dict. It binds receivers the way the replaced function, classmethod,
  staticmethod or property did.
- Module and instance hosts get an entry function in their ``__dict__``,
  and their class is swapped for an intercepting subclass so that direct
  reassignment of the wrapped name is adopted as a new original instead
  of replacing the entry.
- Classes created with the HostType metaclass adopt class-level
  reassignment right away.

Re-entrancy bookkeeping also lives here: while a wrapped original
runs, its (wrapper, half, receiver) key is marked in a ContextVar so that a
call back into the same slot skips the registrations and continues with
the next older original.
"""

from __future__ import annotations

import functools
import inspect
import types
import weakref
from collections.abc import Callable, Mapping
from contextvars import ContextVar
from typing import TYPE_CHECKING, Any

from ..exceptions import ConfigurationError
from ..logging import log_debug
from ..types import AccessorHalf, SlotKind

if TYPE_CHECKING:
    from ..package_info import PackageInfo
    from .wrapper import Wrapper


class _Sentinel:
    __slots__ = ("_name",)

    def __init__(self, name: str) -> None:
        self._name = name

    def __repr__(self) -> str:
        return self._name


MISSING: Any = _Sentinel("MISSING")
INHERITED: Any = _Sentinel("INHERITED")
"""Original marker: the host does not own the slot, look further up."""

WRAPPER_ATTR = "__chainwrap_wrapper__"
OVERRIDES_KEY = "__chainwrap_overrides__"
INTERCEPT_BASE_ATTR = "__chainwrap_base__"


# =============================================================================
# Re-entrancy marks
# =============================================================================

ReentryKey = tuple[int, AccessorHalf, int]

_reentry_marks: ContextVar[Mapping[ReentryKey, int]] = ContextVar(
    "chainwrap_reentry_marks", default=types.MappingProxyType({})
)


def reentry_key(wrapper: Wrapper, half: AccessorHalf, receiver: Any) -> ReentryKey:
    return (id(wrapper), half, id(receiver))


def reentry_level(key: ReentryKey) -> int | None:
    """Stack level currently running for this key, or None."""
    return _reentry_marks.get().get(key)


def call_marked(
    marks: Mapping[ReentryKey, int],
    fn: Callable[..., Any],
    args: tuple[Any, ...],
    kwargs: dict[str, Any],
) -> Any:
    """Call an original with re-entrancy marks set for its duration.

    If the original returns an awaitable, the marks are set again around
    the await so the coroutine body sees them.
    """
    token = _reentry_marks.set({**_reentry_marks.get(), **marks})
    try:
        result = fn(*args, **kwargs)
    finally:
        _reentry_marks.reset(token)

    if inspect.isawaitable(result):
        return _await_marked(result, marks)
    return result


async def _await_marked(awaitable: Any, marks: Mapping[ReentryKey, int]) -> Any:
    token = _reentry_marks.set({**_reentry_marks.get(), **marks})
    try:
        return await awaitable
    finally:
        _reentry_marks.reset(token)


# =============================================================================
# Slot kind detection and binding
# =============================================================================


def _classify(raw: Any, name: str, package_info: PackageInfo | None) -> SlotKind:
    if isinstance(raw, property):
        return SlotKind.ACCESSOR
    if isinstance(raw, staticmethod):
        return SlotKind.STATICMETHOD
    if isinstance(raw, classmethod):
        return SlotKind.CLASSMETHOD

    raw_type = type(raw)
    if hasattr(raw_type, "__get__") and (
        hasattr(raw_type, "__set__") or hasattr(raw_type, "__delete__")
    ):
        return SlotKind.ACCESSOR
    if callable(raw):
        return SlotKind.METHOD

    raise ConfigurationError(f"'{name}' is not callable and cannot be wrapped.", package_info)


def find_in_mro(mro: tuple[type, ...], name: str) -> tuple[type | None, Any]:
    """First class in ``mro`` whose dict holds ``name``, and the raw value."""
    for cls in mro:
        raw = cls.__dict__.get(name, MISSING)
        if raw is not MISSING:
            return cls, raw
    return None, MISSING


def detect_slot_kind(
    host: Any,
    name: str,
    package_info: PackageInfo | None = None,
) -> tuple[SlotKind, Any, bool]:
    """Work out how a slot is stored on its host.

    Returns:
        (kind, raw value, whether the host owns the slot)

    Raises:
        ConfigurationError: If the slot is missing, not callable, an
            accessor on a non-class host, or the host has no ``__dict__``.
    """
    if isinstance(host, type):
        owner, raw = find_in_mro(host.__mro__, name)
        if owner is None:
            raise ConfigurationError(
                f"Could not find target '{name}' on {host.__qualname__}.", package_info
            )
        owned = owner is host
        if isinstance(raw, SlotDescriptor):
            if owned:
                raise ConfigurationError(
                    f"'{name}' on {host.__qualname__} is wrapped by another engine.", package_info
                )
            return raw.wrapper.kind, raw, False
        return _classify(raw, name, package_info), raw, owned

    own = getattr(host, "__dict__", None)
    if own is None:
        raise ConfigurationError(
            f"Cannot wrap '{name}': {type(host).__name__} objects have no __dict__.",
            package_info,
        )

    if name in own:
        raw = own[name]
        if not callable(raw):
            raise ConfigurationError(
                f"'{name}' is not callable and cannot be wrapped.", package_info
            )
        return SlotKind.FUNCTION, raw, True

    owner, raw = find_in_mro(type(host).__mro__, name)
    if owner is None or isinstance(host, types.ModuleType):
        raise ConfigurationError(f"Could not find target '{name}'.", package_info)

    kind = raw.wrapper.kind if isinstance(raw, SlotDescriptor) else _classify(raw, name, package_info)
    if kind is SlotKind.ACCESSOR:
        raise ConfigurationError(
            f"Accessor '{name}' can only be wrapped on its class, not on an instance.",
            package_info,
        )
    return SlotKind.FUNCTION, raw, False


def bind_original(
    raw: Any,
    kind: SlotKind,
    half: AccessorHalf,
    receiver: Any,
    owner: type | None,
) -> Callable[..., Any]:
    """Turn a raw original into a callable taking only the call arguments."""
    getter = getattr(type(raw), "__get__", None)

    if kind is SlotKind.ACCESSOR:
        if half is AccessorHalf.SET:
            setter = getattr(type(raw), "__set__", None)
            if setter is None:

                def no_setter(value: Any) -> None:
                    raise AttributeError(f"{raw!r} has no setter")

                return no_setter
            return functools.partial(setter, raw, receiver)
        if getter is None:
            return lambda: raw
        return functools.partial(getter, raw, receiver, owner)

    if kind is SlotKind.FUNCTION or getter is None:
        return raw
    if kind is SlotKind.STATICMETHOD:
        return getter(raw, None, owner)
    if kind is SlotKind.CLASSMETHOD:
        return getter(raw, None, receiver)
    return getter(raw, receiver, owner)


def instance_overrides(receiver: Any, name: str) -> list[Any]:
    """Per-instance originals assigned over a wrapped method, oldest first.

    The stored history is only trusted while its newest entry is still the
    instance attribute; otherwise the attribute alone is used.
    """
    if isinstance(receiver, type):
        return []
    own = getattr(receiver, "__dict__", None)
    if not own or name not in own:
        return []

    current = own[name]
    if entry_wrapper(current) is not None:
        return []

    history = own.get(OVERRIDES_KEY, {}).get(name)
    if not history or history[-1] is not current:
        return [current]
    return list(history)


def _record_instance_override(instance: Any, name: str, value: Any) -> None:
    own = instance.__dict__
    previous = own.get(name, MISSING)
    history = own.setdefault(OVERRIDES_KEY, {}).setdefault(name, [])
    if not history or history[-1] is not previous:
        history[:] = [] if previous is MISSING or entry_wrapper(previous) else [previous]
    history.append(value)
    own[name] = value


def _drop_instance_override(instance: Any, name: str) -> None:
    own = instance.__dict__
    if name not in own:
        raise AttributeError(name)
    del own[name]
    overrides = own.get(OVERRIDES_KEY)
    if overrides is not None:
        overrides.pop(name, None)
        if not overrides:
            del own[OVERRIDES_KEY]


# =============================================================================
# Entry functions
# =============================================================================


def entry_wrapper(value: Any) -> Wrapper | None:
    """The Wrapper behind an engine entry function, or None."""
    func = getattr(value, "__func__", value)
    if not inspect.isfunction(func):
        return None
    return func.__dict__.get(WRAPPER_ATTR)


def make_entry(wrapper: Wrapper, kind: SlotKind, original: Any) -> Callable[..., Any]:
    """Build the function that routes plain calls into ``wrapper``.

    Methods and classmethods take the receiver as first argument; every
    other kind is called without one.
    """
    invoke = wrapper.invoke
    value = AccessorHalf.VALUE

    if kind in (SlotKind.METHOD, SlotKind.CLASSMETHOD):

        def entry(receiver: Any, /, *args: Any, **kwargs: Any) -> Any:
            return invoke(value, receiver, args, kwargs)

    else:

        def entry(*args: Any, **kwargs: Any) -> Any:
            return invoke(value, None, args, kwargs)

    template = getattr(original, "__func__", original)
    if inspect.isroutine(template):
        functools.update_wrapper(entry, template)
    setattr(entry, WRAPPER_ATTR, wrapper)
    return entry


# =============================================================================
# Class hosts
# =============================================================================


class SlotDescriptor:
    """Data descriptor installed in a class dict in place of a wrapped slot.

    Attribute access on instances binds the receiver and runs the chain.
    Class access returns an unbound entry (methods), a class-bound entry
    (classmethods), a plain entry (static methods) or the descriptor itself
    (accessors).

    Assigning a function to an instance attribute of a wrapped method stores
    it as that instance's own original, beneath the class chain.

    Example:
        >>> token.draw = custom_draw  # runs after every registered wrapper
        >>> Token.visible.fget(token)  # runs the get chain
    """

    def __init__(self, wrapper: Wrapper, entry: Callable[..., Any], original: Any = None) -> None:
        self.wrapper = wrapper
        self.entry = entry
        self.__doc__ = getattr(original, "__doc__", None)

    def __get__(self, instance: Any, owner: type | None = None) -> Any:
        wrapper = self.wrapper
        kind = wrapper.kind

        if kind is SlotKind.ACCESSOR:
            if instance is None:
                return self
            return wrapper.invoke(AccessorHalf.GET, instance, (), {})

        if instance is not None:
            shadow = getattr(instance, "__dict__", {}).get(wrapper.slot_name, MISSING)
            if shadow is not MISSING and (
                entry_wrapper(shadow) is not None or kind is not SlotKind.METHOD
            ):
                return shadow

        if kind is SlotKind.METHOD:
            return self.entry if instance is None else types.MethodType(self.entry, instance)
        if kind is SlotKind.CLASSMETHOD:
            return types.MethodType(self.entry, owner if owner is not None else type(instance))
        return self.entry

    def __set__(self, instance: Any, value: Any) -> None:
        wrapper = self.wrapper
        if wrapper.kind is SlotKind.ACCESSOR:
            wrapper.invoke(AccessorHalf.SET, instance, (value,), {})
        elif wrapper.kind is SlotKind.METHOD:
            _record_instance_override(instance, wrapper.slot_name, value)
        else:
            instance.__dict__[wrapper.slot_name] = value

    def __delete__(self, instance: Any) -> None:
        wrapper = self.wrapper
        if wrapper.kind is not SlotKind.ACCESSOR:
            _drop_instance_override(instance, wrapper.slot_name)
            return

        raw = wrapper.newest_original()
        deleter = getattr(type(raw), "__delete__", None)
        if deleter is None:
            raise AttributeError(f"can't delete attribute '{wrapper.slot_name}'")
        deleter(raw, instance)

    def fget(self, instance: Any) -> Any:
        return self.wrapper.invoke(AccessorHalf.GET, instance, (), {})

    def fset(self, instance: Any, value: Any) -> None:
        self.wrapper.invoke(AccessorHalf.SET, instance, (value,), {})

    def __repr__(self) -> str:
        return f"<SlotDescriptor {self.wrapper.name}>"


class HostType(type):
    """Metaclass for classes whose slots may be reassigned at class level.

    ``Token.draw = new_draw`` on a wrapped slot keeps the chain installed
    and makes ``new_draw`` the newest original. Deleting a wrapped slot
    falls back to the inherited implementation.

    Example:
        >>> class Token(metaclass=HostType):
        ...     def draw(self):
        ...         return "drawn"
    """

    def __setattr__(cls, name: str, value: Any) -> None:
        current = cls.__dict__.get(name)
        if isinstance(current, SlotDescriptor) and value is not current:
            current.wrapper.adopt(value)
            return
        super().__setattr__(name, value)

    def __delattr__(cls, name: str) -> None:
        current = cls.__dict__.get(name)
        if isinstance(current, SlotDescriptor):
            current.wrapper.adopt(INHERITED)
            return
        super().__delattr__(name)


# =============================================================================
# Module and instance hosts
# =============================================================================

_intercepting_classes: weakref.WeakKeyDictionary[type, type] = weakref.WeakKeyDictionary()


def intercepting_class(base: type) -> type:
    """Subclass of ``base`` that adopts reassignment of wrapped names."""
    cls = _intercepting_classes.get(base)
    if cls is not None:
        return cls

    def __setattr__(obj: Any, name: str, value: Any) -> None:
        wrapper = entry_wrapper(obj.__dict__.get(name))
        if wrapper is None:
            base.__setattr__(obj, name, value)
        elif entry_wrapper(value) is not wrapper:
            wrapper.adopt(value)

    def __delattr__(obj: Any, name: str) -> None:
        wrapper = entry_wrapper(obj.__dict__.get(name))
        if wrapper is None:
            base.__delattr__(obj, name)
        else:
            wrapper.adopt(INHERITED)

    def body(ns: dict[str, Any]) -> None:
        ns.update(
            {
                "__setattr__": __setattr__,
                "__delattr__": __delattr__,
                "__module__": base.__module__,
                "__qualname__": base.__qualname__,
                INTERCEPT_BASE_ATTR: base,
            }
        )

    cls = types.new_class(base.__name__, (base,), exec_body=body)
    _intercepting_classes[base] = cls
    return cls


def intercept(obj: Any) -> bool:
    """Swap ``obj``'s class for its intercepting subclass.

    Returns:
        True if reassignment on ``obj`` is now intercepted.
    """
    current = type(obj)
    if INTERCEPT_BASE_ATTR in current.__dict__:
        return True
    try:
        obj.__class__ = intercepting_class(current)
    except TypeError as e:
        log_debug(
            f"Cannot intercept reassignment on {current.__qualname__} objects, "
            f"adopting at rebuild instead: {e}"
        )
        return False
    return True


def release(obj: Any) -> None:
    """Restore ``obj``'s own class once no wrapped names remain on it."""
    current = type(obj)
    base = current.__dict__.get(INTERCEPT_BASE_ATTR)
    if base is None:
        return
    if any(entry_wrapper(value) is not None for value in obj.__dict__.values()):
        return
    obj.__class__ = base


__all__ = [
    "MISSING",
    "INHERITED",
    "SlotDescriptor",
    "HostType",
    "bind_original",
    "call_marked",
    "detect_slot_kind",
    "entry_wrapper",
    "find_in_mro",
    "instance_overrides",
    "intercept",
    "intercepting_class",
    "make_entry",
    "reentry_key",
    "reentry_level",
    "release",
]
