"""
chainwrap

Lets independently written packages wrap the same method or accessor of a
shared host object without clobbering each other. Every registration for a
slot is merged into one priority-ordered chain, conflicting OVERRIDEs are
detected, and plain monkey-patching of the slot keeps working.

Example:
    >>> import chainwrap
    >>> engine = chainwrap.ChainWrap.instance()
    >>> engine.ready()

    >>> # Wrap a method; later registrations at equal priority run further in
    >>> def draw(wrapped, token, *args, **kwargs):
    ...     chainwrap.log_debug("drawing", {"token": repr(token)})
    ...     return wrapped(*args, **kwargs)
    >>> engine.register("my-pkg", "Token.draw", draw, "WRAPPER")

    >>> # Exclusive replacement, guarded against other OVERRIDEs
    >>> try:
    ...     engine.register("my-pkg", "Token.refresh", refresh, "OVERRIDE")
    ... except chainwrap.AlreadyOverriddenError as e:
    ...     print(f"{e.conflicting_info.id} already overrides {e.target}")

    >>> # Wrap only the setter half of a property
    >>> engine.register("my-pkg", "Token.visible#set", set_visible)

    >>> # Classes built on HostType adopt class-level reassignment at once
    >>> class Token(metaclass=chainwrap.HostType):
    ...     def draw(self): ...
"""

from __future__ import annotations

from chainwrap.api import ChainWrap, default_package_lookup
from chainwrap.core import (
    ChainBuilder,
    CompiledChain,
    ConflictDetector,
    ConflictRecord,
    ConflictRegistry,
    HostType,
    IgnoreRule,
    Namespace,
    Registration,
    ResolvedTarget,
    SlotDescriptor,
    TargetResolver,
    Wrapper,
    WrapperRegistry,
    is_valid_target,
    split_target,
)
from chainwrap.event_bridge import EventBridge, EventNames
from chainwrap.exceptions import (
    AlreadyOverriddenError,
    ChainWrapError,
    ConfigurationError,
    InternalError,
    InvalidChainUsageError,
)
from chainwrap.logging import (
    log_debug,
    log_error,
    log_info,
    log_trace,
    log_warn,
)
from chainwrap.package_info import PACKAGE_ID, PackageInfo
from chainwrap.settings import EngineSettings, PriorityTable
from chainwrap.types import (
    AccessorHalf,
    IgnoreOptions,
    LogContext,
    PerfMode,
    RegisterOptions,
    SlotKind,
    WrapperType,
)
from chainwrap.version import VERSION, __version__, version_at_least

__all__ = [
    # Version
    "__version__",
    "VERSION",
    "version_at_least",
    # Engine
    "ChainWrap",
    "PACKAGE_ID",
    "PackageInfo",
    "default_package_lookup",
    "HostType",
    # Core
    "ChainBuilder",
    "CompiledChain",
    "ConflictDetector",
    "ConflictRecord",
    "ConflictRegistry",
    "IgnoreRule",
    "Namespace",
    "Registration",
    "ResolvedTarget",
    "SlotDescriptor",
    "TargetResolver",
    "Wrapper",
    "WrapperRegistry",
    "is_valid_target",
    "split_target",
    # Settings
    "EngineSettings",
    "PriorityTable",
    # Types
    "AccessorHalf",
    "IgnoreOptions",
    "LogContext",
    "PerfMode",
    "RegisterOptions",
    "SlotKind",
    "WrapperType",
    # Events
    "EventBridge",
    "EventNames",
    # Exceptions
    "ChainWrapError",
    "ConfigurationError",
    "AlreadyOverriddenError",
    "InternalError",
    "InvalidChainUsageError",
    # Logging
    "log_error",
    "log_warn",
    "log_info",
    "log_debug",
    "log_trace",
]
