"""Public API for registering wrappers.

ChainWrap is the facade packages talk to. It validates arguments, resolves
targets, and routes registrations through the ConflictDetector into the
per-slot Wrapper entities held by the WrapperRegistry.

Lifecycle:
1. The host application creates (or fetches) the engine
2. It calls ready(), or ready_on(target) to become ready when a bootstrap
   method first runs
3. Packages register wrappers once the engine is ready

Example:
    >>> from chainwrap import ChainWrap
    >>>
    >>> engine = ChainWrap.instance()
    >>> engine.ready()
    >>>
    >>> def draw(wrapped, token, *args, **kwargs):
    ...     token.highlight()
    ...     return wrapped(*args, **kwargs)
    ...
    >>> engine.register("my-pkg", "Token.draw", draw, "WRAPPER")
    >>> engine.unregister("my-pkg", "Token.draw")
"""

from __future__ import annotations

import re
from collections.abc import Callable, Mapping
from typing import Any

from pydantic import ValidationError

from .core.chain_builder import CompiledChain
from .core.conflicts import ConflictDetector, ConflictRegistry, IgnoreRule
from .core.registration import Registration
from .core.slots import detect_slot_kind
from .core.target_resolver import (
    Namespace,
    TargetResolver,
    is_valid_target,
    split_target,
)
from .core.wrapper import Wrapper
from .core.wrapper_registry import WrapperRegistry
from .event_bridge import EventBridge, EventNames
from .exceptions import ConfigurationError
from .logging import log_debug, log_info
from .package_info import ENGINE_PACKAGE, PACKAGE_ID, PackageInfo
from .settings import EngineSettings, PriorityTable
from .types import AccessorHalf, IgnoreOptions, LogContext, RegisterOptions, WrapperType
from .version import VERSION, version_at_least, version_tuple

PackageLookup = Callable[[str], "PackageInfo | None"]

PACKAGE_ID_PATTERN = re.compile(r"^[a-zA-Z0-9_][a-zA-Z0-9_.\-]*$")


def default_package_lookup(package_id: str) -> PackageInfo | None:
    """Accept every well-formed package id."""
    if package_id == PACKAGE_ID:
        return ENGINE_PACKAGE
    if not PACKAGE_ID_PATTERN.match(package_id):
        return None
    return PackageInfo(package_id)


class ChainWrap:
    """The wrapper-chain engine facade.

    Attributes:
        settings: Engine settings (debug, high_performance, priorities).
        registry: Live wrappers.
        events: Event bridge notifications are published on.
        conflicts: Conflict ledger and ignore rules.
    """

    _instance: ChainWrap | None = None

    def __init__(
        self,
        settings: EngineSettings | None = None,
        registry: WrapperRegistry | None = None,
        events: EventBridge | None = None,
        conflicts: ConflictRegistry | None = None,
        namespace: Namespace | None = None,
        package_lookup: PackageLookup | None = None,
    ) -> None:
        """Create an engine.

        Every collaborator not passed in is created fresh, so a plain
        ChainWrap() is isolated from the process-wide instance.
        """
        self._settings = settings if settings is not None else EngineSettings()
        self._registry = registry if registry is not None else WrapperRegistry()
        self._events = events if events is not None else EventBridge()
        self._conflicts = conflicts if conflicts is not None else ConflictRegistry()
        self._namespace = namespace if namespace is not None else Namespace()
        self._package_lookup = package_lookup or default_package_lookup

        self._resolver = TargetResolver(self._namespace)
        self._detector = ConflictDetector(self._conflicts, self._events)
        self._priorities = PriorityTable(self._settings)
        self._ready = False

    @classmethod
    def instance(cls) -> ChainWrap:
        """Get the process-wide engine.

        It shares the singleton WrapperRegistry and EventBridge and reads
        its settings from the environment.
        """
        if cls._instance is None:
            cls._instance = cls(
                settings=EngineSettings.from_env(),
                registry=WrapperRegistry.instance(),
                events=EventBridge.instance(),
            )
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        """Unwrap everything the process-wide engine installed and drop it."""
        if cls._instance is not None:
            cls._instance.unwrap_all()
        cls._instance = None

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def settings(self) -> EngineSettings:
        return self._settings

    @property
    def registry(self) -> WrapperRegistry:
        return self._registry

    @property
    def events(self) -> EventBridge:
        return self._events

    @property
    def conflicts(self) -> ConflictRegistry:
        return self._conflicts

    @property
    def namespace(self) -> Namespace:
        return self._namespace

    @property
    def is_ready(self) -> bool:
        return self._ready

    @property
    def version(self) -> str:
        return VERSION

    @property
    def versions(self) -> tuple[int, int, int, int, str]:
        """(major, minor, patch, suffix, meta)."""
        return version_tuple()

    @property
    def is_fallback(self) -> bool:
        """Always False: this is the full engine, not a compatibility shim."""
        return False

    @property
    def debug(self) -> bool:
        return self._settings.debug

    @debug.setter
    def debug(self, value: bool) -> None:
        try:
            self._settings.debug = value
        except ValidationError as e:
            raise ConfigurationError(f"Invalid debug value: {e}") from e

    def version_at_least(
        self, major: int, minor: int = 0, patch: int = 0, suffix: int = 0
    ) -> bool:
        """Test for a minimum engine version, most significant component first."""
        return version_at_least(major, minor, patch, suffix)

    # =========================================================================
    # Readiness
    # =========================================================================

    def ready(self) -> None:
        """Mark the engine ready for package registrations.

        Starts the event bridge and publishes ``chainwrap.ready``. Calling
        it again has no effect.
        """
        if self._ready:
            return
        self._ready = True
        self._events.start()
        log_info("chainwrap ready", {"version": VERSION})
        self._events.publish(EventNames.READY, self)

    def ready_on(self, target: str) -> None:
        """Become ready the first time ``target`` is called.

        Registers an engine-owned WRAPPER in FAST mode that calls ready()
        and then forwards the call unchanged.

        Example:
            >>> engine.ready_on("Game.setup")
            >>> Game().setup()  # engine.is_ready is now True
        """
        path, _ = split_target(target)
        resolved = self._resolver.resolve(path, ENGINE_PACKAGE)
        kind, _, _ = detect_slot_kind(resolved.host, resolved.name, ENGINE_PACKAGE)
        skip = 1 if kind.passes_receiver else 0

        def _ready_hook(wrapped: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
            self.ready()
            return wrapped(*args[skip:], **kwargs)

        self.register(PACKAGE_ID, path, _ready_hook, "WRAPPER", {"perf_mode": "FAST"})

    # =========================================================================
    # Registration
    # =========================================================================

    def register(
        self,
        package_id: str,
        target: str,
        fn: Callable[..., Any],
        type: str | WrapperType = "MIXED",
        options: Mapping[str, Any] | RegisterOptions | None = None,
    ) -> None:
        """Register a wrapper for a slot.

        Args:
            package_id: Id of the registering package.
            target: Dotted path to the slot, with ``#set`` for a setter.
            fn: The wrapper function. With chain=True it is called as
                ``fn(wrapped, *receiver, *args, **kwargs)``, otherwise as
                ``fn(*receiver, *args, **kwargs)``.
            type: WRAPPER, MIXED (default) or OVERRIDE.
            options: ``chain`` (defaults to type != OVERRIDE) and
                ``perf_mode`` (NORMAL, FAST or AUTO).

        Raises:
            ConfigurationError: On malformed arguments, duplicates, or when
                called at the wrong point of the engine's lifecycle.
            AlreadyOverriddenError: If an OVERRIDE loses its priority contest.
        """
        package_info = self._package(package_id)
        self._check_lifecycle(package_info)

        if not isinstance(target, str):
            raise ConfigurationError("Parameter 'target' must be a string.", package_info)
        if not callable(fn):
            raise ConfigurationError("Parameter 'fn' must be a function.", package_info)

        try:
            wrapper_type = WrapperType.parse(type)
        except ValueError as e:
            raise ConfigurationError(f"Invalid type '{type}': {e}", package_info) from e

        register_options = self._parse_options(RegisterOptions, options, package_info)
        chain = register_options.chain
        if chain is None:
            chain = wrapper_type is not WrapperType.OVERRIDE
        if wrapper_type is WrapperType.WRAPPER and not chain:
            raise ConfigurationError(
                "WRAPPER registrations must have chain=True.", package_info
            )

        resolved = self._resolver.resolve(target, package_info)
        wrapper = self._registry.find_or_create(
            resolved,
            lambda: Wrapper(
                resolved.host,
                resolved.name,
                resolved.path,
                settings=self._settings,
                package_info=package_info,
                on_conflict=self._detector.report_runtime,
                on_empty=self._registry.detach_if_possible,
            ),
        )

        try:
            half = self._half(wrapper, resolved.is_setter, target, package_info)
            registration = Registration(
                package_info=package_info,
                target=target,
                half=half,
                fn=fn,
                type=wrapper_type,
                priority=self._priorities.resolve(package_info),
                chain=chain,
                perf_mode=register_options.perf_mode,
            )
            if not package_info.is_engine:
                self._conflicts.add_package(package_info)
            self._detector.add(wrapper, registration)
        except ConfigurationError:
            self._registry.detach_if_possible(wrapper)
            raise

        if self._should_announce(package_info):
            log_info(
                f"Registered a wrapper for '{target}' by {package_info.log_string} "
                f"with type {wrapper_type.value}.",
                LogContext(
                    package_id=package_info.id,
                    target=target,
                    wrapper_type=wrapper_type.value,
                    operation="register",
                ),
            )
            self._events.publish(
                EventNames.REGISTER, package_info.id, target, wrapper_type, register_options
            )

    def unregister(self, package_id: str, target: str, fail: bool = True) -> None:
        """Remove a package's registration for a target.

        Raises:
            ConfigurationError: If there is no such registration and ``fail``
                is True.
        """
        package_info = self._package(package_id)
        if not isinstance(target, str):
            raise ConfigurationError("Parameter 'target' must be a string.", package_info)

        path, is_setter = split_target(target)
        wrapper = self._registry.find(path)
        registration: Registration | None = None
        if wrapper is not None:
            try:
                half = self._half(wrapper, is_setter, target, package_info)
            except ConfigurationError:
                # A setter of a non-accessor cannot hold a registration.
                if fail:
                    raise
                return
            registration = wrapper.find(package_info, half)

        if wrapper is None or registration is None:
            if fail:
                raise ConfigurationError(
                    f"Cannot unregister '{target}' by {package_info.log_string} as no such "
                    f"wrapper has been registered.",
                    package_info,
                )
            return

        if self._detector.remove(wrapper, registration):
            self._registry.detach_if_possible(wrapper)
        self._announce_unregister(package_info, target)

    def unregister_all(self, package_id: str) -> None:
        """Remove every registration of a package, on every half.

        Each removed registration is announced as an unregister first.
        """
        package_info = self._package(package_id)

        for wrapper in self._registry:
            empty = False
            for half in wrapper.halves:
                registration = wrapper.find(package_info, half)
                if registration is not None:
                    empty = self._detector.remove(wrapper, registration)
                    self._announce_unregister(package_info, registration.target)
            if empty:
                self._registry.detach_if_possible(wrapper)

        if self._should_announce(package_info):
            log_info(
                f"Unregistered all wrapper functions by {package_info.log_string}.",
                LogContext(package_id=package_info.id, operation="unregister_all"),
            )
            self._events.publish(EventNames.UNREGISTER_ALL, package_info.id)

    def ignore_conflicts(
        self,
        package_id: str,
        ignore_ids: str | list[str],
        targets: str | list[str],
        options: Mapping[str, Any] | IgnoreOptions | None = None,
    ) -> None:
        """Ask for conflicts with other packages on some targets not to be reported.

        This only affects conflict reporting, never the chains themselves.

        Raises:
            ConfigurationError: If the engine is not ready or an argument is
                malformed.
        """
        package_info = self._package(package_id)
        if not self._ready:
            raise ConfigurationError(
                f"{package_info.log_string}: chainwrap is not ready yet.", package_info
            )

        ignore_list = [ignore_ids] if isinstance(ignore_ids, str) else ignore_ids
        target_list = [targets] if isinstance(targets, str) else targets
        if not isinstance(ignore_list, list) or not all(isinstance(i, str) for i in ignore_list):
            raise ConfigurationError(
                "Parameter 'ignore_ids' must be a string or a list of strings.", package_info
            )
        if not isinstance(target_list, list) or not all(isinstance(t, str) for t in target_list):
            raise ConfigurationError(
                "Parameter 'targets' must be a string or a list of strings.", package_info
            )
        for target in target_list:
            if not is_valid_target(split_target(target)[0]):
                raise ConfigurationError(f"Invalid target '{target}'.", package_info)

        ignore_options = self._parse_options(IgnoreOptions, options, package_info)

        known_ids = [i for i in ignore_list if self._package_lookup(i) is not None]
        if not known_ids:
            log_debug(
                f"Ignoring 'ignore_conflicts' call from {package_info.log_string}: "
                f"none of the packages to ignore are known",
                {"ignore_ids": ignore_list},
            )
            return

        self._conflicts.add_ignore(
            IgnoreRule(
                package_id=package_info.id,
                ignore_ids=known_ids,
                targets=[split_target(t)[0] for t in target_list],
                ignore_errors=ignore_options.ignore_errors,
            )
        )
        log_debug(
            f"{package_info.log_string} ignores conflicts with {known_ids}",
            {"targets": target_list},
        )

    # =========================================================================
    # Teardown
    # =========================================================================

    def clear(self, target: str) -> bool:
        """Remove every registration for a target."""
        return self._registry.clear(target)

    def unwrap_all(self) -> None:
        """Remove every registration and restore every wrapped slot."""
        self._registry.unwrap_all()

    # =========================================================================
    # Introspection
    # =========================================================================

    def registrations(self, target: str) -> list[Registration]:
        """Registrations for a target's half, in registration order."""
        path, is_setter = split_target(target)
        wrapper = self._registry.find(path)
        if wrapper is None:
            return []
        return wrapper.registrations(self._half(wrapper, is_setter, target, None))

    def compiled_chain(self, target: str) -> CompiledChain | None:
        """The compiled chain currently installed for a target's half."""
        path, is_setter = split_target(target)
        wrapper = self._registry.find(path)
        if wrapper is None:
            return None
        return wrapper.chain(self._half(wrapper, is_setter, target, None))

    # =========================================================================
    # Helpers
    # =========================================================================

    def _package(self, package_id: Any) -> PackageInfo:
        if not isinstance(package_id, str) or not package_id:
            raise ConfigurationError("Parameter 'package_id' must be a non-empty string.")
        package_info = self._package_lookup(package_id)
        if package_info is None:
            raise ConfigurationError(f"Could not identify package '{package_id}'.")
        return package_info

    def _check_lifecycle(self, package_info: PackageInfo) -> None:
        if package_info.is_engine:
            if self._ready:
                raise ConfigurationError(
                    "chainwrap cannot register its own wrappers after it is ready.", package_info
                )
        elif not self._ready:
            raise ConfigurationError(
                f"{package_info.log_string}: chainwrap is not ready yet.", package_info
            )

    def _should_announce(self, package_info: PackageInfo) -> bool:
        return not package_info.is_engine or self._settings.debug

    def _announce_unregister(self, package_info: PackageInfo, target: str) -> None:
        if not self._should_announce(package_info):
            return
        log_info(
            f"Unregistered the wrapper for '{target}' by {package_info.log_string}.",
            LogContext(package_id=package_info.id, target=target, operation="unregister"),
        )
        self._events.publish(EventNames.UNREGISTER, package_info.id, target)

    @staticmethod
    def _half(
        wrapper: Wrapper,
        is_setter: bool,
        target: str,
        package_info: PackageInfo | None,
    ) -> AccessorHalf:
        if wrapper.kind.is_accessor:
            return AccessorHalf.SET if is_setter else AccessorHalf.GET
        if is_setter:
            raise ConfigurationError(
                f"Cannot wrap the setter of '{target}': it is not an accessor.", package_info
            )
        return AccessorHalf.VALUE

    @staticmethod
    def _parse_options(
        model: Any,
        options: Any,
        package_info: PackageInfo,
    ) -> Any:
        if options is None:
            return model()
        if isinstance(options, model):
            return options
        if not isinstance(options, Mapping):
            raise ConfigurationError("Parameter 'options' must be a mapping.", package_info)
        try:
            return model.model_validate(dict(options))
        except ValidationError as e:
            raise ConfigurationError(f"Invalid options: {e}", package_info) from e


__all__ = ["ChainWrap", "default_package_lookup"]
