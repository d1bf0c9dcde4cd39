"""Conflict detection and the in-memory conflict ledger.

ConflictDetector guards Wrapper.add/remove:
- at most one registration per (wrapper, package, half)
- at most one reachable OVERRIDE per half, decided by strictly
  greater priority

ConflictRegistry records what the detector and the running chains find,
so a conflict reporter can present it, and holds the ignore rules that
packages declare through ChainWrap.ignore_conflicts().

Example:
    >>> conflicts = ConflictRegistry()
    >>> detector = ConflictDetector(conflicts, EventBridge())
    >>> detector.add(wrapper, registration)
    >>> conflicts.records
    []
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

from ..event_bridge import EventBridge, EventNames
from ..exceptions import AlreadyOverriddenError, ConfigurationError
from ..logging import log_warn
from ..types import LogContext, WrapperType

if TYPE_CHECKING:
    from ..package_info import PackageInfo
    from .registration import Registration
    from .wrapper import Wrapper


class ConflictRecord(BaseModel):
    """One conflict between two packages on one target.

    Repeated occurrences of the same conflict increment ``count``.
    """

    package_id: str = Field(description="Package whose registration takes effect.")
    other_id: str = Field(description="Package whose registration is blocked.")
    target: str = Field(description="Display name of the wrapped slot.")
    is_warning: bool = Field(description="Potential conflict (True) or confirmed one (False).")
    count: int = Field(default=1, ge=1)
    ignored: bool = Field(default=False, description="Matched an ignore rule.")

    @property
    def key(self) -> tuple[str, str, str, bool]:
        return (self.package_id, self.other_id, self.target, self.is_warning)


class IgnoreRule(BaseModel):
    """Conflicts a package has asked not to be reported."""

    package_id: str
    ignore_ids: list[str]
    targets: list[str]
    ignore_errors: bool = False

    model_config = {"extra": "forbid"}

    def matches(
        self,
        package_id: str,
        other_id: str,
        names: tuple[str, ...] | list[str],
        is_warning: bool,
    ) -> bool:
        if not is_warning and not self.ignore_errors:
            return False
        if not any(name in self.targets for name in names):
            return False
        return (self.package_id == package_id and other_id in self.ignore_ids) or (
            self.package_id == other_id and package_id in self.ignore_ids
        )


class ConflictRegistry:
    """In-memory ledger of conflicts, ignore rules and wrapping packages."""

    def __init__(self) -> None:
        self._records: dict[tuple[str, str, str, bool], ConflictRecord] = {}
        self._rules: list[IgnoreRule] = []
        self._packages: dict[str, PackageInfo] = {}

    @property
    def records(self) -> list[ConflictRecord]:
        return list(self._records.values())

    @property
    def rules(self) -> list[IgnoreRule]:
        return list(self._rules)

    @property
    def packages(self) -> list[PackageInfo]:
        """Packages that have registered at least one wrapper."""
        return list(self._packages.values())

    def add_package(self, package_info: PackageInfo) -> None:
        self._packages.setdefault(package_info.id, package_info)

    def add_ignore(self, rule: IgnoreRule) -> None:
        self._rules.append(rule)

    def is_ignored(
        self,
        package_id: str,
        other_id: str,
        names: tuple[str, ...] | list[str],
        is_warning: bool,
    ) -> bool:
        return any(rule.matches(package_id, other_id, names, is_warning) for rule in self._rules)

    def record(
        self,
        package_id: str,
        other_id: str,
        names: tuple[str, ...] | list[str],
        *,
        is_warning: bool,
    ) -> tuple[ConflictRecord, bool]:
        """Record a conflict occurrence.

        Args:
            package_id: Package whose registration takes effect.
            other_id: Package whose registration is blocked.
            names: Target names of the wrapper; the first is stored.
            is_warning: Potential (True) or confirmed (False) conflict.

        Returns:
            (record, whether this is the first occurrence)
        """
        key = (package_id, other_id, names[0], is_warning)
        record = self._records.get(key)
        if record is not None:
            record.count += 1
            return record, False

        record = ConflictRecord(
            package_id=package_id,
            other_id=other_id,
            target=names[0],
            is_warning=is_warning,
            ignored=self.is_ignored(package_id, other_id, names, is_warning),
        )
        self._records[key] = record
        return record, True

    def clear(self) -> None:
        self._records.clear()
        self._rules.clear()
        self._packages.clear()


class ConflictDetector:
    """Validates registrations against a wrapper and reports conflicts."""

    def __init__(self, conflicts: ConflictRegistry, events: EventBridge) -> None:
        self._conflicts = conflicts
        self._events = events

    @property
    def conflicts(self) -> ConflictRegistry:
        return self._conflicts

    def add(self, wrapper: Wrapper, registration: Registration) -> Registration | None:
        """Add a registration to a wrapper if no conflict rule forbids it.

        Returns:
            The OVERRIDE registration that lost its place, if any.

        Raises:
            ConfigurationError: If the package already registered this half.
            AlreadyOverriddenError: If a reachable OVERRIDE has equal or
                higher priority.
        """
        package_info = registration.package_info
        if wrapper.find(package_info, registration.half) is not None:
            raise ConfigurationError(
                f"A wrapper for '{wrapper.name}' has already been registered by "
                f"{package_info.log_string}.",
                package_info,
            )

        demoted: Registration | None = None
        if registration.type is WrapperType.OVERRIDE:
            current = wrapper.chain(registration.half).override
            if current is not None:
                if registration.priority <= current.priority:
                    raise AlreadyOverriddenError(
                        package_info, current.package_info, wrapper.name, registration.target
                    )
                demoted = current

        wrapper.add(registration)

        if demoted is not None:
            log_warn(
                f"{package_info.log_string} took the OVERRIDE of '{wrapper.name}' from "
                f"{demoted.package_info.log_string}",
                LogContext(
                    package_id=package_info.id,
                    target=registration.target,
                    wrapper_type=WrapperType.OVERRIDE.value,
                    operation="register",
                ),
            )
            self._events.publish(
                EventNames.OVERRIDE_LOST,
                demoted.package_info.id,
                package_info.id,
                wrapper.name,
                registration.target,
            )
            self._report(wrapper, registration, demoted, is_warning=False)
        return demoted

    def remove(self, wrapper: Wrapper, registration: Registration) -> bool:
        """Remove a registration. Returns True if the wrapper is now empty."""
        return wrapper.remove(registration)

    def report_runtime(
        self,
        wrapper: Wrapper,
        registration: Registration,
        blocked: Registration,
    ) -> None:
        """A MIXED registration did not forward while ``blocked`` was next in line."""
        self._report(wrapper, registration, blocked, is_warning=True)

    def _report(
        self,
        wrapper: Wrapper,
        winner: Registration,
        loser: Registration,
        *,
        is_warning: bool,
    ) -> None:
        if winner.package_info == loser.package_info:
            return

        record, first = self._conflicts.record(
            winner.package_info.id,
            loser.package_info.id,
            wrapper.names,
            is_warning=is_warning,
        )
        if record.ignored or not first:
            return

        log_warn(
            f"Conflict on '{wrapper.name}': {winner.package_info.log_string} blocks "
            f"{loser.package_info.log_string}",
            {"target": wrapper.name, "is_warning": is_warning},
        )
        self._events.publish(EventNames.CONFLICT, record)


__all__ = ["ConflictDetector", "ConflictRecord", "ConflictRegistry", "IgnoreRule"]
