"""Custom exceptions for chainwrap.

This module provides the hierarchy of exceptions raised by the wrapping
engine. Every exception inherits from ChainWrapError, so callers can
catch everything the engine raises with a single except clause.

Example:
    >>> from chainwrap import AlreadyOverriddenError, ChainWrap
    >>>
    >>> try:
    ...     ChainWrap.instance().register("my-pkg", "Token.draw", draw, "OVERRIDE")
    ... except AlreadyOverriddenError as e:
    ...     print(f"{e.conflicting_info.id} already overrides {e.target}")
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .package_info import PackageInfo


class ChainWrapError(Exception):
    """Base exception for all chainwrap errors.

    Attributes:
        message: Human-readable error message.
        metadata: Additional error context.
    """

    def __init__(
        self,
        message: str,
        *,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """Initialize the error.

        Args:
            message: Error message.
            metadata: Additional context.
        """
        super().__init__(message)
        self.message = message
        self.metadata = metadata or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert to a dictionary for conflict reports and event payloads.

        Returns:
            Dictionary with error details.
        """
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "metadata": self.metadata,
        }


class ConfigurationError(ChainWrapError):
    """Raised when a package misuses the engine.

    Covers malformed targets, invalid type or perf_mode values, duplicate
    registrations, and calls made before the engine is ready. These errors
    are always raised synchronously to the caller and are never retried.

    Example:
        >>> try:
        ...     engine.register("my-pkg", "not a path", fn)
        ... except ConfigurationError as e:
        ...     print(e.package_info)
    """

    def __init__(
        self,
        message: str,
        package_info: PackageInfo | None = None,
        *,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, metadata=metadata)
        self.package_info = package_info

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["package_id"] = self.package_info.id if self.package_info else None
        return data


class AlreadyOverriddenError(ConfigurationError):
    """Raised when an OVERRIDE registration loses a priority contest.

    Designed to be caught by the losing package so it can fail gracefully,
    for example by warning the user about the conflict.

    Attributes:
        package_info: The package whose registration was rejected.
        conflicting_info: The package that holds the OVERRIDE.
        wrapper_name: Display name of the wrapped slot.
        target: The target string passed to register().
    """

    def __init__(
        self,
        package_info: PackageInfo,
        conflicting_info: PackageInfo,
        wrapper_name: str,
        target: str,
    ) -> None:
        super().__init__(
            f"Failed to register an OVERRIDE for '{target}' by {package_info.log_string}: "
            f"{conflicting_info.log_string} has already registered an OVERRIDE "
            f"for '{wrapper_name}'.",
            package_info,
            metadata={
                "conflicting_package_id": conflicting_info.id,
                "wrapper_name": wrapper_name,
                "target": target,
            },
        )
        self.conflicting_info = conflicting_info
        self.wrapper_name = wrapper_name
        self.target = target


class InternalError(ChainWrapError):
    """Raised when the engine finds its own state in an impossible shape.

    This always indicates a bug in chainwrap itself, never in a package.
    """

    pass


class InvalidChainUsageError(ChainWrapError):
    """Raised when a registered function misuses its continuation.

    For example calling ``wrapped`` more than once, or keeping it around
    and calling it after the wrapper function has already returned.
    """

    def __init__(
        self,
        message: str,
        package_info: PackageInfo | None = None,
        target: str | None = None,
    ) -> None:
        super().__init__(
            message,
            metadata={"package_id": package_info.id if package_info else None, "target": target},
        )
        self.package_info = package_info
        self.target = target


__all__ = [
    "ChainWrapError",
    "ConfigurationError",
    "AlreadyOverriddenError",
    "InternalError",
    "InvalidChainUsageError",
]
