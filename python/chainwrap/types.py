"""Enums and pydantic models shared across chainwrap.

This module provides the vocabulary used by the public API and by the
wrapping core, using Pydantic v2 for validation of caller-supplied
options.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator


class WrapperType(str, Enum):
    """Registration types.

    The type decides whether a registration must forward to the rest of the
    chain, and which bucket it is ordered in.
    """

    WRAPPER = "WRAPPER"
    """Always calls the next function. Runs before every other type."""

    MIXED = "MIXED"
    """May or may not call the next function. Default type."""

    OVERRIDE = "OVERRIDE"
    """Never calls the next function. Runs last; only one is reachable."""

    @property
    def bucket(self) -> int:
        """Position of this type's bucket in the compiled chain."""
        return _TYPE_BUCKETS[self]

    @classmethod
    def parse(cls, value: str | WrapperType) -> WrapperType:
        """Parse a type name case-insensitively.

        Raises:
            ValueError: If the value is not a known type.
        """
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            raise ValueError(f"expected a string, got {type(value).__name__}")
        return cls(value.upper())


_TYPE_BUCKETS = {
    WrapperType.WRAPPER: 0,
    WrapperType.MIXED: 1,
    WrapperType.OVERRIDE: 2,
}


class PerfMode(str, Enum):
    """Preferred performance mode of a registration."""

    NORMAL = "NORMAL"
    """All conflict detection enabled."""

    FAST = "FAST"
    """Continuation misuse and runtime conflict checks disabled."""

    AUTO = "AUTO"
    """Follow the engine's high_performance setting."""

    @classmethod
    def parse(cls, value: str | PerfMode) -> PerfMode:
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            raise ValueError(f"expected a string, got {type(value).__name__}")
        return cls(value.upper())


class AccessorHalf(str, Enum):
    """Which half of a slot a registration applies to."""

    VALUE = "value"
    GET = "get"
    SET = "set"


class SlotKind(str, Enum):
    """How the wrapped slot is stored on its host and how it binds."""

    METHOD = "method"
    CLASSMETHOD = "classmethod"
    STATICMETHOD = "staticmethod"
    ACCESSOR = "accessor"
    FUNCTION = "function"

    @property
    def is_accessor(self) -> bool:
        return self is SlotKind.ACCESSOR

    @property
    def passes_receiver(self) -> bool:
        """Whether registered functions receive the receiver as an argument."""
        return self in (SlotKind.METHOD, SlotKind.CLASSMETHOD, SlotKind.ACCESSOR)


class LogContext(BaseModel):
    """Structured logging context.

    Example:
        >>> context = LogContext(
        ...     package_id="my-pkg",
        ...     target="Token.draw",
        ...     operation="register",
        ... )
        >>> log_info("Registered", context)
    """

    package_id: str | None = Field(default=None, description="Package the entry belongs to.")
    target: str | None = Field(default=None, description="Target string of the slot.")
    wrapper_type: str | None = Field(default=None, description="WRAPPER, MIXED or OVERRIDE.")
    operation: str | None = Field(default=None, description="Engine operation being logged.")


class RegisterOptions(BaseModel):
    """Options accepted by ChainWrap.register().

    Example:
        >>> RegisterOptions(chain=True, perf_mode="fast").perf_mode
        <PerfMode.FAST: 'FAST'>
    """

    chain: bool | None = Field(
        default=None,
        description="Pass the continuation as first argument. Defaults to type != OVERRIDE.",
    )
    perf_mode: PerfMode = Field(
        default=PerfMode.AUTO,
        description="Preferred performance mode (NORMAL, FAST, AUTO).",
    )

    model_config = {"extra": "forbid", "strict": False}

    @field_validator("chain", mode="before")
    @classmethod
    def _chain_is_bool(cls, value: Any) -> Any:
        if value is not None and not isinstance(value, bool):
            raise ValueError("chain must be a boolean")
        return value

    @field_validator("perf_mode", mode="before")
    @classmethod
    def _parse_perf_mode(cls, value: Any) -> Any:
        return PerfMode.parse(value)


class IgnoreOptions(BaseModel):
    """Options accepted by ChainWrap.ignore_conflicts()."""

    ignore_errors: bool = Field(
        default=False,
        description="Also ignore confirmed conflicts, not only potential ones.",
    )

    model_config = {"extra": "forbid"}

    @field_validator("ignore_errors", mode="before")
    @classmethod
    def _ignore_errors_is_bool(cls, value: Any) -> Any:
        if not isinstance(value, bool):
            raise ValueError("ignore_errors must be a boolean")
        return value


__all__ = [
    "WrapperType",
    "PerfMode",
    "AccessorHalf",
    "SlotKind",
    "LogContext",
    "RegisterOptions",
    "IgnoreOptions",
]
