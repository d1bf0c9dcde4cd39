"""Registration record for one package's contribution to one slot."""

from __future__ import annotations

import itertools
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from ..package_info import PackageInfo
from ..types import AccessorHalf, PerfMode, WrapperType

_sequence = itertools.count()


def next_sequence() -> int:
    """Monotonic counter giving registrations a stable tie-break order."""
    return next(_sequence)


@dataclass(frozen=True, eq=False)
class Registration:
    """One package's contribution to one half of one slot.

    Registrations are never mutated. Identity equality is intentional:
    two registrations with identical fields are still different entries.

    Attributes:
        package_info: The registering package.
        target: Target string as passed to register().
        half: Slot half the registration applies to.
        fn: The registered function.
        type: WRAPPER, MIXED or OVERRIDE.
        priority: Resolved package priority at registration time.
        chain: Whether ``fn`` receives the continuation as first argument.
        perf_mode: Preferred performance mode.
        seq: Registration order, used as the tie-break within a priority.

    Example:
        >>> reg = Registration(
        ...     package_info=PackageInfo("my-pkg"),
        ...     target="Token.draw",
        ...     half=AccessorHalf.VALUE,
        ...     fn=draw,
        ... )
        >>> reg.type, reg.chain
        (<WrapperType.MIXED: 'MIXED'>, True)
    """

    package_info: PackageInfo
    target: str
    half: AccessorHalf
    fn: Callable[..., Any]
    type: WrapperType = WrapperType.MIXED
    priority: float = 0
    chain: bool = True
    perf_mode: PerfMode = PerfMode.AUTO
    seq: int = field(default_factory=next_sequence)

    @property
    def sort_key(self) -> tuple[int, float, int]:
        """Bucket, then descending priority, then registration order."""
        return (self.type.bucket, -self.priority, self.seq)

    @property
    def must_forward(self) -> bool:
        return self.type is WrapperType.WRAPPER

    def __repr__(self) -> str:
        return (
            f"Registration({self.package_info.id!r}, {self.target!r}, "
            f"type={self.type.value}, priority={self.priority}, chain={self.chain})"
        )


__all__ = ["Registration", "next_sequence"]
