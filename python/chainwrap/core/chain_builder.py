"""Chain Builder - Ordered Registration Lists to Callable Chains.

The ChainBuilder turns the registrations of one slot half into an
immutable CompiledChain, and ChainRun walks a compiled chain for a single
call.

Ordering Contract:
1. Partition into WRAPPER, MIXED and OVERRIDE buckets
2. Within a bucket, higher priority first; equal priority keeps
   registration order (first registered runs closest to the caller)
3. Concatenate WRAPPER, MIXED, OVERRIDE
4. Only the highest-priority OVERRIDE is reachable

Calling Convention:
    chain=True:  fn(wrapped, *receiver, *args, **kwargs)
    chain=False: fn(*receiver, *args, **kwargs)

Usage:
    chain = ChainBuilder.compile(registrations, high_performance=False)
    links = [ChainLink(reg, (instance,), wrapper, chain.strict) for reg in chain.entries]
    result = ChainRun(links, terminal).start(args, kwargs)
"""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from ..exceptions import InvalidChainUsageError
from ..logging import log_trace, trace_enabled
from ..types import PerfMode, WrapperType

if TYPE_CHECKING:
    from .registration import Registration
    from .wrapper import Wrapper


@dataclass(frozen=True)
class CompiledChain:
    """Immutable snapshot of one slot half's call order.

    Attributes:
        entries: Reachable registrations, outermost first.
        unreachable: OVERRIDE registrations that lost their priority contest.
        perf_mode: Effective performance mode, never AUTO.
    """

    entries: tuple[Registration, ...] = ()
    unreachable: tuple[Registration, ...] = ()
    perf_mode: PerfMode = PerfMode.NORMAL

    @property
    def strict(self) -> bool:
        return self.perf_mode is PerfMode.NORMAL

    @property
    def override(self) -> Registration | None:
        """The reachable OVERRIDE, if any."""
        if self.entries and self.entries[-1].type is WrapperType.OVERRIDE:
            return self.entries[-1]
        return None

    def __len__(self) -> int:
        return len(self.entries)


EMPTY_CHAIN = CompiledChain()


class ChainBuilder:
    """Pure ordering and compilation of registration lists."""

    @staticmethod
    def order(registrations: Iterable[Registration]) -> list[Registration]:
        """Sort registrations into call order, including unreachable OVERRIDEs."""
        return sorted(registrations, key=lambda r: r.sort_key)

    @staticmethod
    def effective_perf_mode(
        registrations: Iterable[Registration],
        high_performance: bool,
    ) -> PerfMode:
        """Resolve the performance mode for a chain.

        When every registration prefers the same explicit mode, that mode
        wins. Otherwise the engine-wide setting decides.
        """
        preferred = {r.perf_mode for r in registrations}
        if len(preferred) == 1:
            (mode,) = preferred
            if mode is not PerfMode.AUTO:
                return mode
        return PerfMode.FAST if high_performance else PerfMode.NORMAL

    @classmethod
    def compile(
        cls,
        registrations: Iterable[Registration],
        *,
        high_performance: bool = False,
    ) -> CompiledChain:
        """Compile a registration list.

        Args:
            registrations: Registrations of one slot half, in any order.
            high_performance: Engine-wide setting used to resolve AUTO.

        Returns:
            CompiledChain with reachable entries in call order.
        """
        ordered = cls.order(registrations)
        if not ordered:
            return EMPTY_CHAIN

        reachable: list[Registration] = []
        unreachable: list[Registration] = []
        for registration in ordered:
            if registration.type is WrapperType.OVERRIDE and (
                reachable and reachable[-1].type is WrapperType.OVERRIDE
            ):
                unreachable.append(registration)
            else:
                reachable.append(registration)

        return CompiledChain(
            entries=tuple(reachable),
            unreachable=tuple(unreachable),
            perf_mode=cls.effective_perf_mode(ordered, high_performance),
        )


@dataclass(frozen=True)
class ChainLink:
    """One registration bound to the receiver and wrapper of a single call."""

    registration: Registration
    receiver: tuple[Any, ...]
    wrapper: Wrapper
    strict: bool


class Continuation:
    """The ``wrapped`` callable handed to a chain=True registration.

    Calling it runs the rest of the chain with the given arguments; the
    receiver is already bound. In strict mode it may be called at most
    once, and only while its registration is still running.
    """

    __slots__ = ("_run", "_index", "_link", "called", "closed")

    def __init__(self, run: ChainRun, index: int, link: ChainLink) -> None:
        self._run = run
        self._index = index
        self._link = link
        self.called = False
        self.closed = False

    def __call__(self, *args: Any, **kwargs: Any) -> Any:
        if self._link.strict:
            registration = self._link.registration
            if self.closed:
                raise InvalidChainUsageError(
                    f"{registration.package_info.log_string} called the wrapped function "
                    f"of '{self._link.wrapper.name}' after its wrapper returned.",
                    registration.package_info,
                    registration.target,
                )
            if self.called:
                raise InvalidChainUsageError(
                    f"{registration.package_info.log_string} called the wrapped function "
                    f"of '{self._link.wrapper.name}' more than once.",
                    registration.package_info,
                    registration.target,
                )
        self.called = True
        return self._run.step(self._index, args, kwargs)

    def __repr__(self) -> str:
        return f"<wrapped {self._link.wrapper.name} [{self._index}]>"


class ChainRun:
    """Walks a list of links for one call, ending in the terminal.

    Post-call checks run after each chain=True registration returns, or
    after its awaitable completes:
    - WRAPPER registrations that never forwarded are handed to
      their wrapper for self-healing removal
    - in strict mode, MIXED registrations that stopped the chain while
      later links exist are reported as runtime conflicts
    """

    __slots__ = ("_links", "_terminal")

    def __init__(
        self,
        links: tuple[ChainLink, ...] | list[ChainLink],
        terminal: Callable[..., Any],
    ) -> None:
        self._links = links
        self._terminal = terminal

    def start(self, args: tuple[Any, ...], kwargs: dict[str, Any]) -> Any:
        return self.step(0, args, kwargs)

    def step(self, index: int, args: tuple[Any, ...], kwargs: dict[str, Any]) -> Any:
        if index >= len(self._links):
            return self._terminal(*args, **kwargs)

        link = self._links[index]
        registration = link.registration
        if trace_enabled():
            log_trace(
                f"Calling {registration.package_info.log_string} in '{link.wrapper.name}'",
                {"index": index, "chain": registration.chain},
            )

        if not registration.chain:
            result = registration.fn(*link.receiver, *args, **kwargs)
            if link.strict:
                self._check_stopped(index, link)
            return result

        continuation = Continuation(self, index + 1, link)
        try:
            result = registration.fn(continuation, *link.receiver, *args, **kwargs)
        except BaseException:
            continuation.closed = True
            raise

        if inspect.isawaitable(result):
            return self._finish_async(result, index, link, continuation)

        self._after_call(index, link, continuation)
        return result

    async def _finish_async(
        self,
        awaitable: Awaitable[Any],
        index: int,
        link: ChainLink,
        continuation: Continuation,
    ) -> Any:
        try:
            result = await awaitable
        except BaseException:
            continuation.closed = True
            raise
        self._after_call(index, link, continuation)
        return result

    def _after_call(self, index: int, link: ChainLink, continuation: Continuation) -> None:
        continuation.closed = True
        if continuation.called:
            return

        registration = link.registration
        if registration.must_forward:
            link.wrapper.self_heal(registration)
        elif link.strict:
            self._check_stopped(index, link)

    def _check_stopped(self, index: int, link: ChainLink) -> None:
        if link.registration.type is not WrapperType.MIXED:
            return
        if index + 1 < len(self._links):
            blocked = self._links[index + 1]
            link.wrapper.report_conflict(link.registration, blocked.registration)


__all__ = [
    "ChainBuilder",
    "CompiledChain",
    "ChainLink",
    "ChainRun",
    "Continuation",
    "EMPTY_CHAIN",
]
