"""pytest configuration and fixtures for chainwrap tests.

This module provides shared fixtures: a fresh ready engine (run once in
NORMAL and once in FAST mode), a call order checker that records which
chain links and originals ran, and a helper that registers each new
wrapper in front of the previous ones.
"""

from __future__ import annotations

import itertools
from collections.abc import Callable, Generator
from typing import Any

import pytest

from chainwrap import ChainWrap, EngineSettings


class CallOrderChecker:
    """Builds traced originals and wrappers, and checks call order.

    Method originals take the receiver; plain ones (instance attributes,
    module functions) do not. Wrappers built with bound=True expect the
    receiver after ``wrapped``.
    """

    def __init__(self) -> None:
        self.order: list[str] = []

    def gen_fn(self, name: str, inner: Callable[..., Any] | None = None) -> Callable[..., Any]:
        def fn(receiver: Any, *args: Any, **kwargs: Any) -> Any:
            self.order.append(name)
            if inner is not None:
                return inner(receiver, *args, **kwargs)
            return name

        fn.__name__ = f"fn_{name}"
        return fn

    def gen_plain(self, name: str, inner: Callable[..., Any] | None = None) -> Callable[..., Any]:
        def fn(*args: Any, **kwargs: Any) -> Any:
            self.order.append(name)
            if inner is not None:
                return inner(*args, **kwargs)
            return name

        fn.__name__ = f"plain_{name}"
        return fn

    def gen_wr(self, name: str, *, bound: bool = True) -> Callable[..., Any]:
        if bound:

            def wr(wrapped: Callable[..., Any], receiver: Any, *args: Any, **kwargs: Any) -> Any:
                self.order.append(name)
                return wrapped(*args, **kwargs)

        else:

            def wr(wrapped: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
                self.order.append(name)
                return wrapped(*args, **kwargs)

        wr.__name__ = f"wr_{name}"
        return wr

    def call(self, obj: Any, attr: str, expected: list[str], *args: Any, **kwargs: Any) -> Any:
        self.order.clear()
        result = getattr(obj, attr)(*args, **kwargs)
        assert self.order == expected
        return result


@pytest.fixture(params=[False, True], ids=["normal", "fast"])
def engine(request: pytest.FixtureRequest) -> Generator[ChainWrap, None, None]:
    """Provide a fresh, ready engine.

    Runs each test with high_performance off (NORMAL) and on (FAST).
    Every slot is restored after the test.
    """
    chain_wrap = ChainWrap(settings=EngineSettings(high_performance=request.param))
    chain_wrap.ready()
    yield chain_wrap
    chain_wrap.unwrap_all()


@pytest.fixture
def strict_engine() -> Generator[ChainWrap, None, None]:
    """Provide a fresh, ready engine with every check enabled."""
    chain_wrap = ChainWrap(settings=EngineSettings(high_performance=False))
    chain_wrap.ready()
    yield chain_wrap
    chain_wrap.unwrap_all()


@pytest.fixture
def checker() -> CallOrderChecker:
    """Provide a fresh CallOrderChecker."""
    return CallOrderChecker()


@pytest.fixture
def wrap_front(engine: ChainWrap) -> Callable[..., str]:
    """Register each wrapper with a new package of higher priority.

    The most recently wrapped function therefore runs first.

    Returns:
        Function (target, fn, type="MIXED", options=None) -> package id.
    """
    counter = itertools.count(1)

    def _wrap_front(
        target: str,
        fn: Callable[..., Any],
        type: str = "MIXED",
        options: dict[str, Any] | None = None,
    ) -> str:
        n = next(counter)
        package_id = f"front-{n}"
        engine.settings.priorities[f"package:{package_id}"] = n
        engine.register(package_id, target, fn, type, options)
        return package_id

    return _wrap_front
