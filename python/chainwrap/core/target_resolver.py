"""Target resolution: dotted path string to (host, slot name).

A target is a dotted path starting at the ambient global namespace, for
example ``"Token.draw"`` or ``"game.canvas.refresh"``. Appending ``#set``
addresses the setter half of an accessor: ``"Token.visible#set"``.

Example:
    >>> namespace = Namespace()
    >>> namespace["Token"] = Token
    >>> resolved = TargetResolver(namespace).resolve("Token.visible#set")
    >>> resolved.host is Token, resolved.name, resolved.is_setter
    (True, 'visible', True)
"""

from __future__ import annotations

import builtins
import re
import sys
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from ..exceptions import ConfigurationError
from ..package_info import PACKAGE_ID

if TYPE_CHECKING:
    from ..package_info import PackageInfo

SETTER_SUFFIX = "#set"

IDENTIFIER_PATTERN = re.compile(r"^[a-zA-Z_$][0-9a-zA-Z_$]*$")
TARGET_PATTERN = re.compile(r"^[a-zA-Z_$][0-9a-zA-Z_$.]*$")


def split_target(target: str) -> tuple[str, bool]:
    """Split the setter suffix from a target.

    Returns:
        (path without suffix, whether the suffix was present)
    """
    if target.endswith(SETTER_SUFFIX):
        return target[: -len(SETTER_SUFFIX)], True
    return target, False


def is_valid_identifier(ident: str) -> bool:
    return bool(IDENTIFIER_PATTERN.match(ident))


def is_valid_target(target: str) -> bool:
    """Loose syntax check for a dotted target without resolving it."""
    return bool(TARGET_PATTERN.match(target))


class Namespace:
    """The ambient global namespace that target roots resolve against.

    Lookup order: names published on this namespace, then imported modules
    in ``sys.modules``, then ``builtins``.
    """

    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        self._globals: dict[str, Any] = dict(initial or {})

    def __setitem__(self, name: str, value: Any) -> None:
        self._globals[name] = value

    def __getitem__(self, name: str) -> Any:
        value = self.get(name)
        if value is None:
            raise KeyError(name)
        return value

    def __delitem__(self, name: str) -> None:
        del self._globals[name]

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.get(name) is not None

    def publish(self, name: str, value: Any) -> None:
        self._globals[name] = value

    def get(self, name: str) -> Any | None:
        if name in self._globals:
            return self._globals[name]
        module = sys.modules.get(name)
        if module is not None:
            return module
        return getattr(builtins, name, None)

    def clear(self) -> None:
        self._globals.clear()


@dataclass(frozen=True)
class ResolvedTarget:
    """Outcome of resolving a target string.

    Attributes:
        host: The object that holds (or inherits) the slot.
        name: Leaf slot name.
        path: Canonical dotted path, without the setter suffix.
        is_setter: Whether the setter half was addressed.
    """

    host: Any
    name: str
    path: str
    is_setter: bool


class TargetResolver:
    """Parses and resolves target strings against a Namespace."""

    def __init__(self, namespace: Namespace) -> None:
        self._namespace = namespace

    @property
    def namespace(self) -> Namespace:
        return self._namespace

    def resolve(self, target: str, package_info: PackageInfo | None = None) -> ResolvedTarget:
        """Resolve a target string.

        Args:
            target: Dotted path, optionally suffixed with ``#set``.
            package_info: Caller, attached to raised errors.

        Returns:
            The resolved host, slot name, canonical path and setter flag.

        Raises:
            ConfigurationError: On malformed syntax, reserved roots, or a
                path segment that cannot be found.
        """
        path, is_setter = split_target(target)

        segments = path.split(".")
        if len(segments) < 2:
            raise ConfigurationError(f"Invalid target '{path}'.", package_info)
        for segment in segments:
            if not is_valid_identifier(segment):
                raise ConfigurationError(f"Invalid target '{path}'.", package_info)

        root_name, *scopes = segments[:-1]
        if root_name == PACKAGE_ID:
            raise ConfigurationError("Not allowed to wrap chainwrap internals.", package_info)

        obj = self._namespace.get(root_name)
        if obj is None:
            raise ConfigurationError(f"Could not find target '{path}'.", package_info)

        for scope in scopes:
            obj = getattr(obj, scope, None)
            if obj is None:
                raise ConfigurationError(f"Could not find target '{path}'.", package_info)

        return ResolvedTarget(host=obj, name=segments[-1], path=path, is_setter=is_setter)


__all__ = [
    "SETTER_SUFFIX",
    "Namespace",
    "ResolvedTarget",
    "TargetResolver",
    "split_target",
    "is_valid_identifier",
    "is_valid_target",
]
