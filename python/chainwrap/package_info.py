"""Package identity used by registrations.

This module defines the PackageInfo dataclass that identifies the package
calling into the engine.
"""

from __future__ import annotations

from dataclasses import dataclass, field

PACKAGE_ID = "chainwrap"
"""Package id reserved for the engine's own registrations."""


@dataclass(frozen=True)
class PackageInfo:
    """Identity of a package registering wrappers.

    Two PackageInfo objects are equal when their ids are equal, whatever
    their display names.

    Attributes:
        id: Stable package identifier.
        title: Human-readable name, defaults to the id.
        kind: Package category, used to build the priority lookup key.

    Example:
        >>> info = PackageInfo("my-pkg", title="My Package")
        >>> info.key
        'package:my-pkg'
        >>> info == PackageInfo("my-pkg")
        True
    """

    id: str
    title: str = field(default="", compare=False)
    kind: str = field(default="package", compare=False)

    def __post_init__(self) -> None:
        if not self.title:
            object.__setattr__(self, "title", self.id)

    @property
    def key(self) -> str:
        """Priority lookup key."""
        return f"{self.kind}:{self.id}"

    @property
    def is_engine(self) -> bool:
        return self.id == PACKAGE_ID

    @property
    def log_string(self) -> str:
        """Rendering used in log and error messages."""
        return f'{self.kind} "{self.id}"'

    def __str__(self) -> str:
        return self.log_string


ENGINE_PACKAGE = PackageInfo(PACKAGE_ID, title="chainwrap", kind="library")

__all__ = ["PACKAGE_ID", "ENGINE_PACKAGE", "PackageInfo"]
