"""Library version and version comparison."""

from __future__ import annotations

MAJOR_VERSION = 1
MINOR_VERSION = 12
PATCH_VERSION = 13
SUFFIX_VERSION = 0
META_VERSION = ""

VERSION = f"{MAJOR_VERSION}.{MINOR_VERSION}.{PATCH_VERSION}.{SUFFIX_VERSION}{META_VERSION}"
__version__ = VERSION


def version_tuple() -> tuple[int, int, int, int, str]:
    """Version as (major, minor, patch, suffix, meta)."""
    return (MAJOR_VERSION, MINOR_VERSION, PATCH_VERSION, SUFFIX_VERSION, META_VERSION)


def version_at_least(major: int, minor: int = 0, patch: int = 0, suffix: int = 0) -> bool:
    """Test for a minimum library version.

    Components are compared most significant first.

    Example:
        >>> version_at_least(1, 4)
        True
        >>> version_at_least(MAJOR_VERSION + 1)
        False
    """
    current = (MAJOR_VERSION, MINOR_VERSION, PATCH_VERSION, SUFFIX_VERSION)
    return current >= (major, minor, patch, suffix)


__all__ = [
    "MAJOR_VERSION",
    "MINOR_VERSION",
    "PATCH_VERSION",
    "SUFFIX_VERSION",
    "META_VERSION",
    "VERSION",
    "__version__",
    "version_tuple",
    "version_at_least",
]
