"""Enumerations shared across the domain model."""

from __future__ import annotations

from enum import StrEnum


class Lifecycle(StrEnum):
    """Lifecycle tag carried by every graph node.

    The tags form a partial order: ``not-started`` < ``in-progress`` < {``done``,
    ``failed``}. ``done`` and ``failed`` are terminal and incomparable.
    """

    NOT_STARTED = "not-started"
    IN_PROGRESS = "in-progress"
    DONE = "done"
    FAILED = "failed"

    @property
    def rank(self) -> int:
        return _LIFECYCLE_RANK[self]

    @property
    def is_terminal(self) -> bool:
        return self in (Lifecycle.DONE, Lifecycle.FAILED)

    def can_advance_to(self, other: Lifecycle) -> bool:
        """Return ``True`` if ``other`` is >= ``self`` in the partial order."""

        return other is self or other.rank > self.rank


_LIFECYCLE_RANK: dict[Lifecycle, int] = {
    Lifecycle.NOT_STARTED: 0,
    Lifecycle.IN_PROGRESS: 1,
    Lifecycle.DONE: 2,
    Lifecycle.FAILED: 2,
}


class ModuleFormat(StrEnum):
    """Module format variants written for every entry point."""

    FESM2015 = "fesm2015"
    FESM5 = "fesm5"
    UMD = "umd"
    UMD_MIN = "umd-min"


class CssUrlMode(StrEnum):
    NONE = "none"
    INLINE = "inline"
