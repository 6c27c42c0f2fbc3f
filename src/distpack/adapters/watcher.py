"""Polling file watcher.

Each poll takes a snapshot of ``(size, mtime_ns)`` per file below the watched
roots and compares it with the previous one. Added, removed and modified files
are reported together as one batch.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING

from distpack.domain.sources import SOURCE_SUFFIXES, iter_source_files

if TYPE_CHECKING:
    from collections.abc import AsyncIterator
    from pathlib import Path

log = getLogger(__name__)

type Snapshot = dict[Path, tuple[int, int]]


def take_snapshot(
    roots: tuple[Path, ...], excluded: tuple[Path, ...], suffixes: frozenset[str]
) -> Snapshot:
    snapshot: Snapshot = {}
    for root in roots:
        for path in iter_source_files(root, suffixes=suffixes, excluded=excluded):
            try:
                stat = path.stat()
            except FileNotFoundError:
                continue
            snapshot[path] = (stat.st_size, stat.st_mtime_ns)
    return snapshot


def diff_snapshots(before: Snapshot, after: Snapshot) -> list[Path]:
    changed = {path for path in before.keys() | after.keys() if before.get(path) != after.get(path)}
    return sorted(changed)


@dataclass(slots=True)
class PollingFileWatcher:
    roots: tuple[Path, ...]
    poll_interval: float = 1.0
    excluded: tuple[Path, ...] = ()
    suffixes: frozenset[str] = SOURCE_SUFFIXES
    _snapshot: Snapshot | None = field(default=None, init=False, repr=False)
    _stopped: bool = field(default=False, init=False, repr=False)

    def __post_init__(self) -> None:
        if self.poll_interval <= 0:
            raise ValueError("poll_interval must be positive")

    def poll(self) -> list[Path]:
        """Return files changed since the previous poll; the first poll only records."""

        current = take_snapshot(self.roots, self.excluded, self.suffixes)
        previous, self._snapshot = self._snapshot, current
        if previous is None:
            return []
        return diff_snapshots(previous, current)

    def stop(self) -> None:
        self._stopped = True

    async def changes(self) -> AsyncIterator[list[Path]]:
        """Yield non-empty change batches until ``stop`` is called."""

        if self._snapshot is None:
            self.poll()
        log.info("Watching %s for changes", ", ".join(str(root) for root in self.roots))
        while not self._stopped:
            await asyncio.sleep(self.poll_interval)
            if self._stopped:
                break
            changed = self.poll()
            if changed:
                log.debug("Detected %s changed file(s)", len(changed))
                yield changed
