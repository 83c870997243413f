"""Incremental rebuilds driven by file-change events."""

from __future__ import annotations

import enum
import os
from pathlib import Path
from typing import Callable

from localegen.logger import get_logger
from localegen.services.builder import SiteBuilder

logger = get_logger("incremental")


class RebuildScope(enum.Enum):
    NONE = "none"
    PAGE = "page"
    FULL = "full"


class StalenessLedger:
    """Last observed modification time per absolute path, kept for the whole session."""

    def __init__(self):
        self._mtimes: dict[str, float] = {}

    @staticmethod
    def _normalize(path) -> str:
        return os.path.abspath(os.fspath(path))

    def record(self, path) -> float | None:
        key = self._normalize(path)
        try:
            mtime = os.stat(key).st_mtime
        except FileNotFoundError:
            self._mtimes.pop(key, None)
            return None
        self._mtimes[key] = mtime
        return mtime

    def is_stale(self, path) -> bool:
        """True only when the mtime differs from a previously recorded one.

        The first observation of a path records it and is not stale.
        """
        key = self._normalize(path)
        previous = self._mtimes.get(key)
        current = self.record(key)
        if previous is None or current is None:
            return False
        return current != previous

    def prime(self, roots) -> int:
        """Record every file under *roots* so the first edit after startup counts."""
        count = 0
        for root in roots:
            if not os.path.isdir(root):
                continue
            for dirpath, _, files in os.walk(root):
                for name in files:
                    if self.record(os.path.join(dirpath, name)) is not None:
                        count += 1
        return count

    def forget(self, path) -> None:
        self._mtimes.pop(self._normalize(path), None)

    def __contains__(self, path):
        return self._normalize(path) in self._mtimes


class IncrementalRebuilder:
    """Decides the smallest rebuild unit for a changed source path."""

    def __init__(
        self,
        builder: SiteBuilder,
        notify_reload: Callable[[], None] | None = None,
        ledger: StalenessLedger | None = None,
    ):
        self.builder = builder
        self.config = builder.config
        self.notify_reload = notify_reload or (lambda: None)
        self.ledger = ledger or StalenessLedger()

    def _under(self, path: Path, root: Path) -> bool:
        try:
            path.relative_to(root)
        except ValueError:
            return False
        return True

    def scope_for(self, path) -> RebuildScope:
        """Rebuild unit for a change to *path* (staleness not considered)."""
        path = Path(path).resolve()
        if self._under(path, self.config.pages_path):
            if self.builder.graph.page_key_for(path) is None:
                logger.debug("Ignoring non-template file under pages: %s", path)
                return RebuildScope.NONE
            return RebuildScope.PAGE
        for root in (self.config.layouts_path, self.config.partials_path, self.config.data_path):
            if self._under(path, root):
                return RebuildScope.FULL
        # Route table, assets, 404 templates and anything unknown touch shared state
        return RebuildScope.FULL

    def _full(self, reason: str) -> RebuildScope:
        logger.info("Full rebuild needed: %s", reason)
        self.builder.build_all()
        self.notify_reload()
        return RebuildScope.FULL

    def on_change(self, path) -> RebuildScope:
        if not self.ledger.is_stale(path):
            logger.debug("Unchanged since last event: %s", path)
            return RebuildScope.NONE

        scope = self.scope_for(path)
        if scope is RebuildScope.NONE:
            return scope
        if scope is RebuildScope.FULL:
            return self._full(f"{path} changed")

        page_key = self.builder.graph.page_key_for(Path(path).resolve())
        logger.info("Incremental rebuild: page %s (%s changed)", page_key, path)
        self.builder.build_page(page_key)
        self.notify_reload()
        return RebuildScope.PAGE

    def on_add(self, path) -> RebuildScope:
        """New files always get a full build; their mtime seeds the ledger."""
        self.ledger.record(path)
        if self.scope_for(path) is RebuildScope.NONE:
            return RebuildScope.NONE
        return self._full(f"{path} added")

    def on_delete(self, path) -> RebuildScope:
        self.ledger.forget(path)
        if self.scope_for(path) is RebuildScope.NONE:
            return RebuildScope.NONE
        return self._full(f"{path} removed")
