"""Groups page templates into per-key variant sets."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Iterable

from localegen.logger import get_logger

logger = get_logger("pages")

LOCALE_SUFFIX = re.compile(r"^(?P<base>.+)\.(?P<locale>[a-z]{2})$")


@dataclass(frozen=True)
class PageSource:
    """A template file parsed into its structured identity."""

    key: str  # e.g. "about" or "blog/first-post"
    locale: str | None  # None for the locale-agnostic default
    template_id: str  # path relative to the template search root, posix


@dataclass
class PageVariantSet:
    key: str
    default: PageSource | None = None
    overrides: dict[str, PageSource] = field(default_factory=dict)

    def add(self, source: PageSource) -> None:
        if source.locale is None:
            if self.default is not None:
                logger.warning(
                    "Page %s has several default templates; keeping %s, ignoring %s",
                    self.key, self.default.template_id, source.template_id,
                )
                return
            self.default = source
        else:
            self.overrides[source.locale] = source

    def template_for(self, locale: str) -> PageSource | None:
        """Locale override if present, else the default, else None."""
        return self.overrides.get(locale) or self.default

    def available_locales(self, locales: Iterable[str]) -> list[str]:
        return [loc for loc in locales if self.template_for(loc) is not None]

    @property
    def is_empty(self) -> bool:
        return self.default is None and not self.overrides


def parse_template_path(
    rel_path: PurePosixPath,
    locales: Iterable[str],
    extensions: Iterable[str],
    template_prefix: str = "",
) -> PageSource | None:
    """Classify a path (relative to the pages root) as a default or override template.

    Returns None for files that are not templates or that carry a suffix for a
    locale that is not configured.
    """
    rel_path = PurePosixPath(rel_path)
    if rel_path.suffix not in set(extensions):
        return None

    stem = rel_path.name[: -len(rel_path.suffix)]
    locale = None
    match = LOCALE_SUFFIX.match(stem)
    if match:
        locale = match.group("locale")
        if locale not in set(locales):
            logger.warning("Ignoring %s: locale %r is not configured", rel_path, locale)
            return None
        stem = match.group("base")

    key = (rel_path.parent / stem).as_posix()
    if key.startswith("./"):
        key = key[2:]
    template_id = f"{template_prefix}/{rel_path.as_posix()}" if template_prefix else rel_path.as_posix()
    return PageSource(key=key, locale=locale, template_id=template_id)


class PageGraph:
    """Scans the pages root; recomputed on every build."""

    def __init__(self, pages_root: Path, template_root: Path, locales: Iterable[str], extensions: Iterable[str]):
        self.pages_root = Path(pages_root)
        self.template_root = Path(template_root)
        self.locales = list(locales)
        self.extensions = list(extensions)
        try:
            self._prefix = self.pages_root.relative_to(self.template_root).as_posix()
        except ValueError:
            self._prefix = ""
        if self._prefix == ".":
            self._prefix = ""

    def _template_files(self) -> list[Path]:
        if not self.pages_root.exists():
            logger.warning("Pages directory does not exist: %s", self.pages_root)
            return []
        return sorted(p for p in self.pages_root.rglob("*") if p.is_file())

    def parse(self, path: Path) -> PageSource | None:
        rel = PurePosixPath(Path(path).relative_to(self.pages_root).as_posix())
        return parse_template_path(rel, self.locales, self.extensions, self._prefix)

    def discover(self) -> dict[str, PageVariantSet]:
        """Return page key -> variants, in sorted-file discovery order."""
        pages: dict[str, PageVariantSet] = {}
        for path in self._template_files():
            source = self.parse(path)
            if source is None:
                continue
            pages.setdefault(source.key, PageVariantSet(source.key)).add(source)
        logger.debug("Discovered %d page(s) under %s", len(pages), self.pages_root)
        return pages

    def discover_key(self, page_key: str) -> PageVariantSet:
        """Rescan, keeping only the templates of *page_key* (may come back empty)."""
        variants = PageVariantSet(page_key)
        for path in self._template_files():
            source = self.parse(path)
            if source is not None and source.key == page_key:
                variants.add(source)
        return variants

    def contains(self, path: Path) -> bool:
        try:
            Path(path).resolve().relative_to(self.pages_root.resolve())
        except ValueError:
            return False
        return True

    def page_key_for(self, path: Path) -> str | None:
        """Derive the page key of any path under the pages root (the file may be gone)."""
        if not self.contains(path):
            return None
        rel = PurePosixPath(Path(path).resolve().relative_to(self.pages_root.resolve()).as_posix())
        source = parse_template_path(rel, self.locales, self.extensions)
        return source.key if source else None
