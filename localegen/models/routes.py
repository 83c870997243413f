"""Maps (page key, locale) pairs to public URL paths and back."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable

from localegen.logger import get_logger
from localegen.utils.yaml_helper import load_yaml_or_empty

logger = get_logger("routes")


@dataclass(frozen=True)
class RouteEntry:
    locale: str
    key: str
    path: str
    title: str = ""
    order: int = 0


def normalize_url(path: str) -> str:
    """Compare form of a URL path: leading slash kept, trailing slash dropped."""
    stripped = path.strip().strip("/")
    return "/" + stripped if stripped else "/"


def route_to_file_path(path: str, locales: Iterable[str]) -> str:
    """Convert a route URL path into the output file path (relative, posix).

    ``/en/`` -> ``en/index.html``, ``/fr/a-propos/`` -> ``fr/a-propos.html``,
    ``/`` -> ``index.html``.
    """
    segment = path.strip().strip("/")
    if not segment:
        segment = "index"
    elif segment in set(locales):
        segment = f"{segment}/index"
    if not segment.endswith(".html"):
        segment += ".html"
    return segment


class RouteTable:
    """Routes for every configured locale, loaded once per build cycle."""

    def __init__(self, entries: Iterable[RouteEntry], locales: Iterable[str]):
        self.locales = list(locales)
        self._by_locale: dict[str, list[RouteEntry]] = {loc: [] for loc in self.locales}
        self._index: dict[tuple[str, str], RouteEntry] = {}

        for entry in entries:
            if entry.locale not in self._by_locale:
                logger.warning("Ignoring route %s for unsupported locale %r", entry.key, entry.locale)
                continue
            self._by_locale[entry.locale].append(entry)
            # Later entries for the same key win, like later files overwrite on write
            self._index[(entry.key, entry.locale)] = entry

        for routes in self._by_locale.values():
            routes.sort(key=lambda e: e.order)

    @classmethod
    def load(cls, routes_path: Path, locales: Iterable[str]) -> RouteTable:
        """Read the route configuration; a missing or malformed file yields no routes."""
        locales = list(locales)
        data = load_yaml_or_empty(routes_path, logger, "route configuration")
        return cls(cls.parse(data), locales)

    @staticmethod
    def parse(data: dict[str, Any]) -> list[RouteEntry]:
        routes = data.get("routes") or {}
        if not isinstance(routes, dict):
            logger.warning("Route configuration 'routes' must be a mapping, got %s", type(routes).__name__)
            return []

        entries = []
        for locale, items in routes.items():
            if not isinstance(locale, str):
                logger.warning(
                    "Route locale key %r is not a string; quote it (YAML reads unquoted no, yes, on and off as booleans)",
                    locale,
                )
                continue
            if not isinstance(items, list):
                logger.warning("Routes for locale %r must be a list", locale)
                continue
            for position, item in enumerate(items):
                if not isinstance(item, dict) or not item.get("key") or item.get("path") is None:
                    logger.warning("Skipping malformed route #%d for locale %r: %r", position, locale, item)
                    continue
                if ".." in str(item["path"]).split("/"):
                    logger.warning("Skipping route %s for locale %r: path %r leaves the output directory",
                                   item["key"], locale, item["path"])
                    continue
                order = item.get("order", position)
                entries.append(
                    RouteEntry(
                        locale=str(locale),
                        key=str(item["key"]),
                        path=str(item["path"]),
                        title=str(item.get("title", "")),
                        order=order if isinstance(order, int) else position,
                    )
                )
        return entries

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def resolve(self, page_key: str, locale: str) -> RouteEntry | None:
        return self._index.get((page_key, locale))

    def resolve_path(self, page_key: str, locale: str) -> str | None:
        """Exact (page key, locale) lookup; no fallback to the default locale."""
        entry = self._index.get((page_key, locale))
        return entry.path if entry else None

    def all_routes_for(self, locale: str) -> list[RouteEntry]:
        return list(self._by_locale.get(locale, []))

    def all_paths_for(self, page_key: str) -> dict[str, str]:
        """Locale -> URL path for every locale routing *page_key*, in configured order."""
        paths = {}
        for locale in self.locales:
            entry = self._index.get((page_key, locale))
            if entry:
                paths[locale] = entry.path
        return paths

    def file_path_for(self, page_key: str, locale: str) -> str | None:
        path = self.resolve_path(page_key, locale)
        if path is None:
            return None
        return route_to_file_path(path, self.locales)

    def match_url(self, url: str) -> RouteEntry | None:
        """Inverse lookup used by the dev server; trailing slashes are ignored."""
        wanted = normalize_url(url)
        for locale in self.locales:
            for entry in self._by_locale[locale]:
                if normalize_url(entry.path) == wanted:
                    return entry
        return None

    def __len__(self):
        return len(self._index)
