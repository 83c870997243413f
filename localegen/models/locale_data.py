"""Per-locale translation data and the translator handed to every render.

Usage from a template::

    {{ t("nav.home") }}                  -> "Accueil" (fr) / "Home" (en)
    {{ t("greet", name="Ada") }}         -> "Hi Ada"
    {{ t("missing.key") }}               -> "missing.key"
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Iterable, Mapping

from localegen.logger import get_logger
from localegen.utils.yaml_helper import load_yaml_or_empty

logger = get_logger("locale_data")

DATA_EXTENSIONS = (".yaml", ".yml", ".json")
META_KEY = "_meta"


class LocaleDataStore:
    """Translation dictionaries for every configured locale."""

    def __init__(self, data: Mapping[str, dict[str, Any]], locales: Iterable[str]):
        self.locales = list(locales)
        self._data = {loc: dict(data.get(loc) or {}) for loc in self.locales}

    @classmethod
    def load(cls, data_dir: Path, locales: Iterable[str]) -> LocaleDataStore:
        """Read one document per locale; missing or malformed sources become ``{}``."""
        locales = list(locales)
        data = {}
        for locale in locales:
            source = cls.source_for(data_dir, locale)
            if source is None:
                logger.warning("No locale data for %s in %s", locale, data_dir)
                data[locale] = {}
                continue
            data[locale] = load_yaml_or_empty(source, logger, f"locale data for {locale}")
        return cls(data, locales)

    @staticmethod
    def source_for(data_dir: Path, locale: str) -> Path | None:
        for ext in DATA_EXTENSIONS:
            candidate = Path(data_dir) / f"{locale}{ext}"
            if candidate.exists():
                return candidate
        return None

    def data_for(self, locale: str) -> dict[str, Any]:
        return self._data.get(locale, {})

    def meta_for(self, locale: str) -> dict[str, Any]:
        meta = self.data_for(locale).get(META_KEY)
        return meta if isinstance(meta, dict) else {}

    def translator(self, locale: str, default_locale: str) -> Translator:
        return Translator(self, locale, default_locale)


def lookup(tree: Mapping[str, Any], dotted_key: str) -> str | None:
    """Walk *dotted_key* through *tree*; only string or number leaves resolve."""
    node: Any = tree
    for part in dotted_key.split("."):
        if not isinstance(node, Mapping) or part not in node:
            return None
        node = node[part]
    if isinstance(node, bool) or not isinstance(node, (str, int, float)):
        return None
    return str(node)


def interpolate(template: str, params: Mapping[str, Any]) -> str:
    for name, value in params.items():
        template = template.replace("{{" + str(name) + "}}", str(value))
    return template


class Translator:
    """Resolves dotted keys for one locale, falling back to the default locale."""

    def __init__(self, store: LocaleDataStore, locale: str, default_locale: str):
        self.locale = locale
        self.default_locale = default_locale
        self._tree = store.data_for(locale)
        self._fallback = store.data_for(default_locale)

    def translate(self, key: str, params: Mapping[str, Any] | None = None, **kwargs: Any) -> str:
        text = lookup(self._tree, key)
        if text is None and self.locale != self.default_locale:
            text = lookup(self._fallback, key)
        if text is None:
            return key

        merged = {**(params or {}), **kwargs}
        return interpolate(text, merged) if merged else text

    __call__ = translate

    def __repr__(self):
        return f"Translator(locale={self.locale!r}, default={self.default_locale!r})"
