"""Site configuration model for site_config.yaml."""

from __future__ import annotations

import enum
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from localegen.utils.yaml_helper import load_yaml

CONFIG_FILENAME = "site_config.yaml"
LOCALE_CODE = re.compile(r"^[a-z]{2}$")
LINK_REWRITING_POLICIES = ("off", "safety-net")


class ConfigError(ValueError):
    """Raised when site_config.yaml describes an unusable site."""


class BuildMode(enum.Enum):
    DEVELOPMENT = "development"
    PRODUCTION = "production"

    @property
    def is_production(self) -> bool:
        return self is BuildMode.PRODUCTION


@dataclass
class SiteConfig:
    """In-memory representation of site_config.yaml."""

    root: Path  # Project root directory (contains site_config.yaml)

    # Source layout (relative to root)
    src_dir: str = "src"
    pages_dir: str = "src/pages"
    layouts_dir: str = "src/layouts"
    partials_dir: str = "src/partials"
    data_dir: str = "src/data"
    routes_file: str = "src/routes.yaml"
    output_dir: str = "dist"

    # Locales
    locales: list[str] = field(default_factory=lambda: ["en", "fr"])
    default_locale: str = "en"
    rtl_locales: list[str] = field(default_factory=lambda: ["ar", "he", "fa", "ur"])

    # Output
    site_url: str = ""
    template_extensions: list[str] = field(default_factory=lambda: [".html", ".njk", ".j2"])
    assets: dict[str, str] = field(default_factory=dict)
    assets_prefix: str = "/assets/"
    home_key: str = "index"
    link_rewriting: str = "safety-net"
    sitemaps: bool = True
    not_found_pages: bool = True
    minify: bool = True

    # Raw data for fields we don't explicitly model
    _raw: dict[str, Any] = field(default_factory=dict, repr=False)

    # ------------------------------------------------------------------
    # Load
    # ------------------------------------------------------------------

    @classmethod
    def load(cls, root: Path, overrides: dict[str, Any] | None = None) -> SiteConfig:
        """Read ``site_config.yaml`` under *root*; a missing file means all defaults."""
        root = Path(root).resolve()
        config_path = root / CONFIG_FILENAME
        data = load_yaml(config_path) if config_path.exists() else {}
        if overrides:
            data = {**data, **overrides}
        return cls.from_dict(root, data)

    @classmethod
    def from_dict(cls, root: Path, data: dict[str, Any]) -> SiteConfig:
        known = {
            name for name in cls.__dataclass_fields__ if name not in ("root", "_raw")
        }
        kwargs = {k: v for k, v in data.items() if k in known}
        cfg = cls(root=Path(root), _raw=dict(data), **kwargs)
        cfg.validate()
        return cfg

    def validate(self) -> None:
        if not self.locales:
            raise ConfigError("At least one locale must be configured")
        for code in self.locales:
            if isinstance(code, bool):
                raise ConfigError(
                    f"Locale code {code!r} was read as a boolean; quote it in {CONFIG_FILENAME} "
                    f"(YAML reads unquoted no, yes, on and off as booleans)"
                )
            if not isinstance(code, str) or not LOCALE_CODE.match(code):
                raise ConfigError(f"Invalid locale code: {code!r} (expected two lowercase letters)")
        if len(set(self.locales)) != len(self.locales):
            raise ConfigError(f"Duplicate locale codes in {self.locales}")
        if self.default_locale not in self.locales:
            raise ConfigError(
                f"Default locale {self.default_locale!r} is not one of {self.locales}"
            )
        if self.link_rewriting not in LINK_REWRITING_POLICIES:
            raise ConfigError(
                f"Unknown link_rewriting policy {self.link_rewriting!r}; "
                f"expected one of {', '.join(LINK_REWRITING_POLICIES)}"
            )
        if not self.assets_prefix.startswith("/") or not self.assets_prefix.endswith("/"):
            raise ConfigError(f"assets_prefix must start and end with '/': {self.assets_prefix!r}")

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    def _path(self, value: str) -> Path:
        return (self.root / value).resolve()

    @property
    def src_path(self) -> Path:
        return self._path(self.src_dir)

    @property
    def pages_path(self) -> Path:
        return self._path(self.pages_dir)

    @property
    def layouts_path(self) -> Path:
        return self._path(self.layouts_dir)

    @property
    def partials_path(self) -> Path:
        return self._path(self.partials_dir)

    @property
    def data_path(self) -> Path:
        return self._path(self.data_dir)

    @property
    def routes_path(self) -> Path:
        return self._path(self.routes_file)

    @property
    def output_path(self) -> Path:
        return self._path(self.output_dir)

    @property
    def assets_output_path(self) -> Path:
        return self.output_path / self.assets_prefix.strip("/")

    def is_supported_locale(self, locale: str) -> bool:
        return locale in self.locales

    def is_rtl(self, locale: str) -> bool:
        return locale in self.rtl_locales
