"""Page rendering: context assembly, template rendering, post-processing and output."""

from __future__ import annotations

import enum
import html
import re
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Callable, Mapping
from urllib.parse import urlsplit

import htmlmin
from bs4 import BeautifulSoup
from jinja2 import Environment, FileSystemLoader, TemplateError, select_autoescape

from localegen.config import BuildMode, SiteConfig
from localegen.logger import get_logger
from localegen.models.locale_data import LocaleDataStore, Translator
from localegen.models.pages import PageVariantSet
from localegen.models.routes import RouteTable
from localegen.services.assets import AssetManifest

logger = get_logger("renderer")

LINK_ATTRIBUTES = ("href", "src")
SKIPPED_SCHEMES = ("#", "mailto:", "tel:")
LINK_ATTRIBUTE = re.compile(
    r"""(?P<lead>(?<![\w-])(?P<attr>href|src)\s*=\s*)"""
    r"""(?:"(?P<dq>[^"]*)"|'(?P<sq>[^']*)'|(?P<uq>[^\s"'=<>`]+))""",
    re.IGNORECASE,
)


class RenderOutcome(enum.Enum):
    SUCCESS = "success"
    SKIPPED = "skipped"
    RENDER_ERROR = "render_error"
    WRITE_ERROR = "write_error"


class JinjaRenderer:
    """Default template collaborator: ``render(template_id, context) -> markup``."""

    def __init__(self, config: SiteConfig):
        roots = [config.src_path]
        # Page template ids are relative to the pages root when it lies outside src
        if not config.pages_path.is_relative_to(config.src_path):
            roots.append(config.pages_path)
        roots += [config.layouts_path, config.partials_path]
        search_path = [str(p) for p in roots if p.exists()]
        self.env = Environment(
            loader=FileSystemLoader(search_path),
            autoescape=select_autoescape(["html", "xml", "njk", "j2"]),
            trim_blocks=True,
            lstrip_blocks=True,
        )

    def __call__(self, template_id: str, context: RenderContext) -> str:
        template = self.env.get_template(template_id)
        return template.render(**context.as_template_vars())

    def render_string(self, source: str, context: RenderContext) -> str:
        return self.env.from_string(source).render(**context.as_template_vars())


def minify_html(markup: str) -> str:
    """Minify HTML without touching text inside <pre> or collapsing inter-tag text."""
    return htmlmin.minify(
        markup,
        remove_comments=True,
        remove_empty_space=False,
        reduce_boolean_attributes=True,
        keep_pre=True,
    )


def url_to_page_key(url_path: str, locales, home_key: str = "index") -> str:
    """Interpret a root-relative URL path as a page key.

    ``/about/`` -> ``about``, ``/blog/post.html`` -> ``blog/post``, ``/`` -> home key.
    A leading locale segment is dropped.
    """
    segments = [s for s in url_path.split("/") if s]
    if segments and segments[0] in set(locales):
        segments = segments[1:]
    key = "/".join(segments)
    if key.endswith(".html"):
        key = key[: -len(".html")]
    if key.endswith("/index"):
        key = key[: -len("/index")]
    return key or home_key


@dataclass(frozen=True)
class RenderContext:
    """Everything a template can see for one (page key, locale) render."""

    locale: str
    default_locale: str
    locales: tuple[str, ...]
    page_key: str
    current_path: str
    t: Translator
    locale_data: Mapping[str, Any]
    alternates: tuple[Mapping[str, Any], ...]
    is_rtl: bool
    asset_hashes: Mapping[str, str]
    asset_url: Callable[[str], str]
    navigation: tuple[Mapping[str, Any], ...]
    localized_url: Callable[..., str]
    route: Callable[[str], str]
    build_mode: str = BuildMode.DEVELOPMENT.value
    site_url: str = ""
    extra: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))

    def is_current_locale(self, code: str) -> bool:
        return code == self.locale

    def as_template_vars(self) -> dict[str, Any]:
        return {
            "locale": self.locale,
            "current_locale": self.locale,
            "default_locale": self.default_locale,
            "locales": list(self.locales),
            "page_key": self.page_key,
            "current_path": self.current_path,
            "t": self.t,
            "locale_data": self.locale_data,
            "alternates": list(self.alternates),
            "is_rtl": self.is_rtl,
            "dir": "rtl" if self.is_rtl else "ltr",
            "asset_hashes": self.asset_hashes,
            "asset_url": self.asset_url,
            "navigation": list(self.navigation),
            "localized_url": self.localized_url,
            "route": self.route,
            "is_current_locale": self.is_current_locale,
            "build_mode": self.build_mode,
            "site_url": self.site_url,
            **self.extra,
        }


class PageRenderer:
    """Renders one (page key, locale) unit at a time into the output tree."""

    def __init__(
        self,
        config: SiteConfig,
        mode: BuildMode,
        routes: RouteTable,
        locale_store: LocaleDataStore,
        pages: Mapping[str, PageVariantSet],
        assets: AssetManifest | None = None,
        render_fn: Callable[[str, RenderContext], str] | None = None,
        minify_fn: Callable[[str], str] | None = None,
    ):
        self.config = config
        self.mode = mode
        self.routes = routes
        self.locale_store = locale_store
        self.pages = pages
        self.assets = assets or AssetManifest(prefix=config.assets_prefix)
        self.render_fn = render_fn or JinjaRenderer(config)
        self.minify_fn = minify_fn or minify_html

    # ------------------------------------------------------------------
    # Path helpers
    # ------------------------------------------------------------------

    def home_path(self, locale: str) -> str:
        return self.routes.resolve_path(self.config.home_key, locale) or f"/{locale}/"

    def localized_url(self, target: str, locale: str) -> str:
        """Page key (or legacy root-relative path) -> URL in *locale*."""
        if target.startswith("/"):
            parts = urlsplit(target)
            key = url_to_page_key(parts.path, self.config.locales, self.config.home_key)
            resolved = self.routes.resolve_path(key, locale)
            if resolved is None:
                return f"/{locale}{target}"
            suffix = (f"?{parts.query}" if parts.query else "") + (f"#{parts.fragment}" if parts.fragment else "")
            return resolved + suffix
        return self.routes.resolve_path(target, locale) or self.home_path(locale)

    def route_or_placeholder(self, page_key: str, locale: str) -> str:
        return self.routes.resolve_path(page_key, locale) or "#"

    # ------------------------------------------------------------------
    # Context
    # ------------------------------------------------------------------

    def alternates_for(self, page_key: str, locale: str, variants: PageVariantSet | None) -> list[dict]:
        alternates = []
        for loc in self.config.locales:
            path = self.routes.resolve_path(page_key, loc)
            if path is None or (variants is not None and variants.template_for(loc) is None):
                continue
            meta = self.locale_store.meta_for(loc)
            alternates.append({
                "locale": loc,
                "name": meta.get("name", loc.upper()),
                "url": path,
                "current": loc == locale,
            })
        return alternates

    def navigation_for(self, page_key: str, locale: str) -> list[dict]:
        return [
            {
                "key": entry.key,
                "path": entry.path,
                "title": entry.title,
                "current": entry.key == page_key,
            }
            for entry in self.routes.all_routes_for(locale)
        ]

    def is_rtl(self, locale: str) -> bool:
        direction = self.locale_store.meta_for(locale).get("direction")
        if direction in ("rtl", "ltr"):
            return direction == "rtl"
        return self.config.is_rtl(locale)

    def build_context(
        self,
        page_key: str,
        locale: str,
        current_path: str,
        variants: PageVariantSet | None = None,
        **extra: Any,
    ) -> RenderContext:
        default_locale = self.config.default_locale
        return RenderContext(
            locale=locale,
            default_locale=default_locale,
            locales=tuple(self.config.locales),
            page_key=page_key,
            current_path=current_path,
            t=self.locale_store.translator(locale, default_locale),
            locale_data=self.locale_store.data_for(locale),
            alternates=tuple(self.alternates_for(page_key, locale, variants)),
            is_rtl=self.is_rtl(locale),
            asset_hashes=self.assets.hashes,
            asset_url=self.assets.url_for,
            navigation=tuple(self.navigation_for(page_key, locale)),
            localized_url=lambda target, target_locale=None: self.localized_url(target, target_locale or locale),
            route=lambda key: self.route_or_placeholder(key, locale),
            build_mode=self.mode.value,
            site_url=self.config.site_url.rstrip("/"),
            extra=MappingProxyType(extra),
        )

    # ------------------------------------------------------------------
    # Post-processing
    # ------------------------------------------------------------------

    def _rewrite_url(self, value: str, locale: str) -> str | None:
        if not value.startswith("/") or value.startswith("//") or value.startswith(SKIPPED_SCHEMES):
            return None
        if value.startswith(self.config.assets_prefix):
            return None
        parts = urlsplit(value)
        segments = [s for s in parts.path.split("/") if s]
        if segments and segments[0] in self.config.locales:
            return None

        key = url_to_page_key(parts.path, self.config.locales, self.config.home_key)
        resolved = self.routes.resolve_path(key, locale)
        if resolved is None:
            return f"/{locale}{value}"
        suffix = (f"?{parts.query}" if parts.query else "") + (f"#{parts.fragment}" if parts.fragment else "")
        return resolved + suffix

    def rewrite_links(self, markup: str, locale: str) -> str:
        """Best-effort localization of raw root-relative href/src values.

        BeautifulSoup finds the link attributes that need rewriting; only those
        attribute values are replaced in the original markup, so the rest of
        the document (void tags, entities, whitespace) is left byte for byte.
        """
        if self.config.link_rewriting == "off":
            return markup

        soup = BeautifulSoup(markup, "html.parser")
        rewrites: dict[str, str] = {}
        for attr in LINK_ATTRIBUTES:
            for tag in soup.find_all(attrs={attr: True}):
                value = tag.get(attr)
                if not isinstance(value, str) or value in rewrites:
                    continue
                rewritten = self._rewrite_url(value.strip(), locale)
                if rewritten is not None and rewritten != value:
                    rewrites[value] = rewritten
        if not rewrites:
            return markup

        def replace(match):
            if match.group("dq") is not None:
                quote, raw = '"', match.group("dq")
            elif match.group("sq") is not None:
                quote, raw = "'", match.group("sq")
            else:
                quote, raw = '"', match.group("uq")
            rewritten = rewrites.get(html.unescape(raw))
            if rewritten is None:
                return match.group(0)
            return f"{match.group('lead')}{quote}{html.escape(rewritten, quote=True)}{quote}"

        return LINK_ATTRIBUTE.sub(replace, markup)

    def finalize(self, markup: str, locale: str) -> str:
        markup = self.rewrite_links(markup, locale)
        if self.mode.is_production and self.config.minify:
            markup = self.minify_fn(markup)
        return markup

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------

    def write_output(self, rel_path: str, markup: str) -> Path:
        """Write *markup* under the output directory, creating parents."""
        output_root = self.config.output_path
        output_file = (output_root / rel_path).resolve()
        if not output_file.is_relative_to(output_root):
            raise OSError(f"{rel_path} resolves outside the output directory {output_root}")
        output_file.parent.mkdir(parents=True, exist_ok=True)
        with open(output_file, "w", encoding="utf-8") as f:
            f.write(markup)
        return output_file

    def render_template(self, template_id: str, context: RenderContext) -> str | None:
        """Render + post-process; None when the collaborator or minifier fails."""
        try:
            markup = self.render_fn(template_id, context)
            return self.finalize(markup, context.locale)
        except TemplateError as e:
            logger.error("Template error rendering %s (%s) from %s: %s",
                         context.page_key, context.locale, template_id, e)
        except Exception as e:
            logger.exception("Error rendering %s (%s) from %s: %s",
                             context.page_key, context.locale, template_id, e)
        return None

    def render_one(self, page_key: str, locale: str) -> RenderOutcome:
        route = self.routes.resolve_path(page_key, locale)
        if route is None:
            logger.warning("No route for page %s in locale %s; skipping", page_key, locale)
            return RenderOutcome.SKIPPED

        variants = self.pages.get(page_key)
        source = variants.template_for(locale) if variants else None
        if source is None:
            logger.warning("No template for page %s in locale %s; skipping", page_key, locale)
            return RenderOutcome.SKIPPED

        context = self.build_context(page_key, locale, route, variants)
        markup = self.render_template(source.template_id, context)
        if markup is None:
            return RenderOutcome.RENDER_ERROR

        rel_path = self.routes.file_path_for(page_key, locale)
        try:
            self.write_output(rel_path, markup)
        except OSError as e:
            logger.error("Could not write %s for page %s (%s): %s", rel_path, page_key, locale, e)
            return RenderOutcome.WRITE_ERROR

        logger.info("Generated %s (%s) -> %s", page_key, locale, rel_path)
        return RenderOutcome.SUCCESS
