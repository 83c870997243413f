"""Drives every (page, locale) render, then writes the site-wide files."""

from __future__ import annotations

import shutil
import time
from dataclasses import dataclass, field
from pathlib import PurePosixPath
from typing import Callable
from xml.sax.saxutils import escape

from jinja2 import Environment, select_autoescape

from localegen.config import BuildMode, SiteConfig
from localegen.logger import get_logger
from localegen.models.locale_data import LocaleDataStore
from localegen.models.pages import PageGraph, PageVariantSet, parse_template_path
from localegen.models.routes import RouteTable
from localegen.services.assets import AssetManifest, AssetPipeline
from localegen.services.renderer import PageRenderer, RenderContext, RenderOutcome, minify_html

logger = get_logger("builder")

NOT_FOUND_KEY = "404"
SITEMAP_NS = "http://www.sitemaps.org/schemas/sitemap/0.9"

_inline_env = Environment(autoescape=select_autoescape(default_for_string=True))

REDIRECT_TEMPLATE = _inline_env.from_string("""<!DOCTYPE html>
<html lang="{{ default_locale }}">
<head>
  <meta charset="utf-8">
  <title>Redirecting…</title>
  <noscript><meta http-equiv="refresh" content="0; url={{ default_home }}"></noscript>
  <script>
    (function () {
      var homes = {{ homes | tojson }};
      var fallback = {{ default_locale | tojson }};
      var pick = function (code) {
        code = (code || '').toLowerCase().slice(0, 2);
        return Object.prototype.hasOwnProperty.call(homes, code) ? code : null;
      };
      var locale = pick(new URLSearchParams(window.location.search).get('lang'));
      if (!locale) {
        try { locale = pick(window.localStorage.getItem('preferred-locale')); } catch (e) {}
      }
      if (!locale) {
        var langs = navigator.languages || [navigator.language];
        for (var i = 0; i < langs.length && !locale; i++) { locale = pick(langs[i]); }
      }
      window.location.replace(homes[locale || fallback]);
    })();
  </script>
</head>
<body>
  <p>Redirecting…</p>
  <p><a href="{{ default_home }}">Continue to site</a></p>
</body>
</html>
""")

NOT_FOUND_FALLBACK = _inline_env.from_string("""<!DOCTYPE html>
<html lang="{{ locale }}" dir="{{ dir }}">
<head>
  <meta charset="utf-8">
  <title>{{ title }}</title>
</head>
<body>
  <h1>404</h1>
  <p><a href="{{ home }}">{{ home_label }}</a></p>
</body>
</html>
""")


class BuildError(RuntimeError):
    """Raised when the output directory itself cannot be prepared."""


@dataclass
class BuildReport:
    """Outcome of every unit touched during a build pass."""

    results: list[tuple[str, str, RenderOutcome]] = field(default_factory=list)
    extra_files: list[str] = field(default_factory=list)

    def add(self, page_key: str, locale: str, outcome: RenderOutcome) -> None:
        self.results.append((page_key, locale, outcome))

    def count(self, outcome: RenderOutcome) -> int:
        return sum(1 for _, _, o in self.results if o is outcome)

    def outcome_for(self, page_key: str, locale: str) -> RenderOutcome | None:
        for key, loc, outcome in self.results:
            if key == page_key and loc == locale:
                return outcome
        return None

    @property
    def rendered(self) -> int:
        return self.count(RenderOutcome.SUCCESS)


@dataclass
class BuildCycle:
    """Sources loaded once per build cycle."""

    routes: RouteTable
    locale_store: LocaleDataStore
    pages: dict[str, PageVariantSet]
    assets: AssetManifest


def sitemap_xml(locs: list[str]) -> str:
    lines = ['<?xml version="1.0" encoding="UTF-8"?>', f'<urlset xmlns="{SITEMAP_NS}">']
    lines.extend(f"  <url><loc>{escape(loc)}</loc></url>" for loc in locs)
    lines.append("</urlset>")
    return "\n".join(lines) + "\n"


def sitemap_index_xml(locs: list[str]) -> str:
    lines = ['<?xml version="1.0" encoding="UTF-8"?>', f'<sitemapindex xmlns="{SITEMAP_NS}">']
    lines.extend(f"  <sitemap><loc>{escape(loc)}</loc></sitemap>" for loc in locs)
    lines.append("</sitemapindex>")
    return "\n".join(lines) + "\n"


class SiteBuilder:
    def __init__(
        self,
        config: SiteConfig,
        mode: BuildMode = BuildMode.PRODUCTION,
        render_fn: Callable[[str, RenderContext], str] | None = None,
        minify_fn: Callable[[str], str] | None = None,
    ):
        self.config = config
        self.mode = mode
        self.render_fn = render_fn
        self.minify_fn = minify_fn
        self.graph = PageGraph(
            config.pages_path, config.src_path, config.locales, config.template_extensions
        )

    # ------------------------------------------------------------------
    # Cycle
    # ------------------------------------------------------------------

    def load_sources(self) -> tuple[RouteTable, LocaleDataStore]:
        routes = RouteTable.load(self.config.routes_path, self.config.locales)
        locale_store = LocaleDataStore.load(self.config.data_path, self.config.locales)
        return routes, locale_store

    def _renderer(self, cycle: BuildCycle) -> PageRenderer:
        return PageRenderer(
            self.config,
            self.mode,
            cycle.routes,
            cycle.locale_store,
            cycle.pages,
            cycle.assets,
            render_fn=self.render_fn,
            minify_fn=self.minify_fn,
        )

    def ensure_output_dir(self) -> None:
        try:
            self.config.output_path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise BuildError(f"Cannot create output directory {self.config.output_path}: {e}") from e

    def clean(self) -> None:
        """Delete the output directory"""
        if self.config.output_path.exists():
            shutil.rmtree(self.config.output_path)
            logger.info("Deleted %s", self.config.output_path)

    # ------------------------------------------------------------------
    # Builds
    # ------------------------------------------------------------------

    def build_all(self) -> BuildReport:
        started = time.time()
        logger.info("Building site for locales: %s (%s)", ", ".join(self.config.locales), self.mode.value)
        self.ensure_output_dir()

        routes, locale_store = self.load_sources()
        assets = AssetPipeline(self.config, self.mode).copy()
        cycle = BuildCycle(routes, locale_store, self.graph.discover(), assets)
        renderer = self._renderer(cycle)

        report = BuildReport()
        for page_key, variants in cycle.pages.items():
            for locale in self.config.locales:
                if variants.template_for(locale) is None:
                    logger.warning("Page %s has no template for locale %s; skipping", page_key, locale)
                    report.add(page_key, locale, RenderOutcome.SKIPPED)
                    continue
                report.add(page_key, locale, renderer.render_one(page_key, locale))

        self.write_redirect_index(report)
        if self.config.sitemaps:
            self.write_sitemaps(report)
        if self.config.not_found_pages:
            self.write_not_found_pages(report)

        logger.info(
            "Build finished in %.2fs: %d rendered, %d skipped, %d failed",
            time.time() - started,
            report.rendered,
            report.count(RenderOutcome.SKIPPED),
            report.count(RenderOutcome.RENDER_ERROR) + report.count(RenderOutcome.WRITE_ERROR),
        )
        return report

    def build_page(self, page_key: str) -> BuildReport:
        """Re-render one page key across every configured locale."""
        self.ensure_output_dir()
        routes, locale_store = self.load_sources()
        assets = AssetPipeline(self.config, self.mode).compute_manifest()
        variants = self.graph.discover_key(page_key)
        cycle = BuildCycle(routes, locale_store, {page_key: variants}, assets)
        renderer = self._renderer(cycle)

        report = BuildReport()
        if variants.is_empty:
            logger.warning("Page %s no longer has any template", page_key)
            return report
        for locale in self.config.locales:
            report.add(page_key, locale, renderer.render_one(page_key, locale))
        return report

    # ------------------------------------------------------------------
    # Site-wide files
    # ------------------------------------------------------------------

    def _write(self, rel_path: str, content: str, report: BuildReport | None) -> bool:
        target = self.config.output_path / rel_path
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            with open(target, "w", encoding="utf-8") as f:
                f.write(content)
        except OSError as e:
            logger.error("Could not write %s: %s", target, e)
            return False
        if report is not None:
            report.extra_files.append(rel_path)
        return True

    def _minify(self, markup: str, rel_path: str) -> str:
        """Production minification of a site-wide file; the unminified markup on failure."""
        if not (self.mode.is_production and self.config.minify):
            return markup
        try:
            return (self.minify_fn or minify_html)(markup)
        except Exception as e:
            logger.exception("Could not minify %s; writing it unminified: %s", rel_path, e)
            return markup

    def write_redirect_index(self, report: BuildReport | None = None) -> None:
        routes, _ = self.load_sources()
        homes = {
            loc: routes.resolve_path(self.config.home_key, loc) or f"/{loc}/"
            for loc in self.config.locales
        }
        html = REDIRECT_TEMPLATE.render(
            homes=homes,
            default_locale=self.config.default_locale,
            default_home=homes[self.config.default_locale],
        )
        html = self._minify(html, "index.html")
        if self._write("index.html", html, report):
            logger.info("Generated root redirect page")

    def write_sitemaps(self, report: BuildReport | None = None) -> None:
        site_url = self.config.site_url.rstrip("/")
        if not site_url:
            logger.warning("site_url is not configured; skipping sitemaps")
            return

        routes, _ = self.load_sources()
        sitemap_locs = []
        for locale in self.config.locales:
            paths = sorted({entry.path for entry in routes.all_routes_for(locale)})
            locs = [site_url + (p if p.startswith("/") else "/" + p) for p in paths]
            filename = f"sitemap-{locale}.xml"
            if self._write(filename, sitemap_xml(locs), report):
                sitemap_locs.append(f"{site_url}/{filename}")
                logger.info("Generated %s (%d url(s))", filename, len(locs))

        self._write("sitemap-index.xml", sitemap_index_xml(sitemap_locs), report)

    def not_found_template(self, locale: str) -> str | None:
        """Template id of the 404 page for *locale*: own override, then shared."""
        candidates = {}
        src = self.config.src_path
        for ext in self.config.template_extensions:
            for name in (f"{NOT_FOUND_KEY}.{locale}{ext}", f"{NOT_FOUND_KEY}{ext}"):
                if (src / name).is_file():
                    source = parse_template_path(PurePosixPath(name), self.config.locales, self.config.template_extensions)
                    if source is not None:
                        candidates.setdefault(source.locale, source.template_id)
        return candidates.get(locale) or candidates.get(None)

    def not_found_path(self, routes: RouteTable, locale: str) -> str:
        home_file = routes.file_path_for(self.config.home_key, locale)
        directory = PurePosixPath(home_file).parent if home_file else PurePosixPath(locale)
        return (directory / "404.html").as_posix()

    def write_not_found_pages(self, report: BuildReport | None = None) -> None:
        routes, locale_store = self.load_sources()
        assets = AssetPipeline(self.config, self.mode).compute_manifest()
        renderer = self._renderer(BuildCycle(routes, locale_store, {}, assets))

        for locale in self.config.locales:
            rel_path = self.not_found_path(routes, locale)
            home = renderer.home_path(locale)
            context = renderer.build_context(NOT_FOUND_KEY, locale, "/" + rel_path, home=home)
            template_id = self.not_found_template(locale)
            markup = None
            if template_id is not None:
                markup = renderer.render_template(template_id, context)
                if markup is None:
                    logger.warning("Falling back to the built-in 404 page for %s", locale)
            if markup is None:
                fallback = NOT_FOUND_FALLBACK.render(
                    title=_translated_or(context.t, "errors.not_found.title", "Page not found"),
                    home_label=_translated_or(context.t, "errors.not_found.home", "Go home"),
                    **context.as_template_vars(),
                )
                try:
                    markup = renderer.finalize(fallback, locale)
                except Exception as e:
                    logger.exception("Could not post-process the built-in 404 page for %s (%s); writing it as rendered: %s",
                                     locale, rel_path, e)
                    markup = fallback
            if self._write(rel_path, markup, report):
                logger.info("Generated 404 page (%s) -> %s", locale, rel_path)


def _translated_or(t, key: str, default: str) -> str:
    text = t(key)
    return default if text == key else text
