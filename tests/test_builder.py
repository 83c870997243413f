import pytest

from localegen.config import BuildMode
from localegen.services.builder import BuildError, SiteBuilder, sitemap_xml
from localegen.services.renderer import RenderOutcome


INDEX_ROUTES = {
    "en": [{"key": "index", "path": "/en/", "title": "Home"}],
    "fr": [{"key": "index", "path": "/fr/", "title": "Accueil"}],
}


def snapshot(directory):
    return {
        p.relative_to(directory).as_posix(): p.read_bytes()
        for p in sorted(directory.rglob("*"))
        if p.is_file()
    }


def test_index_scenario(make_site):
    config = make_site(pages={"index.njk": "<h1>{{ t('home.title') }}</h1>"}, routes=INDEX_ROUTES,
                       data={"en": {"home": {"title": "Welcome"}}, "fr": {"home": {"title": "Bienvenue"}}})
    report = SiteBuilder(config, BuildMode.DEVELOPMENT).build_all()

    out = config.output_path
    assert (out / "en/index.html").read_text(encoding="utf-8") == "<h1>Welcome</h1>"
    assert (out / "fr/index.html").read_text(encoding="utf-8") == "<h1>Bienvenue</h1>"
    assert report.rendered == 2

    for locale in ("en", "fr"):
        sitemap = (out / f"sitemap-{locale}.xml").read_text(encoding="utf-8")
        assert sitemap.count("<url>") == 1
        assert f"<url><loc>https://example.com/{locale}/</loc></url>" in sitemap

    index = (out / "sitemap-index.xml").read_text(encoding="utf-8")
    assert "<loc>https://example.com/sitemap-en.xml</loc>" in index
    assert "<loc>https://example.com/sitemap-fr.xml</loc>" in index


def test_override_only_page_renders_for_its_locale(make_site, basic_routes, caplog):
    config = make_site(pages={"about.fr.njk": "<p>fr</p>"}, routes=basic_routes)
    report = SiteBuilder(config, BuildMode.DEVELOPMENT).build_all()

    assert (config.output_path / "fr/a-propos.html").exists()
    assert not (config.output_path / "en/about.html").exists()
    assert report.outcome_for("about", "en") is RenderOutcome.SKIPPED
    assert report.outcome_for("about", "fr") is RenderOutcome.SUCCESS
    assert "Page about has no template for locale en" in caplog.text


def test_missing_route_for_configured_locale_does_not_abort(make_site):
    routes = {
        "en": [{"key": "contact", "path": "/en/contact/"}],
        "fr": [{"key": "contact", "path": "/fr/contact/"}],
    }
    config = make_site(
        pages={"contact.njk": "c"},
        routes=routes,
        config={"locales": ["en", "de", "fr"]},
    )
    report = SiteBuilder(config, BuildMode.DEVELOPMENT).build_all()

    assert report.outcome_for("contact", "de") is RenderOutcome.SKIPPED
    assert report.outcome_for("contact", "fr") is RenderOutcome.SUCCESS
    assert (config.output_path / "fr/contact.html").exists()


def test_locales_render_in_configured_order(make_site, basic_routes):
    config = make_site(pages={"index.njk": "i", "about.njk": "a"}, routes=basic_routes,
                       config={"locales": ["fr", "en"]})
    report = SiteBuilder(config, BuildMode.DEVELOPMENT).build_all()

    assert [(k, l) for k, l, _ in report.results] == [
        ("about", "fr"), ("about", "en"), ("index", "fr"), ("index", "en"),
    ]


def test_rebuild_is_byte_identical(make_site, basic_routes):
    config = make_site(
        pages={"index.njk": '<a href="/about/">x</a>', "about.njk": "<p>{{ t('a') }}</p>"},
        routes=basic_routes,
        data={"en": {"a": "A"}},
        config={"assets": {"style": "src/styles/main.css"}},
        extra_files={"src/styles/main.css": "body { color: red; }"},
    )
    builder = SiteBuilder(config, BuildMode.PRODUCTION)

    builder.build_all()
    first = snapshot(config.output_path)
    builder.build_all()
    assert snapshot(config.output_path) == first


def test_sitemap_paths_are_sorted(make_site):
    routes = {"en": [
        {"key": "z", "path": "/en/zebra/"},
        {"key": "index", "path": "/en/"},
        {"key": "a", "path": "/en/apple/"},
    ]}
    config = make_site(routes=routes, config={"locales": ["en"]})
    SiteBuilder(config, BuildMode.DEVELOPMENT).build_all()

    sitemap = (config.output_path / "sitemap-en.xml").read_text(encoding="utf-8")
    positions = [sitemap.index(p) for p in ("/en/</loc>", "/en/apple/", "/en/zebra/")]
    assert positions == sorted(positions)


def test_sitemaps_need_site_url(make_site, caplog):
    config = make_site(routes=INDEX_ROUTES, config={"site_url": ""})
    SiteBuilder(config, BuildMode.DEVELOPMENT).build_all()

    assert not (config.output_path / "sitemap-en.xml").exists()
    assert "site_url is not configured" in caplog.text


def test_sitemap_xml_escapes_locations():
    assert "<loc>https://example.com/?a=1&amp;b=2</loc>" in sitemap_xml(["https://example.com/?a=1&b=2"])


def test_redirect_page_targets_home_routes(make_site):
    routes = {
        "en": [{"key": "index", "path": "/en/home/"}],
        "fr": [{"key": "index", "path": "/fr/"}],
    }
    config = make_site(routes=routes)
    SiteBuilder(config, BuildMode.DEVELOPMENT).build_all()

    html = (config.output_path / "index.html").read_text(encoding="utf-8")
    assert '"en": "/en/home/"' in html
    assert '"fr": "/fr/"' in html
    assert 'url=/en/home/' in html
    assert '<a href="/en/home/">' in html
    assert "preferred-locale" in html
    assert "navigator.languages" in html


def test_not_found_pages_prefer_locale_template(make_site):
    config = make_site(
        routes=INDEX_ROUTES,
        extra_files={
            "src/404.njk": "<p>shared {{ locale }}</p>",
            "src/404.fr.njk": "<p>introuvable</p>",
        },
    )
    SiteBuilder(config, BuildMode.DEVELOPMENT).build_all()

    assert (config.output_path / "en/404.html").read_text(encoding="utf-8") == "<p>shared en</p>"
    assert (config.output_path / "fr/404.html").read_text(encoding="utf-8") == "<p>introuvable</p>"


def test_not_found_inline_fallback_links_home(make_site):
    config = make_site(routes=INDEX_ROUTES, data={"fr": {"errors": {"not_found": {"home": "Accueil"}}}})
    SiteBuilder(config, BuildMode.DEVELOPMENT).build_all()

    en = (config.output_path / "en/404.html").read_text(encoding="utf-8")
    fr = (config.output_path / "fr/404.html").read_text(encoding="utf-8")
    assert '<a href="/en/">Go home</a>' in en
    assert '<a href="/fr/">Accueil</a>' in fr


def test_features_can_be_disabled(make_site):
    config = make_site(routes=INDEX_ROUTES, config={"sitemaps": False, "not_found_pages": False})
    SiteBuilder(config, BuildMode.DEVELOPMENT).build_all()

    assert (config.output_path / "index.html").exists()
    assert not (config.output_path / "sitemap-index.xml").exists()
    assert not (config.output_path / "en/404.html").exists()


def test_missing_route_file_still_completes(make_site, caplog):
    config = make_site(pages={"index.njk": "i"})
    report = SiteBuilder(config, BuildMode.DEVELOPMENT).build_all()

    assert report.rendered == 0
    assert report.count(RenderOutcome.SKIPPED) == 2
    assert (config.output_path / "index.html").exists()
    assert "Missing route configuration" in caplog.text


def test_production_build_hashes_assets(make_site):
    config = make_site(
        pages={"index.njk": '<link rel="stylesheet" href="{{ asset_url("style") }}">{{ asset_hashes.style }}'},
        routes=INDEX_ROUTES,
        config={"assets": {"style": "src/styles/main.css", "logo": "src/missing.png"}},
        extra_files={"src/styles/main.css": "body { color: red; }"},
    )
    SiteBuilder(config, BuildMode.PRODUCTION, minify_fn=lambda m: m).build_all()

    copied = list((config.output_path / "assets").iterdir())
    assert len(copied) == 1
    name = copied[0].name
    assert name.startswith("main.") and name.endswith(".css") and name != "main.css"

    digest = name.split(".")[1]
    html = (config.output_path / "en/index.html").read_text(encoding="utf-8")
    assert f'href="/assets/{name}"' in html
    assert html.endswith(digest)


def test_development_build_keeps_asset_names(make_site):
    config = make_site(
        pages={"index.njk": "{{ asset_url('style') }}|{{ asset_hashes|length }}"},
        routes=INDEX_ROUTES,
        config={"assets": {"style": "src/styles/main.css"}},
        extra_files={"src/styles/main.css": "body {}"},
    )
    SiteBuilder(config, BuildMode.DEVELOPMENT).build_all()

    assert (config.output_path / "assets/main.css").exists()
    assert (config.output_path / "en/index.html").read_text(encoding="utf-8") == "/assets/main.css|0"


def test_build_page_only_touches_one_key(make_site, basic_routes):
    config = make_site(pages={"index.njk": "i", "about.njk": "a"}, routes=basic_routes)
    builder = SiteBuilder(config, BuildMode.DEVELOPMENT)

    report = builder.build_page("about")

    assert [(k, l) for k, l, _ in report.results] == [("about", "en"), ("about", "fr")]
    assert (config.output_path / "fr/a-propos.html").exists()
    assert not (config.output_path / "fr/index.html").exists()


def test_unwritable_output_dir_is_fatal(make_site, tmp_path):
    (tmp_path / "blocker").write_text("file, not a directory", encoding="utf-8")
    config = make_site(routes=INDEX_ROUTES, config={"output_dir": "blocker/dist"})

    with pytest.raises(BuildError):
        SiteBuilder(config, BuildMode.DEVELOPMENT).build_all()


def test_clean_removes_output(make_site):
    config = make_site(routes=INDEX_ROUTES)
    builder = SiteBuilder(config, BuildMode.DEVELOPMENT)
    builder.build_all()

    builder.clean()
    assert not config.output_path.exists()


def test_minifier_failure_does_not_abort_build(make_site, caplog):
    config = make_site(pages={"index.njk": "<p>i</p>"}, routes=INDEX_ROUTES)

    def broken_minify(markup):
        raise ValueError("minifier failed")

    report = SiteBuilder(config, BuildMode.PRODUCTION, minify_fn=broken_minify).build_all()

    assert report.outcome_for("index", "en") is RenderOutcome.RENDER_ERROR
    assert "preferred-locale" in (config.output_path / "index.html").read_text(encoding="utf-8")
    assert '<a href="/fr/">' in (config.output_path / "fr/404.html").read_text(encoding="utf-8")
    assert "Could not minify index.html" in caplog.text


def test_pages_dir_outside_src(make_site):
    config = make_site(
        routes=INDEX_ROUTES,
        config={"pages_dir": "pages"},
        extra_files={"pages/index.njk": "<p>{{ locale }}</p>"},
    )
    report = SiteBuilder(config, BuildMode.DEVELOPMENT).build_all()

    assert report.rendered == 2
    assert (config.output_path / "fr/index.html").read_text(encoding="utf-8") == "<p>fr</p>"
