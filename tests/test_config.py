import pytest

from localegen import generate
from localegen.config import BuildMode, ConfigError, SiteConfig


def test_defaults_without_config_file(tmp_path):
    config = SiteConfig.load(tmp_path)

    assert config.locales == ["en", "fr"]
    assert config.default_locale == "en"
    assert config.pages_path == tmp_path.resolve() / "src" / "pages"
    assert config.output_path == tmp_path.resolve() / "dist"
    assert config.assets_output_path == tmp_path.resolve() / "dist" / "assets"


def test_overrides_win_over_file(make_site):
    config = make_site(config={"output_dir": "public"})
    reloaded = SiteConfig.load(config.root, {"output_dir": "out", "minify": False})

    assert reloaded.output_path.name == "out"
    assert reloaded.minify is False
    assert reloaded.site_url == "https://example.com"


@pytest.mark.parametrize("settings, message", [
    ({"locales": ["en", "fr"], "default_locale": "de"}, "Default locale"),
    ({"locales": ["en", "FRA"]}, "Invalid locale code"),
    ({"locales": []}, "At least one locale"),
    ({"locales": ["en", "en"]}, "Duplicate"),
    ({"link_rewriting": "aggressive"}, "link_rewriting"),
    ({"assets_prefix": "assets"}, "assets_prefix"),
])
def test_invalid_settings(tmp_path, settings, message):
    with pytest.raises(ConfigError, match=message):
        SiteConfig.from_dict(tmp_path, settings)


def test_unknown_keys_are_kept_raw(tmp_path):
    config = SiteConfig.from_dict(tmp_path, {"theme": "dark"})
    assert config._raw["theme"] == "dark"


def test_build_mode():
    assert BuildMode.PRODUCTION.is_production
    assert not BuildMode.DEVELOPMENT.is_production


def test_cli_builds_site(make_site, basic_routes):
    config = make_site(pages={"index.njk": "<p>hi</p>"}, routes=basic_routes)

    assert generate.main(["--root", str(config.root), "--dev"]) == 0
    assert (config.output_path / "en" / "index.html").read_text(encoding="utf-8") == "<p>hi</p>"


def test_cli_clean_and_output_override(make_site, basic_routes):
    config = make_site(pages={"index.njk": "<p>hi</p>"}, routes=basic_routes)
    stale = config.root / "public" / "stale.html"
    stale.parent.mkdir()
    stale.write_text("old", encoding="utf-8")

    assert generate.main(["--root", str(config.root), "--output", "public", "--clean", "--dev"]) == 0
    assert not stale.exists()
    assert (config.root / "public" / "fr" / "index.html").exists()


def test_cli_reports_invalid_config(tmp_path):
    (tmp_path / "site_config.yaml").write_text("locales: [en]\ndefault_locale: de\n", encoding="utf-8")

    assert generate.main(["--root", str(tmp_path)]) == 2


def test_boolean_locale_code_asks_for_quoting(tmp_path):
    (tmp_path / "site_config.yaml").write_text("locales: [en, no]\n", encoding="utf-8")

    with pytest.raises(ConfigError, match="quote it"):
        SiteConfig.load(tmp_path)
