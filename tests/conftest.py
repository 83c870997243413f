import json

import pytest
import yaml

from localegen.config import SiteConfig


def write(path, text):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


@pytest.fixture
def make_site(tmp_path):
    """Scaffold a project tree and return its loaded SiteConfig.

    ``pages`` maps paths relative to src/pages to template text, ``routes``
    is the ``routes`` mapping of the route file, ``data`` maps locale ->
    translation tree (written as JSON).
    """

    def _make(pages=None, routes=None, data=None, layouts=None, config=None, extra_files=None):
        settings = {
            "locales": ["en", "fr"],
            "default_locale": "en",
            "site_url": "https://example.com",
        }
        settings.update(config or {})
        write(tmp_path / "site_config.yaml", yaml.safe_dump(settings))

        for rel, text in (pages or {}).items():
            write(tmp_path / "src" / "pages" / rel, text)
        for rel, text in (layouts or {}).items():
            write(tmp_path / "src" / "layouts" / rel, text)
        for locale, tree in (data or {}).items():
            write(tmp_path / "src" / "data" / f"{locale}.json", json.dumps(tree))
        if routes is not None:
            write(tmp_path / "src" / "routes.yaml", yaml.safe_dump({"routes": routes}))
        for rel, text in (extra_files or {}).items():
            write(tmp_path / rel, text)

        return SiteConfig.load(tmp_path)

    return _make


@pytest.fixture
def basic_routes():
    return {
        "en": [
            {"key": "index", "path": "/en/", "title": "Home"},
            {"key": "about", "path": "/en/about/", "title": "About"},
        ],
        "fr": [
            {"key": "index", "path": "/fr/", "title": "Accueil"},
            {"key": "about", "path": "/fr/a-propos/", "title": "À propos"},
        ],
    }
