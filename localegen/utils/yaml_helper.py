"""YAML/JSON document loading utilities."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml


def load_yaml(path: Path) -> dict[str, Any]:
    """Load a YAML (or JSON) file and return its contents as a dict.

    Raises ``OSError`` when the file cannot be read and ``yaml.YAMLError``
    when it cannot be parsed; a document whose top level is not a mapping
    comes back as an empty dict.
    """
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f)
    return data if isinstance(data, dict) else {}


def load_yaml_or_empty(path: Path, logger, what: str) -> dict[str, Any]:
    """Load a document, degrading to ``{}`` with a warning on any failure."""
    if not path.exists():
        logger.warning("Missing %s: %s", what, path)
        return {}
    try:
        return load_yaml(path)
    except (OSError, UnicodeDecodeError, yaml.YAMLError) as e:
        logger.warning("Could not load %s from %s: %s", what, path, e)
        return {}
