"""Shared asset copying with content-hash cache busting in production."""

from __future__ import annotations

import hashlib
import shutil
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from types import MappingProxyType
from typing import Mapping

from localegen.config import BuildMode, SiteConfig
from localegen.logger import get_logger

logger = get_logger("assets")

HASH_LENGTH = 8


def calculate_file_hash(filepath: Path, length: int = HASH_LENGTH) -> str:
    """Calculate a partial hash of a file for cache busting"""
    hasher = hashlib.sha256()
    with open(filepath, "rb") as f:
        for chunk in iter(lambda: f.read(65536), b""):
            hasher.update(chunk)
    return hasher.hexdigest()[:length]


def hashed_filename(filename: str, file_hash: str) -> str:
    """``main.css`` + ``1a2b3c4d`` -> ``main.1a2b3c4d.css``"""
    path = PurePosixPath(filename)
    return f"{path.stem}.{file_hash}{path.suffix}"


@dataclass(frozen=True)
class AssetManifest:
    """Immutable per-build view of the asset set.

    ``hashes`` maps category -> content hash and is empty outside production;
    ``files`` maps category -> published filename.
    """

    hashes: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    files: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    prefix: str = "/assets/"

    def url_for(self, category: str) -> str:
        filename = self.files.get(category)
        if filename is None:
            logger.warning("Unknown asset category %r", category)
            return "#"
        return f"{self.prefix}{filename}"


class AssetPipeline:
    def __init__(self, config: SiteConfig, mode: BuildMode):
        self.config = config
        self.mode = mode

    def _sources(self) -> dict[str, Path]:
        sources = {}
        for category, rel in self.config.assets.items():
            src = (self.config.root / rel).resolve()
            if not src.is_file():
                logger.warning("Asset %r not found at %s; skipping", category, src)
                continue
            sources[category] = src
        return sources

    def compute_manifest(self) -> AssetManifest:
        """Hash every asset once; nothing is written."""
        hashes = {}
        files = {}
        for category, src in self._sources().items():
            if self.mode.is_production:
                file_hash = calculate_file_hash(src)
                hashes[category] = file_hash
                files[category] = hashed_filename(src.name, file_hash)
            else:
                files[category] = src.name
        return AssetManifest(
            hashes=MappingProxyType(hashes),
            files=MappingProxyType(files),
            prefix=self.config.assets_prefix,
        )

    def copy(self) -> AssetManifest:
        """Copy the asset set into the output tree and return its manifest."""
        manifest = self.compute_manifest()
        sources = self._sources()
        if not sources:
            return manifest

        target_dir = self.config.assets_output_path
        target_dir.mkdir(parents=True, exist_ok=True)
        for category, src in sources.items():
            dst = target_dir / manifest.files[category]
            try:
                shutil.copy2(src, dst)
            except OSError as e:
                logger.error("Could not copy asset %s to %s: %s", category, dst, e)
                continue
            logger.debug("Copied asset %s -> %s", category, dst)
        logger.info("Copied %d asset(s) to %s", len(sources), target_dir)
        return manifest
