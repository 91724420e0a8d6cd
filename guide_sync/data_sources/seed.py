"""Bundled Seed Dataset: read-only city packs shipped with the package."""

from __future__ import annotations

import copy
import json
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional

from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="seed")


BUNDLED_SEED_PATH = Path(__file__).resolve().parent.parent / "data" / "cities.json"


class BundledSeedDataset:
    """
    Last-resort tier keyed by the same slugs as the local store.

    Accepts either a path to a `{"cities": [...]}` JSON file, an explicit
    mapping of key to payload, or nothing (the packaged `data/cities.json`).
    Lookups return deep copies; the dataset is never written.
    """

    def __init__(self, path: str | Path | None = None, entries: Mapping[str, Any] | None = None) -> None:
        if entries is not None:
            self._entries: Dict[str, Any] = {k: copy.deepcopy(v) for k, v in entries.items()}
            source = "mapping"
        else:
            if path is not None:
                data = json.loads(Path(path).read_text(encoding="utf-8"))
                source = str(path)
            else:
                data = json.loads(BUNDLED_SEED_PATH.read_text(encoding="utf-8"))
                source = "bundled"
            self._entries = self._index(data.get("cities", []))
        logger.info("Loaded %d seed guide(s) from %s", len(self._entries), source)

    @staticmethod
    def _index(cities: Iterable[dict]) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        for city in cities:
            slug = city.get("slug")
            if not isinstance(slug, str) or not slug:
                logger.warning("Skipping seed entry without a slug")
                continue
            out[slug.lower()] = city
        return out

    def get(self, key: str) -> Optional[Any]:
        payload = self._entries.get(key)
        return copy.deepcopy(payload) if payload is not None else None

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def keys(self) -> List[str]:
        return sorted(self._entries)

    def summaries(self) -> List[dict]:
        """Slug, name and country fields for home-screen listings."""
        return [
            {
                "slug": key,
                "name": city.get("name"),
                "countryCode": city.get("countryCode"),
                "countryName": city.get("countryName"),
            }
            for key, city in sorted(self._entries.items())
        ]
