"""Factory helpers for choosing the resource source and seed dataset at startup."""

from __future__ import annotations

from guide_sync import config
from guide_sync.data_sources.base import ResourceSource
from guide_sync.data_sources.http_source import HttpResourceSource
from guide_sync.data_sources.seed import BundledSeedDataset
from utils.logging_utils import get_tagged_logger, mask_url

logger = get_tagged_logger(__name__, tag="data_sources/factory")


def build_resource_source(settings: config.Settings | None = None) -> ResourceSource:
    """Instantiate the HTTP source for the configured base URL."""
    settings = settings or config.settings
    if not settings.resource_base_url:
        raise ValueError("resource_base_url must be set")
    logger.info("Using HTTP resource source", extra={"base_url": mask_url(settings.resource_base_url)})
    return HttpResourceSource(settings.resource_base_url, timeout=settings.fetch_timeout_seconds)


def build_seed_dataset(settings: config.Settings | None = None) -> BundledSeedDataset:
    """Load the seed dataset from `seed_path` or the packaged file."""
    settings = settings or config.settings
    return BundledSeedDataset(path=settings.seed_path)
