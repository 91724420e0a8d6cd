"""Resource sources: remote fetchers and the bundled seed dataset."""

from .base import CallableResourceSource, ResourceSource
from .factory import build_resource_source, build_seed_dataset
from .http_source import HttpResourceSource
from .seed import BundledSeedDataset

__all__ = [
    "build_resource_source",
    "build_seed_dataset",
    "BundledSeedDataset",
    "CallableResourceSource",
    "HttpResourceSource",
    "ResourceSource",
]
