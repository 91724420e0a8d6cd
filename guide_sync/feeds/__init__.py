"""Ancillary live feeds layered on the TTL cache and the backoff coordinator."""

from .environmental import EnvironmentalImpactFeed, build_offline_placeholder
from .pulse import CityPulseFeed
from .visa import VisaLookup

__all__ = [
    "EnvironmentalImpactFeed",
    "build_offline_placeholder",
    "CityPulseFeed",
    "VisaLookup",
]
