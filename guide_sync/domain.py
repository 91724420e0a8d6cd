"""Payload schemas and the named validation functions used to accept network data.

A network response is only written to the local store when it passes the
validator for its resource type. The schemas check the minimal shape callers
rely on and let every other field through untouched (`extra="allow"`), since the
layer treats bundles as opaque beyond that.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, StrictBool, StrictStr, ValidationError, field_validator

from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="domain")


class _OpenModel(BaseModel):
    """Base model that keeps unknown fields."""

    model_config = ConfigDict(extra="allow")


def _strict_number(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError("expected a number")
    return float(value)


# ---------------------------------------------------------------------------
# City pack (the main resource bundle)
# ---------------------------------------------------------------------------


class CityEmergency(_OpenModel):
    """Emergency numbers every pack must carry."""
    police: StrictStr
    medical: StrictStr
    pharmacy24h: StrictStr


class CityPower(_OpenModel):
    """Plug type and voltage."""
    type: StrictStr
    voltage: StrictStr


class CitySurvival(_OpenModel):
    """Survival section; only the fields the guide screens read are required."""
    power: CityPower
    digitalEntry: StrictStr
    touristTax: StrictStr


class CityArrival(_OpenModel):
    """Arrival hacks and essential apps."""
    eSimHack: StrictStr
    transitHack: StrictStr
    essentialApps: List[Any]


class CityPack(_OpenModel):
    """Minimal structural contract for a city reference bundle."""
    slug: StrictStr
    theme: StrictStr
    countryCode: StrictStr
    countryName: StrictStr
    emergency: CityEmergency
    survival: CitySurvival
    arrival: CityArrival
    neighborhoods: List[Any]
    survival_kit: Dict[str, Any]


# ---------------------------------------------------------------------------
# Ancillary feeds
# ---------------------------------------------------------------------------


class EnvironmentalImpactReport(_OpenModel):
    """Air quality / pollen / overtourism snapshot for a city."""
    cityId: StrictStr
    cityLabel: StrictStr
    aqiValue: float
    currentConditionsSummary: StrictStr
    whatYouCanDo: List[StrictStr]
    howItHelps: StrictStr
    isLive: StrictBool = False
    aqiCategory: Optional[str] = None
    sourceRefs: List[str] = []
    fetchedAt: Optional[str] = None

    @field_validator("aqiValue", mode="before")
    @classmethod
    def aqi_is_number(cls, v: Any) -> float:
        """Reject "42" and True; the upstream contract sends plain numbers."""
        return _strict_number(v)


class PulseType(str, Enum):
    """Kind of city pulse snippet."""
    SAFETY = "safety"
    NEWS = "news"
    EVENT = "event"


class PulseItem(_OpenModel):
    """One news/safety/event snippet shown in the city pulse block."""
    type: PulseType
    title: str
    description: str
    source: str
    urgency: bool
    publishedAt: Optional[str] = None
    url: Optional[str] = None


class VisaRegistration(_OpenModel):
    """Normalized mandatory registration block of a visa check."""
    text: Optional[str] = None
    link: Optional[str] = None
    color: str = "amber"


class VisaCheck(_OpenModel):
    """Visa rule lookup result; everything except registration is passed through."""
    mandatory_registration: Optional[VisaRegistration] = None


# ---------------------------------------------------------------------------
# Named validators
# ---------------------------------------------------------------------------


def _passes(model: type[BaseModel], payload: Any, *, kind: str) -> bool:
    """Return True if `payload` validates against `model`."""
    if not isinstance(payload, dict):
        logger.debug("Rejected %s payload: not an object", kind)
        return False
    try:
        model.model_validate(payload)
    except ValidationError as exc:
        logger.debug("Rejected %s payload: %s", kind, exc.errors(include_url=False))
        return False
    return True


def is_city_pack(payload: Any) -> bool:
    """Structural check for a city pack fetched from the network."""
    return _passes(CityPack, payload, kind="city pack")


def is_environmental_report(payload: Any) -> bool:
    """Structural check for an environmental impact report."""
    return _passes(EnvironmentalImpactReport, payload, kind="environmental report")


def is_pulse_list(payload: Any) -> bool:
    """A cached pulse feed must be a list of valid pulse items."""
    if not isinstance(payload, list):
        return False
    try:
        for item in payload:
            PulseItem.model_validate(item)
    except ValidationError:
        return False
    return True
