"""HTTP API for the offline guide sync layer."""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from pydantic import BaseModel

from guide_sync.errors import ResourceNotFound
from guide_sync.guide_service import GuideService
from guide_sync.resource_keys import normalize_resource_key
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="guide_sync/api")

router = APIRouter()


def get_service(request: Request) -> GuideService:
    """The session's GuideService, created by the app lifespan."""
    service = getattr(request.app.state, "guide_service", None)
    if service is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Service is starting")
    return service


class GuideResponse(BaseModel):
    """A resolved guide and where it came from."""
    key: str
    is_offline_copy: bool
    payload: dict


class SyncResponse(BaseModel):
    """Sync controller state after a refresh request."""
    started: bool
    key: str
    status: str
    is_loading: bool
    is_offline_copy: Optional[bool] = None
    last_synced_at: Optional[float] = None
    error: Optional[str] = None


class OfflineGuide(BaseModel):
    """Stored guide row for the management screen."""
    key: str
    name: Optional[str] = None
    saved_at: float
    approx_bytes: int


class OfflineModeRequest(BaseModel):
    """Debug toggle for simulated offline mode."""
    enabled: bool


def _not_found(exc: ResourceNotFound) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=exc.to_dict())


@router.get("/guides")
def list_guides(service: GuideService = Depends(get_service)) -> List[dict]:
    return service.guide_listing()


@router.get("/guides/{slug}", response_model=GuideResponse)
async def get_guide(slug: str, service: GuideService = Depends(get_service)):
    try:
        resolved = await service.resolve(slug)
    except ResourceNotFound as exc:
        raise _not_found(exc)
    return GuideResponse(key=resolved.key, is_offline_copy=resolved.is_offline_copy, payload=resolved.payload)


@router.post("/guides/{slug}/sync", response_model=SyncResponse)
async def sync_guide(slug: str, service: GuideService = Depends(get_service)):
    """User-initiated refresh; a request while one is running does nothing."""
    if not normalize_resource_key(slug):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Empty guide key")
    controller = service.controller_for(slug)
    started = await controller.refresh()
    return SyncResponse(started=started, **controller.snapshot())


@router.get("/guides/{slug}/sync", response_model=SyncResponse)
def sync_state(slug: str, service: GuideService = Depends(get_service)):
    return SyncResponse(started=False, **service.sync_snapshot(slug))


@router.get("/offline", response_model=List[OfflineGuide])
def list_offline(service: GuideService = Depends(get_service)):
    return [
        OfflineGuide(key=g.key, name=g.name, saved_at=g.saved_at, approx_bytes=g.approx_bytes)
        for g in service.list_offline_guides()
    ]


@router.delete("/offline/{slug}")
def delete_offline(slug: str, service: GuideService = Depends(get_service)):
    removed = service.remove_offline_copy(slug)
    return {"key": normalize_resource_key(slug), "removed": removed, "storage": service.storage_summary()}


@router.delete("/offline")
def clear_offline(service: GuideService = Depends(get_service)):
    removed = service.clear_offline_guides()
    return {"removed": removed, "storage": service.storage_summary()}


@router.get("/storage")
def storage(service: GuideService = Depends(get_service)):
    return {**service.storage_summary(), "connectivity": service.connectivity()}


@router.put("/debug/offline")
def set_offline_mode(req: OfflineModeRequest, service: GuideService = Depends(get_service)):
    service.set_simulate_offline(req.enabled)
    return service.connectivity()


@router.get("/visa")
async def visa_check(
    passport: str = Query(...),
    destination: str = Query(...),
    service: GuideService = Depends(get_service),
):
    try:
        result = await service.visa.check(passport, destination)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    if result is None:
        remaining = service.visa.coordinator.cooldown_remaining()
        if remaining > 0:
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail="Visa provider temporarily rate-limited. Retry later.",
                headers={"Retry-After": str(max(1, int(remaining + 0.999)))},
            )
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Visa provider unavailable")
    return result


@router.get("/vitals/environmental/{city_id}")
async def environmental_report(
    city_id: str,
    lat: Optional[float] = None,
    lng: Optional[float] = None,
    service: GuideService = Depends(get_service),
):
    return await service.environmental.get_report(city_id, lat=lat, lng=lng)


@router.get("/pulse/{slug}")
async def city_pulse(
    slug: str,
    city_name: Optional[str] = None,
    service: GuideService = Depends(get_service),
):
    name = city_name or service.city_name_for(slug)
    return {"slug": normalize_resource_key(slug), "city": name, "items": await service.pulse.get_pulse(slug, name)}
