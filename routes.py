import logging

from fastapi import APIRouter, HTTPException, Query, Request
from fastapi.responses import JSONResponse

from analyzer.ensemble import AllProvidersFailedError
from analyzer.pipeline import RoastService
from core.cache import RoastCache
from core.queue import QueueUnavailableError
from core.rate_limit import RateLimitExceededError
from models import RoastAccepted, RoastRequest
from utils.clients.records import RecordStoreError
from utils.security import InvalidUrlError

logger = logging.getLogger(__name__)

# Create router
router = APIRouter()


def _roast_service(request: Request) -> RoastService:
    return request.app.state.roast_service


def _cache(request: Request) -> RoastCache:
    return request.app.state.cache


def _temporarily_unavailable() -> HTTPException:
    return HTTPException(
        status_code=503,
        detail={"error": "Service temporarily unable to complete analysis", "retryable": True},
    )


@router.get("/")
async def root():
    return {
        "service": "Roast Engine",
        "status": "running",
        "endpoints": {
            "roast": "/roast (POST)",
            "result": "/roast/{roast_id} (GET)",
            "health": "/health (GET)",
            "cache": "/cache?pattern= (DELETE)",
        },
    }


@router.post("/roast")
async def request_roast(body: RoastRequest, request: Request):
    """
    Request a roast for a landing page.

    Returns the finished roast straight from the cache when one exists
    (200, ``cached: true``); otherwise queues a screenshot job and returns a
    receipt with the roast id to poll (202). New roasts are rate limited per
    client IP (429).
    """
    service = _roast_service(request)
    client_id = request.client.host if request.client else None
    try:
        outcome = await service.request_roast(
            body.url, body.force_refresh, body.options, client_id=client_id
        )
    except InvalidUrlError as e:
        raise HTTPException(status_code=400, detail={"error": str(e), "retryable": False})
    except RateLimitExceededError as e:
        raise HTTPException(
            status_code=429,
            detail={
                "error": "Rate limit exceeded. Please sign up for unlimited roasts.",
                "retryable": True,
            },
            headers={"Retry-After": str(e.retry_after)},
        )
    except (QueueUnavailableError, RecordStoreError, AllProvidersFailedError) as e:
        logger.error(f"❌ Roast request for {body.url} failed: {e}")
        raise _temporarily_unavailable()

    status_code = 202 if isinstance(outcome, RoastAccepted) else 200
    return JSONResponse(status_code=status_code, content=outcome.to_wire())


@router.get("/roast/{roast_id}")
async def get_roast(roast_id: str, request: Request):
    try:
        record = await _roast_service(request).get_roast(roast_id)
    except RecordStoreError as e:
        logger.error(f"❌ Lookup of roast {roast_id} failed: {e}")
        raise _temporarily_unavailable()
    if record is None:
        raise HTTPException(status_code=404, detail={"error": "Roast not found"})
    return record.to_wire()


@router.get("/health")
async def health(request: Request):
    """Cache backend ping, cache statistics and browser readiness"""
    cache = _cache(request)
    cache_ok = await cache.health_check()
    stats = await cache.stats()
    savings = await cache.cost_savings()

    capture = getattr(request.app.state, "capture", None)
    return {
        "status": "healthy" if cache_ok else "degraded",
        "cache": {"healthy": cache_ok, "stats": stats.to_wire(), "costSavings": savings},
        "browser": {"ready": capture.is_ready()} if capture is not None else None,
    }


@router.delete("/cache")
async def invalidate_cache(request: Request, pattern: str = Query(..., min_length=1)):
    deleted = await _cache(request).invalidate_pattern(pattern)
    return {"pattern": pattern, "deleted": deleted}
