from fastapi import APIRouter, Request, Response
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST

router = APIRouter()


@router.get("/healthz")
async def healthz(request: Request):
    """Liveness plus dependency status; degraded dependencies do not fail the check"""
    cache = getattr(request.app.state, "cache", None)
    cache_ok = await cache.ping() if cache is not None else False
    return {
        "ok": True,
        "cache": cache_ok,
        "postgis": getattr(request.app.state, "postgis", False),
    }


@router.get("/metrics")
async def metrics():
    """Prometheus metrics endpoint"""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )
