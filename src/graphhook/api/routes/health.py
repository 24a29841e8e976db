"""Health check endpoints."""

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from graphhook.version import __version__

router = APIRouter()


@router.get("/health")
async def health_check():
    """Return service health status."""
    return {"status": "healthy", "service": "graphhook", "version": __version__}


@router.get("/health/live")
async def liveness():
    """Liveness probe; always returns 200 if process is running."""
    return {"status": "alive"}


@router.get("/health/ready")
async def readiness(request: Request):
    """Readiness probe: checks that decryption and publishing are configured."""
    checks: dict[str, str] = {}
    overall_ok = True

    config = getattr(request.app.state, "relay_config", None)
    if config is None:
        checks["config"] = "missing"
        overall_ok = False
    else:
        checks["private_key"] = "ok" if config.private_key is not None else "missing"
        checks["event_grid"] = "ok" if config.sink.configured else "missing"
        checks["certificate_id"] = config.active_certificate_id
        overall_ok = config.private_key is not None and config.sink.configured

    status_code = 200 if overall_ok else 503
    return JSONResponse(
        status_code=status_code,
        content={
            "status": "ready" if overall_ok else "not_ready",
            "checks": checks,
        },
    )
