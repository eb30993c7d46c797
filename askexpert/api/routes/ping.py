from fastapi import APIRouter

from askexpert.metrics import metrics_registry

router = APIRouter(tags=["health"])


@router.get("/ping", summary="Public health probe")
async def ping() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/metrics", summary="Routing and ticket counters")
async def metrics() -> dict[str, dict[str, float]]:
    return metrics_registry.snapshot()
