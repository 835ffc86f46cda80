from fastapi import APIRouter, Request

router = APIRouter(prefix="/ping", tags=["health"])


@router.get("", summary="Public health check")
async def ping(request: Request) -> dict[str, str]:
    storage = "ready" if getattr(request.app.state, "ticket_service", None) is not None else "unavailable"
    return {"status": "ok", "storage": storage}
