from __future__ import annotations

from fastapi import APIRouter, Request

router = APIRouter(prefix="", tags=["health"])


@router.get("/healthz")
async def healthz(request: Request):
    return {"status": "ok", "rooms": len(request.app.state.registry)}
