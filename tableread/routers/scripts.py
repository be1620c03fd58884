from __future__ import annotations

from typing import List

from fastapi import APIRouter, Request

from ..schemas import ScriptListing

router = APIRouter(prefix="/api", tags=["scripts"])


@router.get("/scripts", response_model=List[ScriptListing])
async def list_scripts(request: Request):
    """Script catalogue for the host's script-selection screen."""
    return request.app.state.catalogue.listings()
