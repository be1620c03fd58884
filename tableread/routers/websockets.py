from __future__ import annotations

import json
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from fastapi.websockets import WebSocketState

from ..gateway import Gateway, Session

logger = logging.getLogger(__name__)

router = APIRouter(prefix="", tags=["ws"])


@router.websocket("/ws")
async def websocket_endpoint(ws: WebSocket):
    await ws.accept()
    gateway: Gateway = ws.app.state.gateway
    session = Session()
    try:
        # Stops once the server side has closed the socket (e.g. after a boot).
        while ws.application_state == WebSocketState.CONNECTED:
            message = await ws.receive()
            if message["type"] == "websocket.disconnect":
                break
            text = message.get("text")
            if text is None:
                logger.debug("Ignoring binary frame")
                continue
            try:
                data = json.loads(text)
            except json.JSONDecodeError:
                logger.debug("Ignoring non-JSON frame")
                continue
            try:
                await gateway.handle_ws_message(session, ws, data)
            except WebSocketDisconnect:
                raise
            except Exception:
                logger.exception("Error handling %r in room %s", data.get("type") if isinstance(data, dict) else None, session.room_code)
    except WebSocketDisconnect:
        pass
    finally:
        await gateway.handle_disconnect(session)
