"""
WebSocket router for realtime change hints.

Clients are subscribed to their own account channel and may subscribe to
match channels by sending ``{"subscribe": "<match_id>"}``. Hints are only
prompts to re-fetch state over HTTP.
"""

import json
import logging
import uuid
from uuid import UUID

from fastapi import APIRouter, Depends, WebSocketDisconnect, WebSocketException
from starlette.websockets import WebSocket

from backend.dependencies import AuthError, decode_access_token
from backend.services.realtime_service import (
    RealtimeService,
    account_channel,
    get_realtime_service,
    match_channel,
)

logger = logging.getLogger(__name__)

router = APIRouter()


async def authenticate_websocket(websocket: WebSocket, token: str) -> UUID:
    """
    Authenticate a WebSocket connection using an access token.

    Closes the connection with code 1008 if the token is invalid.
    """
    try:
        payload = decode_access_token(token)
        return UUID(str(payload.get("sub")))
    except (AuthError, ValueError) as exc:
        logger.warning(f"WebSocket authentication failed: {exc}")
        await websocket.close(code=1008, reason="Authentication failed")
        raise WebSocketException(code=1008, reason="Authentication failed")


@router.websocket("/ws")
async def websocket_endpoint(
    websocket: WebSocket,
    token: str,
    realtime: RealtimeService = Depends(get_realtime_service),
):
    """
    Realtime hint stream.

    Message format:
        {"topic": "account" | "match", "id": "<uuid>", "event": "...", "timestamp": "..."}
    """
    try:
        account_id = await authenticate_websocket(websocket, token)
    except WebSocketException:
        # Already closed by authenticate_websocket
        return

    client_id = f"{account_id}:{uuid.uuid4().hex[:8]}"
    await realtime.connect(account_channel(account_id), client_id, websocket)
    logger.info(f"WebSocket connected for {account_id=}")

    try:
        while True:
            data = await websocket.receive_text()
            try:
                message = json.loads(data)
                match_id = UUID(str(message["subscribe"]))
            except (ValueError, KeyError, TypeError):
                logger.debug(f"Ignored client message for {account_id=}: {data}")
                continue
            await realtime.connect(match_channel(match_id), client_id, websocket, accept=False)
    except WebSocketDisconnect:
        logger.info(f"WebSocket disconnected for {account_id=}")
    except Exception as e:
        logger.error(f"WebSocket error for {account_id=}: {e}")
    finally:
        await realtime.disconnect_everywhere(client_id)
