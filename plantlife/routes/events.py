"""Push endpoints: SSE stream and WebSocket for change events."""

import asyncio
import json
from contextlib import suppress

from fastapi import APIRouter, Depends, Request, WebSocket, WebSocketDisconnect
from sse_starlette.sse import EventSourceResponse

from plantlife.auth import bearer_token, decode_access_token
from plantlife.dependencies import get_services
from plantlife.exceptions import UnauthenticatedError
from plantlife.logging_config import bind_user_context, get_logger
from plantlife.services import Services

logger = get_logger(__name__)
router = APIRouter(tags=["events"])

POLL_SECONDS = 1.0


@router.get("/api/events/stream")
async def event_stream(
    request: Request,
    services: Services = Depends(get_services),
):
    """SSE stream of post, engagement and follow events.

    Events are hints: clients re-fetch the timeline when they arrive.
    """

    async def event_generator():
        async with services.hub.subscribe() as queue:
            while True:
                if await request.is_disconnected():
                    break
                try:
                    message = await asyncio.wait_for(queue.get(), timeout=POLL_SECONDS)
                except asyncio.TimeoutError:
                    continue
                yield {
                    "event": message["type"],
                    "data": json.dumps(message, default=str),
                }

    return EventSourceResponse(event_generator())


@router.websocket("/ws")
async def websocket_events(websocket: WebSocket):
    """Same events as the SSE stream; an optional ``token`` query parameter identifies the client."""
    services: Services = websocket.app.state.services
    user_id = None
    token = bearer_token(websocket)
    if token is not None:
        try:
            user_id = decode_access_token(token, websocket.app.state.settings)
        except UnauthenticatedError:
            await websocket.close(code=4401)
            return
        bind_user_context(user_id)

    async with services.hub.subscribe() as queue:
        await websocket.accept()
        logger.info("websocket_connected", user_id=str(user_id) if user_id else None)

        async def pump():
            while True:
                message = await queue.get()
                try:
                    await websocket.send_text(json.dumps(message, default=str))
                except (WebSocketDisconnect, RuntimeError):
                    # Closed between the last receive and this send.
                    logger.debug("websocket_send_after_close", event=message.get("type"))
                    return

        sender = asyncio.create_task(pump())
        try:
            # Incoming frames are ignored; receiving detects the disconnect.
            while True:
                await websocket.receive_text()
        except WebSocketDisconnect:
            logger.info("websocket_disconnected", user_id=str(user_id) if user_id else None)
        finally:
            sender.cancel()
            with suppress(asyncio.CancelledError):
                await sender
