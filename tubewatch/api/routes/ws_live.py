"""WebSocket endpoint for live keyword subscriptions.

Clients connect to ``/ws`` and send ``{"type": "init", "keywords": [...]}``
as their first message. New videos for those keywords are then pushed as
``video`` messages, with ``heartbeat`` messages in between.
"""

from fastapi import APIRouter, WebSocket

from tubewatch.api.dependencies import get_live_service

router = APIRouter()


@router.websocket("/ws")
async def ws_live(ws: WebSocket) -> None:
    """Live new-video feed for the keywords named in the init message."""
    service = get_live_service()
    if service is None:
        await ws.close(code=1011, reason="Live feed not available")
        return

    await service.serve(ws)
