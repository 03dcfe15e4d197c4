import asyncio

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from facilitator.container import Container
from facilitator.routes.deps import get_container, get_ws_container
from facilitator.services.responses import view_doc

router = APIRouter(tags=["responses"])


@router.get("/api/sessions/{session_id}/slides/{slide_id}/responses")
async def list_responses(
    session_id: str,
    slide_id: str,
    container: Container = Depends(get_container),
) -> list[dict]:
    """Committed responses, oldest first, followed by the in-flight preview if any."""
    items = await container.responses.visible_responses(session_id, slide_id)
    return [view_doc(i) for i in items]


@router.websocket("/ws/sessions/{session_id}/slides/{slide_id}/responses")
async def responses_websocket(
    websocket: WebSocket,
    session_id: str,
    slide_id: str,
    container: Container = Depends(get_ws_container),
) -> None:
    """Push the visible response list every time it changes."""
    await websocket.accept()
    queue: asyncio.Queue = asyncio.Queue()
    subscription = container.responses.subscribe_to_responses(
        session_id, slide_id, queue.put_nowait, queue.put_nowait
    )

    async def sender() -> None:
        while True:
            item = await queue.get()
            if isinstance(item, Exception):
                await websocket.send_json({"type": "error", "detail": str(item)})
                continue
            await websocket.send_json(
                {"type": "responses", "responses": [view_doc(i) for i in item]}
            )

    send_task = asyncio.create_task(sender())
    try:
        while True:
            await websocket.receive_text()  # keep-alive; client sends pings
    except WebSocketDisconnect:
        pass
    finally:
        subscription.cancel()
        send_task.cancel()
        await asyncio.gather(send_task, return_exceptions=True)
