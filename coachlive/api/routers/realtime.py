"""Live event stream of a session over WebSocket.

Clients connect to ``/ws/session/{session_id}`` and receive every event the
session publishes from then on, one JSON object per text frame:

    {"session_id": "se_...", "event": "user_joined", "seq": 3,
     "payload": {...}, "published_at": "..."}

The stream is read-only. It closes after ``session_ended`` or when the
client falls too far behind.
"""

import anyio
from anyio.abc import TaskGroup
from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect, status
from loguru import logger
from starlette.websockets import WebSocketState

from coachlive.api.dependency import get_coordinator
from coachlive.domain.session.broadcaster import SessionEventType, Subscription
from coachlive.domain.session.coordinator import SessionCoordinator
from coachlive.domain.session.session_state_machine import SessionStateMachine
from coachlive.utils.app_errors import AppError

router = APIRouter(prefix="/ws", tags=["Realtime"])

# Application-defined close codes (4000-4999)
CLOSE_SESSION_NOT_FOUND = 4404
CLOSE_SESSION_ENDED = 4409


async def _forward_events(websocket: WebSocket, subscription: Subscription) -> int:
    async for event in subscription:
        await websocket.send_text(event.model_dump_json())
        if event.event == SessionEventType.SESSION_ENDED:
            return status.WS_1000_NORMAL_CLOSURE
    # Subscription closed by the broadcaster: consumer too slow
    return status.WS_1013_TRY_AGAIN_LATER


async def _wait_for_disconnect(websocket: WebSocket) -> None:
    while True:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            return


@router.websocket("/session/{session_id}")
async def session_events(
    websocket: WebSocket,
    session_id: str,
    user_id: str | None = Query(default=None, description="Optional user id, used to label the subscriber"),
    coordinator: SessionCoordinator = Depends(get_coordinator),
):
    broadcaster = coordinator.broadcaster
    # Subscribe before reading the session; an event published meanwhile stays queued
    subscription = broadcaster.subscribe(session_id)
    try:
        session = await coordinator.get_session(session_id)
    except AppError as e:
        broadcaster.unsubscribe(subscription)
        await websocket.close(code=CLOSE_SESSION_NOT_FOUND, reason=e.errmesg)
        return

    if SessionStateMachine.is_terminal(session.status):
        broadcaster.unsubscribe(subscription)
        await websocket.close(code=CLOSE_SESSION_ENDED, reason=f"Session has ended: {session_id}")
        return

    await websocket.accept()
    logger.info(f"WS subscriber {subscription.subscriber_id} (user={user_id}) joined session {session_id}")

    close_code: int | None = None

    async def forward(task_group: TaskGroup) -> None:
        nonlocal close_code
        try:
            close_code = await _forward_events(websocket, subscription)
        except (WebSocketDisconnect, RuntimeError) as e:
            logger.debug(f"WS send to {subscription.subscriber_id} failed: {type(e).__name__}: {e}")
        task_group.cancel_scope.cancel()

    try:
        async with anyio.create_task_group() as task_group:
            task_group.start_soon(forward, task_group)
            await _wait_for_disconnect(websocket)
            task_group.cancel_scope.cancel()
    finally:
        broadcaster.unsubscribe(subscription)

    if close_code is not None and websocket.application_state == WebSocketState.CONNECTED:
        await websocket.close(code=close_code)
    logger.info(f"WS subscriber {subscription.subscriber_id} left session {session_id} (close={close_code})")
