import asyncio
import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect, status
from pydantic import BaseModel, Field

from isagip.access import manager as access
from isagip.access.models import Capability
from isagip.auth.manager import get_session, require_capability
from isagip.auth.models import Session
from isagip.shared.errors import IsagipError
from isagip.shared.response import serialize_data, success_response
from isagip.shared.store import get_store
from .manager import notify_staff
from .utils import SUBSCRIBABLE, manager, topic_for_identity, topic_staff

logger = logging.getLogger("notifications.router")

router = APIRouter()

HIDDEN_FIELDS = ("password_hash",)


class StaffNotice(BaseModel):
    event: str
    data: Dict[str, Any] = Field(default_factory=dict)


def _public(record: dict) -> dict:
    return {k: v for k, v in record.items() if k not in HIDDEN_FIELDS}


async def _stream(websocket: WebSocket, store, collection: str) -> None:
    async for snapshot in store.subscribe(collection):
        await websocket.send_json({
            "event": "snapshot",
            "collection": collection,
            "records": serialize_data([_public(r) for r in snapshot]),
        })


@router.websocket("/ws")
async def ws_notifications(
    websocket: WebSocket,
    token: str = Query(""),
    collection: str = Query("reports"),
):
    """Live record snapshots for one collection, plus staff notices"""
    store = get_store()
    try:
        session = await get_session(store, token)
    except IsagipError as e:
        logger.warning(f"WebSocket rejected: {e.message}")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason=e.message)
        return

    capability = SUBSCRIBABLE.get(collection)
    if capability is None or not access.can(session.role, capability):
        logger.warning(f"'{session.identity}' may not subscribe to '{collection}'")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason="Subscription not allowed")
        return

    await websocket.accept()
    topics = [topic_for_identity(session.identity)]
    if access.can(session.role, Capability.MANAGE_REPORTS):
        topics.append(topic_staff())
    for topic in topics:
        await manager.connect(websocket, topic)

    streamer = asyncio.create_task(_stream(websocket, store, collection))
    try:
        while True:
            # Keep connection alive; messages from client are ignored
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.info(f"WebSocket for '{session.identity}' on '{collection}' closed")
    finally:
        streamer.cancel()
        for topic in topics:
            await manager.disconnect(websocket, topic)


@router.post("/broadcast")
async def send_staff_notice(
    notice: StaffNotice,
    session: Session = Depends(require_capability(Capability.MANAGE_REPORTS, write=True)),
):
    """Push a notice to every connected staff dashboard"""
    delivered = await notify_staff(notice.event, {**notice.data, "sent_by": session.identity})
    return success_response({"delivered": delivered}, "Notice sent")
