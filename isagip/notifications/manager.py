import json
import logging
from typing import Dict, List, Optional

import firebase_admin
from firebase_admin import credentials, exceptions, messaging
from starlette.concurrency import run_in_threadpool

from isagip.access import manager as access
from isagip.access.models import Capability
from isagip.shared import config
from isagip.shared.store import RecordStore
from .utils import manager, topic_for_identity, topic_staff

logger = logging.getLogger("notifications.manager")

_firebase_app = None


def _firebase() -> Optional[firebase_admin.App]:
    """Initialise Firebase on first use; None when no credentials are configured"""
    global _firebase_app
    if _firebase_app is not None:
        return _firebase_app
    if not config.FIREBASE_CREDENTIALS:
        return None
    cred = credentials.Certificate(json.loads(config.FIREBASE_CREDENTIALS))
    _firebase_app = firebase_admin.initialize_app(cred, name="isagip")
    logger.info("Firebase app initialised for push notifications")
    return _firebase_app


async def notify_identity(identity: str, event: str, data: Dict) -> None:
    logger.info(f"Sending notification to '{identity}': event={event}")
    await manager.broadcast(topic_for_identity(identity), {"event": event, "data": data})


async def notify_staff(event: str, data: Dict) -> int:
    logger.info(f"Broadcasting to staff: event={event}, data={data}")
    return await manager.broadcast(topic_staff(), {"event": event, "data": data})


async def staff_fcm_tokens(store: RecordStore) -> List[str]:
    """Push tokens of accounts whose role handles incoming reports"""
    tokens = []
    for account in await store.list_records("accounts"):
        token = account.get("fcm_token")
        if token and access.can(access.normalize_role(account.get("role")), Capability.MANAGE_REPORTS):
            tokens.append(token)
    return tokens


async def send_push(tokens: List[str], title: str, body: str, data: Dict) -> Optional[int]:
    """Best-effort FCM multicast; returns the success count, None when push is off"""
    app = _firebase()
    if app is None:
        logger.debug("FIREBASE_CREDENTIALS not set, skipping push")
        return None
    if not tokens:
        logger.warning("No FCM tokens to send push notifications.")
        return 0
    message = messaging.MulticastMessage(
        notification=messaging.Notification(title=title, body=body),
        data={k: str(v) for k, v in data.items()},
        tokens=tokens,
    )
    try:
        response = await run_in_threadpool(messaging.send_each_for_multicast, message, app=app)
    except (exceptions.FirebaseError, ValueError) as e:
        logger.error(f"Error sending push notifications: {e}", exc_info=True)
        return 0
    logger.info(f"Push notifications sent: {response.success_count} sent, {response.failure_count} failed.")
    return response.success_count


async def notify_new_report(store: RecordStore, report) -> None:
    """Tell connected staff and their devices that a report came in"""
    data = {
        "id": report.id,
        "type": report.type.value,
        "description": report.description,
        "street": report.street,
        "status": report.status.value,
    }
    await notify_staff("new_report", data)
    tokens = await staff_fcm_tokens(store)
    await send_push(tokens, f"New {report.type.value} report", report.description, data)
