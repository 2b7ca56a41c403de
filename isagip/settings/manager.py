import logging
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from isagip.access import manager as access
from isagip.shared.errors import ValidationError
from isagip.shared.store import RecordStore
from .models import Preferences, PreferencesUpdate

logger = logging.getLogger("settings.manager")

COLLECTION = "preferences"


async def get_preferences(store: RecordStore, identity: str) -> Preferences:
    """Stored preferences for an identity, defaults when none were saved"""
    raw = await store.read_record(COLLECTION, identity)
    if raw is None:
        return Preferences(identity=identity)
    return Preferences.model_validate(raw)


async def update_preferences(store: RecordStore, session, changes: PreferencesUpdate) -> Preferences:
    """Save preference changes for the session's identity.

    A default landing page is only accepted when the session's role may open it.
    """
    logger.info(f"Updating preferences for '{session.identity}': {changes.model_dump(exclude_none=True)}")
    updates = changes.model_dump(exclude_none=True)
    landing = updates.get("default_landing")
    if landing and not access.is_page_allowed(session.role, landing):
        logger.warning(f"Rejected default landing '{landing}' for role '{session.role.value}'")
        raise ValidationError(f"'{landing}' is not available for your role.", field="default_landing")
    zone = updates.get("timezone")
    if zone is not None:
        try:
            ZoneInfo(zone)
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning(f"Rejected unknown timezone '{zone}' for '{session.identity}'")
            raise ValidationError(f"Unknown timezone '{zone}'.", field="timezone")

    async with store.transaction():
        current = await get_preferences(store, session.identity)
        merged = current.model_copy(update=updates)
        ack = await store.write_record(COLLECTION, session.identity, merged.model_dump(mode="json"))
    merged.version = ack["version"]
    logger.info(f"Preferences saved for '{session.identity}'")
    return merged
