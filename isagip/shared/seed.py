import logging
from datetime import datetime, timezone

from passlib.context import CryptContext

from isagip.ambulances.models import Ambulance
from isagip.auth.models import Account, AccountProfile
from isagip.registration.models import RegistrationRequest, RequestKind, Resident, ResidentStatus
from isagip.reports.models import Coordinates, HistoryEntry, Report
from . import config
from .store import RecordStore
from .utils import parse_timestamp

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

logger = logging.getLogger("shared.seed")

DEFAULT_ACCOUNTS = [
    # username, password, role, first, last
    ("admin", "pass", "system_admin", "System", "Administrator"),
    ("staff", "pass", "barangay_staff", "Barangay", "Staff"),
    ("tv", "pass", "live_viewer", "Live", "Viewer"),
]

DEFAULT_AMBULANCES = [("AMB-1", "Ambulance 1"), ("AMB-2", "Ambulance 2"), ("AMB-3", "Ambulance 3")]

DEMO_REPORTS = [
    ("REP-2024-002", "Fire", "Kitchen fire, smoke visible", "Relayed", "Block 3, Lot 5",
     "Beside Barangay Hall", "Alice", "2024-03-20 10:15 AM", (14.748, 121.02)),
    ("REP-2024-003", "Police", "Suspicious activity reported", "Pending", "Block 2, Lot 1",
     "Near parking Lot", "Bob", "2024-03-20 09:45 AM", (14.745, 121.01)),
    ("REP-2024-004", "Medical", "Child with high fever", "Pending", "Block 4, Lot 7",
     "Green Gate 2 floors house", "Carol", "2024-03-21 08:10 AM", (14.753, 121.013)),
    ("REP-2025-001", "Medical", "Chest pain", "Ongoing", "Block 1, Lot 2",
     "Near alley", "Dan", "2025-01-05 08:30 PM", (14.7338466, 121.01382136)),
]

DEMO_RESIDENTS = [
    ("john_doe", "John", "Doe", "john@example.com", "1234567890", "123 Main St"),
    ("jane_smith", "Jane", "Smith", "jane@example.com", "2345678901", ""),
    ("maria_lee", "Maria", "Lee", "maria@example.com", "3456789012", ""),
]


async def _put(store: RecordStore, collection: str, record_id: str, model) -> None:
    # Stored through the model so every filterable field is present
    await store.write_record(collection, record_id, model.model_dump(mode="json", exclude={"version"}))


async def is_collection_empty(store: RecordStore, collection: str) -> bool:
    return not await store.list_records(collection)


async def seed_accounts(store: RecordStore) -> None:
    if not await is_collection_empty(store, "accounts"):
        logger.info("Accounts already present. Skipping account seeding.")
        return
    now = datetime.now(timezone.utc)
    for username, password, role, first, last in DEFAULT_ACCOUNTS:
        logger.info(f"Seeding account '{username}' ({role})")
        await _put(store, "accounts", username, Account(
            username=username,
            email=f"{username}@isagip.local",
            password_hash=pwd_context.hash(password),
            role=role,
            profile=AccountProfile(first=first, last=last),
            created_at=now,
        ))


async def seed_ambulances(store: RecordStore) -> None:
    if not await is_collection_empty(store, "ambulances"):
        logger.info("Ambulances already present. Skipping ambulance seeding.")
        return
    for ambulance_id, name in DEFAULT_AMBULANCES:
        await _put(store, "ambulances", ambulance_id, Ambulance(id=ambulance_id, name=name))
    await store.write_record("counters", "ambulances", {"value": len(DEFAULT_AMBULANCES)})
    logger.info(f"Seeded {len(DEFAULT_AMBULANCES)} ambulances")


async def seed_demo_data(store: RecordStore) -> None:
    """Sample reports, residents and a pending profile update for the dashboard"""
    if await is_collection_empty(store, "reports"):
        for report_id, type_, description, status, street, landmark, reporter, ts, (lat, lng) in DEMO_REPORTS:
            created = parse_timestamp(ts)
            await _put(store, "reports", report_id, Report(
                id=report_id,
                type=type_,
                description=description,
                status=status,
                street=street,
                landmark=landmark,
                location=Coordinates(lat=lat, lng=lng),
                reported_by=reporter,
                created_at=created,
                last_updated_by=reporter,
                last_updated_at=created,
                history=[HistoryEntry(timestamp=created, actor=reporter, action="Created",
                                      details=f"{type_} report received.")],
            ))
        logger.info(f"Seeded {len(DEMO_REPORTS)} demo reports")

    if await is_collection_empty(store, "residents"):
        now = datetime.now(timezone.utc)
        for username, first, last, email, contact, address in DEMO_RESIDENTS:
            await _put(store, "residents", username, Resident(
                username=username, first=first, last=last, email=email, contact=contact,
                status=ResidentStatus.ACTIVE, address=address,
                password_hash=pwd_context.hash("pass"), created_at=now,
            ))
        await _put(store, "requests", "REQ-0001", RegistrationRequest(
            id="REQ-0001",
            kind=RequestKind.PROFILE_UPDATE,
            target_username="john_doe",
            email="john.new@example.com",
            changes={"email": "john.new@example.com", "contact": "6391112223333"},
            requested_at=parse_timestamp("2025-09-10 09:15 PM"),
        ))
        await store.write_record("counters", "requests", {"value": 1})
        logger.info(f"Seeded {len(DEMO_RESIDENTS)} demo residents and 1 pending update")


async def seed_data(store: RecordStore) -> None:
    """Seed default accounts and ambulances, plus demo records when enabled"""
    logger.info("Starting record store seeding process.")
    async with store.transaction():
        await seed_accounts(store)
        await seed_ambulances(store)
        if config.SEED_DEMO_DATA:
            await seed_demo_data(store)
    logger.info("Seeding complete.")
