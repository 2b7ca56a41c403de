import sys
import os
sys.path.append(os.path.dirname(os.path.abspath(__file__)))

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from isagip.shared import config
from isagip.shared.db import close_db, init_db
from isagip.shared.errors import IsagipError
from isagip.shared.response import error_response, success_response
from isagip.shared.schema import create_tables
from isagip.shared.seed import seed_data
from isagip.shared.store import MemoryStore, PostgresStore, get_store, has_store, set_store
from isagip.access.router import router as access_router
from isagip.ambulances.router import router as ambulances_router
from isagip.auth.router import router as auth_router
from isagip.map.router import router as map_router
from isagip.notifications.router import router as notifications_router
from isagip.registration.router import router as registration_router
from isagip.reports.router import router as reports_router
from isagip.settings.router import router as settings_router

logger = logging.getLogger("main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Pick the record store, create tables and seed data on startup"""
    owns_db = False
    if not has_store():
        if config.STORE_BACKEND == "postgres":
            await init_db(config.DATABASE_URL)
            await create_tables()
            owns_db = True
            set_store(PostgresStore())
        else:
            logger.info("Running with the in-memory record store (local-only mode)")
            set_store(MemoryStore())
    await seed_data(get_store())
    yield
    if owns_db:
        await close_db()


app = FastAPI(title="iSagip Barangay Response API", lifespan=lifespan)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(IsagipError)
async def handle_isagip_error(request: Request, exc: IsagipError):
    return error_response(exc.message, exc.status_code, exc.payload())


@app.middleware("http")
async def no_store(request: Request, call_next):
    """Dashboards must never show a cached snapshot"""
    response = await call_next(request)
    if request.url.path.startswith("/api"):
        response.headers["Cache-Control"] = "no-store"
        response.headers["Pragma"] = "no-cache"
    return response


# Include routers
app.include_router(auth_router, prefix="/api/auth")
app.include_router(access_router, prefix="/api/access")
app.include_router(reports_router, prefix="/api/reports")
app.include_router(ambulances_router, prefix="/api/ambulances")
app.include_router(registration_router, prefix="/api/registration")
app.include_router(settings_router, prefix="/api/settings")
app.include_router(map_router, prefix="/api/map")
app.include_router(notifications_router, prefix="/api/notifications")


@app.get("/api/status")
async def backend_status():
    """Whether the record store is reachable; drives the read-only banner"""
    available = get_store().available
    return success_response({"backend_available": available, "read_only": not available}, "Status retrieved")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
