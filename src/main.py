import logging
import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

import config
from create_tables import create_tables
from database import SessionLocal

from modules.contracts.job import start_certificate_reminder_job
from modules.contracts.models import User, UserRole
from modules.auth.services.auth_service import AuthService
from modules.auth.controllers.auth_controller import router as auth_router
from modules.notifications.controllers.notification_controller import router as notification_router
from modules.contracts.controllers.contract_controller import router as contract_router
from modules.contracts.controllers.signature_controller import router as signature_router

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    # --- Startup logic ---
    logger.info("Starting application")
    create_tables()
    scheduler = None
    if config.ENABLE_SCHEDULER:
        scheduler = start_certificate_reminder_job()
        logger.info("Certificate expiry reminder job started")
    if config.SEED_DEMO_DATA:
        _seed_demo_data()
    yield
    # --- Shutdown logic ---
    if scheduler:
        scheduler.shutdown(wait=False)
    logger.info("Application stopped")

def _seed_demo_data():
    """Creates one artist, one venue and one admin with known passwords."""
    with SessionLocal() as session:
        if session.query(User).count() > 0:
            logger.info("Demo data already present")
            return

        artist = User(
            name="Demo Artist",
            email="artist@ologywood.dev",
            password_hash=AuthService.get_password_hash("artist123"),
            role=UserRole.ARTIST,
            is_active=True
        )
        venue = User(
            name="Demo Venue",
            email="venue@ologywood.dev",
            password_hash=AuthService.get_password_hash("venue123"),
            role=UserRole.VENUE,
            is_active=True
        )
        admin = User(
            name="Demo Admin",
            email="admin@ologywood.dev",
            password_hash=AuthService.get_password_hash("admin123"),
            role=UserRole.ADMIN,
            is_active=True
        )
        session.add_all([artist, venue, admin])
        session.commit()

        logger.info("Demo users created: %s, %s, %s", artist.email, venue.email, admin.email)

app = FastAPI(
    title="Ologywood Contracts",
    description="Contract signing and signature verification for artist and venue bookings",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
    allow_headers=[
        "Accept",
        "Accept-Language",
        "Content-Language",
        "Content-Type",
        "Authorization",
        "X-Requested-With",
        "Origin",
    ],
    max_age=86400,
)
# Routers
app.include_router(auth_router)
app.include_router(notification_router, prefix="/notifications", tags=["notifications"])
app.include_router(contract_router)
app.include_router(signature_router)

if __name__ == "__main__":
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
