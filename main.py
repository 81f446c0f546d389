# ================================================================
# CLINICDESK — Clinic Backend Entry Point
# Reminder notifications (scheduler, in-app alerts, highlights)
# ================================================================

from fastapi import FastAPI
from starlette.middleware.sessions import SessionMiddleware

import asyncio
import logging
import os

from clinicdesk.messaging.websocket import get_broadcaster
from clinicdesk.reminders import register_reminder_routes, stop_all_session_schedulers
from clinicdesk.reminders.notifiers import get_alert_hub

logging.basicConfig(
    level=os.environ.get("CLINIC_LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)-8s %(name)s - %(message)s",
)
logger = logging.getLogger("clinicdesk")

# ================================================================
# FASTAPI APP
# ================================================================

clinic_app = FastAPI(title="ClinicDesk")
app = clinic_app
clinic_app.add_middleware(
    SessionMiddleware,
    secret_key=os.environ.get("CLINIC_SESSION_SECRET", "clinicdesk-dev-secret"),
)

register_reminder_routes(app)


@app.on_event("startup")
async def _startup():
    # In-app alerts are raised from scheduler threads and pushed on this loop
    get_alert_hub().bind(get_broadcaster(), asyncio.get_running_loop())
    logger.info("ClinicDesk backend startup")


@app.on_event("shutdown")
async def _shutdown():
    stop_all_session_schedulers()
    get_alert_hub().unbind()
    logger.info("ClinicDesk backend shutdown")


@app.get("/api/health")
async def health():
    return {"ok": True}
