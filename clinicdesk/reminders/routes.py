"""
CLINICDESK Reminders — API Routes

Session login/logout drive the lifetime of the caller's reminder scheduler;
the UI polls or subscribes for its own active-reminder highlights and in-app
alerts. Every read resolves the user from the session cookie.
"""
import logging

from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse

from ..messaging.websocket import get_broadcaster
from .config import DEFAULT_CONFIG, ReminderConfig, get_all_config, get_local_now, set_config
from .models import init_reminder_schema
from .notifiers import get_alert_hub
from .scheduler_jobs import get_session_scheduler, start_session_scheduler, stop_session_scheduler

logger = logging.getLogger(__name__)

# Close code for a WebSocket opened without a logged-in session
WS_POLICY_VIOLATION = 1008


def _get_user(request: Request):
    return request.session.get("user")


def _login_required():
    return JSONResponse({"ok": False, "error": "login required"}, status_code=401)


def register_reminder_routes(app: FastAPI):
    """Register all reminder endpoints."""

    init_reminder_schema()
    ReminderConfig.init_defaults()

    @app.post("/api/session/login")
    async def api_session_login(request: Request):
        data = await request.json()
        user = str(data.get("user") or "").strip()
        if not user:
            return JSONResponse({"ok": False, "error": "user is required"}, status_code=400)

        previous = _get_user(request)
        if previous and previous != user:
            stop_session_scheduler(previous)
            get_alert_hub().clear(previous)

        request.session["user"] = user
        scheduler = start_session_scheduler(user)
        return {"ok": True, "user": user, "scheduler": scheduler.get_status()}

    @app.post("/api/session/logout")
    async def api_session_logout(request: Request):
        user = request.session.pop("user", None)
        stopped = stop_session_scheduler(user)
        if user:
            get_alert_hub().clear(user)
        return {"ok": True, "user": user, "scheduler_stopped": stopped}

    @app.get("/api/reminders/active")
    async def api_active_reminder_ids(request: Request):
        scheduler = get_session_scheduler(_get_user(request))
        ids = sorted(scheduler.active_reminder_ids) if scheduler else []
        return {"ok": True, "active_reminder_ids": ids}

    @app.get("/api/reminders/alerts")
    async def api_recent_alerts(request: Request, limit: int = 20):
        user = _get_user(request)
        if not user:
            return _login_required()
        return {"ok": True, "alerts": get_alert_hub().recent_alerts(user, limit)}

    @app.get("/api/reminders/status")
    async def api_scheduler_status(request: Request):
        scheduler = get_session_scheduler(_get_user(request))
        if scheduler is None:
            return {"ok": True, "running": False}
        return {"ok": True, **scheduler.get_status()}

    @app.get("/api/reminders/config")
    async def api_get_config(request: Request):
        config = get_all_config()
        config["current_time"] = get_local_now().isoformat(timespec="seconds")
        return config

    @app.patch("/api/reminders/config")
    async def api_update_config(request: Request):
        """Update known settings. Running schedulers keep their values until next login."""
        user = _get_user(request)
        if not user:
            return _login_required()

        data = await request.json()
        updated, ignored = [], []
        for key, value in data.items():
            if key not in DEFAULT_CONFIG:
                ignored.append(key)
                continue
            set_config(key, value, user=user)
            updated.append(key)
        return {"ok": True, "updated": updated, "ignored": ignored}

    @app.websocket("/ws/reminders")
    async def ws_reminders(websocket: WebSocket):
        user = websocket.session.get("user")
        if not user:
            await websocket.close(code=WS_POLICY_VIOLATION)
            return

        broadcaster = get_broadcaster()
        await broadcaster.connect(websocket, user)
        try:
            while True:
                await websocket.receive_text()
        except WebSocketDisconnect:
            pass
        finally:
            await broadcaster.disconnect(websocket)
