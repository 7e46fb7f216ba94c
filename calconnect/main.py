from __future__ import annotations
import logging
from contextlib import asynccontextmanager
from typing import Dict, List, Optional

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException, Request
from pydantic import BaseModel

from calconnect.config import load_config
from calconnect.errors import (
    AuthorizationError,
    CalendarError,
    InvalidDateTimeError,
    InvalidIntervalError,
    MissingProviderTokenError,
    NotRegisteredError,
)
from calconnect.services.calendar import CalendarService

log = logging.getLogger("calconnect.app")


class CreateEventBody(BaseModel):
    user_id: str
    summary: str
    start: str
    end: str
    timezone: str
    description: Optional[str] = None
    attendees: Optional[List[Dict[str, str]]] = None
    calendar_id: Optional[str] = None


def _http_error(e: CalendarError) -> HTTPException:
    if isinstance(e, (NotRegisteredError, MissingProviderTokenError)):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, AuthorizationError):
        return HTTPException(status_code=401, detail=str(e))
    if isinstance(e, (InvalidDateTimeError, InvalidIntervalError)):
        return HTTPException(status_code=400, detail=str(e))
    return HTTPException(status_code=502, detail=str(e))


def create_app(service: Optional[CalendarService] = None, auto_start_job: Optional[bool] = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Load .env and build the service when one was not handed in
        svc = service
        start_job = auto_start_job
        if svc is None:
            load_dotenv()
            cfg = load_config()
            logging.basicConfig(level=cfg.log_level)
            svc = CalendarService(cfg.provider, cfg.credentials, cfg.database_url,
                                  refresh_interval=cfg.refresh_interval)
            if start_job is None:
                start_job = cfg.auto_start_job
        app.state.calendar = svc
        if start_job:
            svc.start_job()
        try:
            yield
        finally:
            # Stop the refresh job (and an owned store) on shutdown
            svc.close()

    app = FastAPI(title="Calendar connector", lifespan=lifespan)

    def calendar(request: Request) -> CalendarService:
        return request.app.state.calendar

    @app.get("/healthz")
    async def healthz():
        return {"ok": True}

    @app.get("/connect")
    def connect(request: Request):
        return {"url": calendar(request).connect()}

    @app.get("/auth/callback")
    def auth_callback(request: Request, user_id: str, code: Optional[str] = None):
        if not code:
            raise HTTPException(status_code=400, detail="No authorization code provided.")
        try:
            tokens = calendar(request).access(code, user_id)
        except CalendarError as e:
            log.warning("Authorization failed for user %s: %s", user_id, e)
            raise _http_error(e)
        return {"status": "ok", "scope": tokens.get("scope")}

    @app.get("/events")
    def list_events(request: Request, user_id: str, start_date: str, end_date: str,
                    timezone: str = "UTC", calendar_id: Optional[str] = None):
        try:
            slots = calendar(request).get_events_in_range(user_id, start_date, end_date, timezone, calendar_id)
        except CalendarError as e:
            raise _http_error(e)
        return {"success": True, "data": [s.to_dict() for s in slots]}

    @app.post("/events", status_code=201)
    def create_event(request: Request, body: CreateEventBody):
        try:
            result = calendar(request).create_event(
                body.user_id, body.summary, body.start, body.end, body.timezone,
                body.description, body.attendees, body.calendar_id,
            )
        except CalendarError as e:
            raise _http_error(e)
        return {"success": True, "data": result.to_dict()}

    @app.post("/jobs/start")
    def start_job(request: Request):
        calendar(request).start_job()
        return {"status": "started"}

    @app.post("/jobs/stop")
    def stop_job(request: Request):
        calendar(request).stop_job()
        return {"status": "stopped"}

    @app.post("/trigger")
    def trigger(request: Request):
        summary = calendar(request).adapter.job.run_once()
        return {"status": "ok", **summary}

    return app


app = create_app()
