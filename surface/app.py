"""
Webhook and admin surface.

The platform talks to /webhook: a GET to prove we own the verify token,
then a POST for every batch of messaging events. The page owner talks to
/admin: who is locked, lock or unlock someone, what the watcher has caught.
"""

import logging
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.responses import FileResponse, PlainTextResponse
from pydantic import BaseModel

from agents.commands import Dispatcher, Gateway
from agents.completion import CompletionClient
from agents.messenger import MessengerGateway
from agents.watcher import NameChangeWatcher
from core.config import Settings
from core.records import InboundMessage
from core.store import ALERT_READ_LIMIT, Store

log = logging.getLogger(__name__)

ADMIN_PAGE = Path(__file__).parent / "admin.html"


# ─── Request schemas ──────────────────────────────────────────────────────────

class ToggleLock(BaseModel):
    psid: str
    lock: bool


# ─── App ──────────────────────────────────────────────────────────────────────

def create_app(
    settings: Settings,
    store: Optional[Store] = None,
    gateway: Optional[Gateway] = None,
    completion: Optional[CompletionClient] = None,
) -> FastAPI:
    """
    Build the app. Anything not passed in is built from settings and
    closed again on shutdown.
    """
    owned: list = []
    store = store or Store(settings.db_path)
    if gateway is None:
        gateway = MessengerGateway(settings.page_access_token, settings.graph_url)
        owned.append(gateway)
    if completion is None and settings.openai_api_key:
        completion = CompletionClient(settings.openai_api_key, model=settings.openai_model)
        owned.append(completion)

    dispatcher = Dispatcher(store, gateway, completion)
    watcher = NameChangeWatcher(
        store,
        gateway,
        admin_psid=settings.admin_psid,
        interval_minutes=settings.poll_interval_min,
    )

    app = FastAPI(
        title="Messenger Convo Bot",
        description="Page webhook, chat commands and locked-name alerts.",
        version="0.1.0",
    )
    app.state.store = store
    app.state.dispatcher = dispatcher
    app.state.watcher = watcher

    @app.on_event("startup")
    async def startup():
        await store.init()
        watcher.start()

    @app.on_event("shutdown")
    async def shutdown():
        await watcher.stop()
        for client in owned:
            await client.close()

    # ─── Webhook ──────────────────────────────────────────────────────────────

    @app.get("/webhook")
    async def verify(request: Request):
        mode = request.query_params.get("hub.mode")
        token = request.query_params.get("hub.verify_token")
        challenge = request.query_params.get("hub.challenge", "")
        if mode and token == settings.verify_token:
            return PlainTextResponse(challenge)
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Verification failed.")

    @app.post("/webhook")
    async def receive(request: Request):
        """
        Take a batch of events from the platform.

        Each event is handled on its own. One that blows up is logged and
        the rest of the batch still runs; the platform always gets a 200
        for a page batch so it doesn't redeliver.
        """
        try:
            body = await request.json()
        except ValueError:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Body must be JSON.")

        if not isinstance(body, dict) or body.get("object") != "page":
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not a page event.")

        entries = body.get("entry") or []
        if not isinstance(entries, list):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="entry must be a list.")

        for entry in entries:
            events = entry.get("messaging") if isinstance(entry, dict) else None
            if not isinstance(events, list):
                log.warning("Skipping entry without messaging list: %r", entry)
                continue
            for event in events:
                await _handle_event(dispatcher, event)

        return PlainTextResponse("EVENT_RECEIVED")

    # ─── Admin ────────────────────────────────────────────────────────────────

    @app.get("/admin/locks")
    async def list_locks():
        return [u.to_dict() for u in await store.list_users()]

    @app.post("/admin/toggle-lock")
    async def toggle_lock(body: ToggleLock):
        user = await store.set_lock(body.psid, body.lock)
        log.info("User %s %s", user.psid, "locked" if user.name_locked else "unlocked")
        return {"ok": True}

    @app.get("/admin/alerts")
    async def list_alerts():
        return [a.to_dict() for a in await store.recent_alerts(ALERT_READ_LIMIT)]

    @app.get("/admin")
    async def admin_page():
        return FileResponse(ADMIN_PAGE)

    @app.get("/")
    async def health():
        return PlainTextResponse("FB Messenger Convo Bot running")

    return app


async def _handle_event(dispatcher: Dispatcher, event) -> None:
    sender = (event.get("sender") or {}).get("id") if isinstance(event, dict) else None
    if not sender:
        log.warning("Skipping event without sender: %r", event)
        return

    if "message" in event:
        try:
            await dispatcher.handle_message(InboundMessage.from_event(event))
        except Exception:
            log.exception("Failed to handle message from %s", sender)
    elif "postback" in event:
        log.info("Ignoring postback from %s: %r", sender, (event["postback"] or {}).get("payload"))
