"""
Name-change watcher.

Locked users are supposed to keep their display name. On a timer, the
watcher asks the platform what each locked user is called now and compares
it with what we saw last. A difference becomes an Alert and a message to
the admin.

The first name we ever see for a user is a baseline, not a change.
"""

import asyncio
import logging
from typing import Optional

from core.config import MIN_POLL_SECONDS
from core.records import Alert, User
from core.store import Store

from .commands import Gateway
from .messenger import text_message

log = logging.getLogger(__name__)


def format_alert(alert: Alert) -> str:
    return (
        f'ALERT: User {alert.psid} changed name from '
        f'"{alert.old_name}" to "{alert.new_name}"'
    )


class NameChangeWatcher:
    def __init__(
        self,
        store: Store,
        gateway: Gateway,
        admin_psid: str = "",
        interval_minutes: int = 10,
    ):
        self.store = store
        self.gateway = gateway
        self.admin_psid = admin_psid
        self.interval_seconds = max(MIN_POLL_SECONDS, interval_minutes * 60)
        self._task: Optional[asyncio.Task] = None

    # ─── One pass ─────────────────────────────────────────────────────────────

    async def check_user(self, user: User) -> Optional[Alert]:
        current = await self.gateway.fetch_display_name(user.psid)
        if not current:
            log.warning("Could not fetch name for locked user %s, skipping", user.psid)
            return None

        if not user.last_known_name:
            await self.store.set_last_known_name(user.psid, current)
            return None

        if current == user.last_known_name:
            return None

        alert = await self.store.add_alert(user.psid, user.last_known_name, current)
        if self.admin_psid:
            await self.gateway.send_message(self.admin_psid, text_message(format_alert(alert)))
        await self.store.set_last_known_name(user.psid, current)
        log.info("User %s renamed %r -> %r", user.psid, alert.old_name, alert.new_name)
        return alert

    async def run_once(self) -> list[Alert]:
        """Scan every locked user once. Returns the alerts raised."""
        alerts: list[Alert] = []
        for user in await self.store.list_locked_users():
            try:
                alert = await self.check_user(user)
            except Exception:
                # One bad user shouldn't stop the scan for the rest
                log.warning("Poll error for %s", user.psid, exc_info=True)
                continue
            if alert is not None:
                alerts.append(alert)
        return alerts

    # ─── Lifecycle ────────────────────────────────────────────────────────────

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                await self.run_once()
            except Exception:
                log.exception("Locked-user poll failed")

    def start(self) -> None:
        if self._task is not None and not self._task.done():
            return
        self._task = asyncio.create_task(self._loop())
        log.info("Watching locked users every %ss", self.interval_seconds)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()
