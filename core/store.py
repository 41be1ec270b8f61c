"""
Store — SQLite-backed persistence for users, alerts and XP.

One Store per process. The app builds it and hands it to the dispatcher
and the watcher; nobody reaches for a module-level handle.

Every call opens its own connection. Writes are single-row upserts or
increments, so the dispatcher and the watcher can interleave freely.
"""

from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import aiosqlite

from .records import Alert, User

ALERT_READ_LIMIT = 200


# ─── Schema ───────────────────────────────────────────────────────────────────

_SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    psid             TEXT PRIMARY KEY,
    nickname         TEXT,
    last_known_name  TEXT,
    name_locked      INTEGER NOT NULL DEFAULT 0,
    lock_since       TEXT
);

CREATE TABLE IF NOT EXISTS alerts (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    psid        TEXT NOT NULL,
    old_name    TEXT,
    new_name    TEXT,
    created_at  TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS xp (
    psid    TEXT PRIMARY KEY,
    points  INTEGER NOT NULL DEFAULT 0
);
"""


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _row_to_user(row) -> User:
    return User(
        psid=row["psid"],
        nickname=row["nickname"],
        last_known_name=row["last_known_name"],
        name_locked=bool(row["name_locked"]),
        lock_since=datetime.fromisoformat(row["lock_since"]) if row["lock_since"] else None,
    )


def _row_to_alert(row) -> Alert:
    return Alert(
        id=row["id"],
        psid=row["psid"],
        old_name=row["old_name"],
        new_name=row["new_name"],
        created_at=datetime.fromisoformat(row["created_at"]),
    )


class Store:
    def __init__(self, path: Path):
        self.path = Path(path)

    async def init(self) -> None:
        async with aiosqlite.connect(self.path) as db:
            await db.executescript(_SCHEMA)
            await db.commit()

    # ─── Users ────────────────────────────────────────────────────────────────

    async def get_user(self, psid: str) -> Optional[User]:
        async with aiosqlite.connect(self.path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute("SELECT * FROM users WHERE psid = ?", (psid,)) as cur:
                row = await cur.fetchone()
        if not row:
            return None
        return _row_to_user(row)

    async def create_user(self, psid: str, last_known_name: Optional[str] = None) -> User:
        """Insert a user if absent. An existing row is left untouched."""
        async with aiosqlite.connect(self.path) as db:
            await db.execute(
                "INSERT OR IGNORE INTO users (psid, last_known_name) VALUES (?, ?)",
                (psid, last_known_name),
            )
            await db.commit()
        return await self.get_user(psid)

    async def list_users(self) -> list[User]:
        async with aiosqlite.connect(self.path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute("SELECT * FROM users ORDER BY psid") as cur:
                rows = await cur.fetchall()
        return [_row_to_user(r) for r in rows]

    async def list_locked_users(self) -> list[User]:
        async with aiosqlite.connect(self.path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute("SELECT * FROM users WHERE name_locked = 1") as cur:
                rows = await cur.fetchall()
        return [_row_to_user(r) for r in rows]

    async def set_nickname(self, psid: str, nickname: str) -> None:
        async with aiosqlite.connect(self.path) as db:
            await db.execute(
                """INSERT INTO users (psid, nickname) VALUES (?, ?)
                   ON CONFLICT(psid) DO UPDATE SET nickname = excluded.nickname""",
                (psid, nickname),
            )
            await db.commit()

    async def get_nickname(self, psid: str) -> Optional[str]:
        user = await self.get_user(psid)
        return user.nickname if user else None

    async def set_lock(self, psid: str, locked: bool) -> User:
        """
        Lock or unlock a user, creating the row if needed.
        lock_since is reset on every toggle, in either direction.
        """
        async with aiosqlite.connect(self.path) as db:
            await db.execute(
                """INSERT INTO users (psid, name_locked, lock_since) VALUES (?, ?, ?)
                   ON CONFLICT(psid) DO UPDATE SET
                       name_locked = excluded.name_locked,
                       lock_since = excluded.lock_since""",
                (psid, int(locked), _now()),
            )
            await db.commit()
        return await self.get_user(psid)

    async def set_last_known_name(self, psid: str, name: str) -> None:
        async with aiosqlite.connect(self.path) as db:
            await db.execute(
                "UPDATE users SET last_known_name = ? WHERE psid = ?",
                (name, psid),
            )
            await db.commit()

    # ─── XP ───────────────────────────────────────────────────────────────────

    async def increment_xp(self, psid: str) -> int:
        async with aiosqlite.connect(self.path) as db:
            await db.execute(
                """INSERT INTO xp (psid, points) VALUES (?, 1)
                   ON CONFLICT(psid) DO UPDATE SET points = points + 1""",
                (psid,),
            )
            await db.commit()
            async with db.execute("SELECT points FROM xp WHERE psid = ?", (psid,)) as cur:
                row = await cur.fetchone()
        return row[0]

    async def get_xp(self, psid: str) -> int:
        async with aiosqlite.connect(self.path) as db:
            async with db.execute("SELECT points FROM xp WHERE psid = ?", (psid,)) as cur:
                row = await cur.fetchone()
        return row[0] if row else 0

    # ─── Alerts ───────────────────────────────────────────────────────────────

    async def add_alert(self, psid: str, old_name: str, new_name: str) -> Alert:
        alert = Alert(psid=psid, old_name=old_name, new_name=new_name)
        async with aiosqlite.connect(self.path) as db:
            cur = await db.execute(
                "INSERT INTO alerts (psid, old_name, new_name, created_at) VALUES (?, ?, ?, ?)",
                (alert.psid, alert.old_name, alert.new_name, alert.created_at.isoformat()),
            )
            alert_id = cur.lastrowid
            await db.commit()
        return Alert(
            id=alert_id,
            psid=alert.psid,
            old_name=alert.old_name,
            new_name=alert.new_name,
            created_at=alert.created_at,
        )

    async def recent_alerts(self, limit: int = ALERT_READ_LIMIT) -> list[Alert]:
        async with aiosqlite.connect(self.path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(
                "SELECT * FROM alerts ORDER BY created_at DESC, id DESC LIMIT ?",
                (limit,),
            ) as cur:
                rows = await cur.fetchall()
        return [_row_to_alert(r) for r in rows]
