"""
Records — the shapes the bot keeps about the people who message the page.

Two shapes persist: who someone is (User) and what they were caught doing
(Alert). XP is a bare counter and lives only in the store. InboundMessage
never persists; it is the one event the webhook hands to the dispatcher.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class User:
    """
    One page subscriber, keyed by the platform-assigned PSID.

    last_known_name is whatever the watcher (or first contact) last saw.
    name_locked marks the user for display-name monitoring.
    """
    psid: str
    nickname: Optional[str] = None
    last_known_name: Optional[str] = None
    name_locked: bool = False
    lock_since: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "psid": self.psid,
            "nickname": self.nickname,
            "last_known_name": self.last_known_name,
            "name_locked": self.name_locked,
            "lock_since": self.lock_since.isoformat() if self.lock_since else None,
        }


@dataclass(frozen=True)
class Alert:
    """A locked user changed their display name. Append-only."""
    psid: str
    old_name: str
    new_name: str
    id: Optional[int] = None
    created_at: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "psid": self.psid,
            "old_name": self.old_name,
            "new_name": self.new_name,
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class InboundMessage:
    """
    A single messaging event, already pulled out of the webhook batch.

    text is None for attachment-only messages.
    is_echo is set when the platform reflects the page's own message back.
    """
    sender: str
    text: Optional[str] = None
    is_echo: bool = False

    @classmethod
    def from_event(cls, event: dict) -> "InboundMessage":
        message = event.get("message") or {}
        return cls(
            sender=str(event["sender"]["id"]),
            text=message.get("text"),
            is_echo=bool(message.get("is_echo")),
        )
