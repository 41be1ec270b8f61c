from typing import Optional

import pytest

from core.store import Store


class FakeGateway:
    """Records sends; answers name lookups from a dict."""

    def __init__(self, names: Optional[dict] = None):
        self.names = dict(names or {})
        self.sent: list[tuple[str, dict]] = []
        self.lookups: list[str] = []
        self.explode_on: set[str] = set()

    async def send_message(self, psid: str, message: dict) -> bool:
        self.sent.append((psid, message))
        return True

    async def fetch_display_name(self, psid: str) -> Optional[str]:
        self.lookups.append(psid)
        if psid in self.explode_on:
            raise RuntimeError("boom")
        return self.names.get(psid)

    def texts_to(self, psid: str) -> list[str]:
        return [m.get("text") for p, m in self.sent if p == psid]


@pytest.fixture
async def store(tmp_path):
    s = Store(tmp_path / "bot.sqlite3")
    await s.init()
    return s


@pytest.fixture
def gateway():
    return FakeGateway()
