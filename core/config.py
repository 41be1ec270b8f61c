"""
Settings — everything the bot reads from the environment.

Call load_dotenv() before Settings.from_env() if you keep values in a .env file.
"""

import os
from dataclasses import dataclass
from pathlib import Path

MIN_POLL_SECONDS = 60


@dataclass
class Settings:
    page_access_token: str = ""
    verify_token: str = "VERIFY123"
    admin_psid: str = ""
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    port: int = 3000
    poll_interval_min: int = 10
    db_path: Path = Path("botdata.sqlite3")
    graph_url: str = "https://graph.facebook.com/v17.0"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            page_access_token=os.getenv("PAGE_ACCESS_TOKEN", ""),
            verify_token=os.getenv("VERIFY_TOKEN") or "VERIFY123",
            admin_psid=os.getenv("ADMIN_PSID", ""),
            openai_api_key=os.getenv("OPENAI_API_KEY", ""),
            openai_model=os.getenv("OPENAI_MODEL", "gpt-4o-mini"),
            port=int(os.getenv("PORT", "3000")),
            poll_interval_min=int(os.getenv("POLL_INTERVAL_MIN", "10")),
            db_path=Path(os.getenv("DB_PATH", "botdata.sqlite3")),
            graph_url=os.getenv("GRAPH_URL", "https://graph.facebook.com/v17.0"),
        )

