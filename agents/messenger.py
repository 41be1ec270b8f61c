"""
Messenger gateway.

The only thing that talks to the Graph API:
  send_message: post a reply (text or attachment) to a PSID
  fetch_display_name: look up the name the platform currently shows for a PSID

Neither call raises. A failed send is logged and dropped; a failed lookup
is just an unknown name.
"""

import logging
from typing import Optional

import httpx

log = logging.getLogger(__name__)

GRAPH_URL = "https://graph.facebook.com/v17.0"


def text_message(text: str) -> dict:
    return {"text": text}


def image_message(url: str, reusable: bool) -> dict:
    return {
        "attachment": {
            "type": "image",
            "payload": {"url": url, "is_reusable": reusable},
        }
    }


class MessengerGateway:
    def __init__(
        self,
        access_token: str,
        graph_url: str = GRAPH_URL,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self._token = access_token
        self._graph_url = graph_url.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=10.0)

    async def send_message(self, psid: str, message: dict) -> bool:
        """Send one message. Returns False (and logs) instead of raising."""
        try:
            resp = await self._client.post(
                f"{self._graph_url}/me/messages",
                params={"access_token": self._token},
                json={"recipient": {"id": psid}, "message": message},
            )
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            log.error("Send API error for %s: %s", psid, e.response.text)
            return False
        except httpx.HTTPError as e:
            log.error("Send API error for %s: %s", psid, e)
            return False
        return True

    async def fetch_display_name(self, psid: str) -> Optional[str]:
        try:
            resp = await self._client.get(
                f"{self._graph_url}/{psid}",
                params={"access_token": self._token, "fields": "name"},
            )
            resp.raise_for_status()
            data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            log.debug("Profile lookup failed for %s: %s", psid, e)
            return None
        name = data.get("name") if isinstance(data, dict) else None
        if not isinstance(name, str) or not name:
            log.debug("Profile lookup for %s returned no name: %r", psid, data)
            return None
        return name

    async def close(self) -> None:
        await self._client.aclose()
