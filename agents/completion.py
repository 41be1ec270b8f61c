"""
Completion client for /ai.

Optional. The dispatcher only gets one when OPENAI_API_KEY is set.
"""

import logging
from typing import Optional

import httpx

log = logging.getLogger(__name__)

COMPLETIONS_URL = "https://api.openai.com/v1/chat/completions"


class CompletionError(Exception):
    """The completion service could not produce an answer."""


class CompletionClient:
    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
        url: str = COMPLETIONS_URL,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self._api_key = api_key
        self.model = model
        self._url = url
        self._client = client or httpx.AsyncClient(timeout=30.0)

    async def complete(self, query: str) -> str:
        try:
            resp = await self._client.post(
                self._url,
                headers={"Authorization": f"Bearer {self._api_key}"},
                json={"model": self.model, "messages": [{"role": "user", "content": query}]},
            )
            resp.raise_for_status()
            data = resp.json()
        except httpx.HTTPStatusError as e:
            log.error("Completion error: %s", e.response.text)
            raise CompletionError(f"status {e.response.status_code}") from e
        except (httpx.HTTPError, ValueError) as e:
            log.error("Completion error: %s", e)
            raise CompletionError(str(e)) from e

        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise CompletionError("malformed completion response") from e
        if not content:
            raise CompletionError("empty completion")
        return content

    async def close(self) -> None:
        await self._client.aclose()
