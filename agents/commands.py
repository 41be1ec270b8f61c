"""
Command dispatch — what the bot does with every message it receives.

Every inbound message goes through the same pipeline:
  1. Know them. First contact creates a user row.
  2. Count them. Every real message is worth one XP.
  3. Answer them. Exactly one reply, picked from the command table.

Echoes (the page's own messages reflected back) stop after step 1.
"""

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Protocol
from urllib.parse import quote

from core.records import InboundMessage
from core.store import Store

from .completion import CompletionClient, CompletionError
from .messenger import image_message, text_message

log = logging.getLogger(__name__)


class Gateway(Protocol):
    async def send_message(self, psid: str, message: dict) -> bool: ...

    async def fetch_display_name(self, psid: str) -> Optional[str]: ...


# ─── Fixed replies ────────────────────────────────────────────────────────────

HELP_TEXT = "Commands: /nick, /getnick, /level, /song, /photo, /meme, /yt <q>, /ai <q>, /help"
SONG_TEXT = "🎵 Song: https://www.youtube.com/watch?v=dQw4w9WgXcQ"
PHOTO_URL = "https://via.placeholder.com/800x400.png?text=Photo"
MEME_URL = "https://i.imgflip.com/1bij.jpg"
YT_SEARCH_URL = "https://www.youtube.com/results?search_query="
AI_ERROR_TEXT = "🤖 AI error"
NICK_NOT_SET = "(not set)"

# Characters encodeURIComponent leaves alone.
_URI_SAFE = "-_.!~*'()"


def youtube_search_link(query: str) -> str:
    return YT_SEARCH_URL + quote(query, safe=_URI_SAFE)


def format_default_reply(text: str, nickname: Optional[str]) -> str:
    if nickname:
        return f"({nickname}) — You said: {text}"
    return f"You said: {text}"


# ─── Command table ────────────────────────────────────────────────────────────

Handler = Callable[["Dispatcher", str, str], Awaitable[dict]]


@dataclass(frozen=True)
class Command:
    """
    One row of the command table.

    takes_argument commands match "<name> <rest>" and nothing shorter,
    so "/nickname" is never read as "/nick". Bare commands match exactly.
    """
    name: str
    takes_argument: bool
    handler: Handler

    def match(self, lowered: str) -> bool:
        if self.takes_argument:
            return lowered.startswith(self.name + " ")
        return lowered == self.name


async def _nick(d: "Dispatcher", psid: str, arg: str) -> dict:
    nick = arg.strip()
    await d.store.set_nickname(psid, nick)
    return text_message(f"Nickname set to: {nick}")


async def _getnick(d: "Dispatcher", psid: str, arg: str) -> dict:
    nick = await d.store.get_nickname(psid)
    return text_message(f"Your nickname: {nick or NICK_NOT_SET}")


async def _level(d: "Dispatcher", psid: str, arg: str) -> dict:
    points = await d.store.get_xp(psid)
    return text_message(f"⭐ Your XP: {points}")


async def _help(d: "Dispatcher", psid: str, arg: str) -> dict:
    return text_message(HELP_TEXT)


async def _song(d: "Dispatcher", psid: str, arg: str) -> dict:
    return text_message(SONG_TEXT)


async def _photo(d: "Dispatcher", psid: str, arg: str) -> dict:
    return image_message(PHOTO_URL, reusable=True)


async def _meme(d: "Dispatcher", psid: str, arg: str) -> dict:
    return image_message(MEME_URL, reusable=False)


async def _yt(d: "Dispatcher", psid: str, arg: str) -> dict:
    return text_message(f"YouTube search: {youtube_search_link(arg.strip())}")


async def _ai(d: "Dispatcher", psid: str, arg: str) -> dict:
    query = arg.strip()
    if d.completion is None:
        return text_message(f"🤖 (demo) {query}")
    try:
        answer = await d.completion.complete(query)
    except CompletionError as e:
        log.warning("AI request from %s failed: %s", psid, e)
        return text_message(AI_ERROR_TEXT)
    return text_message(f"🤖 {answer}")


# First match wins.
COMMANDS: tuple[Command, ...] = (
    Command("/nick", True, _nick),
    Command("/getnick", False, _getnick),
    Command("/level", False, _level),
    Command("/help", False, _help),
    Command("/song", False, _song),
    Command("/photo", False, _photo),
    Command("/meme", False, _meme),
    Command("/yt", True, _yt),
    Command("/ai", True, _ai),
)


def parse_command(text: str) -> tuple[Optional[Command], str]:
    """
    Match trimmed text against the command table.
    Returns (command, argument) or (None, text) when nothing matches.
    The argument keeps its original casing.
    """
    lowered = text.lower()
    for command in COMMANDS:
        if command.match(lowered):
            arg = text[len(command.name) + 1:] if command.takes_argument else ""
            return command, arg
    return None, text


# ─── Pipeline ─────────────────────────────────────────────────────────────────

class Dispatcher:
    def __init__(
        self,
        store: Store,
        gateway: Gateway,
        completion: Optional[CompletionClient] = None,
    ):
        self.store = store
        self.gateway = gateway
        self.completion = completion

    async def ensure_user(self, psid: str) -> None:
        if await self.store.get_user(psid) is not None:
            return
        try:
            name = await self.gateway.fetch_display_name(psid)
        except Exception:
            log.warning("Name lookup for new user %s failed", psid, exc_info=True)
            name = None
        await self.store.create_user(psid, last_known_name=name)
        log.info("New user %s (%s)", psid, name or "name unknown")

    async def reply_for(self, psid: str, text: str) -> dict:
        command, arg = parse_command(text)
        if command is not None:
            return await command.handler(self, psid, arg)
        nickname = await self.store.get_nickname(psid)
        return text_message(format_default_reply(text, nickname))

    async def handle_message(self, msg: InboundMessage) -> Optional[dict]:
        """
        Run one inbound message through the pipeline.
        Returns the reply that was sent, or None for an echo.
        """
        await self.ensure_user(msg.sender)

        if msg.is_echo:
            return None

        await self.store.increment_xp(msg.sender)

        text = (msg.text or "").strip()
        reply = await self.reply_for(msg.sender, text)
        await self.gateway.send_message(msg.sender, reply)
        return reply
