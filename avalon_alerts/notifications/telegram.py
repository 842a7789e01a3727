from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from typing import Sequence

import httpx
import structlog


logger = structlog.get_logger(__name__)

TELEGRAM_MAX_MESSAGE_LEN = 3900


@dataclass(frozen=True)
class TelegramConfig:
    bot_token: str
    chat_id: str
    api_url: str = "https://api.telegram.org/bot"
    parse_mode: str | None = "Markdown"
    timeout_seconds: float = 15.0


def split_telegram_message(text: str, *, max_len: int = TELEGRAM_MAX_MESSAGE_LEN) -> list[str]:
    s = (text or "").strip()
    if not s:
        return [""]

    max_len = max(1, int(max_len))
    parts: list[str] = []
    while s:
        if len(s) <= max_len:
            parts.append(s)
            break
        cut = s.rfind("\n", 0, max_len + 1)
        if cut < max_len * 0.6:
            cut = max_len
        chunk = s[:cut].rstrip()
        parts.append(chunk)
        s = s[cut:].lstrip()
    return parts


def _redact(text: str, token: str) -> str:
    return text.replace(token, "<redacted>") if token else text


async def send_telegram_message(
    client: httpx.AsyncClient, config: TelegramConfig, text: str
) -> tuple[bool, dict]:
    url = f"{config.api_url}{config.bot_token}/sendMessage"
    payload: dict = {"chat_id": config.chat_id, "text": text}
    if config.parse_mode:
        payload["parse_mode"] = config.parse_mode
    try:
        resp = await client.post(url, json=payload, timeout=config.timeout_seconds)
        data = resp.json()
        return bool(data.get("ok")), data
    except Exception as e:
        msg = _redact(f"{type(e).__name__}: {e}", config.bot_token)
        return False, {"ok": False, "error": msg}


def redact_telegram_response(data: dict) -> str:
    safe = {"ok": data.get("ok")}
    if isinstance(data.get("result"), dict):
        safe["result"] = {"message_id": data["result"].get("message_id")}
    if data.get("description"):
        safe["description"] = data.get("description")
    if data.get("error"):
        safe["error"] = data.get("error")
    return json.dumps(safe, ensure_ascii=False)


class TelegramNotifier:
    """
    Best-effort alert delivery. Without a bot token messages only go to the log,
    which keeps the bot usable for dry runs.
    """

    def __init__(self, client: httpx.AsyncClient, config: TelegramConfig | None):
        self.client = client
        self.config = config
        if config is None:
            logger.warning("Telegram not configured; alerts will only be logged")

    @property
    def enabled(self) -> bool:
        return self.config is not None

    async def notify(self, message: str) -> bool:
        if self.config is None:
            logger.info("TM Message", message=message)
            return True

        ok_all = True
        for part in split_telegram_message(message):
            ok, resp = await send_telegram_message(self.client, self.config, part)
            if not ok:
                ok_all = False
                logger.warning("Failed sending telegram message", telegram=redact_telegram_response(resp))
        return ok_all

    async def notify_all(self, messages: Sequence[str]) -> int:
        """Deliver a cycle's alerts concurrently and wait for all of them. Returns the delivered count."""
        if not messages:
            return 0
        results = await asyncio.gather(*(self.notify(m) for m in messages), return_exceptions=True)
        delivered = 0
        for message, result in zip(messages, results):
            if isinstance(result, BaseException):
                logger.error(
                    "Error sending telegram message",
                    error=_redact(f"{type(result).__name__}: {result}", self.config.bot_token if self.config else ""),
                    message=message,
                )
                continue
            if result:
                delivered += 1
        return delivered
