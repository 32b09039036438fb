"""
app/services/telegram.py

Cliente mínimo da Telegram Bot API via httpx.

Só o que o bot usa: enviar mensagens e responder callback queries.
Retentativas e entrega são responsabilidade do Telegram; aqui cada chamada
é um único POST.
"""

import httpx

from app.config import settings


class TelegramError(Exception):
    """A API respondeu com `ok: false`."""


class TelegramClient:
    def __init__(
        self,
        token: str | None = None,
        base_url: str | None = None,
        timeout: float = 15,
    ):
        self._token = token or settings.bot_token
        self._base_url = (base_url or settings.telegram_api_url).rstrip("/")
        self._timeout = timeout

    async def _call(self, method: str, payload: dict) -> dict | bool:
        async with httpx.AsyncClient() as client:
            resp = await client.post(
                f"{self._base_url}/bot{self._token}/{method}",
                json=payload,
                timeout=self._timeout,
            )
            resp.raise_for_status()
            data = resp.json()

        if not data.get("ok"):
            raise TelegramError(data.get("description", f"{method} falhou"))
        return data["result"]

    async def send_message(
        self,
        chat_id: int | str,
        text: str,
        *,
        reply_markup: dict | None = None,
        parse_mode: str | None = "HTML",
        disable_web_page_preview: bool | None = None,
    ) -> int:
        """Envia uma mensagem e retorna o `message_id` criado."""
        payload: dict = {"chat_id": chat_id, "text": text}
        if parse_mode:
            payload["parse_mode"] = parse_mode
        if reply_markup is not None:
            payload["reply_markup"] = reply_markup
        if disable_web_page_preview is not None:
            payload["disable_web_page_preview"] = disable_web_page_preview

        result = await self._call("sendMessage", payload)
        return result["message_id"]

    async def answer_callback_query(self, callback_query_id: str, text: str | None = None) -> None:
        payload: dict = {"callback_query_id": callback_query_id}
        if text:
            payload["text"] = text
        await self._call("answerCallbackQuery", payload)
