"""
app/bot/events.py

Decodificação dos updates do Telegram recebidos no webhook.

O núcleo só conhece dois eventos:
- `TextMessage` — texto enviado pelo usuário
- `ButtonPress` — clique em botão inline (callback query)

Qualquer outro tipo de update é ignorado (`to_event()` retorna None).
"""

from dataclasses import dataclass

from pydantic import BaseModel, ConfigDict, Field


@dataclass(frozen=True)
class TextMessage:
    user_id: int
    chat_id: int
    text: str
    first_name: str | None = None
    last_name: str | None = None


@dataclass(frozen=True)
class ButtonPress:
    interaction_id: str
    user_id: int
    chat_id: int
    data: str


class TelegramUser(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int
    first_name: str | None = None
    last_name: str | None = None


class TelegramChat(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int


class TelegramMessage(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    message_id: int
    chat: TelegramChat
    from_user: TelegramUser | None = Field(default=None, alias="from")
    text: str | None = None


class TelegramCallbackQuery(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str
    from_user: TelegramUser = Field(alias="from")
    message: TelegramMessage | None = None
    data: str | None = None


class TelegramUpdate(BaseModel):
    model_config = ConfigDict(extra="ignore")

    update_id: int
    message: TelegramMessage | None = None
    callback_query: TelegramCallbackQuery | None = None

    def to_event(self) -> TextMessage | ButtonPress | None:
        if self.message is not None and self.message.text and self.message.from_user:
            sender = self.message.from_user
            return TextMessage(
                user_id=sender.id,
                chat_id=self.message.chat.id,
                text=self.message.text,
                first_name=sender.first_name,
                last_name=sender.last_name,
            )

        query = self.callback_query
        if query is not None:
            # Callback sem mensagem de origem (inline mode): responde no privado
            chat_id = query.message.chat.id if query.message else query.from_user.id
            return ButtonPress(
                interaction_id=query.id,
                user_id=query.from_user.id,
                chat_id=chat_id,
                data=query.data or "",
            )
        return None
