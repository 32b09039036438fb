"""
Fixtures compartilhadas entre todos os testes.
"""

import os

# Precisa vir antes de qualquer import de `app`: o Dynaconf escolhe o
# ambiente na primeira leitura das settings
os.environ["ENV_FOR_DYNACONF"] = "testing"

from dataclasses import dataclass

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.services.telegram import TelegramError

ADMIN_ID = 1


# ---------------------------------------------------------------------------
# Configuração Dynaconf isolada para testes
# Usa monkeypatch para sobrescrever os atributos sem tocar em arquivos .toml
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def patch_settings(monkeypatch):
    """
    Sobrescreve as settings do Dynaconf com valores de teste.
    `autouse=True` garante que nenhum teste use token ou URL reais.
    """
    from app import config

    monkeypatch.setattr(config.settings, "bot_token", "test-token")
    monkeypatch.setattr(config.settings, "bot_username", "testbot")
    monkeypatch.setattr(config.settings, "channel_id", "@test_channel")
    monkeypatch.setattr(config.settings, "telegram_api_url", "https://telegram.test")
    monkeypatch.setattr(config.settings, "webhook_secret", "")


# ---------------------------------------------------------------------------
# Colaboradores falsos
# ---------------------------------------------------------------------------


class FakeClock:
    """Relógio em milissegundos controlado pelo teste."""

    def __init__(self, start: int = 1_700_000_000_000):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


@dataclass
class SentMessage:
    chat_id: int | str
    text: str
    reply_markup: dict | None = None


class FakeTransport:
    """
    Transporte em memória: grava tudo o que seria enviado ao Telegram.
    Destinos em `fail_for` levantam TelegramError, como um usuário que
    bloqueou o bot.
    """

    def __init__(self):
        self.sent: list[SentMessage] = []
        self.answers: list[tuple[str, str | None]] = []
        self.fail_for: set = set()
        self._next_message_id = 100

    async def send_message(self, chat_id, text, **kwargs) -> int:
        if chat_id in self.fail_for:
            raise TelegramError("Forbidden: bot was blocked by the user")
        self.sent.append(SentMessage(chat_id, text, kwargs.get("reply_markup")))
        self._next_message_id += 1
        return self._next_message_id

    async def answer_callback_query(self, callback_query_id, text=None) -> None:
        self.answers.append((callback_query_id, text))

    def texts_to(self, chat_id) -> list[str]:
        return [message.text for message in self.sent if message.chat_id == chat_id]

    def last_to(self, chat_id) -> SentMessage:
        return [message for message in self.sent if message.chat_id == chat_id][-1]


def callback_data(message: SentMessage) -> list[str]:
    """Todas as chaves `callback_data` de um teclado inline."""
    rows = (message.reply_markup or {}).get("inline_keyboard", [])
    return [button["callback_data"] for row in rows for button in row if "callback_data" in button]


# ---------------------------------------------------------------------------
# Banco de dados
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def db_engine(tmp_path):
    """
    Banco SQLite em arquivo por teste. Em arquivo (e não em memória) para
    que transações concorrentes usem conexões separadas, como em produção.
    """
    from app.database import Base
    from app.models import abuse, confession, conversation, counter, user  # noqa: F401

    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(bind=db_engine, expire_on_commit=False, class_=AsyncSession)


# ---------------------------------------------------------------------------
# Serviços
# ---------------------------------------------------------------------------


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def bot_config():
    from app.config import BotConfig

    return BotConfig(
        bot_username="testbot",
        channel_id="@test_channel",
        admin_ids=frozenset({ADMIN_ID}),
    )


@pytest.fixture
def guard(session_factory, clock):
    from app.services.abuse_guard import AbuseGuard

    return AbuseGuard(session_factory, clock=clock)


@pytest.fixture
def sequence(session_factory):
    from app.services.sequence import SequenceAllocator

    return SequenceAllocator(session_factory)


@pytest.fixture
def users(session_factory, transport):
    from app.services.users import UserDirectory

    return UserDirectory(session_factory, transport)


@pytest.fixture
def conversations(session_factory):
    from app.services.conversation import ConversationStore

    return ConversationStore(session_factory)


@pytest.fixture
def stats(session_factory):
    from app.services.stats import StatsService

    return StatsService(session_factory)


@pytest.fixture
def make_lifecycle(session_factory, sequence, guard, users, transport, clock):
    """Factory para montar o ciclo de vida com outra configuração ou publisher."""
    from app.services.confessions import ChannelPublisher, ConfessionLifecycle

    def _make(config, publisher=None):
        return ConfessionLifecycle(
            session_factory,
            config,
            sequence,
            guard,
            users,
            publisher or ChannelPublisher(transport, config),
            transport,
            clock=clock,
        )

    return _make


@pytest.fixture
def lifecycle(make_lifecycle, bot_config):
    return make_lifecycle(bot_config)


@pytest.fixture
def dispatcher(bot_config, transport, users, conversations, lifecycle, stats):
    from app.bot.dispatcher import Dispatcher

    return Dispatcher(bot_config, transport, users, conversations, lifecycle, stats)


# ---------------------------------------------------------------------------
# Factories de dados
# ---------------------------------------------------------------------------


@pytest.fixture
def make_user(users):
    """Cria um usuário, opcionalmente já com nome de exibição."""

    async def _make(user_id: int, username: str | None = None):
        user = await users.get_or_create(user_id, first_name=f"User{user_id}")
        if username is not None:
            user = await users.set_username(user_id, username)
        return user

    return _make


@pytest.fixture
def make_posted_confession(lifecycle, make_user, clock):
    """Envia e aprova uma confissão; devolve a confissão já `posted`."""

    async def _make(author_id: int = 10, text: str = "I secretly love #mondays"):
        await make_user(author_id)
        confession = await lifecycle.submit(author_id, text)
        clock.advance(61_000)
        return await lifecycle.approve(ADMIN_ID, confession.id)

    return _make
