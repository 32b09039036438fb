"""
app/services/conversation.py

Fluxo conversacional ativo de cada usuário.

Cada fluxo é um dataclass imutável com os campos que ele precisa; o
`kind` de cada classe é o valor gravado no banco. Um usuário tem no máximo
um fluxo ativo: `set()` substitui o anterior sem aviso.
"""

import dataclasses
import logging
from dataclasses import dataclass
from typing import ClassVar, Union

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import async_sessionmaker

from app.database import transaction
from app.models.conversation import ConversationRecord

log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Fluxos
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class AwaitingUsername:
    kind: ClassVar[str] = "awaiting_username"
    origin_chat_id: int | None = None


@dataclass(frozen=True)
class AwaitingBio:
    kind: ClassVar[str] = "awaiting_bio"
    origin_chat_id: int | None = None


@dataclass(frozen=True)
class AwaitingConfession:
    kind: ClassVar[str] = "awaiting_confession"


@dataclass(frozen=True)
class AwaitingComment:
    kind: ClassVar[str] = "awaiting_comment"
    confession_id: str


@dataclass(frozen=True)
class AwaitingRejectionReason:
    kind: ClassVar[str] = "awaiting_rejection_reason"
    confession_id: str


@dataclass(frozen=True)
class AwaitingBlockTarget:
    kind: ClassVar[str] = "awaiting_block_target"
    origin_chat_id: int | None = None


@dataclass(frozen=True)
class AwaitingMessageTarget:
    kind: ClassVar[str] = "awaiting_message_target"
    origin_chat_id: int | None = None


@dataclass(frozen=True)
class AwaitingMessageBody:
    kind: ClassVar[str] = "awaiting_message_body"
    target_user_id: int


@dataclass(frozen=True)
class AwaitingBroadcastBody:
    kind: ClassVar[str] = "awaiting_broadcast_body"
    origin_chat_id: int | None = None


Flow = Union[
    AwaitingUsername,
    AwaitingBio,
    AwaitingConfession,
    AwaitingComment,
    AwaitingRejectionReason,
    AwaitingBlockTarget,
    AwaitingMessageTarget,
    AwaitingMessageBody,
    AwaitingBroadcastBody,
]

FLOW_TYPES: dict[str, type] = {
    flow_type.kind: flow_type
    for flow_type in (
        AwaitingUsername,
        AwaitingBio,
        AwaitingConfession,
        AwaitingComment,
        AwaitingRejectionReason,
        AwaitingBlockTarget,
        AwaitingMessageTarget,
        AwaitingMessageBody,
        AwaitingBroadcastBody,
    )
}

ADMIN_FLOWS = (
    AwaitingRejectionReason,
    AwaitingBlockTarget,
    AwaitingMessageTarget,
    AwaitingMessageBody,
    AwaitingBroadcastBody,
)


def encode_flow(flow: Flow) -> tuple[str, dict]:
    return flow.kind, dataclasses.asdict(flow)


def decode_flow(kind: str, payload: dict | None) -> Flow | None:
    """
    Reconstrói o fluxo gravado. Registros com `kind` desconhecido ou payload
    incompatível com o dataclass retornam None e são tratados como ausentes.
    """
    flow_type = FLOW_TYPES.get(kind)
    if flow_type is None:
        return None
    try:
        return flow_type(**(payload or {}))
    except TypeError:
        return None


# ---------------------------------------------------------------------------
# Persistência
# ---------------------------------------------------------------------------

class ConversationStore:
    def __init__(self, session_factory: async_sessionmaker):
        self._sessions = session_factory

    async def get(self, user_id: int) -> Flow | None:
        async with transaction(self._sessions) as session:
            record = await session.get(ConversationRecord, user_id)
            if record is None:
                return None
            flow = decode_flow(record.kind, record.payload)
            if flow is None:
                log.warning(f"Estado conversacional inválido descartado: {record!r}")
                await session.delete(record)
            return flow

    async def set(self, user_id: int, flow: Flow) -> None:
        kind, payload = encode_flow(flow)
        async with transaction(self._sessions) as session:
            # merge evita erro de duplicidade: substitui o fluxo anterior
            await session.merge(ConversationRecord(user_id=user_id, kind=kind, payload=payload))

    async def clear(self, user_id: int) -> None:
        async with transaction(self._sessions) as session:
            await session.execute(
                delete(ConversationRecord).where(ConversationRecord.user_id == user_id)
            )
