"""
app/models/conversation.py

Persistência do fluxo conversacional ativo de cada usuário.

Uma linha por usuário: `kind` identifica o fluxo e `payload` guarda os
campos específicos dele. A conversão de/para os dataclasses tipados fica em
app/services/conversation.py.
"""

from datetime import datetime, timezone

from sqlalchemy import BigInteger, DateTime, JSON, String
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


class ConversationRecord(Base):
    __tablename__ = "conversation_states"

    user_id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    kind: Mapped[str] = mapped_column(String(64))
    payload: Mapped[dict] = mapped_column(JSON, default=dict)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        insert_default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    def __repr__(self) -> str:
        return f"<ConversationRecord user_id={self.user_id!r} kind={self.kind!r}>"
