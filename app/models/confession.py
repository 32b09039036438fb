"""
app/models/confession.py

Modelos ORM do ciclo de vida das confissões.

- `Confession`    — texto sanitizado, número público sequencial e status
                    (pending → approved → posted | pending → rejected)
- `CommentThread` — criado quando a confissão é publicada no canal;
                    guarda o total de comentários e a referência da mensagem
- `Comment`       — sequência append-only, ordenada pelo id autoincremental

`CommentThread.total_comments`, `Confession.total_comments` e a quantidade de
linhas em `comments` são atualizados na mesma transação.
"""

from datetime import datetime, timezone

from sqlalchemy import BigInteger, DateTime, ForeignKey, Integer, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base

PENDING = "pending"
APPROVED = "approved"
REJECTED = "rejected"
POSTED = "posted"

STATUSES = (PENDING, APPROVED, REJECTED, POSTED)


class Confession(Base):
    __tablename__ = "confessions"

    # "confess_<author>_<epoch ms>", também serve de chave de idempotência
    id: Mapped[str] = mapped_column(String(64), primary_key=True)

    # Atribuído uma única vez pelo SequenceAllocator; nunca é alterado
    number: Mapped[int] = mapped_column(Integer, unique=True)

    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id"), index=True)
    text: Mapped[str] = mapped_column(Text)
    status: Mapped[str] = mapped_column(String(16), default=PENDING, index=True)
    hashtags: Mapped[list] = mapped_column(JSON, default=list)
    total_comments: Mapped[int] = mapped_column(Integer, default=0)
    likes: Mapped[int] = mapped_column(Integer, default=0)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    channel_message_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        insert_default=lambda: datetime.now(timezone.utc),
    )
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<Confession id={self.id!r} number={self.number!r} status={self.status!r}>"


class CommentThread(Base):
    __tablename__ = "comment_threads"

    confession_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("confessions.id"), primary_key=True
    )
    confession_number: Mapped[int] = mapped_column(Integer)
    confession_text: Mapped[str] = mapped_column(Text)
    total_comments: Mapped[int] = mapped_column(Integer, default=0)
    channel_message_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)

    def __repr__(self) -> str:
        return f"<CommentThread confession_id={self.confession_id!r} total={self.total_comments!r}>"


class Comment(Base):
    __tablename__ = "comments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    confession_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("comment_threads.confession_id"), index=True
    )
    user_id: Mapped[int] = mapped_column(BigInteger, index=True)
    # Nome de exibição no momento do comentário
    user_name: Mapped[str] = mapped_column(String(20))
    text: Mapped[str] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        insert_default=lambda: datetime.now(timezone.utc),
    )

    def __repr__(self) -> str:
        return f"<Comment id={self.id!r} confession_id={self.confession_id!r}>"
