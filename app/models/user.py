"""
app/models/user.py

Modelos ORM do diretório de usuários.

- `User`   — perfil criado sob demanda no primeiro contato; nunca é apagado,
             `is_active=False` funciona como bloqueio administrativo
- `Follow` — aresta do grafo social (seguidor → seguido)

O grafo social é guardado como uma única linha por relação. As listas de
seguidores e de seguidos são duas leituras da mesma tabela, então
"b segue a" e "a tem b como seguidor" nunca divergem.
"""

from datetime import datetime, timezone

from sqlalchemy import BigInteger, Boolean, CheckConstraint, DateTime, ForeignKey, Integer, JSON, String
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base

PLACEHOLDER_USERNAME = "Anonymous"

NOTIFICATION_KEYS = ("new_follower", "new_comment", "new_confession", "direct_message")

COMMENT_POLICIES = ("everyone", "followers", "admin")


def default_notifications() -> dict:
    return {key: True for key in NOTIFICATION_KEYS}


class User(Base):
    __tablename__ = "users"

    # Identificador fornecido pelo transporte (id numérico do Telegram)
    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)

    username: Mapped[str] = mapped_column(String(20), default=PLACEHOLDER_USERNAME, index=True)
    first_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    last_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    bio: Mapped[str | None] = mapped_column(String(100), nullable=True)

    reputation: Mapped[int] = mapped_column(Integer, default=0)
    daily_streak: Mapped[int] = mapped_column(Integer, default=0)
    total_confessions: Mapped[int] = mapped_column(Integer, default=0)
    achievements: Mapped[list] = mapped_column(JSON, default=list)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    # Preferências de notificação: dict com as chaves de NOTIFICATION_KEYS.
    # Sempre substituir o dict inteiro: mutação in-place não é rastreada.
    notifications: Mapped[dict] = mapped_column(JSON, default=default_notifications)

    comment_policy: Mapped[str] = mapped_column(String(16), default="everyone")
    allow_anonymous: Mapped[bool] = mapped_column(Boolean, default=True)
    require_approval: Mapped[bool] = mapped_column(Boolean, default=False)

    joined_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        insert_default=lambda: datetime.now(timezone.utc),
    )

    def wants(self, preference: str) -> bool:
        """Preferência ausente conta como ligada."""
        return (self.notifications or {}).get(preference, True) is not False

    def __repr__(self) -> str:
        return f"<User id={self.id!r} username={self.username!r}>"


class Follow(Base):
    __tablename__ = "follows"
    __table_args__ = (
        CheckConstraint("follower_id != followed_id", name="ck_follows_not_self"),
    )

    follower_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id"), primary_key=True
    )
    followed_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id"), primary_key=True, index=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        insert_default=lambda: datetime.now(timezone.utc),
    )

    def __repr__(self) -> str:
        return f"<Follow {self.follower_id!r} -> {self.followed_id!r}>"
