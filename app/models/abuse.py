"""
app/models/abuse.py

Registros do anti-abuso. Os instantes são epoch em milissegundos, o mesmo
relógio usado pelo AbuseGuard.

- `Cooldown`       — último instante de cada tipo de ação, por usuário
- `RateLimitEvent` — instantes recentes de ações com limite por janela;
                     eventos antigos são ignorados na contagem, não apagados
"""

from sqlalchemy import BigInteger, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


class Cooldown(Base):
    __tablename__ = "cooldowns"

    user_id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    action: Mapped[str] = mapped_column(String(32), primary_key=True)
    last_at: Mapped[int] = mapped_column(BigInteger)

    def __repr__(self) -> str:
        return f"<Cooldown user_id={self.user_id!r} action={self.action!r}>"


class RateLimitEvent(Base):
    __tablename__ = "rate_limit_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigInteger, index=True)
    action: Mapped[str] = mapped_column(String(32))
    at: Mapped[int] = mapped_column(BigInteger, index=True)

    def __repr__(self) -> str:
        return f"<RateLimitEvent user_id={self.user_id!r} action={self.action!r} at={self.at!r}>"
