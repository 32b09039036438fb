"""
app/services/abuse_guard.py

Predicados anti-abuso sobre registros de tempo por usuário.

- cooldown:   intervalo mínimo entre duas ações do mesmo tipo (envio de
              confissão)
- rate limit: número máximo de ações dentro de uma janela móvel
              (comentários)

Os dois são consultivos: quem protege a ação consulta antes e registra só
depois que a ação deu certo.
"""

import logging
import time
from typing import Callable

from sqlalchemy import func, select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import async_sessionmaker

from app.database import transaction
from app.models.abuse import Cooldown, RateLimitEvent

log = logging.getLogger(__name__)


def now_ms() -> int:
    return int(time.time() * 1000)


class AbuseGuard:
    def __init__(
        self,
        session_factory: async_sessionmaker,
        clock: Callable[[], int] = now_ms,
    ):
        self._sessions = session_factory
        self._clock = clock

    # -----------------------------------------------------------------------
    # Cooldown
    # -----------------------------------------------------------------------

    async def _last_action_at(self, user_id: int, action: str) -> int | None:
        async with transaction(self._sessions) as session:
            record = await session.get(Cooldown, (user_id, action))
            return record.last_at if record else None

    async def check_cooldown(self, user_id: int, action: str, window_ms: int) -> bool:
        """True se não há registro anterior ou se já passou mais que `window_ms`."""
        last_at = await self._last_action_at(user_id, action)
        if last_at is None:
            return True
        return (self._clock() - last_at) > window_ms

    async def cooldown_remaining(self, user_id: int, action: str, window_ms: int) -> int:
        """Milissegundos que faltam para o cooldown expirar (0 se livre)."""
        last_at = await self._last_action_at(user_id, action)
        if last_at is None:
            return 0
        return max(0, window_ms - (self._clock() - last_at))

    async def set_cooldown(self, user_id: int, action: str) -> None:
        """Grava agora como último instante de `action`; outros tipos não mudam."""
        now = self._clock()
        stmt = (
            sqlite_insert(Cooldown)
            .values(user_id=user_id, action=action, last_at=now)
            .on_conflict_do_update(
                index_elements=[Cooldown.user_id, Cooldown.action],
                set_={"last_at": now},
            )
        )
        async with transaction(self._sessions) as session:
            await session.execute(stmt)

    # -----------------------------------------------------------------------
    # Rate limit
    # -----------------------------------------------------------------------

    async def check_rate_limit(
        self,
        user_id: int,
        window_ms: int,
        max_events: int,
        action: str = "comment",
    ) -> bool:
        """True se há menos de `max_events` eventos dentro da janela final."""
        since = self._clock() - window_ms
        stmt = select(func.count(RateLimitEvent.id)).where(
            RateLimitEvent.user_id == user_id,
            RateLimitEvent.action == action,
            RateLimitEvent.at >= since,
        )
        async with transaction(self._sessions) as session:
            recent = (await session.execute(stmt)).scalar_one()
        return recent < max_events

    async def record_event(self, user_id: int, action: str = "comment") -> None:
        async with transaction(self._sessions) as session:
            session.add(RateLimitEvent(user_id=user_id, action=action, at=self._clock()))
