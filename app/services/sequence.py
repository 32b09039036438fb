"""
app/services/sequence.py

Números públicos das confissões.

O incremento é um único INSERT ... ON CONFLICT DO UPDATE ... RETURNING:
o SQLite executa a leitura e a escrita do contador como uma só instrução,
então chamadas concorrentes nunca recebem o mesmo número.
"""

from sqlalchemy import select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import async_sessionmaker

from app.database import transaction
from app.models.counter import Counter

CONFESSION_NUMBER = "confession_number"


class SequenceAllocator:
    def __init__(self, session_factory: async_sessionmaker):
        self._sessions = session_factory

    async def next_number(self, counter_name: str = CONFESSION_NUMBER) -> int:
        """Próximo valor do contador; o primeiro valor de um contador novo é 1."""
        stmt = (
            sqlite_insert(Counter)
            .values(name=counter_name, value=1)
            .on_conflict_do_update(
                index_elements=[Counter.name],
                set_={"value": Counter.value + 1},
            )
            .returning(Counter.value)
        )
        async with transaction(self._sessions) as session:
            return (await session.execute(stmt)).scalar_one()

    async def current(self, counter_name: str = CONFESSION_NUMBER) -> int:
        """Último valor entregue (0 se o contador nunca foi usado)."""
        async with transaction(self._sessions) as session:
            value = await session.scalar(select(Counter.value).where(Counter.name == counter_name))
        return value or 0
