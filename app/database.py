"""
app/database.py

Configuração do banco de dados SQLite via SQLAlchemy assíncrono.

Exporta:
- `engine`                — engine assíncrona compartilhada
- `async_session_factory` — fábrica de sessões para uso nos serviços
- `Base`                  — classe base para os modelos ORM
- `transaction()`         — escopo transacional usado pelos serviços
- `init_db()`             — cria as tabelas na inicialização da aplicação
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from app.config import settings
from app.errors import StoreError

log = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

engine = create_async_engine(
    settings.database_url,
    echo=False,
    connect_args={"check_same_thread": False},
)

# ---------------------------------------------------------------------------
# Fábrica de sessões
# ---------------------------------------------------------------------------

# Nome distinto de AsyncSession (classe) para evitar colisão no mesmo módulo
async_session_factory = async_sessionmaker(
    bind=engine,
    expire_on_commit=False,  # evita lazy-load após commit em contexto assíncrono
    class_=AsyncSession,
)


# ---------------------------------------------------------------------------
# Base declarativa
# ---------------------------------------------------------------------------

class Base(DeclarativeBase):
    pass


# ---------------------------------------------------------------------------
# Escopo transacional dos serviços
# ---------------------------------------------------------------------------

@asynccontextmanager
async def transaction(
    session_factory: async_sessionmaker,
) -> AsyncGenerator[AsyncSession, None]:
    """
    Abre uma sessão e uma transação: commit ao sair sem exceção, rollback
    caso contrário. Tudo o que for escrito dentro do bloco persiste junto
    ou não persiste.

    Falhas do SQLAlchemy viram StoreError; exceções de domínio levantadas
    dentro do bloco (NotFoundError, ValidationError...) passam intactas,
    depois do rollback.
    """
    try:
        async with session_factory() as session:
            async with session.begin():
                yield session
    except SQLAlchemyError as e:
        log.error(f"Falha de persistência: {e}", exc_info=True)
        raise StoreError() from e


# ---------------------------------------------------------------------------
# Inicialização
# ---------------------------------------------------------------------------

async def init_db() -> None:
    """
    Cria todas as tabelas definidas nos modelos ORM caso ainda não existam.
    Deve ser chamado uma única vez no startup da aplicação (lifespan do FastAPI).
    """
    # Importa os modelos para que o SQLAlchemy os registre no metadata da Base
    # antes de criar as tabelas. Sem este import, as tabelas não serão criadas.
    from app.models import abuse, confession, conversation, counter, user  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
