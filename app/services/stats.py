"""
app/services/stats.py

Consultas agregadas de leitura: painel do admin, rankings de comentaristas,
níveis, confissões em alta e hashtags populares. Nada aqui escreve no banco.
"""

from collections import Counter as TagCounter
from dataclasses import dataclass

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import async_sessionmaker

from app.database import transaction
from app.models.confession import APPROVED, POSTED, STATUSES, Comment, Confession
from app.models.user import User

PUBLISHED = (APPROVED, POSTED)


@dataclass(frozen=True)
class Level:
    level: int
    symbol: str

    @property
    def name(self) -> str:
        return f"Level {self.level}"


# (mínimo de comentários, nível, símbolo), do maior para o menor
_LEVELS = (
    (1000, 7, "👑"),
    (500, 6, "🏅"),
    (200, 5, "🥇"),
    (100, 4, "🥈"),
    (50, 3, "🥉"),
    (25, 2, "🥈"),
    (0, 1, "🥉"),
)


def level_for(comment_count: int) -> Level:
    for minimum, level, symbol in _LEVELS:
        if comment_count >= minimum:
            return Level(level, symbol)
    return Level(1, "🥉")


@dataclass(frozen=True)
class Commenter:
    user_id: int
    username: str
    comments: int

    @property
    def level(self) -> Level:
        return level_for(self.comments)


class StatsService:
    def __init__(self, session_factory: async_sessionmaker):
        self._sessions = session_factory

    async def status_counts(self) -> dict[str, int]:
        stmt = select(Confession.status, func.count(Confession.id)).group_by(Confession.status)
        async with transaction(self._sessions) as session:
            rows = (await session.execute(stmt)).all()
        counts = {status: 0 for status in STATUSES}
        counts.update({status: total for status, total in rows})
        return counts

    async def overview(self) -> dict[str, int]:
        """Totais do painel do admin."""
        counts = await self.status_counts()
        async with transaction(self._sessions) as session:
            users = await session.scalar(select(func.count(User.id)))
            comments = await session.scalar(select(func.count(Comment.id)))
        return {
            "users": users or 0,
            "confessions": sum(counts.values()),
            "comments": comments or 0,
            **counts,
        }

    async def comment_count(self, user_id: int) -> int:
        async with transaction(self._sessions) as session:
            total = await session.scalar(
                select(func.count(Comment.id)).where(Comment.user_id == user_id)
            )
        return total or 0

    async def user_level(self, user_id: int) -> tuple[Level, int]:
        count = await self.comment_count(user_id)
        return level_for(count), count

    async def _ranking(self, limit: int | None = None) -> list[tuple[int, int]]:
        stmt = (
            select(Comment.user_id, func.count(Comment.id).label("total"))
            .group_by(Comment.user_id)
            .order_by(func.count(Comment.id).desc(), Comment.user_id)
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        async with transaction(self._sessions) as session:
            return [(user_id, total) for user_id, total in (await session.execute(stmt)).all()]

    async def top_commenters(self, limit: int = 10) -> list[Commenter]:
        ranking = await self._ranking(limit)
        if not ranking:
            return []
        async with transaction(self._sessions) as session:
            names = dict(
                (await session.execute(
                    select(User.id, User.username).where(User.id.in_([uid for uid, _ in ranking]))
                )).all()
            )
        return [
            Commenter(user_id=uid, username=names.get(uid) or "Anonymous", comments=total)
            for uid, total in ranking
        ]

    async def comment_rank(self, user_id: int) -> tuple[int, int]:
        """(posição 1-based ou 0 se nunca comentou, total de comentaristas)"""
        ranking = await self._ranking()
        for position, (uid, _) in enumerate(ranking, start=1):
            if uid == user_id:
                return position, len(ranking)
        return 0, len(ranking)

    async def trending(self, limit: int = 5) -> list[Confession]:
        stmt = (
            select(Confession)
            .where(Confession.status.in_(PUBLISHED))
            .order_by(Confession.total_comments.desc(), Confession.number.desc())
            .limit(limit)
        )
        async with transaction(self._sessions) as session:
            return list((await session.scalars(stmt)).all())

    async def popular_hashtags(self, limit: int = 10, sample: int = 50) -> list[tuple[str, int]]:
        """Hashtags mais usadas entre as `sample` confissões publicadas mais recentes."""
        stmt = (
            select(Confession.hashtags)
            .where(Confession.status.in_(PUBLISHED))
            .order_by(Confession.created_at.desc(), Confession.number.desc())
            .limit(sample)
        )
        async with transaction(self._sessions) as session:
            rows = (await session.scalars(stmt)).all()

        tags = TagCounter(tag for hashtags in rows for tag in (hashtags or []))
        return tags.most_common(limit)
