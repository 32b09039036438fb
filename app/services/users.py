"""
app/services/users.py

Diretório de usuários: perfis, grafo social e preferências.

Todas as alterações de perfil passam por aqui, com assinaturas estreitas
(`follow`, `set_bio`, `toggle_preference`...), para que as invariantes do
usuário fiquem num só lugar.
"""

import logging
import re

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import async_sessionmaker

from app.database import transaction
from app.errors import (
    AlreadyFollowingError,
    BlockedUserError,
    NotFoundError,
    SelfFollowError,
    ValidationError,
)
from app.models.user import (
    COMMENT_POLICIES,
    NOTIFICATION_KEYS,
    PLACEHOLDER_USERNAME,
    Follow,
    User,
)

log = logging.getLogger(__name__)

USERNAME_PATTERN = re.compile(r"^[A-Za-z0-9_]{3,20}$")
MAX_BIO_LENGTH = 100


class UserDirectory:
    def __init__(self, session_factory: async_sessionmaker, transport):
        self._sessions = session_factory
        self._transport = transport

    # -----------------------------------------------------------------------
    # Leitura
    # -----------------------------------------------------------------------

    async def get(self, user_id: int) -> User | None:
        async with transaction(self._sessions) as session:
            return await session.get(User, user_id)

    async def get_or_create(
        self,
        user_id: int,
        first_name: str | None = None,
        last_name: str | None = None,
    ) -> User:
        """Usuário é criado sob demanda no primeiro contato."""
        async with transaction(self._sessions) as session:
            user = await session.get(User, user_id)
            if user is None:
                user = User(id=user_id, first_name=first_name, last_name=last_name)
                session.add(user)
                await session.flush()
                log.info(f"Novo usuário registrado: {user_id}")
            return user

    async def require_active(self, user_id: int) -> User:
        user = await self.get_or_create(user_id)
        if not user.is_active:
            raise BlockedUserError()
        return user

    async def list_active(self, exclude: int | None = None, limit: int = 10) -> list[User]:
        """Usuários ativos ordenados por reputação (Browse Users)."""
        stmt = select(User).where(User.is_active.is_(True))
        if exclude is not None:
            stmt = stmt.where(User.id != exclude)
        stmt = stmt.order_by(User.reputation.desc(), User.id).limit(limit)
        async with transaction(self._sessions) as session:
            return list((await session.scalars(stmt)).all())

    async def list_all(self, limit: int | None = None) -> list[User]:
        stmt = select(User).order_by(User.joined_at, User.id)
        if limit is not None:
            stmt = stmt.limit(limit)
        async with transaction(self._sessions) as session:
            return list((await session.scalars(stmt)).all())

    async def active_ids(self) -> list[int]:
        async with transaction(self._sessions) as session:
            return list((await session.scalars(select(User.id).where(User.is_active.is_(True)))).all())

    async def count(self) -> int:
        async with transaction(self._sessions) as session:
            return (await session.execute(select(func.count(User.id)))).scalar_one()

    # -----------------------------------------------------------------------
    # Perfil
    # -----------------------------------------------------------------------

    async def set_username(self, user_id: int, name: str) -> User:
        name = (name or "").strip()
        if not USERNAME_PATTERN.match(name):
            raise ValidationError(
                "❌ Invalid username. Use 3-20 characters (letters, numbers, underscores only)."
            )

        async with transaction(self._sessions) as session:
            # O nome reservado pode repetir; os demais são únicos sem diferenciar caixa
            if name.lower() != PLACEHOLDER_USERNAME.lower():
                taken = await session.scalar(
                    select(User.id).where(
                        func.lower(User.username) == name.lower(),
                        User.id != user_id,
                    ).limit(1)
                )
                if taken is not None:
                    raise ValidationError("❌ Username already taken. Choose another one.")

            user = await session.get(User, user_id)
            if user is None:
                user = User(id=user_id)
                session.add(user)
            user.username = name
            return user

    async def set_bio(self, user_id: int, bio: str) -> None:
        bio = (bio or "").strip()
        if not bio:
            raise ValidationError("❌ Bio cannot be empty.")
        if len(bio) > MAX_BIO_LENGTH:
            raise ValidationError(f"❌ Bio too long. Maximum {MAX_BIO_LENGTH} characters.")
        await self._update(user_id, bio=bio)

    async def set_active(self, user_id: int, active: bool) -> User:
        async with transaction(self._sessions) as session:
            user = await session.get(User, user_id)
            if user is None:
                raise NotFoundError("❌ User not found.")
            user.is_active = active
            log.info(f"Usuário {user_id} {'desbloqueado' if active else 'bloqueado'}")
            return user

    async def toggle_active(self, user_id: int) -> User:
        user = await self.get(user_id)
        if user is None:
            raise NotFoundError("❌ User not found.")
        return await self.set_active(user_id, not user.is_active)

    async def add_reputation(self, user_id: int, points: int) -> None:
        async with transaction(self._sessions) as session:
            await session.execute(
                update(User).where(User.id == user_id).values(reputation=User.reputation + points)
            )

    async def _update(self, user_id: int, **values) -> None:
        async with transaction(self._sessions) as session:
            result = await session.execute(update(User).where(User.id == user_id).values(**values))
            if result.rowcount == 0:
                raise NotFoundError("❌ User not found.")

    # -----------------------------------------------------------------------
    # Preferências
    # -----------------------------------------------------------------------

    async def toggle_preference(self, user_id: int, preference: str) -> bool:
        """Inverte uma preferência de notificação e retorna o novo valor."""
        if preference not in NOTIFICATION_KEYS:
            raise ValueError(f"Preferência desconhecida: {preference}")

        async with transaction(self._sessions) as session:
            user = await session.get(User, user_id)
            if user is None:
                raise NotFoundError("❌ User not found.")
            new_value = not user.wants(preference)
            user.notifications = {**(user.notifications or {}), preference: new_value}
            return new_value

    async def set_comment_policy(self, user_id: int, policy: str) -> None:
        if policy not in COMMENT_POLICIES:
            raise ValidationError(f"❌ Unknown comment policy: {policy}")
        await self._update(user_id, comment_policy=policy)

    async def toggle_comment_flag(self, user_id: int, flag: str) -> bool:
        if flag not in ("allow_anonymous", "require_approval"):
            raise ValueError(f"Flag desconhecida: {flag}")

        async with transaction(self._sessions) as session:
            user = await session.get(User, user_id)
            if user is None:
                raise NotFoundError("❌ User not found.")
            new_value = not getattr(user, flag)
            setattr(user, flag, new_value)
            return new_value

    # -----------------------------------------------------------------------
    # Grafo social
    # -----------------------------------------------------------------------

    async def follow(self, actor_id: int, target_id: int) -> User:
        """
        Cria a relação actor → target. A relação é uma única linha, então a
        lista de seguidos do actor e a de seguidores do target mudam juntas.
        Notifica o target conforme a preferência `new_follower`.
        """
        if actor_id == target_id:
            raise SelfFollowError()

        actor = await self.require_active(actor_id)

        async with transaction(self._sessions) as session:
            target = await session.get(User, target_id)
            if target is None:
                raise NotFoundError("❌ User not found")
            if await session.get(Follow, (actor_id, target_id)) is not None:
                raise AlreadyFollowingError(
                    f"❌ You are already following {target.username or 'this user'}!"
                )
            session.add(Follow(follower_id=actor_id, followed_id=target_id))

        log.info(f"{actor_id} passou a seguir {target_id}")
        await self.notify(
            target_id,
            f"🎉 <b>New Follower!</b>\n\n{actor.username or 'Someone'} is now following you!",
            "new_follower",
        )
        return target

    async def unfollow(self, actor_id: int, target_id: int) -> None:
        """Remove a relação; relação inexistente não é erro."""
        async with transaction(self._sessions) as session:
            await session.execute(
                delete(Follow).where(
                    Follow.follower_id == actor_id,
                    Follow.followed_id == target_id,
                )
            )

    async def is_following(self, actor_id: int, target_id: int) -> bool:
        async with transaction(self._sessions) as session:
            return await session.get(Follow, (actor_id, target_id)) is not None

    async def following_ids(self, user_id: int) -> list[int]:
        stmt = select(Follow.followed_id).where(Follow.follower_id == user_id).order_by(Follow.created_at)
        async with transaction(self._sessions) as session:
            return list((await session.scalars(stmt)).all())

    async def follower_ids(self, user_id: int) -> list[int]:
        stmt = select(Follow.follower_id).where(Follow.followed_id == user_id).order_by(Follow.created_at)
        async with transaction(self._sessions) as session:
            return list((await session.scalars(stmt)).all())

    async def follow_counts(self, user_id: int) -> tuple[int, int]:
        """(seguidores, seguindo)"""
        async with transaction(self._sessions) as session:
            followers = await session.scalar(
                select(func.count()).select_from(Follow).where(Follow.followed_id == user_id)
            )
            following = await session.scalar(
                select(func.count()).select_from(Follow).where(Follow.follower_id == user_id)
            )
        return followers or 0, following or 0

    async def get_many(self, user_ids: list[int]) -> dict[int, User]:
        if not user_ids:
            return {}
        async with transaction(self._sessions) as session:
            users = (await session.scalars(select(User).where(User.id.in_(user_ids)))).all()
        return {user.id: user for user in users}

    # -----------------------------------------------------------------------
    # Notificações
    # -----------------------------------------------------------------------

    async def notify(self, user_id: int, text: str, preference: str | None = None) -> bool:
        """
        Envia uma notificação respeitando a preferência do destinatário.
        Falhas de envio são logadas e não propagadas. Retorna True se enviou.
        """
        try:
            if preference is not None:
                user = await self.get(user_id)
                if user is not None and not user.wants(preference):
                    return False
            await self._transport.send_message(user_id, text)
            return True
        except Exception as e:
            log.error(f"Erro ao notificar {user_id}: {e}", exc_info=True)
            return False
