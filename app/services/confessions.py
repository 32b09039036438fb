"""
app/services/confessions.py

Ciclo de vida das confissões e dos comentários.

Estados:
    pending → approved → posted
    pending → rejected

Transições são feitas com UPDATE condicional ao status atual
(`WHERE status = 'pending'`). Só quem efetivamente mudou a linha segue
adiante, então duas aprovações simultâneas resultam em uma única publicação
e um único crédito de reputação.
"""

import asyncio
import html
import logging
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Protocol

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import async_sessionmaker

from app.config import BotConfig
from app.database import transaction
from app.errors import (
    AuthError,
    CooldownError,
    InvalidTransitionError,
    NotFoundError,
    RateLimitError,
    StoreError,
    ValidationError,
)
from app.models.confession import (
    APPROVED,
    PENDING,
    POSTED,
    REJECTED,
    Comment,
    CommentThread,
    Confession,
)
from app.models.user import Follow, User
from app.services.abuse_guard import AbuseGuard, now_ms
from app.services.sanitize import extract_hashtags, sanitize_text
from app.services.sequence import CONFESSION_NUMBER, SequenceAllocator
from app.services.users import UserDirectory

log = logging.getLogger(__name__)

MIN_CONFESSION_LENGTH = 5
MAX_CONFESSION_LENGTH = 1000
MIN_COMMENT_LENGTH = 3

APPROVAL_REPUTATION = 10
COMMENT_REPUTATION = 5

FINALIZE_ATTEMPTS = 3
FINALIZE_BACKOFF_SECONDS = 0.2


# ---------------------------------------------------------------------------
# Publicação no canal
# ---------------------------------------------------------------------------

class Publisher(Protocol):
    async def publish(self, text: str, number: int, confession_id: str) -> int: ...


class ChannelPublisher:
    """Publica a confissão aprovada no canal com o botão de comentários."""

    def __init__(self, transport, config: BotConfig):
        self._transport = transport
        self._config = config

    async def publish(self, text: str, number: int, confession_id: str) -> int:
        message = f"#{number}\n\n{html.escape(text.strip())}\n\n💬 Comment on this confession:"
        keyboard = {
            "inline_keyboard": [[
                {
                    "text": "👁️‍🗨️ View/Add Comments",
                    "url": f"https://t.me/{self._config.bot_username}?start=comment_{confession_id}",
                }
            ]]
        }
        log.info(f"Publicando confissão #{number} no canal {self._config.channel_id}")
        return await self._transport.send_message(
            self._config.channel_id,
            message,
            reply_markup=keyboard,
            disable_web_page_preview=True,
        )


# ---------------------------------------------------------------------------
# Paginação de comentários
# ---------------------------------------------------------------------------

@dataclass
class CommentPage:
    confession: Confession
    comments: list[Comment]
    page: int
    total_pages: int
    total: int
    page_size: int

    @property
    def first_index(self) -> int:
        """Posição (1-based) do primeiro comentário da página."""
        return (self.page - 1) * self.page_size + 1


# ---------------------------------------------------------------------------
# Ciclo de vida
# ---------------------------------------------------------------------------

class ConfessionLifecycle:
    def __init__(
        self,
        session_factory: async_sessionmaker,
        config: BotConfig,
        sequence: SequenceAllocator,
        guard: AbuseGuard,
        users: UserDirectory,
        publisher: Publisher,
        transport,
        clock: Callable[[], int] = now_ms,
    ):
        self._sessions = session_factory
        self._config = config
        self._sequence = sequence
        self._guard = guard
        self._users = users
        self._publisher = publisher
        self._transport = transport
        self._clock = clock

    def require_admin(self, user_id: int) -> None:
        if not self._config.is_admin(user_id):
            raise AuthError()

    async def get(self, confession_id: str) -> Confession | None:
        async with transaction(self._sessions) as session:
            return await session.get(Confession, confession_id)

    # -----------------------------------------------------------------------
    # Envio
    # -----------------------------------------------------------------------

    async def ensure_can_submit(self, user_id: int) -> None:
        """Levanta CooldownError se o autor ainda está no intervalo entre envios."""
        window = self._config.confession_cooldown_ms
        if not await self._guard.check_cooldown(user_id, "confession", window):
            remaining = await self._guard.cooldown_remaining(user_id, "confession", window)
            raise CooldownError(retry_after=max(1, math.ceil(remaining / 1000)))

    async def submit(self, user_id: int, raw_text: str) -> Confession:
        """
        Valida, sanitiza e grava a confissão como `pending`.

        Ordem: limites de tamanho sobre o texto bruto (sem espaços nas
        pontas), cooldown, sanitização e nova checagem de texto vazio.
        """
        await self._users.require_active(user_id)

        text = (raw_text or "").strip()
        if len(text) < MIN_CONFESSION_LENGTH:
            raise ValidationError(
                f"❌ Confession too short. Minimum {MIN_CONFESSION_LENGTH} characters."
            )
        if len(text) > MAX_CONFESSION_LENGTH:
            raise ValidationError(
                f"❌ Confession too long. Maximum {MAX_CONFESSION_LENGTH} characters."
            )

        await self.ensure_can_submit(user_id)

        sanitized = sanitize_text(text)
        if not sanitized:
            raise ValidationError("❌ Confession is empty after removing unsupported content.")

        number = await self._sequence.next_number(CONFESSION_NUMBER)
        confession = Confession(
            id=f"confess_{user_id}_{self._clock()}",
            number=number,
            user_id=user_id,
            text=sanitized,
            status=PENDING,
            hashtags=extract_hashtags(sanitized),
            total_comments=0,
            likes=0,
        )

        async with transaction(self._sessions) as session:
            session.add(confession)
            await session.execute(
                update(User)
                .where(User.id == user_id)
                .values(total_confessions=User.total_confessions + 1)
            )

        await self._guard.set_cooldown(user_id, "confession")
        log.info(f"Confissão #{number} ({confession.id}) recebida de {user_id}")

        await self.notify_admins(confession)
        return confession

    async def notify_admins(self, confession: Confession) -> int:
        """Fan-out para os admins; falha em um não impede os demais."""
        if not self._config.admin_ids:
            log.warning("Nenhum admin configurado: confissão sem moderador")
            return 0

        preview = confession.text if len(confession.text) <= 200 else confession.text[:200] + "..."
        message = (
            f"🤫 <b>New Confession #{confession.number}</b>\n\n"
            f"{html.escape(preview)}\n\n<b>Actions:</b>"
        )
        keyboard = {
            "inline_keyboard": [[
                {"text": "✅ Approve", "callback_data": f"approve_{confession.id}"},
                {"text": "❌ Reject", "callback_data": f"reject_{confession.id}"},
            ]]
        }

        delivered = 0
        for admin_id in sorted(self._config.admin_ids):
            try:
                await self._transport.send_message(admin_id, message, reply_markup=keyboard)
                delivered += 1
            except Exception as e:
                log.error(f"Erro ao notificar admin {admin_id}: {e}")
        log.info(f"Confissão {confession.id} notificada a {delivered}/{len(self._config.admin_ids)} admins")
        return delivered

    # -----------------------------------------------------------------------
    # Moderação
    # -----------------------------------------------------------------------

    async def approve(self, admin_id: int, confession_id: str) -> Confession:
        """
        pending → approved → posted.

        Só a chamada que faz a transição pending → approved publica. Uma
        confissão já `posted` é devolvida sem nova publicação. Se a
        publicação falhar, a confissão volta para `pending` para poder ser
        aprovada de novo. Se a publicação der certo mas o registro não,
        a confissão fica `approved` com o `channel_message_id` e uma nova
        aprovação conclui o registro sem publicar de novo.
        """
        self.require_admin(admin_id)

        async with transaction(self._sessions) as session:
            result = await session.execute(
                update(Confession)
                .where(Confession.id == confession_id, Confession.status == PENDING)
                .values(status=APPROVED, approved_at=datetime.now(timezone.utc))
            )
            claimed = result.rowcount == 1
            confession = await session.get(Confession, confession_id)

        if confession is None:
            raise NotFoundError("❌ Confession not found")
        if not claimed:
            if confession.status == REJECTED:
                raise InvalidTransitionError("❌ This confession was already rejected.")
            if confession.status == APPROVED and confession.channel_message_id is not None:
                log.info(f"Confissão {confession_id} já publicada; concluindo o registro")
                await self._finish_publication(admin_id, confession, confession.channel_message_id)
                return confession
            log.info(f"Confissão {confession_id} já está {confession.status}; aprovação ignorada")
            return confession

        # Checagem imediatamente antes da publicação
        current = await self.get(confession_id)
        if current is not None and current.status == POSTED:
            log.info(f"Confissão {confession_id} já publicada; publicação ignorada")
            return current

        try:
            message_id = await self._publisher.publish(
                confession.text, confession.number, confession.id
            )
        except Exception:
            log.error(f"Erro ao publicar confissão {confession_id}", exc_info=True)
            async with transaction(self._sessions) as session:
                await session.execute(
                    update(Confession)
                    .where(Confession.id == confession_id, Confession.status == APPROVED)
                    .values(status=PENDING, approved_at=None)
                )
            raise

        await self._finish_publication(admin_id, confession, message_id)
        return confession

    async def _finish_publication(
        self, admin_id: int, confession: Confession, message_id: int
    ) -> None:
        """
        approved → posted depois da publicação no canal.

        Tenta até FINALIZE_ATTEMPTS vezes. Esgotadas as tentativas, guarda
        só o `channel_message_id` (quando o banco deixa) e levanta
        StoreError com a mensagem para o admin.
        """
        for attempt in range(1, FINALIZE_ATTEMPTS + 1):
            try:
                finalized = await self._mark_posted(confession, message_id)
                break
            except StoreError:
                log.warning(
                    f"Falha ao registrar a publicação da confissão {confession.id} "
                    f"(tentativa {attempt}/{FINALIZE_ATTEMPTS})",
                    exc_info=True,
                )
                if attempt < FINALIZE_ATTEMPTS:
                    await asyncio.sleep(FINALIZE_BACKOFF_SECONDS * attempt)
        else:
            log.error(
                f"Confissão {confession.id} publicada como mensagem {message_id} "
                f"mas não registrada como posted"
            )
            await self._remember_message_id(confession, message_id)
            raise StoreError(
                f"⚠️ Confession #{confession.number} was posted to the channel "
                f"(message {message_id}) but could not be saved. Approve it again to finish."
            )

        confession.status = POSTED
        confession.channel_message_id = message_id
        if not finalized:
            log.info(f"Confissão {confession.id} já registrada como posted por outra aprovação")
            return

        log.info(f"Confissão #{confession.number} aprovada por {admin_id} e publicada")
        await self._users.notify(
            confession.user_id,
            f"✅ <b>Your Confession #{confession.number} was approved!</b>\n\n"
            f"It has been posted to the channel.",
        )

    async def _mark_posted(self, confession: Confession, message_id: int) -> bool:
        """Devolve False quando outra chamada já fez a transição."""
        async with transaction(self._sessions) as session:
            result = await session.execute(
                update(Confession)
                .where(Confession.id == confession.id, Confession.status == APPROVED)
                .values(status=POSTED, channel_message_id=message_id)
            )
            if result.rowcount != 1:
                return False
            await session.execute(
                update(User)
                .where(User.id == confession.user_id)
                .values(reputation=User.reputation + APPROVAL_REPUTATION)
            )
            session.add(
                CommentThread(
                    confession_id=confession.id,
                    confession_number=confession.number,
                    confession_text=confession.text,
                    total_comments=0,
                    channel_message_id=message_id,
                )
            )
        return True

    async def _remember_message_id(self, confession: Confession, message_id: int) -> None:
        try:
            async with transaction(self._sessions) as session:
                await session.execute(
                    update(Confession)
                    .where(Confession.id == confession.id, Confession.status == APPROVED)
                    .values(channel_message_id=message_id)
                )
        except StoreError:
            log.error(
                f"Não foi possível guardar a mensagem {message_id} da confissão {confession.id}",
                exc_info=True,
            )

    async def reject(self, admin_id: int, confession_id: str, reason: str) -> Confession:
        """pending → rejected, guardando o motivo e avisando o autor."""
        self.require_admin(admin_id)

        reason = (reason or "").strip()
        if not reason:
            raise ValidationError("❌ Please provide a rejection reason.")

        async with transaction(self._sessions) as session:
            result = await session.execute(
                update(Confession)
                .where(Confession.id == confession_id, Confession.status == PENDING)
                .values(status=REJECTED, rejection_reason=reason)
            )
            confession = await session.get(Confession, confession_id)

        if confession is None:
            raise NotFoundError("❌ Confession not found")
        if result.rowcount != 1:
            raise InvalidTransitionError(
                f"❌ Confession #{confession.number} is already {confession.status}."
            )

        log.info(f"Confissão #{confession.number} rejeitada por {admin_id}")
        await self._users.notify(
            confession.user_id,
            f"❌ <b>Your Confession #{confession.number} was rejected.</b>\n\n"
            f"Reason: {html.escape(reason)}",
        )
        return confession

    # -----------------------------------------------------------------------
    # Comentários
    # -----------------------------------------------------------------------

    async def _check_comment_policy(self, session, author: User | None, commenter_id: int) -> None:
        if author is None or author.id == commenter_id:
            return
        if author.comment_policy == "admin" and not self._config.is_admin(commenter_id):
            raise AuthError("❌ The author only accepts comments from admins.")
        if author.comment_policy == "followers" and not self._config.is_admin(commenter_id):
            if await session.get(Follow, (commenter_id, author.id)) is None:
                raise AuthError("❌ Only followers of the author can comment on this confession.")

    async def add_comment(self, user_id: int, confession_id: str, raw_text: str) -> Comment:
        commenter = await self._users.require_active(user_id)

        text = (raw_text or "").strip()
        if len(text) < MIN_COMMENT_LENGTH:
            raise ValidationError(f"❌ Comment too short. Minimum {MIN_COMMENT_LENGTH} characters.")

        if not await self._guard.check_rate_limit(
            user_id,
            self._config.comment_window_ms,
            self._config.comment_max_per_window,
            action="comment",
        ):
            raise RateLimitError()

        sanitized = sanitize_text(text)
        if not sanitized:
            raise ValidationError("❌ Comment is empty after removing unsupported content.")

        async with transaction(self._sessions) as session:
            thread = await session.get(CommentThread, confession_id)
            confession = await session.get(Confession, confession_id)
            if thread is None or confession is None:
                raise NotFoundError("❌ Confession not found.")

            author = await session.get(User, confession.user_id)
            await self._check_comment_policy(session, author, user_id)

            comment = Comment(
                confession_id=confession_id,
                user_id=user_id,
                user_name=commenter.username or "Anonymous",
                text=sanitized,
            )
            session.add(comment)
            # Sequência e os dois totais mudam na mesma transação
            await session.execute(
                update(CommentThread)
                .where(CommentThread.confession_id == confession_id)
                .values(total_comments=CommentThread.total_comments + 1)
            )
            await session.execute(
                update(Confession)
                .where(Confession.id == confession_id)
                .values(total_comments=Confession.total_comments + 1)
            )
            await session.execute(
                update(User)
                .where(User.id == user_id)
                .values(reputation=User.reputation + COMMENT_REPUTATION)
            )
            await session.flush()

        await self._guard.record_event(user_id, "comment")
        log.info(f"Comentário {comment.id} adicionado à confissão #{confession.number} por {user_id}")

        if confession.user_id != user_id:
            snippet = sanitized if len(sanitized) <= 50 else sanitized[:50] + "..."
            await self._users.notify(
                confession.user_id,
                f"💬 <b>New Comment on Your Confession</b>\n\n"
                f"Confession #{confession.number} has a new comment!\n\n"
                f'"{html.escape(snippet)}"',
                "new_comment",
            )
        return comment

    async def comments_page(self, confession_id: str, page: int = 1) -> CommentPage:
        """Comentários do mais antigo para o mais novo; página 1-based e limitada."""
        page_size = self._config.comments_page_size
        async with transaction(self._sessions) as session:
            confession = await session.get(Confession, confession_id)
            thread = await session.get(CommentThread, confession_id)
            # Só confissões publicadas têm thread de comentários
            if confession is None or thread is None:
                raise NotFoundError("❌ Confession not found or may have been deleted.")

            total = thread.total_comments
            total_pages = max(1, math.ceil(total / page_size))
            page = min(max(1, page), total_pages)

            comments = (
                await session.scalars(
                    select(Comment)
                    .where(Comment.confession_id == confession_id)
                    .order_by(Comment.id)
                    .offset((page - 1) * page_size)
                    .limit(page_size)
                )
            ).all()

        return CommentPage(
            confession=confession,
            comments=list(comments),
            page=page,
            total_pages=total_pages,
            total=total,
            page_size=page_size,
        )

    # -----------------------------------------------------------------------
    # Consultas
    # -----------------------------------------------------------------------

    async def list_by_author(self, user_id: int, limit: int = 10) -> list[Confession]:
        stmt = (
            select(Confession)
            .where(Confession.user_id == user_id)
            .order_by(Confession.created_at.desc(), Confession.number.desc())
            .limit(limit)
        )
        async with transaction(self._sessions) as session:
            return list((await session.scalars(stmt)).all())

    async def list_pending(self, limit: int = 10) -> list[Confession]:
        stmt = (
            select(Confession)
            .where(Confession.status == PENDING)
            .order_by(Confession.created_at, Confession.number)
            .limit(limit)
        )
        async with transaction(self._sessions) as session:
            return list((await session.scalars(stmt)).all())
