"""
app/bot/dispatcher.py

Resolve cada evento de entrada (TextMessage ou ButtonPress) em uma ação.

Texto:
1. `/cancel` sempre encerra o fluxo ativo
2. havendo fluxo ativo, o texto é a próxima entrada desse fluxo
3. senão, comandos (`/start`, `/help`, `/admin`) e rótulos do menu
4. qualquer outra coisa mostra o menu principal

Botões: a chave é decodificada por `parse_action()`; chaves desconhecidas
são ignoradas. Todo botão é respondido (answerCallbackQuery) exatamente uma
vez, com ou sem erro.

Erros de domínio viram mensagens para o usuário conforme o tipo:
- ValidationError       → mensagem + prompt do fluxo, fluxo continua
- AuthError / NotFound  → mensagem, fluxo é limpo
- Cooldown / RateLimit  → mensagem de espera, nada muda
- demais (StoreError…)  → mensagem, erro logado
"""

import html
import logging
from typing import Awaitable, Callable

import httpx

from app.bot import views
from app.bot.actions import (
    ADMIN_MENUS,
    NOTIFICATION_TOGGLES,
    AddComment,
    Approve,
    CommentsPage,
    FollowAuthor,
    FollowUser,
    Menu,
    MenuAction,
    Reject,
    ToggleBlock,
    UnfollowUser,
    UnknownActionError,
    ViewProfile,
    ViewUser,
    parse_action,
)
from app.bot.events import ButtonPress, TextMessage
from app.config import BotConfig
from app.errors import (
    AuthError,
    ConfessBotError,
    CooldownError,
    InvalidTransitionError,
    NotFoundError,
    RateLimitError,
    ValidationError,
)
from app.models.confession import POSTED
from app.models.user import PLACEHOLDER_USERNAME
from app.services.abuse_guard import AbuseGuard
from app.services.confessions import ChannelPublisher, ConfessionLifecycle
from app.services.conversation import (
    ADMIN_FLOWS,
    AwaitingBio,
    AwaitingBlockTarget,
    AwaitingBroadcastBody,
    AwaitingComment,
    AwaitingConfession,
    AwaitingMessageBody,
    AwaitingMessageTarget,
    AwaitingRejectionReason,
    AwaitingUsername,
    ConversationStore,
    Flow,
)
from app.services.sequence import SequenceAllocator
from app.services.stats import StatsService
from app.services.telegram import TelegramError
from app.services.users import UserDirectory

log = logging.getLogger(__name__)

FOLLOW_LIST_LIMIT = 20

Handler = Callable[[int, int], Awaitable[str | None]]


class Dispatcher:
    def __init__(
        self,
        config: BotConfig,
        transport,
        users: UserDirectory,
        conversations: ConversationStore,
        lifecycle: ConfessionLifecycle,
        stats: StatsService,
    ):
        self._config = config
        self._transport = transport
        self._users = users
        self._conversations = conversations
        self._lifecycle = lifecycle
        self._stats = stats

        self._flow_handlers = {
            AwaitingUsername: self._finish_username,
            AwaitingBio: self._finish_bio,
            AwaitingConfession: self._finish_confession,
            AwaitingComment: self._finish_comment,
            AwaitingRejectionReason: self._finish_rejection,
            AwaitingBlockTarget: self._finish_block,
            AwaitingMessageTarget: self._finish_message_target,
            AwaitingMessageBody: self._finish_message_body,
            AwaitingBroadcastBody: self._finish_broadcast,
        }
        self._flow_prompts = {
            AwaitingUsername: views.username_prompt,
            AwaitingBio: views.bio_prompt,
            AwaitingConfession: views.confession_prompt,
            AwaitingComment: views.comment_prompt,
            AwaitingRejectionReason: views.rejection_prompt,
            AwaitingBlockTarget: views.block_prompt,
            AwaitingMessageTarget: views.message_target_prompt,
            AwaitingBroadcastBody: views.broadcast_prompt,
        }

        self._menu_handlers: dict[Menu, Handler] = {
            Menu.SEND_CONFESSION: self._start_confession,
            Menu.MY_PROFILE: self._show_own_profile,
            Menu.PROMOTE_BOT: self._show_promote,
            Menu.BACK_TO_MENU: self._show_main_menu,
            Menu.SETTINGS_MENU: self._show_settings,
            Menu.SET_USERNAME: self._start_username,
            Menu.SET_BIO: self._start_bio,
            Menu.SHOW_FOLLOWERS: self._show_followers,
            Menu.SHOW_FOLLOWING: self._show_following,
            Menu.MY_CONFESSIONS: self._show_my_confessions,
            Menu.COMMENT_SETTINGS: self._show_comment_settings,
            Menu.NOTIFICATION_SETTINGS: self._show_notification_settings,
            Menu.VIEW_RANKINGS: self._show_best_commenters,
            Menu.VIEW_MY_RANK: self._show_my_rank,
            Menu.VIEW_ACHIEVEMENTS: self._show_achievements,
            Menu.BROWSE_USERS: self._show_browse_users,
            Menu.TRENDING: self._show_trending,
            Menu.CURRENT_PAGE: self._noop,
            Menu.ADMIN_MENU: self._show_admin_dashboard,
            Menu.MANAGE_USERS: self._show_manage_users,
            Menu.REVIEW_CONFESSIONS: self._show_pending,
            Menu.BOT_STATS: self._show_bot_stats,
            Menu.BLOCK_USER: self._start_block,
            Menu.MESSAGE_USER: self._start_message_user,
            Menu.BROADCAST_MESSAGE: self._start_broadcast,
            Menu.SAVE_NOTIFICATIONS: self._saved,
            Menu.SAVE_COMMENT_SETTINGS: self._saved,
            Menu.COMMENT_EVERYONE: self._policy_setter("everyone", "✅ Comments set to Everyone"),
            Menu.COMMENT_FOLLOWERS: self._policy_setter("followers", "✅ Comments set to Followers Only"),
            Menu.COMMENT_ADMIN: self._policy_setter("admin", "✅ Comments set to Admin Only"),
            Menu.COMMENT_ANON: self._flag_toggler("allow_anonymous", "Anonymous comments"),
            Menu.COMMENT_APPROVE: self._flag_toggler("require_approval", "Comment approval"),
        }
        for menu, preference in NOTIFICATION_TOGGLES.items():
            self._menu_handlers[menu] = self._preference_toggler(preference)

        self._labels: dict[str, Handler] = {
            views.MENU_SEND_CONFESSION: self._start_confession,
            views.MENU_MY_PROFILE: self._show_own_profile,
            views.MENU_TRENDING: self._show_trending,
            views.MENU_PROMOTE: self._show_promote,
            views.MENU_HASHTAGS: self._show_hashtags,
            views.MENU_BEST_COMMENTERS: self._show_best_commenters,
            views.MENU_SETTINGS: self._show_settings,
            views.MENU_ABOUT: self._show_about,
            views.MENU_BROWSE_USERS: self._show_browse_users,
            views.MENU_RULES: self._show_rules,
        }

    # -----------------------------------------------------------------------
    # Entrada
    # -----------------------------------------------------------------------

    async def handle(self, event: TextMessage | ButtonPress) -> None:
        if isinstance(event, TextMessage):
            await self.handle_text(event)
        elif isinstance(event, ButtonPress):
            await self.handle_button(event)
        else:
            log.warning(f"Evento ignorado: {event!r}")

    async def handle_text(self, msg: TextMessage) -> None:
        user_id, chat_id = msg.user_id, msg.chat_id
        text = msg.text.strip()
        log.info(f"Mensagem de {user_id}: {text[:50]!r}")

        registered = await self._guarded(chat_id, user_id, lambda: self._register(msg))
        if not registered:
            return

        command, _, argument = text.partition(" ")
        command = command.split("@", 1)[0].lower() if command.startswith("/") else ""

        if command == "/cancel":
            await self._conversations.clear(user_id)
            await self._send(chat_id, views.cancelled())
            return

        flow = await self._conversations.get(user_id)
        if flow is not None:
            await self._guarded(
                chat_id,
                user_id,
                lambda: self._continue_flow(msg, flow),
                flow=flow,
            )
            return

        if command:
            await self._guarded(chat_id, user_id, lambda: self._command(msg, command, argument.strip()))
            return

        handler = self._labels.get(text, self._show_main_menu)
        await self._guarded(chat_id, user_id, lambda: handler(chat_id, user_id))

    async def handle_button(self, press: ButtonPress) -> None:
        log.info(f"Botão de {press.user_id}: {press.data!r}")
        ack_text = None
        try:
            try:
                action = parse_action(press.data)
            except UnknownActionError as e:
                log.warning(f"Ação ignorada: {e}")
                return

            async def route() -> str | None:
                await self._users.get_or_create(press.user_id)
                return await self._route_button(press, action)

            ack_text = await self._guarded(press.chat_id, press.user_id, route)
        finally:
            try:
                await self._transport.answer_callback_query(press.interaction_id, ack_text)
            except Exception as e:
                log.error(f"Erro ao responder callback {press.interaction_id}: {e}")

    async def _register(self, msg: TextMessage) -> bool:
        await self._users.get_or_create(msg.user_id, msg.first_name, msg.last_name)
        return True

    # -----------------------------------------------------------------------
    # Tratamento de erros
    # -----------------------------------------------------------------------

    async def _guarded(
        self,
        chat_id: int,
        user_id: int,
        action: Callable[[], Awaitable[str | None]],
        *,
        flow: Flow | None = None,
    ) -> str | None:
        """Executa a ação convertendo erros de domínio em mensagens."""
        try:
            return await action()
        except ValidationError as e:
            await self._say(chat_id, e.user_message)
            prompt = self._flow_prompts.get(type(flow)) if flow is not None else None
            if prompt is not None:
                await self._send(chat_id, prompt())
            elif isinstance(flow, AwaitingMessageBody):
                await self._send(chat_id, views.message_body_prompt(flow.target_user_id))
        except (CooldownError, RateLimitError) as e:
            await self._say(chat_id, e.user_message)
        except (AuthError, NotFoundError, InvalidTransitionError) as e:
            if flow is not None:
                await self._conversations.clear(user_id)
            await self._say(chat_id, e.user_message)
        except ConfessBotError as e:
            log.warning(f"Erro para {user_id}: {type(e).__name__}: {e}")
            await self._say(chat_id, e.user_message)
        return None

    def _require_admin(self, user_id: int) -> None:
        # Lido a cada ação: o conjunto de admins vem da configuração
        if not self._config.is_admin(user_id):
            raise AuthError()

    # -----------------------------------------------------------------------
    # Envio
    # -----------------------------------------------------------------------

    async def _send(self, chat_id: int, screen: views.Screen) -> None:
        text, markup = screen
        await self._transport.send_message(chat_id, text, reply_markup=markup)

    async def _say(self, chat_id: int, text: str) -> None:
        await self._transport.send_message(chat_id, text)

    # -----------------------------------------------------------------------
    # Comandos
    # -----------------------------------------------------------------------

    async def _command(self, msg: TextMessage, command: str, argument: str) -> None:
        if command == "/start":
            await self._start(msg, argument)
        elif command == "/help":
            await self._send(msg.chat_id, views.help_text(self._config.is_admin(msg.user_id)))
        elif command == "/admin":
            await self._show_admin_dashboard(msg.chat_id, msg.user_id)
        else:
            await self._show_main_menu(msg.chat_id, msg.user_id)

    async def _start(self, msg: TextMessage, argument: str) -> None:
        chat_id, user_id = msg.chat_id, msg.user_id

        # Deep links vindos do botão do canal
        if argument.startswith("comment_"):
            page = await self._lifecycle.comments_page(argument[len("comment_"):])
            await self._send(chat_id, views.comment_landing(page))
            return
        if argument.startswith("comments_"):
            await self._show_comments(chat_id, user_id, argument[len("comments_"):], 1)
            return

        user = await self._users.require_active(user_id)
        if not user.username or user.username == PLACEHOLDER_USERNAME:
            await self._conversations.set(user_id, AwaitingUsername(origin_chat_id=chat_id))
            await self._send(chat_id, views.welcome_new())
            return

        await self._send(chat_id, views.welcome_back(user))
        await self._show_main_menu(chat_id, user_id)

    # -----------------------------------------------------------------------
    # Fluxos
    # -----------------------------------------------------------------------

    async def _continue_flow(self, msg: TextMessage, flow: Flow) -> None:
        if isinstance(flow, ADMIN_FLOWS):
            self._require_admin(msg.user_id)
        await self._users.require_active(msg.user_id)
        handler = self._flow_handlers[type(flow)]
        await handler(msg, flow)

    async def _finish_username(self, msg: TextMessage, flow: AwaitingUsername) -> None:
        user = await self._users.set_username(msg.user_id, msg.text)
        await self._conversations.clear(msg.user_id)
        await self._say(msg.chat_id, f"✅ Display name updated to {user.username}!")
        await self._show_main_menu(msg.chat_id, msg.user_id)

    async def _finish_bio(self, msg: TextMessage, flow: AwaitingBio) -> None:
        await self._users.set_bio(msg.user_id, msg.text)
        await self._conversations.clear(msg.user_id)
        await self._say(msg.chat_id, "✅ Bio updated successfully!")

    async def _finish_confession(self, msg: TextMessage, flow: AwaitingConfession) -> None:
        confession = await self._lifecycle.submit(msg.user_id, msg.text)
        await self._conversations.clear(msg.user_id)
        await self._send(msg.chat_id, views.confession_submitted(confession))

    async def _finish_comment(self, msg: TextMessage, flow: AwaitingComment) -> None:
        await self._lifecycle.add_comment(msg.user_id, flow.confession_id, msg.text)
        await self._conversations.clear(msg.user_id)
        await self._say(msg.chat_id, "✅ Comment added successfully!")
        await self._show_comments(msg.chat_id, msg.user_id, flow.confession_id, 1)

    async def _finish_rejection(self, msg: TextMessage, flow: AwaitingRejectionReason) -> None:
        confession = await self._lifecycle.reject(msg.user_id, flow.confession_id, msg.text)
        await self._conversations.clear(msg.user_id)
        await self._say(msg.chat_id, f"✅ Confession #{confession.number} rejected.")

    async def _finish_block(self, msg: TextMessage, flow: AwaitingBlockTarget) -> None:
        target_id = _parse_user_id(msg.text)
        user = await self._users.set_active(target_id, False)
        await self._conversations.clear(msg.user_id)
        await self._say(msg.chat_id, f"✅ User {user.username or target_id} has been blocked.")

    async def _finish_message_target(self, msg: TextMessage, flow: AwaitingMessageTarget) -> None:
        target_id = _parse_user_id(msg.text)
        if await self._users.get(target_id) is None:
            raise NotFoundError("❌ User not found.")
        await self._conversations.set(msg.user_id, AwaitingMessageBody(target_user_id=target_id))
        await self._send(msg.chat_id, views.message_body_prompt(target_id))

    async def _finish_message_body(self, msg: TextMessage, flow: AwaitingMessageBody) -> None:
        target_id = flow.target_user_id
        body = msg.text.strip()
        if not body:
            raise ValidationError("❌ Message cannot be empty.")

        await self._conversations.clear(msg.user_id)
        try:
            await self._transport.send_message(target_id, f"📨 <b>Message from Admin</b>\n\n{_escape(body)}")
        except (httpx.HTTPError, TelegramError) as e:
            log.error(f"Erro ao enviar mensagem do admin para {target_id}: {e}")
            await self._say(msg.chat_id, f"❌ Failed to send message to user {target_id}")
            return
        await self._say(msg.chat_id, f"✅ Message sent to user {target_id}")

    async def _finish_broadcast(self, msg: TextMessage, flow: AwaitingBroadcastBody) -> None:
        body = msg.text.strip()
        if not body:
            raise ValidationError("❌ Broadcast message cannot be empty.")

        await self._conversations.clear(msg.user_id)
        success, failed = await self.broadcast(body)
        await self._send(msg.chat_id, views.broadcast_report(success, failed))

    async def broadcast(self, body: str) -> tuple[int, int]:
        """Envia a todos os usuários ativos; falha em um não interrompe os demais."""
        text = f"📢 <b>Broadcast Message</b>\n\n{_escape(body)}"
        success = failed = 0
        for user_id in await self._users.active_ids():
            try:
                await self._transport.send_message(user_id, text)
                success += 1
            except Exception as e:
                failed += 1
                log.error(f"Broadcast falhou para {user_id}: {e}")
        log.info(f"Broadcast concluído: {success} enviados, {failed} falhas")
        return success, failed

    # -----------------------------------------------------------------------
    # Botões
    # -----------------------------------------------------------------------

    async def _route_button(self, press: ButtonPress, action) -> str | None:
        chat_id, user_id = press.chat_id, press.user_id

        if isinstance(action, MenuAction):
            if action.menu in ADMIN_MENUS:
                self._require_admin(user_id)
            return await self._menu_handlers[action.menu](chat_id, user_id)

        if isinstance(action, Approve):
            return await self._approve(chat_id, user_id, action.confession_id)
        if isinstance(action, Reject):
            return await self._start_rejection(chat_id, user_id, action.confession_id)
        if isinstance(action, AddComment):
            return await self._start_comment(chat_id, user_id, action.confession_id)
        if isinstance(action, CommentsPage):
            await self._show_comments(chat_id, user_id, action.confession_id, action.page)
            return None
        if isinstance(action, FollowAuthor):
            return await self._follow_author(chat_id, user_id, action.confession_id)
        if isinstance(action, ViewProfile):
            await self._show_profile(chat_id, user_id, action.user_id)
            return None
        if isinstance(action, FollowUser):
            return await self._follow(chat_id, user_id, action.user_id)
        if isinstance(action, UnfollowUser):
            return await self._unfollow(chat_id, user_id, action.user_id)
        if isinstance(action, ViewUser):
            self._require_admin(user_id)
            await self._show_user_details(chat_id, action.user_id)
            return None
        if isinstance(action, ToggleBlock):
            self._require_admin(user_id)
            user = await self._users.toggle_active(action.user_id)
            state = "unblocked" if user.is_active else "blocked"
            await self._say(chat_id, f"✅ User {user.username or user.id} has been {state}.")
            return None
        raise UnknownActionError(f"sem rota para {action!r}")

    async def _approve(self, chat_id: int, admin_id: int, confession_id: str) -> str:
        try:
            confession = await self._lifecycle.approve(admin_id, confession_id)
        except (httpx.HTTPError, TelegramError) as e:
            log.error(f"Falha ao publicar {confession_id}: {e}")
            await self._say(chat_id, "❌ Error approving confession. It is still pending, try again.")
            return "❌ Error approving confession"

        if confession.status != POSTED:
            await self._say(chat_id, f"ℹ️ Confession #{confession.number} is {confession.status}.")
            return None
        await self._say(
            chat_id,
            f"✅ <b>Confession #{confession.number} Approved!</b>\n\nPosted to channel successfully.",
        )
        return "✅ Confession approved!"

    async def _start_rejection(self, chat_id: int, admin_id: int, confession_id: str) -> str:
        self._require_admin(admin_id)
        if await self._lifecycle.get(confession_id) is None:
            raise NotFoundError("❌ Confession not found")
        await self._conversations.set(admin_id, AwaitingRejectionReason(confession_id=confession_id))
        await self._send(chat_id, views.rejection_prompt())
        return "Please provide rejection reason"

    async def _start_comment(self, chat_id: int, user_id: int, confession_id: str) -> None:
        await self._users.require_active(user_id)
        # Falha cedo se a confissão não aceita comentários
        await self._lifecycle.comments_page(confession_id)
        await self._conversations.set(user_id, AwaitingComment(confession_id=confession_id))
        await self._send(chat_id, views.comment_prompt())

    async def _follow(self, chat_id: int, user_id: int, target_id: int) -> str:
        target = await self._users.follow(user_id, target_id)
        await self._say(chat_id, f"✅ Following {_escape(target.username)}!")
        return "✅ Followed user!"

    async def _follow_author(self, chat_id: int, user_id: int, confession_id: str) -> str:
        confession = await self._lifecycle.get(confession_id)
        if confession is None:
            raise NotFoundError("❌ Confession not found")
        await self._users.follow(user_id, confession.user_id)
        await self._say(chat_id, "✅ You are now following the author!")
        return "✅ Followed author!"

    async def _unfollow(self, chat_id: int, user_id: int, target_id: int) -> str:
        target = await self._users.get(target_id)
        if target is None:
            raise NotFoundError("❌ User not found")
        await self._users.unfollow(user_id, target_id)
        await self._say(chat_id, f"❌ Unfollowed {_escape(target.username)}")
        return "✅ Unfollowed user!"

    # -----------------------------------------------------------------------
    # Início de fluxos
    # -----------------------------------------------------------------------

    async def _start_confession(self, chat_id: int, user_id: int) -> None:
        await self._users.require_active(user_id)
        await self._lifecycle.ensure_can_submit(user_id)
        await self._conversations.set(user_id, AwaitingConfession())
        await self._send(chat_id, views.confession_prompt())

    async def _start_username(self, chat_id: int, user_id: int) -> None:
        await self._conversations.set(user_id, AwaitingUsername(origin_chat_id=chat_id))
        await self._send(chat_id, views.username_prompt())

    async def _start_bio(self, chat_id: int, user_id: int) -> None:
        await self._users.require_active(user_id)
        await self._conversations.set(user_id, AwaitingBio(origin_chat_id=chat_id))
        await self._send(chat_id, views.bio_prompt())

    async def _start_block(self, chat_id: int, user_id: int) -> None:
        await self._conversations.set(user_id, AwaitingBlockTarget(origin_chat_id=chat_id))
        await self._send(chat_id, views.block_prompt())

    async def _start_message_user(self, chat_id: int, user_id: int) -> None:
        await self._conversations.set(user_id, AwaitingMessageTarget(origin_chat_id=chat_id))
        await self._send(chat_id, views.message_target_prompt())

    async def _start_broadcast(self, chat_id: int, user_id: int) -> None:
        await self._conversations.set(user_id, AwaitingBroadcastBody(origin_chat_id=chat_id))
        await self._send(chat_id, views.broadcast_prompt())

    # -----------------------------------------------------------------------
    # Telas
    # -----------------------------------------------------------------------

    async def _noop(self, chat_id: int, user_id: int) -> None:
        return None

    async def _saved(self, chat_id: int, user_id: int) -> str:
        return "✅ Settings saved!"

    async def _show_main_menu(self, chat_id: int, user_id: int) -> None:
        user = await self._users.get_or_create(user_id)
        level, comments = await self._stats.user_level(user_id)
        await self._send(chat_id, views.main_menu(user, level, comments))

    async def _show_promote(self, chat_id: int, user_id: int) -> None:
        await self._send(chat_id, views.promote(self._config))

    async def _show_about(self, chat_id: int, user_id: int) -> None:
        await self._send(chat_id, views.about())

    async def _show_rules(self, chat_id: int, user_id: int) -> None:
        await self._send(chat_id, views.rules())

    async def _show_settings(self, chat_id: int, user_id: int) -> None:
        await self._send(chat_id, views.settings_menu())

    async def _show_own_profile(self, chat_id: int, user_id: int) -> None:
        user = await self._users.get_or_create(user_id)
        level, comments = await self._stats.user_level(user_id)
        followers, following = await self._users.follow_counts(user_id)
        await self._send(chat_id, views.profile(user, level, comments, followers, following, own=True))

    async def _show_profile(self, chat_id: int, viewer_id: int, target_id: int) -> None:
        if target_id == viewer_id:
            await self._show_own_profile(chat_id, viewer_id)
            return
        target = await self._users.get(target_id)
        if target is None:
            raise NotFoundError("❌ User not found")
        level, comments = await self._stats.user_level(target_id)
        followers, following = await self._users.follow_counts(target_id)
        is_following = await self._users.is_following(viewer_id, target_id)
        await self._send(
            chat_id,
            views.profile(target, level, comments, followers, following, own=False, is_following=is_following),
        )

    async def _people(self, user_ids: list[int]) -> list:
        shown = user_ids[:FOLLOW_LIST_LIMIT]
        found = await self._users.get_many(shown)
        people = []
        for uid in shown:
            if uid in found:
                level, _ = await self._stats.user_level(uid)
                people.append((found[uid], level))
        return people

    async def _show_followers(self, chat_id: int, user_id: int) -> None:
        ids = await self._users.follower_ids(user_id)
        await self._send(chat_id, views.people_list(
            "Your Followers",
            "No followers yet. Share your profile to get followers!",
            await self._people(ids),
            len(ids),
        ))

    async def _show_following(self, chat_id: int, user_id: int) -> None:
        ids = await self._users.following_ids(user_id)
        await self._send(chat_id, views.people_list(
            "You're Following",
            "Not following anyone yet. Browse users to find people to follow!",
            await self._people(ids),
            len(ids),
        ))

    async def _show_my_confessions(self, chat_id: int, user_id: int) -> None:
        await self._send(chat_id, views.my_confessions(await self._lifecycle.list_by_author(user_id)))

    async def _show_achievements(self, chat_id: int, user_id: int) -> None:
        await self._send(chat_id, views.achievements(await self._users.get_or_create(user_id)))

    async def _show_notification_settings(self, chat_id: int, user_id: int) -> None:
        await self._send(chat_id, views.notification_settings(await self._users.get_or_create(user_id)))

    async def _show_comment_settings(self, chat_id: int, user_id: int) -> None:
        await self._send(chat_id, views.comment_settings(await self._users.get_or_create(user_id)))

    def _preference_toggler(self, preference: str) -> Handler:
        labels = {
            "new_follower": "New Followers",
            "new_comment": "New Comments",
            "new_confession": "New Confessions",
            "direct_message": "Direct Messages",
        }

        async def toggle(chat_id: int, user_id: int) -> str:
            await self._users.require_active(user_id)
            enabled = await self._users.toggle_preference(user_id, preference)
            await self._show_notification_settings(chat_id, user_id)
            return f"{labels[preference]}: {'ON' if enabled else 'OFF'}"

        return toggle

    def _policy_setter(self, policy: str, ack: str) -> Handler:
        async def set_policy(chat_id: int, user_id: int) -> str:
            await self._users.require_active(user_id)
            await self._users.set_comment_policy(user_id, policy)
            await self._show_comment_settings(chat_id, user_id)
            return ack

        return set_policy

    def _flag_toggler(self, flag: str, label: str) -> Handler:
        async def toggle(chat_id: int, user_id: int) -> str:
            await self._users.require_active(user_id)
            enabled = await self._users.toggle_comment_flag(user_id, flag)
            await self._show_comment_settings(chat_id, user_id)
            return f"{label}: {'ON' if enabled else 'OFF'}"

        return toggle

    async def _show_trending(self, chat_id: int, user_id: int) -> None:
        await self._send(chat_id, views.trending(await self._stats.trending()))

    async def _show_hashtags(self, chat_id: int, user_id: int) -> None:
        await self._send(chat_id, views.hashtags(await self._stats.popular_hashtags()))

    async def _show_best_commenters(self, chat_id: int, user_id: int) -> None:
        await self._send(chat_id, views.best_commenters(await self._stats.top_commenters()))

    async def _show_my_rank(self, chat_id: int, user_id: int) -> None:
        level, comments = await self._stats.user_level(user_id)
        position, total = await self._stats.comment_rank(user_id)
        await self._send(chat_id, views.my_rank(level, comments, position, total))

    async def _show_browse_users(self, chat_id: int, user_id: int) -> None:
        entries = []
        for user in await self._users.list_active(exclude=user_id):
            level, _ = await self._stats.user_level(user.id)
            followers, _ = await self._users.follow_counts(user.id)
            entries.append((user, level, followers))
        await self._send(chat_id, views.browse_users(entries))

    async def _show_comments(self, chat_id: int, user_id: int, confession_id: str, page: int) -> None:
        comment_page = await self._lifecycle.comments_page(confession_id, page)
        levels = {}
        for comment in comment_page.comments:
            if comment.user_id not in levels:
                levels[comment.user_id], _ = await self._stats.user_level(comment.user_id)

        author_id = comment_page.confession.user_id
        can_follow = author_id != user_id and not await self._users.is_following(user_id, author_id)
        await self._send(chat_id, views.comments(comment_page, levels, can_follow_author=can_follow))

    # -----------------------------------------------------------------------
    # Telas de admin
    # -----------------------------------------------------------------------

    async def _show_admin_dashboard(self, chat_id: int, user_id: int) -> None:
        self._require_admin(user_id)
        await self._send(chat_id, views.admin_dashboard(await self._stats.overview()))

    async def _show_bot_stats(self, chat_id: int, user_id: int) -> None:
        await self._send(chat_id, views.bot_stats(await self._stats.overview()))

    async def _show_manage_users(self, chat_id: int, user_id: int) -> None:
        users = await self._users.list_all(limit=10)
        await self._send(chat_id, views.manage_users(users, await self._users.count()))

    async def _show_user_details(self, chat_id: int, target_id: int) -> None:
        user = await self._users.get(target_id)
        if user is None:
            raise NotFoundError("❌ User not found")
        level, comments = await self._stats.user_level(target_id)
        followers, following = await self._users.follow_counts(target_id)
        await self._send(chat_id, views.user_details(user, level, comments, followers, following))

    async def _show_pending(self, chat_id: int, user_id: int) -> None:
        pending = await self._lifecycle.list_pending()
        authors = await self._users.get_many(list({c.user_id for c in pending}))
        await self._send(chat_id, views.pending_review(pending, authors))


def _parse_user_id(text: str) -> int:
    raw = (text or "").strip()
    if not raw.lstrip("-").isdigit():
        raise ValidationError("❌ Invalid user ID. Please enter a numeric user ID.")
    return int(raw)


def _escape(text: str | None) -> str:
    return html.escape(text or "")


def build_dispatcher(config: BotConfig, session_factory, transport) -> Dispatcher:
    """Monta o grafo de serviços sobre uma fábrica de sessões e um transporte."""
    guard = AbuseGuard(session_factory)
    users = UserDirectory(session_factory, transport)
    lifecycle = ConfessionLifecycle(
        session_factory,
        config,
        SequenceAllocator(session_factory),
        guard,
        users,
        ChannelPublisher(transport, config),
        transport,
    )
    return Dispatcher(
        config,
        transport,
        users,
        ConversationStore(session_factory),
        lifecycle,
        StatsService(session_factory),
    )
