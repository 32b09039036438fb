"""
app/bot/actions.py

Parser estrito das chaves de ação dos botões inline (`callback_data`).

Formato: `verbo_<id>[_<extra>]` ou uma palavra-chave fixa de menu.
`parse_action()` devolve uma das variantes abaixo ou levanta
UnknownActionError; nunca "cai" para outra ação por prefixo parcial.
"""

import re
from dataclasses import dataclass
from enum import Enum


class UnknownActionError(ValueError):
    pass


class Menu(str, Enum):
    SEND_CONFESSION = "send_confession"
    MY_PROFILE = "my_profile"
    PROMOTE_BOT = "promote_bot"
    BACK_TO_MENU = "back_to_menu"
    SETTINGS_MENU = "settings_menu"
    SET_USERNAME = "set_username"
    SET_BIO = "set_bio"
    SHOW_FOLLOWERS = "show_followers"
    SHOW_FOLLOWING = "show_following"
    MY_CONFESSIONS = "my_confessions"
    COMMENT_SETTINGS = "comment_settings"
    NOTIFICATION_SETTINGS = "notification_settings"
    VIEW_RANKINGS = "view_rankings"
    VIEW_MY_RANK = "view_my_rank"
    VIEW_ACHIEVEMENTS = "view_achievements"
    BROWSE_USERS = "browse_users"
    TRENDING = "trending"
    CURRENT_PAGE = "current_page"
    ADMIN_MENU = "admin_menu"
    MANAGE_USERS = "manage_users"
    REVIEW_CONFESSIONS = "review_confessions"
    BOT_STATS = "bot_stats"
    BLOCK_USER = "block_user"
    MESSAGE_USER = "message_user"
    BROADCAST_MESSAGE = "broadcast_message"
    TOGGLE_FOLLOWER_NOTIF = "toggle_follower_notif"
    TOGGLE_COMMENT_NOTIF = "toggle_comment_notif"
    TOGGLE_CONFESSION_NOTIF = "toggle_confession_notif"
    TOGGLE_DM_NOTIF = "toggle_dm_notif"
    SAVE_NOTIFICATIONS = "save_notifications"
    COMMENT_EVERYONE = "comment_everyone"
    COMMENT_FOLLOWERS = "comment_followers"
    COMMENT_ADMIN = "comment_admin"
    COMMENT_ANON = "comment_anon"
    COMMENT_APPROVE = "comment_approve"
    SAVE_COMMENT_SETTINGS = "save_comment_settings"


ADMIN_MENUS = frozenset({
    Menu.ADMIN_MENU,
    Menu.MANAGE_USERS,
    Menu.REVIEW_CONFESSIONS,
    Menu.BOT_STATS,
    Menu.BLOCK_USER,
    Menu.MESSAGE_USER,
    Menu.BROADCAST_MESSAGE,
})

NOTIFICATION_TOGGLES = {
    Menu.TOGGLE_FOLLOWER_NOTIF: "new_follower",
    Menu.TOGGLE_COMMENT_NOTIF: "new_comment",
    Menu.TOGGLE_CONFESSION_NOTIF: "new_confession",
    Menu.TOGGLE_DM_NOTIF: "direct_message",
}


@dataclass(frozen=True)
class MenuAction:
    menu: Menu


@dataclass(frozen=True)
class Approve:
    confession_id: str


@dataclass(frozen=True)
class Reject:
    confession_id: str


@dataclass(frozen=True)
class AddComment:
    confession_id: str


@dataclass(frozen=True)
class CommentsPage:
    confession_id: str
    page: int


@dataclass(frozen=True)
class FollowAuthor:
    confession_id: str


@dataclass(frozen=True)
class ViewProfile:
    user_id: int


@dataclass(frozen=True)
class FollowUser:
    user_id: int


@dataclass(frozen=True)
class UnfollowUser:
    user_id: int


@dataclass(frozen=True)
class ViewUser:
    user_id: int


@dataclass(frozen=True)
class ToggleBlock:
    user_id: int


Action = (
    MenuAction | Approve | Reject | AddComment | CommentsPage | FollowAuthor
    | ViewProfile | FollowUser | UnfollowUser | ViewUser | ToggleBlock
)

CONFESSION_ID = re.compile(r"^confess_-?\d+_\d+$")
USER_ID = re.compile(r"^-?\d+$")

# Prefixos mais longos primeiro: "follow_author_" antes de "follow_"
_CONFESSION_ACTIONS = (
    ("follow_author_", FollowAuthor),
    ("add_comment_", AddComment),
    ("approve_", Approve),
    ("reject_", Reject),
)
_USER_ACTIONS = (
    ("view_profile_", ViewProfile),
    ("toggle_block_", ToggleBlock),
    ("view_user_", ViewUser),
    ("unfollow_", UnfollowUser),
    ("follow_", FollowUser),
)


def _confession_id(raw: str, data: str) -> str:
    if not CONFESSION_ID.match(raw):
        raise UnknownActionError(f"id de confissão inválido em {data!r}")
    return raw


def _user_id(raw: str, data: str) -> int:
    if not USER_ID.match(raw):
        raise UnknownActionError(f"id de usuário inválido em {data!r}")
    return int(raw)


def parse_action(data: str) -> Action:
    if not data:
        raise UnknownActionError("callback_data vazio")

    try:
        return MenuAction(Menu(data))
    except ValueError:
        pass

    if data.startswith("comments_page_"):
        # O id da confissão contém "_": a página é sempre o último segmento
        confession_id, _, page = data[len("comments_page_"):].rpartition("_")
        if not page.isdigit() or int(page) < 1:
            raise UnknownActionError(f"página inválida em {data!r}")
        return CommentsPage(_confession_id(confession_id, data), int(page))

    for prefix, action_type in _CONFESSION_ACTIONS:
        if data.startswith(prefix):
            return action_type(_confession_id(data[len(prefix):], data))

    for prefix, action_type in _USER_ACTIONS:
        if data.startswith(prefix):
            return action_type(_user_id(data[len(prefix):], data))

    raise UnknownActionError(f"ação desconhecida: {data!r}")
