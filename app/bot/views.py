"""
app/bot/views.py

Textos e teclados enviados ao usuário.

Cada função devolve uma `Screen` (texto HTML, reply_markup). Todo conteúdo
vindo do usuário passa por `html.escape` antes de entrar no texto.
"""

import html

from app.config import BotConfig
from app.models.confession import Confession
from app.models.user import PLACEHOLDER_USERNAME, User
from app.services.confessions import CommentPage
from app.services.stats import Commenter, Level

Screen = tuple[str, dict | None]

BACK_TO_MENU = {"text": "🔙 Back to Menu", "callback_data": "back_to_menu"}
BACK_TO_PROFILE = {"text": "🔙 Back to Profile", "callback_data": "my_profile"}
ADMIN_MENU = {"text": "🔙 Admin Menu", "callback_data": "admin_menu"}
SEND_CONFESSION = {"text": "📝 Send Confession", "callback_data": "send_confession"}
BROWSE_USERS = {"text": "🔍 Browse Users", "callback_data": "browse_users"}


# ---------------------------------------------------------------------------
# Teclado principal
# ---------------------------------------------------------------------------

MENU_SEND_CONFESSION = "📝 Send Confession"
MENU_MY_PROFILE = "👤 My Profile"
MENU_TRENDING = "🔥 Trending"
MENU_PROMOTE = "📢 Promote Bot"
MENU_HASHTAGS = "🏷️ Hashtags"
MENU_BEST_COMMENTERS = "🏆 Best Commenters"
MENU_SETTINGS = "⚙️ Settings"
MENU_ABOUT = "ℹ️ About Us"
MENU_BROWSE_USERS = "🔍 Browse Users"
MENU_RULES = "📌 Rules"

MAIN_KEYBOARD = {
    "keyboard": [
        [{"text": MENU_SEND_CONFESSION}, {"text": MENU_MY_PROFILE}],
        [{"text": MENU_TRENDING}, {"text": MENU_PROMOTE}],
        [{"text": MENU_HASHTAGS}, {"text": MENU_BEST_COMMENTERS}],
        [{"text": MENU_SETTINGS}, {"text": MENU_ABOUT}],
        [{"text": MENU_BROWSE_USERS}, {"text": MENU_RULES}],
    ],
    "resize_keyboard": True,
}


def _inline(*rows: list[dict]) -> dict:
    return {"inline_keyboard": [list(row) for row in rows]}


def _name(user: User | None) -> str:
    if user is None or not user.username:
        return PLACEHOLDER_USERNAME
    return html.escape(user.username)


def _preview(text: str, limit: int) -> str:
    text = text if len(text) <= limit else text[:limit] + "..."
    return html.escape(text)


def _level_line(level: Level, comments: int) -> str:
    return f"{level.symbol} {level.name} ({comments} comments)"


def main_menu(user: User, level: Level, comments: int) -> Screen:
    text = (
        "🤫 <b>JU Confession Bot</b>\n\n"
        f"👤 Profile: {_name(user) if user.username else 'Not set'}\n"
        f"⭐ Reputation: {user.reputation}\n"
        f"🔥 Streak: {user.daily_streak} days\n"
        f"🏆 Level: {_level_line(level, comments)}\n\n"
        "Choose an option below:"
    )
    return text, MAIN_KEYBOARD


def welcome_new() -> Screen:
    return (
        "🤫 <b>Welcome to JU Confession Bot!</b>\n\n"
        "First, please set your display name:\n\n"
        "Enter your desired name (3-20 characters, letters/numbers/underscores only):",
        None,
    )


def welcome_back(user: User) -> Screen:
    return (
        f"🤫 <b>Welcome back, {_name(user)}!</b>\n\n"
        "Send me your confession and it will be submitted anonymously for admin approval.\n\n"
        "Your identity will never be revealed!",
        None,
    )


def cancelled() -> Screen:
    return "✅ Cancelled. Nothing was changed.", MAIN_KEYBOARD


def help_text(is_admin: bool) -> Screen:
    text = (
        "ℹ️ <b>JU Confession Bot Help</b>\n\n"
        "<b>How to Use:</b>\n"
        '1. Click "📝 Send Confession" to submit anonymously\n'
        "2. Wait for admin approval\n"
        "3. View approved confessions in channel\n"
        "4. Comment on confessions and build reputation\n\n"
        "<b>Commands:</b>\n"
        "/start - Start the bot\n"
        "/help - Show this help\n"
        "/cancel - Cancel the current action\n"
    )
    if is_admin:
        text += "\n<b>⚡ Admin Commands:</b>\n/admin - Admin panel\n"
    return text, _inline(
        [SEND_CONFESSION, {"text": "👤 My Profile", "callback_data": "my_profile"}],
        [BACK_TO_MENU],
    )


def about() -> Screen:
    return (
        "ℹ️ <b>About Us</b>\n\n"
        "This is an anonymous confession platform for JU students.\n\n"
        "Features:\n• Anonymous confessions\n• Admin approval system\n• User profiles\n"
        "• Social features\n• Comment system\n• Reputation system\n• Level system\n"
        "• Best commenters\n\n100% private and secure.",
        _inline(
            [SEND_CONFESSION, {"text": "📢 Promote Bot", "callback_data": "promote_bot"}],
            [BROWSE_USERS, BACK_TO_MENU],
        ),
    )


def rules() -> Screen:
    return (
        "📌 <b>Confession Rules</b>\n\n"
        "✅ Be respectful\n✅ No personal attacks\n✅ No spam or ads\n✅ Keep it anonymous\n"
        "✅ No hate speech\n✅ No illegal content\n✅ No harassment\n✅ Use appropriate hashtags",
        _inline(
            [SEND_CONFESSION, {"text": "📢 Promote Bot", "callback_data": "promote_bot"}],
            [BROWSE_USERS, BACK_TO_MENU],
        ),
    )


def promote(config: BotConfig) -> Screen:
    bot_url = f"https://t.me/{config.bot_username}"
    rows = [[{
        "text": "📤 Share Bot",
        "url": f"https://t.me/share/url?url={bot_url}&text=Check%20out%20this%20anonymous%20confession%20bot!",
    }]]
    if config.channel_id.startswith("@"):
        rows.append([{"text": "📢 Join Channel", "url": f"https://t.me/{config.channel_id[1:]}"}])
    rows.append([BACK_TO_MENU])
    return (
        f"📢 <b>Help Us Grow!</b>\n\nShare our bot with friends:\n{bot_url}\n\n"
        "Join our channel for confessions:",
        _inline(*rows),
    )


# ---------------------------------------------------------------------------
# Prompts dos fluxos
# ---------------------------------------------------------------------------

def confession_prompt() -> Screen:
    return (
        "✍️ <b>Send Your Confession</b>\n\n"
        "Type your confession below (max 1000 characters):\n\n"
        "You can add hashtags like #love #study #funny",
        None,
    )


def confession_submitted(confession: Confession) -> Screen:
    return (
        f"✅ <b>Confession #{confession.number} Submitted!</b>\n\n"
        "Your confession is under review. You'll be notified when approved.",
        _inline(
            [
                {"text": "📝 Send Another", "callback_data": "send_confession"},
                {"text": "📢 Promote Bot", "callback_data": "promote_bot"},
            ],
            [BACK_TO_MENU],
        ),
    )


def username_prompt() -> Screen:
    return (
        "📝 <b>Set Display Name</b>\n\nEnter your desired display name:\n\n"
        "Must be 3-20 characters, letters/numbers/underscores only.",
        None,
    )


def bio_prompt() -> Screen:
    return "📝 <b>Set Bio</b>\n\nEnter your bio (max 100 characters):", None


def comment_prompt() -> Screen:
    return "📝 <b>Add Comment</b>\n\nType your comment for this confession:", None


def rejection_prompt() -> Screen:
    return "❌ <b>Rejecting Confession</b>\n\nPlease provide rejection reason:", None


def block_prompt() -> Screen:
    return "❌ <b>Block User</b>\n\nEnter user ID to block:", None


def message_target_prompt() -> Screen:
    return "✉️ <b>Message User</b>\n\nEnter user ID to message:", None


def message_body_prompt(target_user_id: int) -> Screen:
    return f"✉️ Now enter your message for user {target_user_id}:", None


def broadcast_prompt() -> Screen:
    return "📢 <b>Broadcast Message</b>\n\nEnter your broadcast message:", None


# ---------------------------------------------------------------------------
# Perfil
# ---------------------------------------------------------------------------

def profile(
    user: User,
    level: Level,
    comments: int,
    followers: int,
    following: int,
    *,
    own: bool,
    is_following: bool = False,
) -> Screen:
    title = "👤 <b>My Profile</b>" if own else "👤 <b>Profile</b>"
    text = (
        f"{title}\n\n"
        f"<b>Display Name:</b> {_name(user)}\n"
        f"<b>Level:</b> {_level_line(level, comments)}\n"
        f"<b>Bio:</b> {html.escape(user.bio) if user.bio else ('Not set' if own else 'No bio')}\n"
        f"<b>Followers:</b> {followers}\n"
        f"<b>Following:</b> {following}\n"
        f"<b>Confessions:</b> {user.total_confessions}\n"
        f"<b>Reputation:</b> {user.reputation}⭐\n"
        f"<b>Achievements:</b> {len(user.achievements or [])}\n"
    )
    if own:
        text += f"<b>Daily Streak:</b> {user.daily_streak} days\n"
    text += f"<b>Member Since:</b> {user.joined_at:%Y-%m-%d}\n"

    if own:
        keyboard = _inline(
            [
                {"text": "📝 Set Username", "callback_data": "set_username"},
                {"text": "📝 Set Bio", "callback_data": "set_bio"},
            ],
            [
                {"text": "🔒 Comment Settings", "callback_data": "comment_settings"},
                {"text": "🔔 Notification Settings", "callback_data": "notification_settings"},
            ],
            [
                {"text": "📝 My Confessions", "callback_data": "my_confessions"},
                {"text": "👥 Followers", "callback_data": "show_followers"},
            ],
            [
                {"text": "👥 Following", "callback_data": "show_following"},
                {"text": "🏆 View Achievements", "callback_data": "view_achievements"},
            ],
            [
                {"text": "🏆 View Rankings", "callback_data": "view_rankings"},
                BROWSE_USERS,
            ],
            [BACK_TO_MENU],
        )
    else:
        follow_button = (
            {"text": "✅ Following", "callback_data": f"unfollow_{user.id}"}
            if is_following
            else {"text": "➕ Follow", "callback_data": f"follow_{user.id}"}
        )
        keyboard = _inline([follow_button], [BACK_TO_MENU])
    return text, keyboard


def people_list(title: str, empty: str, people: list[tuple[User, Level]], total: int) -> Screen:
    """Lista de seguidores ou seguidos (até 20 nomes)."""
    keyboard = _inline([BROWSE_USERS, BACK_TO_PROFILE])
    if total == 0:
        return f"👥 <b>{title}</b>\n\n{empty}", keyboard

    text = f"👥 <b>{title} ({total})</b>\n\n"
    text += "".join(f"• {level.symbol} {_name(user)}\n" for user, level in people)
    if total > len(people):
        text += f"\n... and {total - len(people)} more"
    return text, keyboard


def my_confessions(confessions: list[Confession]) -> Screen:
    if not confessions:
        return "📝 <b>My Confessions</b>\n\nYou haven't submitted any confessions yet.", None

    text = "📝 <b>My Confessions</b>\n\n"
    for confession in confessions:
        text += (
            f"#{confession.number} - {confession.status.capitalize()}\n"
            f'"{_preview(confession.text, 50)}"\n'
            f"Comments: {confession.total_comments} | Likes: {confession.likes}\n\n"
        )
    return text, _inline(
        [
            {"text": "📝 Send New", "callback_data": "send_confession"},
            {"text": "🔄 Refresh", "callback_data": "my_confessions"},
        ],
        [BACK_TO_PROFILE],
    )


def achievements(user: User) -> Screen:
    earned = user.achievements or []
    if not earned:
        text = (
            "🏆 <b>Your Achievements</b>\n\n"
            "No achievements yet. Keep using the bot to earn achievements!"
        )
    else:
        text = "🏆 <b>Your Achievements</b>\n\n" + "".join(
            f"{index}. {html.escape(str(item))}\n" for index, item in enumerate(earned, start=1)
        )
    return text, _inline([BACK_TO_PROFILE])


def settings_menu() -> Screen:
    return (
        "⚙️ <b>Settings</b>\n\nManage your bot preferences and privacy settings.",
        _inline(
            [
                {"text": "🔔 Notifications", "callback_data": "notification_settings"},
                {"text": "📝 Profile", "callback_data": "my_profile"},
            ],
            [
                {"text": "🔒 Comments", "callback_data": "comment_settings"},
                {"text": "🏆 Achievements", "callback_data": "view_achievements"},
            ],
            [BACK_TO_MENU],
        ),
    )


def _on_off(flag: bool) -> str:
    return "✅ ON" if flag else "❌ OFF"


def _check(flag: bool, label: str) -> str:
    return f"{'✅' if flag else '❌'} {label}"


def notification_settings(user: User) -> Screen:
    text = (
        "🔔 <b>Notification Settings</b>\n\n"
        f"🔔 New Followers: {_on_off(user.wants('new_follower'))}\n"
        f"💬 New Comments: {_on_off(user.wants('new_comment'))}\n"
        f"📝 New Confessions: {_on_off(user.wants('new_confession'))}\n"
        f"✉️ Direct Messages: {_on_off(user.wants('direct_message'))}\n\n"
        "Tap buttons to toggle settings:"
    )
    return text, _inline(
        [
            {"text": _check(user.wants("new_follower"), "Followers"), "callback_data": "toggle_follower_notif"},
            {"text": _check(user.wants("new_comment"), "Comments"), "callback_data": "toggle_comment_notif"},
        ],
        [
            {"text": _check(user.wants("new_confession"), "Confessions"), "callback_data": "toggle_confession_notif"},
            {"text": _check(user.wants("direct_message"), "Messages"), "callback_data": "toggle_dm_notif"},
        ],
        [
            {"text": "💾 Save", "callback_data": "save_notifications"},
            {"text": "🔙 Back", "callback_data": "settings_menu"},
        ],
    )


def comment_settings(user: User) -> Screen:
    policy = user.comment_policy
    text = (
        "🔒 <b>Comment Settings</b>\n\n"
        "Who can comment on your confessions:\n"
        f"• {_check(policy == 'everyone', 'Everyone')}\n"
        f"• {_check(policy == 'followers', 'Followers Only')}\n"
        f"• {_check(policy == 'admin', 'Admin Only')}\n\n"
        f"Allow anonymous comments: {'✅ Yes' if user.allow_anonymous else '❌ No'}\n"
        f"Require comment approval: {'✅ Yes' if user.require_approval else '❌ No'}\n"
    )
    return text, _inline(
        [
            {"text": _check(policy == "everyone", "Everyone"), "callback_data": "comment_everyone"},
            {"text": _check(policy == "followers", "Followers"), "callback_data": "comment_followers"},
            {"text": _check(policy == "admin", "Admin"), "callback_data": "comment_admin"},
        ],
        [
            {"text": _check(user.allow_anonymous, "Anonymous"), "callback_data": "comment_anon"},
            {"text": _check(user.require_approval, "Approval"), "callback_data": "comment_approve"},
        ],
        [
            {"text": "💾 Save", "callback_data": "save_comment_settings"},
            BACK_TO_PROFILE,
        ],
    )


# ---------------------------------------------------------------------------
# Descoberta
# ---------------------------------------------------------------------------

def trending(confessions: list[Confession]) -> Screen:
    keyboard = _inline([SEND_CONFESSION, BROWSE_USERS], [BACK_TO_MENU])
    if not confessions:
        return (
            "🔥 <b>Trending Confessions</b>\n\nNo trending confessions yet. Be the first to submit one!",
            keyboard,
        )
    text = "🔥 <b>Trending Confessions</b>\n\n"
    for index, confession in enumerate(confessions, start=1):
        text += (
            f"{index}. #{confession.number}\n"
            f"   {_preview(confession.text, 100)}\n"
            f"   Comments: {confession.total_comments}\n\n"
        )
    return text, keyboard


def hashtags(tags: list[tuple[str, int]]) -> Screen:
    keyboard = _inline([SEND_CONFESSION, BROWSE_USERS], [BACK_TO_MENU])
    if not tags:
        return (
            "🏷️ <b>Popular Hashtags</b>\n\nNo hashtags found yet. Use #hashtags in your confessions!",
            keyboard,
        )
    text = "🏷️ <b>Popular Hashtags</b>\n\n" + "".join(
        f"{index}. {html.escape(tag)} ({count} uses)\n"
        for index, (tag, count) in enumerate(tags, start=1)
    )
    return text, keyboard


def best_commenters(commenters: list[Commenter]) -> Screen:
    keyboard = _inline(
        [{"text": "🔍 View My Rank", "callback_data": "view_my_rank"}],
        [{"text": "🔥 Trending", "callback_data": "trending"}, BACK_TO_MENU],
    )
    if not commenters:
        return "🏆 <b>Best Commenters</b>\n\nNo comments yet. Be the first to comment!", keyboard
    text = "🏆 <b>Best Commenters</b>\n\n" + "".join(
        f"{index}. {c.level.symbol} {html.escape(c.username)} ({c.comments} comments)\n"
        for index, c in enumerate(commenters, start=1)
    )
    return text, keyboard


def my_rank(level: Level, comments: int, position: int, total: int) -> Screen:
    rank = f"#{position} of {total} users" if position else f"Unranked ({total} users ranked)"
    return (
        "🏆 <b>Your Comment Rank</b>\n\n"
        f"Level: {level.symbol} {level.name}\n"
        f"Total Comments: {comments}\n"
        f"Rank: {rank}\n\n"
        "Keep commenting to climb the leaderboard!",
        _inline(
            [
                {"text": "🔥 Trending", "callback_data": "trending"},
                {"text": "🏆 View Rankings", "callback_data": "view_rankings"},
            ],
            [BACK_TO_MENU],
        ),
    )


def browse_users(entries: list[tuple[User, Level, int]]) -> Screen:
    """entries: (usuário, nível, seguidores)"""
    if not entries:
        return "🔍 <b>Browse Users</b>\n\nNo users found.", _inline([BACK_TO_MENU])

    text = "🔍 <b>Browse Users</b>\n\n"
    rows = []
    for user, level, followers in entries:
        text += (
            f"• {level.symbol} {_name(user)} ({user.reputation}⭐, {followers} followers)\n"
            f"  {html.escape(user.bio) if user.bio else 'No bio'}\n\n"
        )
        rows.append([{"text": f"👤 View {user.username}", "callback_data": f"view_profile_{user.id}"}])
    rows.append([BACK_TO_MENU])
    return text, _inline(*rows)


# ---------------------------------------------------------------------------
# Comentários
# ---------------------------------------------------------------------------

def comment_landing(page: CommentPage, preview: int = 3) -> Screen:
    """Tela do deep link `comment_<id>` vindo do canal."""
    confession = page.confession
    text = (
        f"💬 <b>Comments for Confession #{confession.number}</b>\n\n"
        f"<b>Confession:</b>\n{_preview(confession.text, 200)}\n\n"
    )
    if not page.comments:
        text += "No comments yet. Be the first to comment!\n\n"
    else:
        text += f"<b>Recent Comments ({page.total} total):</b>\n\n"
        for index, comment in enumerate(page.comments[:preview], start=1):
            text += f"{index}. {html.escape(comment.text)}\n   - {html.escape(comment.user_name)}\n\n"

    return text, _inline(
        [
            {"text": "📝 Add Comment", "callback_data": f"add_comment_{confession.id}"},
            {"text": "👁️ View All Comments", "callback_data": f"comments_page_{confession.id}_1"},
        ],
        [
            {"text": "📝 Send Your Confession", "callback_data": "send_confession"},
            {"text": "🔙 Main Menu", "callback_data": "back_to_menu"},
        ],
    )


def comments(page: CommentPage, levels: dict[int, Level], *, can_follow_author: bool) -> Screen:
    confession = page.confession
    text = (
        f"💬 <b>Comments for Confession #{confession.number}</b>\n\n"
        f"<b>Confession Preview:</b>\n{_preview(confession.text, 150)}\n\n"
    )
    if not page.comments:
        text += "No comments yet. Be the first to comment!\n\n"
    else:
        last = page.first_index + len(page.comments) - 1
        text += f"<b>Comments ({page.first_index}-{last} of {page.total}):</b>\n\n"
        for index, comment in enumerate(page.comments, start=page.first_index):
            level = levels.get(comment.user_id)
            symbol = f"{level.symbol} " if level else ""
            text += (
                f"{index}. {html.escape(comment.text)}\n"
                f"   - {symbol}{html.escape(comment.user_name)}\n"
                f"   📅 {comment.created_at:%Y-%m-%d}\n\n"
            )

    first_row = [{"text": "📝 Add Comment", "callback_data": f"add_comment_{confession.id}"}]
    if can_follow_author:
        first_row.append({"text": "👤 Follow Author", "callback_data": f"follow_author_{confession.id}"})
    rows = [first_row]

    if page.total_pages > 1:
        pagination = []
        if page.page > 1:
            pagination.append({
                "text": "⬅️ Previous",
                "callback_data": f"comments_page_{confession.id}_{page.page - 1}",
            })
        pagination.append({"text": f"{page.page}/{page.total_pages}", "callback_data": "current_page"})
        if page.page < page.total_pages:
            pagination.append({
                "text": "Next ➡️",
                "callback_data": f"comments_page_{confession.id}_{page.page + 1}",
            })
        rows.append(pagination)

    rows.append([SEND_CONFESSION, {"text": "🔙 Main Menu", "callback_data": "back_to_menu"}])
    return text, _inline(*rows)


# ---------------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------------

def admin_dashboard(stats: dict[str, int]) -> Screen:
    text = (
        "🔐 <b>Admin Dashboard</b>\n\n"
        f"<b>Total Users:</b> {stats['users']}\n"
        f"<b>Pending Confessions:</b> {stats['pending']}\n"
        f"<b>Approved Confessions:</b> {stats['approved'] + stats['posted']}\n"
        f"<b>Rejected Confessions:</b> {stats['rejected']}\n"
    )
    return text, _inline(
        [
            {"text": "👥 Manage Users", "callback_data": "manage_users"},
            {"text": "📝 Review Confessions", "callback_data": "review_confessions"},
        ],
        [
            {"text": "📊 Bot Statistics", "callback_data": "bot_stats"},
            {"text": "❌ Block User", "callback_data": "block_user"},
        ],
        [
            {"text": "✉️ Message User", "callback_data": "message_user"},
            {"text": "📢 Broadcast", "callback_data": "broadcast_message"},
        ],
        [{"text": "🔙 Main Menu", "callback_data": "back_to_menu"}],
    )


def bot_stats(stats: dict[str, int]) -> Screen:
    text = (
        "📊 <b>Bot Statistics</b>\n\n"
        f"<b>Total Users:</b> {stats['users']}\n"
        f"<b>Total Confessions:</b> {stats['confessions']}\n"
        f"<b>Pending Confessions:</b> {stats['pending']}\n"
        f"<b>Approved Confessions:</b> {stats['approved']}\n"
        f"<b>Posted Confessions:</b> {stats['posted']}\n"
        f"<b>Rejected Confessions:</b> {stats['rejected']}\n"
        f"<b>Total Comments:</b> {stats['comments']}\n"
    )
    return text, _inline(
        [
            {"text": "👥 Manage Users", "callback_data": "manage_users"},
            {"text": "📝 Review Confessions", "callback_data": "review_confessions"},
        ],
        [ADMIN_MENU],
    )


def manage_users(users: list[User], total: int) -> Screen:
    rows = [
        [{"text": f"🔍 View {user.username or 'No username'}", "callback_data": f"view_user_{user.id}"}]
        for user in users
    ]
    rows.append([ADMIN_MENU])
    return f"👥 <b>Manage Users</b>\n\nTotal Users: {total}\n", _inline(*rows)


def user_details(user: User, level: Level, comments: int, followers: int, following: int) -> Screen:
    text = (
        "👤 <b>User Details</b>\n\n"
        f"<b>User ID:</b> {user.id}\n"
        f"<b>Username:</b> {_name(user)}\n"
        f"<b>Level:</b> {_level_line(level, comments)}\n"
    )
    if user.bio:
        text += f"<b>Bio:</b> {html.escape(user.bio)}\n"
    text += (
        f"<b>Followers:</b> {followers}\n"
        f"<b>Following:</b> {following}\n"
        f"<b>Confessions:</b> {user.total_confessions}\n"
        f"<b>Reputation:</b> {user.reputation}\n"
        f"<b>Status:</b> {'✅ Active' if user.is_active else '❌ Blocked'}\n"
        f"<b>Join Date:</b> {user.joined_at:%Y-%m-%d}\n"
    )
    return text, _inline(
        [{
            "text": "❌ Block User" if user.is_active else "✅ Unblock User",
            "callback_data": f"toggle_block_{user.id}",
        }],
        [{"text": "🔙 Back to Users", "callback_data": "manage_users"}],
    )


def pending_review(confessions: list[Confession], authors: dict[int, User]) -> Screen:
    if not confessions:
        return "📝 <b>Pending Confessions</b>\n\nNo pending confessions to review.", _inline([ADMIN_MENU])

    text = "📝 <b>Pending Confessions</b>\n\n"
    rows = []
    for confession in confessions:
        author = authors.get(confession.user_id)
        who = _name(author) if author and author.username != PLACEHOLDER_USERNAME else f"ID: {confession.user_id}"
        text += f"• From: {who}\n  Confession: \"{_preview(confession.text, 50)}\"\n\n"
        rows.append([
            {"text": f"✅ Approve #{confession.number}", "callback_data": f"approve_{confession.id}"},
            {"text": f"❌ Reject #{confession.number}", "callback_data": f"reject_{confession.id}"},
        ])
    rows.append([ADMIN_MENU])
    return text, _inline(*rows)


def broadcast_report(success: int, failed: int) -> Screen:
    return (
        f"✅ Broadcast completed!\n\n✅ Success: {success} users\n❌ Failed: {failed} users",
        None,
    )
