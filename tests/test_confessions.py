"""
Testes para app/services/confessions.py

Cobre:
- Envio: limites de tamanho, cooldown, sanitização e numeração sequencial
- Notificação dos admins com botões e isolamento de falhas no fan-out
- Aprovação: autorização, publicação única sob concorrência, crédito de
  reputação, reversão para pending quando a publicação falha e conclusão
  do registro quando o banco falha depois da publicação
- Rejeição: motivo obrigatório e estados terminais
- Comentários: tamanho mínimo, rate limit, política do autor, contadores
  consistentes e paginação
"""

import asyncio

import pytest

from app.config import BotConfig
from app.errors import (
    AuthError,
    BlockedUserError,
    CooldownError,
    InvalidTransitionError,
    NotFoundError,
    RateLimitError,
    StoreError,
    ValidationError,
)
from app.models.confession import APPROVED, PENDING, POSTED, REJECTED
from app.services.telegram import TelegramError
from tests.conftest import ADMIN_ID, callback_data


# ---------------------------------------------------------------------------
# Envio
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_submit_stores_pending_confession(lifecycle, make_user):
    await make_user(10)

    confession = await lifecycle.submit(10, "  I secretly love #Mondays and #coffee  ")

    assert confession.status == PENDING
    assert confession.number == 1
    assert confession.text == "I secretly love #Mondays and #coffee"
    assert confession.hashtags == ["#Mondays", "#coffee"]
    assert confession.id.startswith("confess_10_")
    assert (await lifecycle.get(confession.id)).status == PENDING


@pytest.mark.asyncio
async def test_submit_length_limits(lifecycle, make_user, clock):
    await make_user(10)

    with pytest.raises(ValidationError, match="too long"):
        await lifecycle.submit(10, "x" * 1001)
    with pytest.raises(ValidationError, match="too short"):
        await lifecycle.submit(10, "   hey    ")

    confession = await lifecycle.submit(10, "x" * 1000)
    assert len(confession.text) == 1000


@pytest.mark.asyncio
async def test_validation_failure_does_not_start_cooldown(lifecycle, make_user):
    await make_user(10)

    with pytest.raises(ValidationError):
        await lifecycle.submit(10, "hey")

    await lifecycle.submit(10, "a proper confession")


@pytest.mark.asyncio
async def test_submit_cooldown(lifecycle, make_user, clock):
    await make_user(10)
    await lifecycle.submit(10, "first confession")

    with pytest.raises(CooldownError) as exc_info:
        await lifecycle.submit(10, "second confession")
    assert exc_info.value.retry_after == 60
    assert "60 seconds" in exc_info.value.user_message

    clock.advance(61_000)
    second = await lifecycle.submit(10, "second confession")
    assert second.number == 2


@pytest.mark.asyncio
async def test_cooldown_is_per_author(lifecycle, make_user):
    await make_user(10)
    await make_user(11)

    await lifecycle.submit(10, "first confession")
    await lifecycle.submit(11, "another confession")


@pytest.mark.asyncio
async def test_submit_stores_sanitized_text(lifecycle, make_user):
    await make_user(10)

    confession = await lifecycle.submit(10, "hello <script>alert('x')</script>world")

    assert confession.text == "hello world"
    assert "<" not in (await lifecycle.get(confession.id)).text


@pytest.mark.asyncio
async def test_submit_markup_only_is_rejected(lifecycle, make_user):
    await make_user(10)

    with pytest.raises(ValidationError, match="empty"):
        await lifecycle.submit(10, "<script>alert('x')</script>")


@pytest.mark.asyncio
async def test_blocked_user_cannot_submit(lifecycle, users, make_user):
    await make_user(10)
    await users.set_active(10, False)

    with pytest.raises(BlockedUserError):
        await lifecycle.submit(10, "let me in please")


@pytest.mark.asyncio
async def test_numbers_are_sequential_across_authors(lifecycle, make_user):
    numbers = []
    for author in (10, 11, 12):
        await make_user(author)
        numbers.append((await lifecycle.submit(author, f"confession from {author}")).number)

    assert numbers == [1, 2, 3]


@pytest.mark.asyncio
async def test_submit_notifies_admins_with_moderation_buttons(lifecycle, make_user, transport):
    await make_user(10)

    confession = await lifecycle.submit(10, "I love pineapple pizza")

    message = transport.last_to(ADMIN_ID)
    assert "New Confession #1" in message.text
    assert callback_data(message) == [f"approve_{confession.id}", f"reject_{confession.id}"]


@pytest.mark.asyncio
async def test_admin_fanout_isolates_failures(make_lifecycle, make_user, transport):
    config = BotConfig(
        bot_username="testbot",
        channel_id="@test_channel",
        admin_ids=frozenset({1, 2, 3}),
    )
    lifecycle = make_lifecycle(config)
    await make_user(10)
    transport.fail_for.add(2)

    confession = await lifecycle.submit(10, "fan-out should survive")

    assert confession.status == PENDING
    assert len(transport.texts_to(1)) == 1
    assert len(transport.texts_to(3)) == 1
    assert transport.texts_to(2) == []


@pytest.mark.asyncio
async def test_submit_without_admins_still_succeeds(make_lifecycle, make_user, transport):
    lifecycle = make_lifecycle(BotConfig(bot_username="testbot", channel_id="@test_channel"))
    await make_user(10)

    confession = await lifecycle.submit(10, "nobody is watching")

    assert confession.status == PENDING
    assert transport.sent == []


# ---------------------------------------------------------------------------
# Moderação
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_approve_publishes_and_credits(lifecycle, make_user, users, transport):
    await make_user(10)
    confession = await lifecycle.submit(10, "please approve me")

    approved = await lifecycle.approve(ADMIN_ID, confession.id)

    assert approved.status == POSTED
    [post] = [m for m in transport.sent if m.chat_id == "@test_channel"]
    assert post.text.startswith("#1\n\nplease approve me")
    assert f"start=comment_{confession.id}" in post.reply_markup["inline_keyboard"][0][0]["url"]
    assert (await users.get(10)).reputation == 10
    assert any("was approved" in text for text in transport.texts_to(10))

    page = await lifecycle.comments_page(confession.id)
    assert page.total == 0


@pytest.mark.asyncio
async def test_approve_requires_admin(lifecycle, make_user):
    await make_user(10)
    confession = await lifecycle.submit(10, "please approve me")

    with pytest.raises(AuthError):
        await lifecycle.approve(10, confession.id)
    assert (await lifecycle.get(confession.id)).status == PENDING


@pytest.mark.asyncio
async def test_approve_unknown_confession(lifecycle):
    with pytest.raises(NotFoundError):
        await lifecycle.approve(ADMIN_ID, "confess_10_1")


@pytest.mark.asyncio
async def test_approve_twice_posts_once(lifecycle, make_user, users, transport):
    await make_user(10)
    confession = await lifecycle.submit(10, "approve me twice")

    await lifecycle.approve(ADMIN_ID, confession.id)
    again = await lifecycle.approve(ADMIN_ID, confession.id)

    assert again.status == POSTED
    assert len(transport.texts_to("@test_channel")) == 1
    assert (await users.get(10)).reputation == 10


@pytest.mark.asyncio
async def test_concurrent_approvals_post_once(lifecycle, make_user, users, transport):
    await make_user(10)
    confession = await lifecycle.submit(10, "everyone approves at once")

    await asyncio.gather(*(lifecycle.approve(ADMIN_ID, confession.id) for _ in range(5)))

    assert len(transport.texts_to("@test_channel")) == 1
    assert (await users.get(10)).reputation == 10
    assert (await lifecycle.get(confession.id)).status == POSTED


@pytest.mark.asyncio
async def test_publish_failure_reverts_to_pending(lifecycle, make_user, users, transport):
    await make_user(10)
    confession = await lifecycle.submit(10, "the channel is down")
    transport.fail_for.add("@test_channel")

    with pytest.raises(TelegramError):
        await lifecycle.approve(ADMIN_ID, confession.id)

    assert (await lifecycle.get(confession.id)).status == PENDING
    assert (await users.get(10)).reputation == 0

    transport.fail_for.clear()
    approved = await lifecycle.approve(ADMIN_ID, confession.id)
    assert approved.status == POSTED


@pytest.mark.asyncio
async def test_transient_store_failure_after_publish_is_retried(
    lifecycle, make_user, users, transport, monkeypatch
):
    monkeypatch.setattr("app.services.confessions.FINALIZE_BACKOFF_SECONDS", 0)
    await make_user(10)
    confession = await lifecycle.submit(10, "the database hiccups")
    mark_posted = lifecycle._mark_posted
    calls = []

    async def flaky_mark_posted(*args):
        calls.append(args)
        if len(calls) == 1:
            raise StoreError()
        return await mark_posted(*args)

    monkeypatch.setattr(lifecycle, "_mark_posted", flaky_mark_posted)

    approved = await lifecycle.approve(ADMIN_ID, confession.id)

    assert approved.status == POSTED
    assert len(calls) == 2
    assert len(transport.texts_to("@test_channel")) == 1
    assert (await users.get(10)).reputation == 10


@pytest.mark.asyncio
async def test_store_failure_after_publish_is_finished_by_next_approve(
    lifecycle, make_user, users, transport, monkeypatch
):
    monkeypatch.setattr("app.services.confessions.FINALIZE_BACKOFF_SECONDS", 0)
    await make_user(10)
    confession = await lifecycle.submit(10, "posted but not saved")
    mark_posted = lifecycle._mark_posted

    async def broken_mark_posted(*args):
        raise StoreError()

    monkeypatch.setattr(lifecycle, "_mark_posted", broken_mark_posted)

    with pytest.raises(StoreError) as exc_info:
        await lifecycle.approve(ADMIN_ID, confession.id)

    assert "posted to the channel" in exc_info.value.user_message
    stuck = await lifecycle.get(confession.id)
    assert stuck.status == APPROVED
    assert stuck.channel_message_id is not None
    assert (await users.get(10)).reputation == 0

    monkeypatch.setattr(lifecycle, "_mark_posted", mark_posted)
    approved = await lifecycle.approve(ADMIN_ID, confession.id)

    assert approved.status == POSTED
    assert approved.channel_message_id == stuck.channel_message_id
    assert len(transport.texts_to("@test_channel")) == 1
    assert (await users.get(10)).reputation == 10
    assert len([t for t in transport.texts_to(10) if "was approved" in t]) == 1
    page = await lifecycle.comments_page(confession.id)
    assert page.total == 0


@pytest.mark.asyncio
async def test_reject_stores_reason_and_notifies(lifecycle, make_user, transport):
    await make_user(10)
    confession = await lifecycle.submit(10, "this one breaks rules")

    rejected = await lifecycle.reject(ADMIN_ID, confession.id, "  spam <b>link</b> ")

    assert rejected.status == REJECTED
    assert (await lifecycle.get(confession.id)).rejection_reason == "spam <b>link</b>"
    assert "spam &lt;b&gt;link&lt;/b&gt;" in transport.texts_to(10)[-1]


@pytest.mark.asyncio
async def test_reject_requires_reason(lifecycle, make_user):
    await make_user(10)
    confession = await lifecycle.submit(10, "this one breaks rules")

    with pytest.raises(ValidationError):
        await lifecycle.reject(ADMIN_ID, confession.id, "   ")
    assert (await lifecycle.get(confession.id)).status == PENDING


@pytest.mark.asyncio
async def test_rejected_is_terminal(lifecycle, make_user):
    await make_user(10)
    confession = await lifecycle.submit(10, "this one breaks rules")
    await lifecycle.reject(ADMIN_ID, confession.id, "spam")

    with pytest.raises(InvalidTransitionError):
        await lifecycle.approve(ADMIN_ID, confession.id)
    with pytest.raises(InvalidTransitionError):
        await lifecycle.reject(ADMIN_ID, confession.id, "again")


@pytest.mark.asyncio
async def test_cannot_reject_posted(lifecycle, make_posted_confession):
    confession = await make_posted_confession()

    with pytest.raises(InvalidTransitionError):
        await lifecycle.reject(ADMIN_ID, confession.id, "too late")


@pytest.mark.asyncio
async def test_list_pending_and_by_author(lifecycle, make_user, make_posted_confession, clock):
    posted = await make_posted_confession(10)
    clock.advance(61_000)
    pending = await lifecycle.submit(10, "still waiting here")

    assert [c.id for c in await lifecycle.list_pending()] == [pending.id]
    assert {c.id for c in await lifecycle.list_by_author(10)} == {posted.id, pending.id}


# ---------------------------------------------------------------------------
# Comentários
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_comment_length(lifecycle, make_posted_confession, make_user):
    confession = await make_posted_confession()
    await make_user(20)

    for text in ("", "a", "ab", "  ab  "):
        with pytest.raises(ValidationError):
            await lifecycle.add_comment(20, confession.id, text)

    comment = await lifecycle.add_comment(20, confession.id, "abc")
    assert comment.text == "abc"


@pytest.mark.asyncio
async def test_comment_keeps_counters_consistent(lifecycle, make_posted_confession, make_user, users, clock):
    confession = await make_posted_confession()
    await make_user(20, "bob")

    for i in range(3):
        await lifecycle.add_comment(20, confession.id, f"comment number {i}")

    page = await lifecycle.comments_page(confession.id)
    stored = await lifecycle.get(confession.id)
    assert page.total == stored.total_comments == 3
    assert [c.user_name for c in page.comments] == ["bob"] * 3
    assert (await users.get(20)).reputation == 15


@pytest.mark.asyncio
async def test_comment_rate_limit(lifecycle, make_posted_confession, make_user, clock):
    confession = await make_posted_confession()
    await make_user(20)

    for i in range(3):
        await lifecycle.add_comment(20, confession.id, f"comment number {i}")

    with pytest.raises(RateLimitError):
        await lifecycle.add_comment(20, confession.id, "one too many")
    assert (await lifecycle.comments_page(confession.id)).total == 3

    clock.advance(30_001)
    await lifecycle.add_comment(20, confession.id, "after the window")


@pytest.mark.asyncio
async def test_comment_notifies_author(lifecycle, make_posted_confession, make_user, transport):
    confession = await make_posted_confession(10)
    await make_user(20)

    await lifecycle.add_comment(20, confession.id, "nice one")

    assert "New Comment on Your Confession" in transport.texts_to(10)[-1]


@pytest.mark.asyncio
async def test_comment_on_unposted_confession(lifecycle, make_user):
    await make_user(10)
    confession = await lifecycle.submit(10, "not approved yet")

    with pytest.raises(NotFoundError):
        await lifecycle.add_comment(10, confession.id, "first!")
    with pytest.raises(NotFoundError):
        await lifecycle.add_comment(10, "confess_999_1", "first!")


@pytest.mark.asyncio
async def test_comment_policy_followers(lifecycle, make_posted_confession, make_user, users):
    confession = await make_posted_confession(10)
    await users.set_comment_policy(10, "followers")
    await make_user(20)

    with pytest.raises(AuthError):
        await lifecycle.add_comment(20, confession.id, "let me in")

    await users.follow(20, 10)
    await lifecycle.add_comment(20, confession.id, "now I follow")
    await lifecycle.add_comment(ADMIN_ID, confession.id, "admin passes")
    await lifecycle.add_comment(10, confession.id, "author passes")


@pytest.mark.asyncio
async def test_comment_policy_admin(lifecycle, make_posted_confession, make_user, users):
    confession = await make_posted_confession(10)
    await users.set_comment_policy(10, "admin")
    await make_user(20)
    await users.follow(20, 10)

    with pytest.raises(AuthError):
        await lifecycle.add_comment(20, confession.id, "following is not enough")

    await lifecycle.add_comment(ADMIN_ID, confession.id, "admin passes")


@pytest.mark.asyncio
async def test_comments_pagination_clamps(lifecycle, make_posted_confession, make_user, clock):
    confession = await make_posted_confession()
    await make_user(20)
    for i in range(7):
        clock.advance(30_001)
        await lifecycle.add_comment(20, confession.id, f"comment number {i}")

    first = await lifecycle.comments_page(confession.id, page=0)
    last = await lifecycle.comments_page(confession.id, page=99)

    assert (first.page, first.total_pages, len(first.comments)) == (1, 2, 5)
    assert first.comments[0].text == "comment number 0"
    assert (last.page, len(last.comments)) == (2, 2)
    assert last.first_index == 6
    assert last.comments[-1].text == "comment number 6"


@pytest.mark.asyncio
async def test_comments_page_of_unknown_confession(lifecycle):
    with pytest.raises(NotFoundError):
        await lifecycle.comments_page("confess_999_1")
