"""
Testes para app/services/users.py

Cobre:
- Criação sob demanda com nome reservado
- Validação de nome de exibição (formato e unicidade sem caixa)
- Bio: vazia, no limite e acima do limite
- Grafo social: follow/unfollow simétricos, erros de self-follow,
  duplicidade e alvo inexistente
- Notificação de novo seguidor respeita a preferência
- Preferências, política de comentários e bloqueio
"""

import pytest

from app.errors import (
    AlreadyFollowingError,
    BlockedUserError,
    NotFoundError,
    SelfFollowError,
    ValidationError,
)
from app.models.user import PLACEHOLDER_USERNAME


@pytest.mark.asyncio
async def test_get_or_create_is_lazy_and_idempotent(users):
    assert await users.get(10) is None

    first = await users.get_or_create(10, first_name="Ana")
    second = await users.get_or_create(10)

    assert first.id == second.id == 10
    assert second.username == PLACEHOLDER_USERNAME
    assert second.is_active is True
    assert second.reputation == 0
    assert await users.count() == 1


# ---------------------------------------------------------------------------
# Nome de exibição
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
@pytest.mark.parametrize("name", ["ab", "this_name_is_way_too_long_12", "bad name!"])
async def test_set_username_rejects_invalid(users, make_user, name):
    await make_user(10)

    with pytest.raises(ValidationError):
        await users.set_username(10, name)


@pytest.mark.asyncio
async def test_set_username_accepts_valid(users, make_user):
    await make_user(10)

    user = await users.set_username(10, "Valid_Name1")

    assert user.username == "Valid_Name1"
    assert (await users.get(10)).username == "Valid_Name1"


@pytest.mark.asyncio
async def test_set_username_unique_ignoring_case(users, make_user):
    await make_user(10, "Valid_Name1")
    await make_user(11)

    with pytest.raises(ValidationError, match="already taken"):
        await users.set_username(11, "valid_name1")


@pytest.mark.asyncio
async def test_set_username_same_user_can_keep_name(users, make_user):
    await make_user(10, "Valid_Name1")

    user = await users.set_username(10, "VALID_NAME1")

    assert user.username == "VALID_NAME1"


@pytest.mark.asyncio
async def test_placeholder_name_can_repeat(users, make_user):
    await make_user(10, PLACEHOLDER_USERNAME)

    user = await users.set_username(11, PLACEHOLDER_USERNAME)

    assert user.username == PLACEHOLDER_USERNAME


# ---------------------------------------------------------------------------
# Bio
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_set_bio_limits(users, make_user):
    await make_user(10)

    with pytest.raises(ValidationError):
        await users.set_bio(10, "   ")
    with pytest.raises(ValidationError):
        await users.set_bio(10, "x" * 101)

    await users.set_bio(10, "x" * 100)
    assert (await users.get(10)).bio == "x" * 100


@pytest.mark.asyncio
async def test_set_bio_unknown_user(users):
    with pytest.raises(NotFoundError):
        await users.set_bio(999, "hello")


# ---------------------------------------------------------------------------
# Grafo social
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_follow_updates_both_sides(users, make_user):
    await make_user(10, "alice")
    await make_user(11, "bob")

    await users.follow(10, 11)

    assert await users.following_ids(10) == [11]
    assert await users.follower_ids(11) == [10]
    assert await users.follow_counts(11) == (1, 0)
    assert await users.follow_counts(10) == (0, 1)
    assert await users.is_following(10, 11) is True
    assert await users.is_following(11, 10) is False


@pytest.mark.asyncio
async def test_follow_then_unfollow_restores_state(users, make_user):
    await make_user(10, "alice")
    await make_user(11, "bob")
    await make_user(12, "carol")
    await users.follow(12, 11)
    before = (await users.following_ids(10), await users.follower_ids(11))

    await users.follow(10, 11)
    await users.unfollow(10, 11)

    assert (await users.following_ids(10), await users.follower_ids(11)) == before


@pytest.mark.asyncio
async def test_unfollow_absent_relation_is_noop(users, make_user):
    await make_user(10)
    await make_user(11)

    await users.unfollow(10, 11)

    assert await users.following_ids(10) == []


@pytest.mark.asyncio
async def test_cannot_follow_self(users, make_user):
    await make_user(10)

    with pytest.raises(SelfFollowError):
        await users.follow(10, 10)


@pytest.mark.asyncio
async def test_cannot_follow_twice(users, make_user):
    await make_user(10)
    await make_user(11, "bob")
    await users.follow(10, 11)

    with pytest.raises(AlreadyFollowingError, match="bob"):
        await users.follow(10, 11)
    assert await users.follower_ids(11) == [10]


@pytest.mark.asyncio
async def test_follow_unknown_target(users, make_user):
    await make_user(10)

    with pytest.raises(NotFoundError):
        await users.follow(10, 999)


@pytest.mark.asyncio
async def test_blocked_user_cannot_follow(users, make_user):
    await make_user(10)
    await make_user(11)
    await users.set_active(10, False)

    with pytest.raises(BlockedUserError):
        await users.follow(10, 11)


@pytest.mark.asyncio
async def test_follow_notifies_target(users, make_user, transport):
    await make_user(10, "alice")
    await make_user(11, "bob")

    await users.follow(10, 11)

    [notification] = transport.texts_to(11)
    assert "New Follower" in notification
    assert "alice" in notification


@pytest.mark.asyncio
async def test_follow_respects_notification_preference(users, make_user, transport):
    await make_user(10, "alice")
    await make_user(11, "bob")
    assert await users.toggle_preference(11, "new_follower") is False

    await users.follow(10, 11)

    assert transport.texts_to(11) == []


@pytest.mark.asyncio
async def test_notification_failure_does_not_break_follow(users, make_user, transport):
    await make_user(10)
    await make_user(11)
    transport.fail_for.add(11)

    await users.follow(10, 11)

    assert await users.is_following(10, 11) is True


# ---------------------------------------------------------------------------
# Preferências e bloqueio
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_toggle_preference_flips_only_that_key(users, make_user):
    await make_user(10)

    assert await users.toggle_preference(10, "new_comment") is False
    assert await users.toggle_preference(10, "new_comment") is True

    user = await users.get(10)
    assert user.wants("new_comment") is True
    assert user.wants("direct_message") is True


@pytest.mark.asyncio
async def test_toggle_unknown_preference(users, make_user):
    await make_user(10)

    with pytest.raises(ValueError):
        await users.toggle_preference(10, "birthday")


@pytest.mark.asyncio
async def test_comment_policy_and_flags(users, make_user):
    await make_user(10)

    await users.set_comment_policy(10, "followers")
    assert await users.toggle_comment_flag(10, "require_approval") is True
    assert await users.toggle_comment_flag(10, "allow_anonymous") is False

    user = await users.get(10)
    assert user.comment_policy == "followers"
    assert user.require_approval is True
    assert user.allow_anonymous is False

    with pytest.raises(ValidationError):
        await users.set_comment_policy(10, "nobody")


@pytest.mark.asyncio
async def test_toggle_active_blocks_and_unblocks(users, make_user):
    await make_user(10)

    assert (await users.toggle_active(10)).is_active is False
    with pytest.raises(BlockedUserError):
        await users.require_active(10)

    assert (await users.toggle_active(10)).is_active is True
    assert await users.active_ids() == [10]


@pytest.mark.asyncio
async def test_set_active_unknown_user(users):
    with pytest.raises(NotFoundError):
        await users.set_active(999, False)


@pytest.mark.asyncio
async def test_list_active_by_reputation_excluding_self(users, make_user):
    for user_id, name in [(10, "alice"), (11, "bob"), (12, "carol"), (13, "dave")]:
        await make_user(user_id, name)
    await users.add_reputation(11, 30)
    await users.add_reputation(12, 20)
    await users.set_active(13, False)

    listed = await users.list_active(exclude=10)

    assert [user.id for user in listed] == [11, 12]
