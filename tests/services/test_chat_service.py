"""Conversations and messages, gated by the permission engine."""

import asyncio
from datetime import UTC, datetime

import pytest

from echat.chat.permissions import DenyReason
from echat.chat.schemas import ConversationType, MessageType
from echat.errors import NotFoundError
from echat.users.schemas import BlockUserRequest, UpdatePrivacyRequest

WORKSPACE = "ws-1"


class TestDirectConversations:
    @pytest.mark.asyncio
    async def test_create_then_reuse(self, chat_service, make_user):
        alice, bob = await make_user("alice"), await make_user("bob")

        first = await chat_service.get_or_create_direct_conversation(alice.id, bob.id, WORKSPACE)
        assert first.ok
        assert first.created
        assert first.value.type is ConversationType.DIRECT
        assert first.value.created_by == alice.id

        again = await chat_service.get_or_create_direct_conversation(bob.id, alice.id, WORKSPACE)
        assert again.ok
        assert not again.created
        assert again.value.id == first.value.id

    @pytest.mark.asyncio
    async def test_separate_conversation_per_workspace(self, chat_service, make_user):
        alice, bob = await make_user("alice"), await make_user("bob")
        one = await chat_service.get_or_create_direct_conversation(alice.id, bob.id, "ws-a")
        two = await chat_service.get_or_create_direct_conversation(alice.id, bob.id, "ws-b")
        assert one.value.id != two.value.id

    @pytest.mark.asyncio
    async def test_blocked_pair_cannot_start_conversation(self, chat_service, user_service, make_user):
        alice, bob = await make_user("alice"), await make_user("bob")
        await user_service.block_user(bob.id, BlockUserRequest(blocked_user_id=alice.id))

        outcome = await chat_service.get_or_create_direct_conversation(alice.id, bob.id, WORKSPACE)

        assert not outcome.ok
        assert outcome.value is None
        assert outcome.denied.reason is DenyReason.BLOCKED
        assert await chat_service.get_conversations(alice.id) == []

    @pytest.mark.asyncio
    async def test_contacts_only_target(self, chat_service, user_service, make_user):
        alice, bob = await make_user("alice"), await make_user("bob")
        await user_service.update_privacy_settings(bob.id, UpdatePrivacyRequest(allow_non_friend_messages=False))

        denied = await chat_service.get_or_create_direct_conversation(alice.id, bob.id, WORKSPACE)
        assert denied.denied.reason is DenyReason.NOT_A_CONTACT

        request = await user_service.request_contact(alice.id, bob.id)
        await user_service.respond_contact_request(request.id, bob.id, accept=True)
        allowed = await chat_service.get_or_create_direct_conversation(alice.id, bob.id, WORKSPACE)
        assert allowed.ok

    @pytest.mark.asyncio
    async def test_workspace_membership_does_not_bypass_privacy(self, chat_service, user_service, backend, make_user):
        alice, bob = await make_user("alice"), await make_user("bob")
        for user in (alice, bob):
            await backend.insert("workspace_members", {"workspace_id": WORKSPACE, "user_id": user.id})
        await user_service.update_privacy_settings(bob.id, UpdatePrivacyRequest(allow_non_friend_messages=False))

        outcome = await chat_service.get_or_create_direct_conversation(alice.id, bob.id, WORKSPACE)
        assert outcome.denied.reason is DenyReason.NOT_A_CONTACT

    @pytest.mark.asyncio
    async def test_self_conversation_rejected(self, chat_service, make_user):
        alice = await make_user("alice")
        with pytest.raises(ValueError):
            await chat_service.get_or_create_direct_conversation(alice.id, alice.id, WORKSPACE)

    @pytest.mark.asyncio
    async def test_permission_query(self, chat_service, user_service, make_user):
        alice, bob = await make_user("alice"), await make_user("bob")
        assert (await chat_service.check_chat_permission(alice.id, bob.id, WORKSPACE)).allowed
        await user_service.block_user(alice.id, BlockUserRequest(blocked_user_id=bob.id))
        assert (await chat_service.check_chat_permission(bob.id, alice.id)).reason is DenyReason.BLOCKED


class TestConversationQueries:
    @pytest.mark.asyncio
    async def test_list_and_membership(self, chat_service, make_user):
        alice, bob, carol = await make_user("alice"), await make_user("bob"), await make_user("carol")
        with_bob = (await chat_service.get_or_create_direct_conversation(alice.id, bob.id, "ws-a")).value
        with_carol = (await chat_service.get_or_create_direct_conversation(alice.id, carol.id, "ws-b")).value

        await chat_service.send_message(with_bob.id, bob.id, "newest")

        conversations = await chat_service.get_conversations(alice.id)
        assert [c.id for c in conversations] == [with_bob.id, with_carol.id]
        assert [c.id for c in await chat_service.get_conversations(alice.id, "ws-b")] == [with_carol.id]
        assert [c.id for c in await chat_service.get_conversations(carol.id)] == [with_carol.id]

        assert await chat_service.is_conversation_member(with_bob.id, bob.id)
        assert not await chat_service.is_conversation_member(with_bob.id, carol.id)
        assert (await chat_service.get_conversation_by_id(with_carol.id)).workspace_id == "ws-b"
        assert await chat_service.get_conversation_by_id("missing") is None

    @pytest.mark.asyncio
    async def test_workspaces(self, chat_service, backend):
        await backend.insert("workspace_members", {"workspace_id": "w1", "user_id": "u1", "role": "owner"})
        await backend.insert("workspace_members", {"workspace_id": "w1", "user_id": "u2", "role": "member"})
        await backend.insert("workspace_members", {"workspace_id": "w2", "user_id": "u1", "role": "member"})

        assert sorted(m.workspace_id for m in await chat_service.get_user_workspaces("u1")) == ["w1", "w2"]
        assert sorted(m.user_id for m in await chat_service.get_workspace_members("w1")) == ["u1", "u2"]
        assert await chat_service.check_workspace_membership("w1", "u2")
        assert not await chat_service.check_workspace_membership("w2", "u2")


class TestMessages:
    @pytest.fixture
    async def conversation(self, chat_service, make_user):
        alice, bob = await make_user("alice"), await make_user("bob")
        outcome = await chat_service.get_or_create_direct_conversation(alice.id, bob.id, WORKSPACE)
        return outcome.value, alice, bob

    @pytest.mark.asyncio
    async def test_send_updates_last_message_at(self, chat_service, conversation):
        conv, alice, _ = conversation
        outcome = await chat_service.send_message(
            conv.id, alice.id, "report.pdf", MessageType.FILE, {"url": "https://files/acme/1"}
        )
        assert outcome.ok
        message = outcome.value
        assert message.type is MessageType.FILE
        assert message.extra == {"url": "https://files/acme/1"}
        refreshed = await chat_service.get_conversation_by_id(conv.id)
        assert refreshed.last_message_at == message.created_at

    @pytest.mark.asyncio
    async def test_non_member_cannot_send(self, chat_service, conversation, make_user):
        conv, _, _ = conversation
        mallory = await make_user("mallory")
        outcome = await chat_service.send_message(conv.id, mallory.id, "hi")
        assert outcome.denied.reason is DenyReason.NOT_MEMBER

    @pytest.mark.asyncio
    async def test_block_after_creation_stops_delivery(self, chat_service, user_service, conversation):
        conv, alice, bob = conversation
        await user_service.block_user(bob.id, BlockUserRequest(blocked_user_id=alice.id))

        outcome = await chat_service.send_message(conv.id, alice.id, "hello?")
        assert outcome.denied.reason is DenyReason.BLOCKED
        assert await chat_service.get_messages(conv.id) == []

    @pytest.mark.asyncio
    async def test_missing_conversation(self, chat_service, make_user):
        alice = await make_user("alice")
        with pytest.raises(NotFoundError):
            await chat_service.send_message("missing", alice.id, "hi")

    @pytest.mark.asyncio
    async def test_history_is_oldest_first_with_paging(self, chat_service, conversation):
        conv, alice, bob = conversation
        sent = []
        for i in range(5):
            sender = alice if i % 2 == 0 else bob
            sent.append((await chat_service.send_message(conv.id, sender.id, f"m{i}")).value)
            await asyncio.sleep(0.002)

        history = await chat_service.get_messages(conv.id)
        assert [m.content for m in history] == ["m0", "m1", "m2", "m3", "m4"]

        latest = await chat_service.get_messages(conv.id, limit=2)
        assert [m.content for m in latest] == ["m3", "m4"]

        earlier = await chat_service.get_messages(conv.id, limit=2, before_id=sent[3].id)
        assert [m.content for m in earlier] == ["m1", "m2"]

    @pytest.mark.asyncio
    async def test_deleted_messages_are_hidden(self, chat_service, backend, conversation):
        conv, alice, _ = conversation
        kept = (await chat_service.send_message(conv.id, alice.id, "keep")).value
        gone = (await chat_service.send_message(conv.id, alice.id, "gone")).value
        await backend.update("messages", gone.id, {"is_deleted": True})

        assert [m.id for m in await chat_service.get_messages(conv.id)] == [kept.id]

    @pytest.mark.asyncio
    async def test_created_at_is_timezone_aware(self, chat_service, conversation):
        conv, alice, _ = conversation
        message = (await chat_service.send_message(conv.id, alice.id, "tz")).value
        assert message.created_at.tzinfo is not None
        assert message.created_at <= datetime.now(UTC)
