"""User service behaviour shared by both region implementations."""

import asyncio

import pytest

from echat.region.models import Region
from echat.services.user_service import CnUserService, GlobalUserService, user_service_for
from echat.users.schemas import (
    BlockUserRequest,
    ContactStatus,
    CreateUserRequest,
    ReportStatus,
    ReportType,
    ReportUserRequest,
    UpdatePrivacyRequest,
    UpdateReportRequest,
    UserStatus,
)


class TestSelection:
    def test_implementation_follows_backend_region(self, sql_backend, document_backend):
        assert isinstance(user_service_for(sql_backend), GlobalUserService)
        assert isinstance(user_service_for(document_backend), CnUserService)


class TestUsers:
    @pytest.mark.asyncio
    async def test_create_applies_defaults(self, user_service, backend):
        user = await user_service.create_user(CreateUserRequest(email="Erin@Acme.io"))
        assert user.email == "erin@acme.io"
        assert user.username == "erin"
        assert user.full_name == "erin"
        assert user.status is UserStatus.OFFLINE
        assert user.allow_non_friend_messages is True
        assert user.region == backend.region.value

    @pytest.mark.asyncio
    async def test_duplicate_email_rejected(self, user_service):
        await user_service.create_user(CreateUserRequest(email="erin@acme.io"))
        with pytest.raises(ValueError, match="already registered"):
            await user_service.create_user(CreateUserRequest(email="ERIN@acme.io"))

    @pytest.mark.asyncio
    async def test_lookup_by_id_email_and_ids(self, user_service, make_user):
        alice, bob = await make_user("alice"), await make_user("bob")
        assert (await user_service.get_user_by_id(alice.id)).email == "alice@acme.io"
        assert (await user_service.get_user_by_email(" BOB@acme.io")).id == bob.id
        assert await user_service.get_user_by_id("missing") is None

        found = await user_service.get_users_by_ids([alice.id, "missing", bob.id, alice.id])
        assert sorted(u.id for u in found) == sorted([alice.id, bob.id])
        assert await user_service.get_users_by_ids([]) == []

    @pytest.mark.asyncio
    async def test_update_user_protects_identity_fields(self, user_service, make_user):
        alice = await make_user("alice")
        updated = await user_service.update_user(alice.id, {"full_name": "Alice A.", "email": "evil@acme.io"})
        assert updated.full_name == "Alice A."
        assert updated.email == "alice@acme.io"
        assert await user_service.update_user("missing", {"full_name": "x"}) is None

    @pytest.mark.asyncio
    async def test_password_hash_never_serialised(self, user_service):
        user = await user_service.create_user(CreateUserRequest(email="p@acme.io", password_hash="$argon2id$x"))
        assert user.password_hash == "$argon2id$x"
        assert "password_hash" not in user.model_dump()

    @pytest.mark.asyncio
    async def test_update_presence(self, user_service, make_user):
        alice = await make_user("alice")
        user = await user_service.update_presence(alice.id, status=UserStatus.BUSY)
        assert user.status is UserStatus.BUSY
        assert user.last_seen_at is not None
        assert await user_service.update_presence("missing") is None


class TestLegacyCnRecords:
    @pytest.mark.asyncio
    async def test_missing_fields_are_filled(self, document_backend):
        await document_backend.insert("users", {"id": "legacy", "email": "old@acme.io", "name": "Old Timer"})
        user = await user_service_for(document_backend).get_user_by_id("legacy")
        assert user.username == "old"
        assert user.full_name == "Old Timer"
        assert user.region == Region.CN.value


class TestPrivacy:
    @pytest.mark.asyncio
    async def test_defaults_to_open(self, user_service, make_user):
        alice = await make_user("alice")
        assert (await user_service.get_privacy_settings(alice.id)).allow_non_friend_messages is True
        assert (await user_service.get_privacy_settings("missing")).allow_non_friend_messages is True

    @pytest.mark.asyncio
    async def test_update(self, user_service, make_user):
        alice = await make_user("alice")
        await user_service.update_privacy_settings(alice.id, UpdatePrivacyRequest(allow_non_friend_messages=False))
        assert (await user_service.get_privacy_settings(alice.id)).allow_non_friend_messages is False

    @pytest.mark.asyncio
    async def test_update_unknown_user(self, user_service):
        with pytest.raises(ValueError, match="User not found"):
            await user_service.update_privacy_settings(
                "missing", UpdatePrivacyRequest(allow_non_friend_messages=False)
            )


class TestBlocks:
    @pytest.mark.asyncio
    async def test_block_is_idempotent(self, user_service, make_user):
        alice, bob = await make_user("alice"), await make_user("bob")
        first = await user_service.block_user(alice.id, BlockUserRequest(blocked_user_id=bob.id, reason="spam"))
        second = await user_service.block_user(alice.id, BlockUserRequest(blocked_user_id=bob.id))
        assert first.id == second.id
        assert len(await user_service.get_blocked_users(alice.id)) == 1

    @pytest.mark.asyncio
    async def test_concurrent_blocks_leave_one_relation(self, backend, user_service, make_user, monkeypatch):
        alice, bob = await make_user("alice"), await make_user("bob")
        query = backend.query

        async def slow_query(*args, **kwargs):
            # Every caller reads before any of them writes.
            await asyncio.sleep(0.01)
            return await query(*args, **kwargs)

        monkeypatch.setattr(backend, "query", slow_query)
        req = BlockUserRequest(blocked_user_id=bob.id)
        blocks = await asyncio.gather(*(user_service.block_user(alice.id, req) for _ in range(3)))
        assert len({block.id for block in blocks}) == 1
        assert len(await user_service.get_blocked_users(alice.id)) == 1
        assert await user_service.check_block_relation(alice.id, bob.id)

        assert await user_service.unblock_user(alice.id, bob.id)
        assert not await user_service.check_block_relation(alice.id, bob.id)

    @pytest.mark.asyncio
    async def test_unblock_removes_every_row_for_the_pair(self, document_backend):
        service = CnUserService(document_backend)
        for _ in range(2):
            await document_backend.insert("blocked_users", {"blocker_id": "alice", "blocked_id": "bob"})
        assert await service.unblock_user("alice", "bob")
        assert await service.get_blocked_users("alice") == []
        assert not await service.check_block_relation("alice", "bob")

    @pytest.mark.asyncio
    async def test_cannot_block_self(self, user_service, make_user):
        alice = await make_user("alice")
        with pytest.raises(ValueError, match="yourself"):
            await user_service.block_user(alice.id, BlockUserRequest(blocked_user_id=alice.id))

    @pytest.mark.asyncio
    async def test_relation_is_checked_both_ways(self, user_service, make_user):
        alice, bob, carol = await make_user("alice"), await make_user("bob"), await make_user("carol")
        await user_service.block_user(alice.id, BlockUserRequest(blocked_user_id=bob.id))
        assert await user_service.check_block_relation(alice.id, bob.id)
        assert await user_service.check_block_relation(bob.id, alice.id)
        assert not await user_service.check_block_relation(alice.id, carol.id)

    @pytest.mark.asyncio
    async def test_unblock(self, user_service, make_user):
        alice, bob = await make_user("alice"), await make_user("bob")
        await user_service.block_user(alice.id, BlockUserRequest(blocked_user_id=bob.id))
        assert not await user_service.unblock_user(bob.id, alice.id)
        assert await user_service.unblock_user(alice.id, bob.id)
        assert not await user_service.unblock_user(alice.id, bob.id)
        assert not await user_service.check_block_relation(alice.id, bob.id)


class TestReports:
    @pytest.mark.asyncio
    async def test_report_lifecycle(self, user_service, make_user):
        alice, bob, admin = await make_user("alice"), await make_user("bob"), await make_user("admin")
        report = await user_service.report_user(
            alice.id,
            ReportUserRequest(reported_user_id=bob.id, type=ReportType.SPAM, description="links"),
        )
        assert report.status is ReportStatus.PENDING
        assert [r.id for r in await user_service.get_reports_by_reporter(alice.id)] == [report.id]
        assert [r.id for r in await user_service.get_all_reports(ReportStatus.PENDING)] == [report.id]

        updated = await user_service.update_report(
            report.id, admin.id, UpdateReportRequest(status=ReportStatus.RESOLVED, admin_notes="warned")
        )
        assert updated.status is ReportStatus.RESOLVED
        assert updated.handled_by == admin.id
        assert updated.handled_at is not None
        assert updated.admin_notes == "warned"
        assert await user_service.get_all_reports(ReportStatus.PENDING) == []
        assert (await user_service.get_report_by_id(report.id)).status is ReportStatus.RESOLVED

    @pytest.mark.asyncio
    async def test_cannot_report_self(self, user_service, make_user):
        alice = await make_user("alice")
        with pytest.raises(ValueError):
            await user_service.report_user(
                alice.id, ReportUserRequest(reported_user_id=alice.id, type=ReportType.OTHER)
            )

    @pytest.mark.asyncio
    async def test_update_missing_report(self, user_service):
        req = UpdateReportRequest(status=ReportStatus.DISMISSED)
        assert await user_service.update_report("nope", "admin", req) is None


class TestContacts:
    @pytest.mark.asyncio
    async def test_request_and_accept(self, user_service, make_user):
        alice, bob = await make_user("alice"), await make_user("bob")
        request = await user_service.request_contact(alice.id, bob.id)
        assert request.status is ContactStatus.PENDING
        assert not await user_service.check_friend_relation(alice.id, bob.id)

        accepted = await user_service.respond_contact_request(request.id, bob.id, accept=True)
        assert accepted.status is ContactStatus.ACCEPTED
        assert await user_service.check_friend_relation(alice.id, bob.id)
        assert await user_service.check_friend_relation(bob.id, alice.id)
        assert [c.id for c in await user_service.get_contacts(alice.id)] == [request.id]
        assert [c.id for c in await user_service.get_contacts(bob.id)] == [request.id]

    @pytest.mark.asyncio
    async def test_only_addressee_may_respond(self, user_service, make_user):
        alice, bob = await make_user("alice"), await make_user("bob")
        request = await user_service.request_contact(alice.id, bob.id)
        assert await user_service.respond_contact_request(request.id, alice.id, accept=True) is None
        assert await user_service.respond_contact_request("missing", bob.id, accept=True) is None

    @pytest.mark.asyncio
    async def test_reject(self, user_service, make_user):
        alice, bob = await make_user("alice"), await make_user("bob")
        request = await user_service.request_contact(alice.id, bob.id)
        rejected = await user_service.respond_contact_request(request.id, bob.id, accept=False)
        assert rejected.status is ContactStatus.REJECTED
        assert not await user_service.check_friend_relation(alice.id, bob.id)
        assert await user_service.get_contacts(alice.id) == []

    @pytest.mark.asyncio
    async def test_reverse_request_returns_existing_edge(self, user_service, make_user):
        alice, bob = await make_user("alice"), await make_user("bob")
        first = await user_service.request_contact(alice.id, bob.id)
        second = await user_service.request_contact(bob.id, alice.id)
        assert first.id == second.id

    @pytest.mark.asyncio
    async def test_rejected_pair_can_request_again_from_either_side(self, user_service, make_user):
        alice, bob = await make_user("alice"), await make_user("bob")
        request = await user_service.request_contact(alice.id, bob.id)
        await user_service.respond_contact_request(request.id, bob.id, accept=False)

        again = await user_service.request_contact(bob.id, alice.id)
        assert again.status is ContactStatus.PENDING
        assert again.user_id == bob.id
        assert again.contact_user_id == alice.id
        assert await user_service.respond_contact_request(again.id, bob.id, accept=True) is None

        accepted = await user_service.respond_contact_request(again.id, alice.id, accept=True)
        assert accepted.status is ContactStatus.ACCEPTED
        assert await user_service.check_friend_relation(alice.id, bob.id)
        assert len(await user_service.get_contacts(bob.id)) == 1

    @pytest.mark.asyncio
    async def test_concurrent_requests_leave_one_edge(self, backend, user_service, make_user, monkeypatch):
        alice, bob = await make_user("alice"), await make_user("bob")
        query = backend.query

        async def slow_query(*args, **kwargs):
            await asyncio.sleep(0.01)
            return await query(*args, **kwargs)

        monkeypatch.setattr(backend, "query", slow_query)
        edges = await asyncio.gather(
            user_service.request_contact(alice.id, bob.id),
            user_service.request_contact(bob.id, alice.id),
        )
        assert edges[0].id == edges[1].id
        assert len(await backend.query("contacts")) == 1

    @pytest.mark.asyncio
    async def test_cannot_add_self(self, user_service, make_user):
        alice = await make_user("alice")
        with pytest.raises(ValueError):
            await user_service.request_contact(alice.id, alice.id)
