"""
User, privacy, block, report and contact operations over a BackendClient.

``StoreUserService`` holds the business rules. The two region classes differ
only in how they read from their store: the row store answers disjunctions and
id lists in one statement, the document store fans the lookups out.
"""

from __future__ import annotations

import asyncio
from abc import abstractmethod
from collections.abc import Mapping, Sequence
from datetime import UTC, datetime
from typing import Any

import structlog

from echat.backends.base import BackendClient, Collection, Document, pair_id
from echat.backends.filters import any_of, desc, in_
from echat.errors import StorageError
from echat.region.models import Region
from echat.services.interfaces import UserService
from echat.users.schemas import (
    BlockedUser,
    BlockUserRequest,
    Contact,
    ContactStatus,
    CreateUserRequest,
    PrivacySettings,
    Report,
    ReportStatus,
    ReportUserRequest,
    UpdatePrivacyRequest,
    UpdateReportRequest,
    User,
    UserStatus,
)

logger = structlog.get_logger()


def _now() -> datetime:
    return datetime.now(UTC)


class StoreUserService(UserService):
    """Store-agnostic implementation. Subclasses supply the read primitives."""

    def __init__(self, backend: BackendClient) -> None:
        self.backend = backend
        self.region = backend.region
        self.users = backend.collection("users")
        self.blocks = backend.collection("blocked_users")
        self.reports = backend.collection("reports")
        self.contacts = backend.collection("contacts")

    # ------------------------------------------------------------------
    # Read primitives
    # ------------------------------------------------------------------

    @abstractmethod
    async def _query_any(self, collection: Collection, clauses: Sequence[Mapping[str, Any]]) -> list[Document]:
        """Documents matching any of ``clauses``, without duplicates."""
        ...

    @abstractmethod
    async def _fetch_many(self, collection: Collection, ids: Sequence[str]) -> list[Document]:
        """Documents for ``ids``; missing ids are skipped."""
        ...

    def _normalize_user(self, doc: Document) -> Document:
        doc = dict(doc)
        if not doc.get("region"):
            doc["region"] = self.region.value
        if not doc.get("username") and doc.get("email"):
            doc["username"] = str(doc["email"]).split("@", 1)[0]
        return doc

    def _to_user(self, doc: Document) -> User:
        return User.model_validate(self._normalize_user(doc))

    async def _find_pair(
        self,
        collection: Collection,
        fields: tuple[str, str],
        user_a: str,
        user_b: str,
        **extra: Any,
    ) -> list[Document]:
        left, right = fields
        return await self._query_any(
            collection,
            [
                {left: user_a, right: user_b, **extra},
                {left: user_b, right: user_a, **extra},
            ],
        )

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    async def get_user_by_id(self, user_id: str) -> User | None:
        doc = await self.users.get(user_id)
        return self._to_user(doc) if doc else None

    async def get_users_by_ids(self, user_ids: list[str]) -> list[User]:
        if not user_ids:
            return []
        docs = await self._fetch_many(self.users, list(dict.fromkeys(user_ids)))
        return [self._to_user(doc) for doc in docs]

    async def get_user_by_email(self, email: str) -> User | None:
        doc = await self.users.first({"email": email.lower().strip()})
        return self._to_user(doc) if doc else None

    async def create_user(self, req: CreateUserRequest) -> User:
        """Create a user.

        Raises:
            ValueError: If the email is already registered.
        """
        if await self.get_user_by_email(req.email) is not None:
            msg = "Email already registered"
            raise ValueError(msg)
        username = req.username or req.email.split("@", 1)[0]
        now = _now()
        doc = await self.users.insert(
            {
                "email": req.email,
                "username": username,
                "full_name": req.full_name or username,
                "avatar_url": req.avatar_url,
                "password_hash": req.password_hash,
                "status": UserStatus.OFFLINE.value,
                "last_seen_at": None,
                "region": req.region or self.region.value,
                "allow_non_friend_messages": True,
                "is_admin": False,
                "created_at": now,
                "updated_at": now,
            }
        )
        logger.info("user_created", user_id=doc["id"], region=self.region.value)
        return self._to_user(doc)

    async def update_user(self, user_id: str, patch: Mapping[str, Any]) -> User | None:
        values = {key: value for key, value in patch.items() if key not in ("id", "email", "created_at")}
        values["updated_at"] = _now()
        doc = await self.users.update(user_id, values)
        return self._to_user(doc) if doc else None

    async def update_presence(
        self,
        user_id: str,
        status: UserStatus | None = None,
        last_seen_at: datetime | None = None,
    ) -> User | None:
        patch: dict[str, Any] = {"last_seen_at": last_seen_at or _now()}
        if status is not None:
            patch["status"] = status.value
        doc = await self.users.update(user_id, patch)
        return self._to_user(doc) if doc else None

    # ------------------------------------------------------------------
    # Privacy
    # ------------------------------------------------------------------

    async def get_privacy_settings(self, user_id: str) -> PrivacySettings:
        doc = await self.users.get(user_id)
        if not doc or doc.get("allow_non_friend_messages") is None:
            return PrivacySettings()
        return PrivacySettings(allow_non_friend_messages=bool(doc["allow_non_friend_messages"]))

    async def update_privacy_settings(self, user_id: str, req: UpdatePrivacyRequest) -> PrivacySettings:
        doc = await self.users.update(
            user_id,
            {"allow_non_friend_messages": req.allow_non_friend_messages, "updated_at": _now()},
        )
        if doc is None:
            msg = "User not found"
            raise ValueError(msg)
        logger.info(
            "privacy_updated",
            user_id=user_id,
            allow_non_friend_messages=req.allow_non_friend_messages,
        )
        return PrivacySettings(allow_non_friend_messages=req.allow_non_friend_messages)

    # ------------------------------------------------------------------
    # Blocks
    # ------------------------------------------------------------------

    async def block_user(self, blocker_id: str, req: BlockUserRequest) -> BlockedUser:
        """Block a user. Blocking twice returns the existing relation.

        Raises:
            ValueError: If a user tries to block themselves.
        """
        if blocker_id == req.blocked_user_id:
            msg = "You cannot block yourself"
            raise ValueError(msg)
        key = {"blocker_id": blocker_id, "blocked_id": req.blocked_user_id}
        existing = await self.blocks.first(key)
        if existing:
            return BlockedUser.model_validate(existing)
        try:
            doc = await self.blocks.insert(
                {
                    "id": pair_id("block", blocker_id, req.blocked_user_id),
                    **key,
                    "reason": req.reason,
                    "created_at": _now(),
                }
            )
        except StorageError:
            # A concurrent block of the same pair already wrote this id.
            existing = await self.blocks.first(key)
            if existing is None:
                raise
            return BlockedUser.model_validate(existing)
        logger.info("user_blocked", blocker_id=blocker_id, blocked_id=req.blocked_user_id)
        return BlockedUser.model_validate(doc)

    async def unblock_user(self, blocker_id: str, blocked_id: str) -> bool:
        rows = await self.blocks.query({"blocker_id": blocker_id, "blocked_id": blocked_id})
        removed = [await self.blocks.delete(row["id"]) for row in rows]
        if any(removed):
            logger.info("user_unblocked", blocker_id=blocker_id, blocked_id=blocked_id)
        return any(removed)

    async def get_blocked_users(self, blocker_id: str) -> list[BlockedUser]:
        docs = await self.blocks.query({"blocker_id": blocker_id}, order=desc("created_at"))
        return [BlockedUser.model_validate(doc) for doc in docs]

    async def check_block_relation(self, user_a: str, user_b: str) -> bool:
        rows = await self._find_pair(self.blocks, ("blocker_id", "blocked_id"), user_a, user_b)
        return bool(rows)

    # ------------------------------------------------------------------
    # Reports
    # ------------------------------------------------------------------

    async def report_user(self, reporter_id: str, req: ReportUserRequest) -> Report:
        if reporter_id == req.reported_user_id:
            msg = "You cannot report yourself"
            raise ValueError(msg)
        now = _now()
        doc = await self.reports.insert(
            {
                "reporter_id": reporter_id,
                "reported_user_id": req.reported_user_id,
                "type": req.type.value,
                "description": req.description,
                "status": ReportStatus.PENDING.value,
                "created_at": now,
                "updated_at": now,
            }
        )
        logger.info("user_reported", report_id=doc["id"], reporter_id=reporter_id, type=req.type.value)
        return Report.model_validate(doc)

    async def get_reports_by_reporter(self, reporter_id: str) -> list[Report]:
        docs = await self.reports.query({"reporter_id": reporter_id}, order=desc("created_at"))
        return [Report.model_validate(doc) for doc in docs]

    async def get_report_by_id(self, report_id: str) -> Report | None:
        doc = await self.reports.get(report_id)
        return Report.model_validate(doc) if doc else None

    async def get_all_reports(self, status: ReportStatus | None = None) -> list[Report]:
        filter_ = {"status": status.value} if status is not None else None
        docs = await self.reports.query(filter_, order=desc("created_at"))
        return [Report.model_validate(doc) for doc in docs]

    async def update_report(self, report_id: str, admin_id: str, req: UpdateReportRequest) -> Report | None:
        now = _now()
        patch: dict[str, Any] = {
            "status": req.status.value,
            "handled_by": admin_id,
            "handled_at": now,
            "updated_at": now,
        }
        if req.admin_notes is not None:
            patch["admin_notes"] = req.admin_notes
        doc = await self.reports.update(report_id, patch)
        if doc is None:
            return None
        logger.info("report_updated", report_id=report_id, admin_id=admin_id, status=req.status.value)
        return Report.model_validate(doc)

    # ------------------------------------------------------------------
    # Contacts
    # ------------------------------------------------------------------

    async def request_contact(self, user_id: str, contact_user_id: str) -> Contact:
        """Open a pending contact edge, or return the live edge the pair already has.

        A rejected edge is reopened as pending from the new requester, so the
        other side can accept it.
        """
        if user_id == contact_user_id:
            msg = "You cannot add yourself as a contact"
            raise ValueError(msg)
        fields = ("user_id", "contact_user_id")
        live = in_((ContactStatus.PENDING.value, ContactStatus.ACCEPTED.value))
        existing = await self._find_pair(self.contacts, fields, user_id, contact_user_id, status=live)
        if existing:
            return Contact.model_validate(existing[0])
        now = _now()
        opened = {
            "user_id": user_id,
            "contact_user_id": contact_user_id,
            "status": ContactStatus.PENDING.value,
            "updated_at": now,
        }
        rejected = await self._find_pair(self.contacts, fields, user_id, contact_user_id)
        if rejected:
            doc = await self.contacts.update(rejected[0]["id"], opened)
            if doc is not None:
                logger.info("contact_rerequested", user_id=user_id, contact_user_id=contact_user_id)
                return Contact.model_validate(doc)
        try:
            doc = await self.contacts.insert(
                {"id": pair_id("contact", *sorted((user_id, contact_user_id))), **opened, "created_at": now}
            )
        except StorageError:
            # The other side opened the same pair concurrently.
            existing = await self._find_pair(self.contacts, fields, user_id, contact_user_id, status=live)
            if not existing:
                raise
            return Contact.model_validate(existing[0])
        logger.info("contact_requested", user_id=user_id, contact_user_id=contact_user_id)
        return Contact.model_validate(doc)

    async def respond_contact_request(self, contact_id: str, user_id: str, accept: bool) -> Contact | None:
        """Accept or reject a request addressed to ``user_id``. None if absent or not theirs."""
        doc = await self.contacts.get(contact_id)
        if not doc or doc.get("contact_user_id") != user_id:
            return None
        status = ContactStatus.ACCEPTED if accept else ContactStatus.REJECTED
        updated = await self.contacts.update(contact_id, {"status": status.value, "updated_at": _now()})
        if updated is None:
            return None
        logger.info("contact_responded", contact_id=contact_id, user_id=user_id, status=status.value)
        return Contact.model_validate(updated)

    async def check_friend_relation(self, user_a: str, user_b: str) -> bool:
        rows = await self._find_pair(
            self.contacts,
            ("user_id", "contact_user_id"),
            user_a,
            user_b,
            status=ContactStatus.ACCEPTED.value,
        )
        return bool(rows)

    async def get_contacts(self, user_id: str) -> list[Contact]:
        accepted = ContactStatus.ACCEPTED.value
        docs = await self._query_any(
            self.contacts,
            [
                {"user_id": user_id, "status": accepted},
                {"contact_user_id": user_id, "status": accepted},
            ],
        )
        return [Contact.model_validate(doc) for doc in docs]


class GlobalUserService(StoreUserService):
    """Row-store implementation: disjunctions and id lists become single statements."""

    async def _query_any(self, collection: Collection, clauses: Sequence[Mapping[str, Any]]) -> list[Document]:
        return await collection.query(any_of(*clauses))

    async def _fetch_many(self, collection: Collection, ids: Sequence[str]) -> list[Document]:
        return await collection.query({"id": in_(ids)})


class CnUserService(StoreUserService):
    """Document-store implementation: one lookup per clause or id, run concurrently."""

    def _normalize_user(self, doc: Document) -> Document:
        doc = super()._normalize_user(doc)
        # Older cn records carry a single "name" field.
        if not doc.get("full_name"):
            doc["full_name"] = doc.get("name") or doc.get("username") or ""
        return doc

    async def _query_any(self, collection: Collection, clauses: Sequence[Mapping[str, Any]]) -> list[Document]:
        batches = await asyncio.gather(*(collection.query(clause) for clause in clauses))
        seen: dict[str, Document] = {}
        for batch in batches:
            for doc in batch:
                seen.setdefault(doc["id"], doc)
        return list(seen.values())

    async def _fetch_many(self, collection: Collection, ids: Sequence[str]) -> list[Document]:
        docs = await asyncio.gather(*(collection.get(doc_id) for doc_id in ids))
        return [doc for doc in docs if doc]


def user_service_for(backend: BackendClient) -> StoreUserService:
    """Pick the implementation matching the backend's region."""
    if backend.region is Region.CN:
        return CnUserService(backend)
    return GlobalUserService(backend)
