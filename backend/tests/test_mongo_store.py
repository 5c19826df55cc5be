from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.errors import AutoReconnect

from ranch_access.core.exceptions import InvariantViolationError, MemberNotFoundError, StoreUnavailableError
from ranch_access.crud.invitation_code import MongoInvitationCodeStore
from ranch_access.crud.member import MongoMemberStore
from ranch_access.schemas.invitation_code import InvitationCode, RedemptionStatus
from ranch_access.services.invitation_code import InvitationCodeService

NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)
CODE_ID = "65f0c0ffee0000000000abcd"


def code_document(uses=2, uses_total=3):
    return {
        "_id": ObjectId(CODE_ID),
        "code": "ABC123",
        "issuerId": "owner-1",
        "roleType": "empleado",
        "active": uses > 0,
        "createdAt": NOW,
        "expiresAt": NOW + timedelta(days=30),
        "usedAt": None,
        "usedBy": None,
        "usesRemaining": uses,
        "usesTotal": uses_total,
    }


@pytest.fixture
def collection():
    return MagicMock()


class TestMongoInvitationCodeStore:

    async def test_consume_is_conditional_update(self, collection):
        collection.find_one_and_update = AsyncMock(return_value=code_document(uses=2))
        store = MongoInvitationCodeStore(collection)

        outcome = await store.consume(CODE_ID, 3, "user-1", NOW)

        assert outcome.applied and not outcome.deleted
        assert outcome.record.uses_remaining == 2
        query, update = collection.find_one_and_update.call_args.args
        assert query["_id"] == ObjectId(CODE_ID)
        assert query["active"] is True
        assert query["usesRemaining"] == 3
        assert query["$or"] == [{"expiresAt": None}, {"expiresAt": {"$gt": NOW}}]
        assert update["$set"]["usesRemaining"] == 2
        assert update["$set"]["usedBy"] == "user-1"
        assert collection.find_one_and_update.call_args.kwargs["return_document"] == ReturnDocument.AFTER

    async def test_consume_last_use_deletes(self, collection):
        collection.find_one_and_delete = AsyncMock(return_value=code_document(uses=1))
        store = MongoInvitationCodeStore(collection)

        outcome = await store.consume(CODE_ID, 1, "user-1", NOW)

        assert outcome.applied and outcome.deleted
        assert outcome.record.uses_remaining == 0
        assert outcome.record.active is False
        query = collection.find_one_and_delete.call_args.args[0]
        assert query["usesRemaining"] == 1

    async def test_consume_not_applied(self, collection):
        collection.find_one_and_update = AsyncMock(return_value=None)
        store = MongoInvitationCodeStore(collection)

        outcome = await store.consume(CODE_ID, 3, "user-1", NOW)
        assert outcome.applied is False

    async def test_invalid_id_skips_the_database(self, collection):
        collection.find_one = AsyncMock()
        store = MongoInvitationCodeStore(collection)

        assert await store.get("not-an-object-id") is None
        assert (await store.consume("not-an-object-id", 1, "user-1", NOW)).applied is False
        collection.find_one.assert_not_called()

    async def test_driver_errors_become_store_unavailable(self, collection):
        collection.find_one = AsyncMock(side_effect=AutoReconnect("connection reset"))
        store = MongoInvitationCodeStore(collection)

        with pytest.raises(StoreUnavailableError) as exc_info:
            await store.find_active_by_code("ABC123")
        assert exc_info.value.operation == "find_active_by_code"

    async def test_find_active_returns_newest(self, collection):
        collection.find_one = AsyncMock(return_value=code_document())
        store = MongoInvitationCodeStore(collection)

        record = await store.find_active_by_code("ABC123")

        assert record.id == CODE_ID
        assert collection.find_one.call_args.args[0] == {"code": "ABC123", "active": True}
        assert collection.find_one.call_args.kwargs["sort"] == [("createdAt", -1)]

    async def test_list_by_issuer(self, collection):
        cursor = MagicMock()
        cursor.sort.return_value = cursor
        cursor.to_list = AsyncMock(return_value=[code_document()])
        collection.find.return_value = cursor
        store = MongoInvitationCodeStore(collection)

        records = await store.list_by_issuer("owner-1")

        assert [r.code for r in records] == ["ABC123"]
        collection.find.assert_called_once_with({"issuerId": "owner-1"})
        cursor.sort.assert_called_once_with("createdAt", -1)

    async def test_revoke_sets_both_fields(self, collection):
        collection.update_one = AsyncMock(return_value=MagicMock(matched_count=1))
        store = MongoInvitationCodeStore(collection)

        assert await store.update(CODE_ID, {"active": False})
        _, update = collection.update_one.call_args.args
        assert update == {"$set": {"active": False, "usesRemaining": 0}}


class TestMongoMemberStore:

    async def test_update_missing_member(self, collection):
        collection.find_one_and_update = AsyncMock(return_value=None)
        store = MongoMemberStore(collection)

        with pytest.raises(MemberNotFoundError):
            await store.update_member("ghost", {"role": "admin"})

    async def test_username_exists(self, collection):
        collection.count_documents = AsyncMock(return_value=1)
        store = MongoMemberStore(collection)

        assert await store.username_exists("lucia")
        collection.count_documents.assert_awaited_once_with({"username": "lucia"}, limit=1)


class TestInconsistentStoredRecords:

    async def test_active_record_without_uses_is_exhausted(self, collection, settings, clock):
        collection.find_one = AsyncMock(return_value=code_document(uses=0, uses_total=1) | {"active": True})
        collection.find_one_and_update = AsyncMock()
        collection.find_one_and_delete = AsyncMock()
        service = InvitationCodeService(MongoInvitationCodeStore(collection), settings, clock=clock)

        result = await service.redeem_code("ABC123", "user-1")

        assert result.status == RedemptionStatus.EXHAUSTED
        assert result.reason == "invitation code has no uses remaining"
        collection.find_one_and_update.assert_not_called()
        collection.find_one_and_delete.assert_not_called()
        assert await service.is_redeemable("ABC123") is False

    async def test_listing_survives_inconsistent_record(self, collection):
        cursor = MagicMock()
        cursor.sort.return_value = cursor
        cursor.to_list = AsyncMock(return_value=[code_document(uses=0, uses_total=1) | {"active": True}, code_document()])
        collection.find.return_value = cursor
        store = MongoInvitationCodeStore(collection)

        records = await store.list_by_issuer("owner-1")

        assert [(r.active, r.uses_remaining) for r in records] == [(True, 0), (True, 2)]

    async def test_inconsistent_record_is_not_written_back(self, collection):
        collection.insert_one = AsyncMock()
        store = MongoInvitationCodeStore(collection)
        record = InvitationCode.from_document(code_document(uses=0, uses_total=1) | {"active": True})

        with pytest.raises(InvariantViolationError):
            await store.create(record)
        collection.insert_one.assert_not_called()
