# ranch_access/crud/invitation_code.py
"""
 - 招待コードのドキュメントストア操作（CRUD）を定義するモジュール。
 - MongoDB（pymongo の非同期クライアント）を使う本番用ストアと、
   テスト・ローカル開発用のインメモリストアを提供する。
 - 不変条件 active == (usesRemaining > 0) は書き込みのたびにストア側で強制する。
 - consume() は「読み取った usesRemaining から変わっていなければ」減算（最後の1回なら削除）する
   条件付き書き込みで、同時に引き換えられても二重消費しない。
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import uuid4

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.errors import PyMongoError

from ranch_access.core.exceptions import InvariantViolationError, StoreUnavailableError
from ranch_access.schemas.invitation_code import ConsumeOutcome, InvitationCode

# ロガーの設定
logger = logging.getLogger(__name__)

# update() で変更を許可するフィールド（Python名 → ドキュメントのフィールド名）
UPDATABLE_FIELDS = {
    "uses_remaining": "usesRemaining",
    "used_at": "usedAt",
    "used_by": "usedBy",
    "active": "active",
    "expires_at": "expiresAt",
}


def prepare_update_fields(fields: Dict[str, Any]) -> Dict[str, Any]:
    """
    部分更新の内容を正規化し、active と usesRemaining の整合性を強制する。

    - usesRemaining を書く場合、active はそこから導出する（矛盾する指定はエラー）
    - active=False のみを書く場合（手動の無効化）は usesRemaining を 0 にする
    - active=True のみを書く場合は残り回数が分からないのでエラー
    """
    normalized: Dict[str, Any] = {}
    allowed_aliases = set(UPDATABLE_FIELDS.values())
    for key, value in fields.items():
        alias = UPDATABLE_FIELDS.get(key, key)
        if alias not in allowed_aliases:
            raise InvariantViolationError(f"Field '{key}' cannot be updated")
        normalized[alias] = value

    if "usesRemaining" in normalized:
        uses_remaining = normalized["usesRemaining"]
        if not isinstance(uses_remaining, int) or uses_remaining < 0:
            raise InvariantViolationError("usesRemaining must be a non-negative integer")
        derived_active = uses_remaining > 0
        if "active" in normalized and normalized["active"] != derived_active:
            raise InvariantViolationError("active must be true exactly when usesRemaining > 0")
        normalized["active"] = derived_active
    elif "active" in normalized:
        if normalized["active"]:
            raise InvariantViolationError("Cannot activate a code without setting usesRemaining")
        normalized["usesRemaining"] = 0

    return normalized


def _consumed_snapshot(record: InvitationCode, redeemer_id: str, now: datetime) -> InvitationCode:
    """最後の1回を消費した（削除された）レコードの事後状態"""
    return record.model_copy(update={
        "uses_remaining": 0,
        "active": False,
        "used_at": now,
        "used_by": redeemer_id,
    })


class InvitationCodeStore(ABC):
    """招待コードストアのインターフェース（すべて非同期）"""

    @abstractmethod
    async def create(self, record: InvitationCode) -> str:
        """新しいレコードを追加し、ストアが割り当てたidを返す"""

    @abstractmethod
    async def get(self, code_id: str) -> Optional[InvitationCode]:
        ...

    @abstractmethod
    async def list_by_issuer(self, issuer_id: str) -> List[InvitationCode]:
        """発行者のコード一覧（createdAt 降順）"""

    @abstractmethod
    async def find_active_by_code(self, code: str) -> Optional[InvitationCode]:
        """active なレコードのうち最新のもの"""

    @abstractmethod
    async def find_redeemable_by_code(self, code: str, now: datetime) -> Optional[InvitationCode]:
        """active かつ残り回数あり・期限内のレコードのうち最新のもの"""

    @abstractmethod
    async def code_exists(self, code: str) -> bool:
        """active かどうかに関わらず同じ文字列のレコードがあるか"""

    @abstractmethod
    async def update(self, code_id: str, fields: Dict[str, Any]) -> bool:
        """部分更新。対象がなければ False"""

    @abstractmethod
    async def delete(self, code_id: str) -> bool:
        """物理削除。対象がなければ False"""

    @abstractmethod
    async def consume(
        self,
        code_id: str,
        expected_uses_remaining: int,
        redeemer_id: str,
        now: datetime,
    ) -> ConsumeOutcome:
        """
        条件付きで1回分消費する。

        ドキュメントが active・期限内で、usesRemaining が expected_uses_remaining のままの
        場合のみ適用される。expected_uses_remaining == 1 ならドキュメントを削除する。
        """


class MongoInvitationCodeStore(InvitationCodeStore):
    """MongoDB の invitation_codes コレクションを使うストア"""

    def __init__(self, collection):
        # pymongo.asynchronous.collection.AsyncCollection
        self.collection = collection

    @asynccontextmanager
    async def _guard(self, operation: str):
        try:
            yield
        except PyMongoError as e:
            logger.error("invitation code store error during %s: %s", operation, e)
            raise StoreUnavailableError(operation, e) from e

    @staticmethod
    def _object_id(code_id: str) -> Optional[ObjectId]:
        try:
            return ObjectId(code_id)
        except (InvalidId, TypeError):
            return None

    @staticmethod
    def _unexpired_filter(now: datetime) -> Dict[str, Any]:
        # expiresAt が未設定（null）のコードは期限なし
        return {"$or": [{"expiresAt": None}, {"expiresAt": {"$gt": now}}]}

    async def ensure_indexes(self) -> None:
        """検索用インデックスを作成（code は一意制約にしない）"""
        async with self._guard("ensure_indexes"):
            await self.collection.create_index(
                [("code", ASCENDING), ("active", ASCENDING), ("createdAt", DESCENDING)]
            )
            await self.collection.create_index([("issuerId", ASCENDING), ("createdAt", DESCENDING)])

    async def create(self, record: InvitationCode) -> str:
        record.ensure_invariants()
        async with self._guard("create"):
            result = await self.collection.insert_one(record.to_document())
        return str(result.inserted_id)

    async def get(self, code_id: str) -> Optional[InvitationCode]:
        oid = self._object_id(code_id)
        if oid is None:
            return None
        async with self._guard("get"):
            doc = await self.collection.find_one({"_id": oid})
        return InvitationCode.from_document(doc) if doc else None

    async def list_by_issuer(self, issuer_id: str) -> List[InvitationCode]:
        async with self._guard("list_by_issuer"):
            cursor = self.collection.find({"issuerId": issuer_id}).sort("createdAt", DESCENDING)
            docs = await cursor.to_list()
        return [InvitationCode.from_document(doc) for doc in docs]

    async def find_active_by_code(self, code: str) -> Optional[InvitationCode]:
        async with self._guard("find_active_by_code"):
            doc = await self.collection.find_one(
                {"code": code, "active": True},
                sort=[("createdAt", DESCENDING)],
            )
        return InvitationCode.from_document(doc) if doc else None

    async def find_redeemable_by_code(self, code: str, now: datetime) -> Optional[InvitationCode]:
        query = {"code": code, "active": True, "usesRemaining": {"$gt": 0}}
        query.update(self._unexpired_filter(now))
        async with self._guard("find_redeemable_by_code"):
            doc = await self.collection.find_one(query, sort=[("createdAt", DESCENDING)])
        return InvitationCode.from_document(doc) if doc else None

    async def code_exists(self, code: str) -> bool:
        async with self._guard("code_exists"):
            count = await self.collection.count_documents({"code": code}, limit=1)
        return count > 0

    async def update(self, code_id: str, fields: Dict[str, Any]) -> bool:
        changes = prepare_update_fields(fields)
        oid = self._object_id(code_id)
        if oid is None:
            return False
        query: Dict[str, Any] = {"_id": oid}
        if changes.get("usesRemaining"):
            # usesRemaining <= usesTotal をストア側で保証する
            query["usesTotal"] = {"$gte": changes["usesRemaining"]}
        async with self._guard("update"):
            result = await self.collection.update_one(query, {"$set": changes})
            if result.matched_count == 0 and "usesTotal" in query:
                if await self.collection.count_documents({"_id": oid}, limit=1):
                    raise InvariantViolationError("usesRemaining must not exceed usesTotal")
        return result.matched_count > 0

    async def delete(self, code_id: str) -> bool:
        oid = self._object_id(code_id)
        if oid is None:
            return False
        async with self._guard("delete"):
            result = await self.collection.delete_one({"_id": oid})
        return result.deleted_count > 0

    async def consume(
        self,
        code_id: str,
        expected_uses_remaining: int,
        redeemer_id: str,
        now: datetime,
    ) -> ConsumeOutcome:
        oid = self._object_id(code_id)
        if oid is None or expected_uses_remaining < 1:
            return ConsumeOutcome(applied=False)

        query = {"_id": oid, "active": True, "usesRemaining": expected_uses_remaining}
        query.update(self._unexpired_filter(now))

        async with self._guard("consume"):
            if expected_uses_remaining == 1:
                doc = await self.collection.find_one_and_delete(query)
                if doc is None:
                    return ConsumeOutcome(applied=False)
                record = _consumed_snapshot(InvitationCode.from_document(doc), redeemer_id, now)
                return ConsumeOutcome(applied=True, deleted=True, record=record)

            doc = await self.collection.find_one_and_update(
                query,
                {"$set": {
                    "usesRemaining": expected_uses_remaining - 1,
                    "usedAt": now,
                    "usedBy": redeemer_id,
                    "active": True,
                }},
                return_document=ReturnDocument.AFTER,
            )
        if doc is None:
            return ConsumeOutcome(applied=False)
        return ConsumeOutcome(applied=True, record=InvitationCode.from_document(doc))


class InMemoryInvitationCodeStore(InvitationCodeStore):
    """
    プロセス内のインメモリストア（テスト・ローカル開発用）

    各操作の先頭でイベントループに制御を返し、ネットワーク往復を模擬する。
    その後の判定と書き込みの間には await を挟まないので、asyncio 上では原子的に動く。
    """

    def __init__(self):
        self._codes: Dict[str, InvitationCode] = {}

    async def _round_trip(self) -> None:
        await asyncio.sleep(0)

    def _copy(self, record: Optional[InvitationCode]) -> Optional[InvitationCode]:
        return record.model_copy(deep=True) if record is not None else None

    def _latest(self, candidates: List[InvitationCode]) -> Optional[InvitationCode]:
        if not candidates:
            return None
        return self._copy(max(candidates, key=lambda r: r.created_at))

    async def create(self, record: InvitationCode) -> str:
        record.ensure_invariants()
        await self._round_trip()
        code_id = uuid4().hex
        self._codes[code_id] = record.model_copy(update={"id": code_id}, deep=True)
        return code_id

    async def get(self, code_id: str) -> Optional[InvitationCode]:
        await self._round_trip()
        return self._copy(self._codes.get(code_id))

    async def list_by_issuer(self, issuer_id: str) -> List[InvitationCode]:
        await self._round_trip()
        records = [r for r in self._codes.values() if r.issuer_id == issuer_id]
        records.sort(key=lambda r: r.created_at, reverse=True)
        return [self._copy(r) for r in records]

    async def find_active_by_code(self, code: str) -> Optional[InvitationCode]:
        await self._round_trip()
        return self._latest([r for r in self._codes.values() if r.code == code and r.active])

    async def find_redeemable_by_code(self, code: str, now: datetime) -> Optional[InvitationCode]:
        await self._round_trip()
        return self._latest([
            r for r in self._codes.values() if r.code == code and r.is_redeemable(now)
        ])

    async def code_exists(self, code: str) -> bool:
        await self._round_trip()
        return any(r.code == code for r in self._codes.values())

    async def update(self, code_id: str, fields: Dict[str, Any]) -> bool:
        changes = prepare_update_fields(fields)
        await self._round_trip()
        current = self._codes.get(code_id)
        if current is None:
            return False
        if changes.get("usesRemaining", 0) > current.uses_total:
            raise InvariantViolationError("usesRemaining must not exceed usesTotal")
        data = current.model_dump(by_alias=True)
        data.update(changes)
        self._codes[code_id] = InvitationCode.model_validate(data)
        return True

    async def delete(self, code_id: str) -> bool:
        await self._round_trip()
        return self._codes.pop(code_id, None) is not None

    async def consume(
        self,
        code_id: str,
        expected_uses_remaining: int,
        redeemer_id: str,
        now: datetime,
    ) -> ConsumeOutcome:
        await self._round_trip()
        current = self._codes.get(code_id)
        if (
            current is None
            or expected_uses_remaining < 1
            or current.uses_remaining != expected_uses_remaining
            or not current.is_redeemable(now)
        ):
            return ConsumeOutcome(applied=False)

        if expected_uses_remaining == 1:
            del self._codes[code_id]
            return ConsumeOutcome(applied=True, deleted=True, record=_consumed_snapshot(current, redeemer_id, now))

        updated = current.model_copy(update={
            "uses_remaining": expected_uses_remaining - 1,
            "used_at": now,
            "used_by": redeemer_id,
            "active": True,
        })
        self._codes[code_id] = updated
        return ConsumeOutcome(applied=True, record=self._copy(updated))
