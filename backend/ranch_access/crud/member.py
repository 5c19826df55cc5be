# ranch_access/crud/member.py
"""
 - メンバー（牧場のオーナー・従業員）に関するドキュメントストア操作を定義するモジュール。
 - 登録処理（onboarding）から呼ばれる createMember と、その補償用の削除、
   権限変更の購読（listener）を提供する。
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import Any, Callable, Dict, List, Optional

from pymongo import ReturnDocument
from pymongo.errors import PyMongoError

from ranch_access.core.exceptions import MemberNotFoundError, StoreUnavailableError
from ranch_access.schemas.member import Member

# ロガーの設定
logger = logging.getLogger(__name__)

# メンバードキュメントが変わったときに呼ばれるコールバック（削除時は None）
MemberListener = Callable[[Optional[Member]], None]

# update_member() で変更を許可するフィールド
MEMBER_UPDATABLE_FIELDS = {
    "role": "role",
    "permissions": "permissions",
    "tenant_id": "tenantId",
    "active": "active",
    "last_access": "lastAccess",
    "phone": "phone",
    "name": "name",
}


def _normalize_member_fields(fields: Dict[str, Any]) -> Dict[str, Any]:
    normalized = {}
    allowed = set(MEMBER_UPDATABLE_FIELDS.values())
    for key, value in fields.items():
        alias = MEMBER_UPDATABLE_FIELDS.get(key, key)
        if alias not in allowed:
            raise ValueError(f"Field '{key}' cannot be updated")
        normalized[alias] = value
    return normalized


class ListenerRegistration(ABC):
    """購読の登録ハンドル。close() で解除する"""

    @abstractmethod
    async def close(self) -> None:
        ...


class MemberStore(ABC):
    """メンバーストアのインターフェース"""

    @abstractmethod
    async def create_member(self, member: Member) -> Member:
        ...

    @abstractmethod
    async def get_member(self, uid: str) -> Optional[Member]:
        ...

    @abstractmethod
    async def update_member(self, uid: str, fields: Dict[str, Any]) -> Member:
        """部分更新して更新後のメンバーを返す。存在しなければ MemberNotFoundError"""

    @abstractmethod
    async def delete_member(self, uid: str) -> bool:
        ...

    @abstractmethod
    async def username_exists(self, username: str) -> bool:
        ...

    @abstractmethod
    async def email_exists(self, email: str) -> bool:
        ...

    @abstractmethod
    async def list_by_tenant(self, tenant_id: str) -> List[Member]:
        ...

    @abstractmethod
    async def add_listener(self, uid: str, listener: MemberListener) -> ListenerRegistration:
        """指定メンバーの変更を購読する"""


class _CallbackRegistration(ListenerRegistration):

    def __init__(self, listeners: List[MemberListener], listener: MemberListener):
        self._listeners = listeners
        self._listener = listener

    async def close(self) -> None:
        if self._listener in self._listeners:
            self._listeners.remove(self._listener)


class _ChangeStreamRegistration(ListenerRegistration):

    def __init__(self, task: asyncio.Task):
        self._task = task

    async def close(self) -> None:
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass


class MongoMemberStore(MemberStore):
    """MongoDB の members コレクションを使うストア（_id は uid）"""

    def __init__(self, collection):
        self.collection = collection

    @asynccontextmanager
    async def _guard(self, operation: str):
        try:
            yield
        except PyMongoError as e:
            logger.error("member store error during %s: %s", operation, e)
            raise StoreUnavailableError(operation, e) from e

    async def ensure_indexes(self) -> None:
        async with self._guard("ensure_indexes"):
            await self.collection.create_index("username", unique=True)
            await self.collection.create_index("email", unique=True)
            await self.collection.create_index("tenantId")

    async def create_member(self, member: Member) -> Member:
        async with self._guard("create_member"):
            await self.collection.insert_one(member.to_document())
        return member

    async def get_member(self, uid: str) -> Optional[Member]:
        async with self._guard("get_member"):
            doc = await self.collection.find_one({"_id": uid})
        return Member.from_document(doc) if doc else None

    async def update_member(self, uid: str, fields: Dict[str, Any]) -> Member:
        changes = _normalize_member_fields(fields)
        async with self._guard("update_member"):
            doc = await self.collection.find_one_and_update(
                {"_id": uid},
                {"$set": changes},
                return_document=ReturnDocument.AFTER,
            )
        if doc is None:
            raise MemberNotFoundError(uid)
        return Member.from_document(doc)

    async def delete_member(self, uid: str) -> bool:
        async with self._guard("delete_member"):
            result = await self.collection.delete_one({"_id": uid})
        return result.deleted_count > 0

    async def username_exists(self, username: str) -> bool:
        async with self._guard("username_exists"):
            return await self.collection.count_documents({"username": username}, limit=1) > 0

    async def email_exists(self, email: str) -> bool:
        async with self._guard("email_exists"):
            return await self.collection.count_documents({"email": email}, limit=1) > 0

    async def list_by_tenant(self, tenant_id: str) -> List[Member]:
        async with self._guard("list_by_tenant"):
            docs = await self.collection.find({"tenantId": tenant_id}).to_list()
        return [Member.from_document(doc) for doc in docs]

    async def add_listener(self, uid: str, listener: MemberListener) -> ListenerRegistration:
        """change stream でメンバードキュメントの変更を監視する（レプリカセットが必要）"""

        async def _watch():
            pipeline = [{"$match": {"documentKey._id": uid}}]
            try:
                async with await self.collection.watch(pipeline, full_document="updateLookup") as stream:
                    async for change in stream:
                        doc = change.get("fullDocument")
                        listener(Member.from_document(doc) if doc else None)
            except PyMongoError as e:
                logger.error("member change stream for %s stopped: %s", uid, e)

        task = asyncio.create_task(_watch())
        return _ChangeStreamRegistration(task)


class InMemoryMemberStore(MemberStore):
    """プロセス内のインメモリストア（テスト・ローカル開発用）"""

    def __init__(self):
        self._members: Dict[str, Member] = {}
        self._listeners: Dict[str, List[MemberListener]] = {}

    def _notify(self, uid: str, member: Optional[Member]) -> None:
        for listener in list(self._listeners.get(uid, [])):
            listener(member.model_copy(deep=True) if member else None)

    async def create_member(self, member: Member) -> Member:
        await asyncio.sleep(0)
        if member.uid in self._members:
            raise ValueError(f"Member '{member.uid}' already exists")
        self._members[member.uid] = member.model_copy(deep=True)
        return member

    async def get_member(self, uid: str) -> Optional[Member]:
        await asyncio.sleep(0)
        member = self._members.get(uid)
        return member.model_copy(deep=True) if member else None

    async def update_member(self, uid: str, fields: Dict[str, Any]) -> Member:
        changes = _normalize_member_fields(fields)
        await asyncio.sleep(0)
        current = self._members.get(uid)
        if current is None:
            raise MemberNotFoundError(uid)
        data = current.model_dump(by_alias=True)
        data.update(changes)
        updated = Member.model_validate(data)
        self._members[uid] = updated
        self._notify(uid, updated)
        return updated.model_copy(deep=True)

    async def delete_member(self, uid: str) -> bool:
        await asyncio.sleep(0)
        removed = self._members.pop(uid, None)
        if removed is not None:
            self._notify(uid, None)
        return removed is not None

    async def username_exists(self, username: str) -> bool:
        await asyncio.sleep(0)
        return any(m.username == username for m in self._members.values())

    async def email_exists(self, email: str) -> bool:
        await asyncio.sleep(0)
        return any(m.email == email for m in self._members.values())

    async def list_by_tenant(self, tenant_id: str) -> List[Member]:
        await asyncio.sleep(0)
        return [m.model_copy(deep=True) for m in self._members.values() if m.tenant_id == tenant_id]

    async def add_listener(self, uid: str, listener: MemberListener) -> ListenerRegistration:
        listeners = self._listeners.setdefault(uid, [])
        listeners.append(listener)
        return _CallbackRegistration(listeners, listener)
