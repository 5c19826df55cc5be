import logging
from typing import Callable, FrozenSet, Iterable, Optional, Union

from ranch_access.crud.member import ListenerRegistration, MemberStore
from ranch_access.core.security.rbac import Permission
from ranch_access.schemas.member import Member

# ロガーの設定
logger = logging.getLogger(__name__)

PermissionLike = Union[Permission, str]


def _value(permission: PermissionLike) -> str:
    return permission.value if isinstance(permission, Permission) else str(permission)


class PermissionSubscription:
    """
    ログイン中メンバーのロール・権限をストアの変更に追従させる購読

    呼び出し側のセッションが所有し、ログアウト時に async with を抜けて解除する。

        async with PermissionSubscription(store, uid) as subscription:
            if subscription.has_permission(Permission.GENERATE_CODES):
                ...
    """

    def __init__(
        self,
        member_store: MemberStore,
        uid: str,
        on_change: Optional[Callable[["PermissionSubscription"], None]] = None,
    ):
        self.member_store = member_store
        self.uid = uid
        self.on_change = on_change
        self.role: Optional[str] = None
        self.permissions: FrozenSet[str] = frozenset()
        self._registration: Optional[ListenerRegistration] = None

    @property
    def is_active(self) -> bool:
        return self._registration is not None

    def _apply(self, member: Optional[Member]) -> None:
        if member is None or not member.active:
            self.role = None
            self.permissions = frozenset()
        else:
            self.role = member.role
            self.permissions = frozenset(member.permissions)

    def _handle_change(self, member: Optional[Member]) -> None:
        self._apply(member)
        logger.info("permissions of %s updated: role=%s permissions=%s", self.uid, self.role, sorted(self.permissions))
        if self.on_change is not None:
            self.on_change(self)

    async def open(self) -> "PermissionSubscription":
        if self._registration is None:
            self._registration = await self.member_store.add_listener(self.uid, self._handle_change)
            try:
                self._apply(await self.member_store.get_member(self.uid))
            except BaseException:
                await self.close()
                raise
        return self

    async def close(self) -> None:
        if self._registration is not None:
            await self._registration.close()
            self._registration = None
            logger.debug("permission subscription for %s closed", self.uid)
        self._apply(None)

    async def __aenter__(self) -> "PermissionSubscription":
        return await self.open()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    def has_permission(self, permission: PermissionLike) -> bool:
        return _value(permission) in self.permissions

    def has_any_permission(self, permissions: Iterable[PermissionLike]) -> bool:
        return any(_value(p) in self.permissions for p in permissions)
