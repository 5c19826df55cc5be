"""
牧場内のメンバー管理（管理者向け）

  - 一覧は自分の牧場（tenantId）のメンバーのみ
  - 有効/無効の切り替え、ロール変更（権限はロールから決め直す）
  - 牧場オーナー本人は変更できない
"""

import logging
from typing import List, Union

from ranch_access.core.exceptions import MemberNotFoundError, OwnerProtectedError
from ranch_access.core.security.rbac import RBACService
from ranch_access.crud.member import MemberStore
from ranch_access.schemas.invitation_code import InvitationRoleType
from ranch_access.schemas.member import Member

# ロガーの設定
logger = logging.getLogger(__name__)


class MemberManagementService:
    """牧場メンバーの管理ロジックを提供"""

    def __init__(self, member_store: MemberStore):
        self.member_store = member_store

    async def list_members(self, tenant_id: str) -> List[Member]:
        """牧場のメンバー一覧（登録日順）"""
        members = await self.member_store.list_by_tenant(tenant_id)
        return sorted(members, key=lambda m: m.registered_at)

    async def _tenant_member(self, tenant_id: str, uid: str) -> Member:
        member = await self.member_store.get_member(uid)
        if member is None or member.tenant_id != tenant_id:
            # 他の牧場のメンバーは存在しないものとして扱う
            raise MemberNotFoundError(uid)
        if member.uid == tenant_id:
            raise OwnerProtectedError(uid)
        return member

    async def set_active(self, tenant_id: str, uid: str, active: bool) -> Member:
        await self._tenant_member(tenant_id, uid)
        member = await self.member_store.update_member(uid, {"active": active})
        logger.info("member %s of ranch %s %s", uid, tenant_id, "activated" if active else "deactivated")
        return member

    async def change_role(self, tenant_id: str, uid: str, role_type: Union[InvitationRoleType, str]) -> Member:
        if isinstance(role_type, InvitationRoleType):
            role_type = role_type.value
        await self._tenant_member(tenant_id, uid)
        resolved = RBACService.resolve(role_type)
        member = await self.member_store.update_member(uid, {
            "role": resolved.role.value,
            "permissions": resolved.permission_values(),
        })
        logger.info("member %s of ranch %s is now %s", uid, tenant_id, member.role)
        return member
