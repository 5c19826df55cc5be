"""
RBACサービスクラス
RBACモデル（権限定義 + マッピング）を実際にアプリのロジックで使える形にするための“実行部”
"""

from typing import List, Optional, Set
from fastapi import HTTPException, status
from ranch_access.schemas.member import Member
from .models import MemberRole, ResolvedRole, RolePermissionMapping
from .permissions import Permission

class RBACService:
    """RBACロジックを提供するサービス層"""

    # --- ロール解決 ---
    @staticmethod
    def resolve(role_type: Optional[str]) -> ResolvedRole:
        """招待コードの roleType からロールと権限を決める"""
        return RolePermissionMapping.resolve(role_type)

    @staticmethod
    def owner_role() -> ResolvedRole:
        """牧場オーナー（コードなし登録）のロール"""
        return RolePermissionMapping.resolve(MemberRole.ADMIN.value)

    # --- 権限チェック ---
    @staticmethod
    def get_member_permissions(member: Member) -> Set[str]:
        # メンバードキュメントに保存された権限を正とする（権限変更が即時反映されるように）
        if not member or not member.active:
            return set()
        return set(member.permissions or [])

    # --- 権限なしなら即403返す系 ---
    @staticmethod
    def enforce_member_permissions(member: Member, permissions: List[Permission]):
        member_permissions = RBACService.get_member_permissions(member)
        if not all(p.value in member_permissions for p in permissions):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Missing required permissions")
