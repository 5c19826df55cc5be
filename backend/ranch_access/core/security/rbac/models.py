# ranch_access/core/security/rbac/models.py
"""
RBAC（Role-Based Access Control）のモデル定義

  - 招待コードの roleType から、メンバーのロールと権限セットを決める。
  - メンバードキュメントに保存するロール値と、このコード内の Enum を一致させる。
  - 未知の roleType（"usuario" を含む）はすべて「empleado」にフォールバックする。
"""

from enum import Enum
from typing import FrozenSet, Optional, Set
from pydantic import BaseModel
from .permissions import Permission, PERMISSION_GROUPS

""" メンバーのロール """
class MemberRole(str, Enum):

    ADMIN = "admin"                # 牧場オーナー・管理者
    VETERINARIO = "veterinario"    # 獣医
    SUPERVISOR = "supervisor"      # 監督者
    EMPLEADO = "empleado"          # 一般従業員


class ResolvedRole(BaseModel):
    """解決済みのロールと権限セット"""
    role: MemberRole
    permissions: FrozenSet[Permission]

    def permission_values(self) -> list[str]:
        """保存用にソート済みの文字列リストで返す"""
        return sorted(p.value for p in self.permissions)


""" 各ロールに割り当てる権限一覧 """
class RolePermissionMapping:

    ROLE_PERMISSIONS = {
        # 管理者（牧場オーナー）
        MemberRole.ADMIN: frozenset({
            Permission.READ, Permission.CREATE, Permission.UPDATE, Permission.DELETE,
            Permission.MANAGE_USERS, Permission.GENERATE_CODES
        }),

        # 獣医
        MemberRole.VETERINARIO: frozenset({
            Permission.READ, Permission.CREATE, Permission.UPDATE,
            Permission.MANAGE_ANIMALS, Permission.RECORD_HEALTH, Permission.VIEW_MEDICAL_REPORTS
        }),

        # 監督者
        MemberRole.SUPERVISOR: frozenset({
            Permission.READ, Permission.CREATE, Permission.UPDATE,
            Permission.MANAGE_ANIMALS, Permission.VIEW_REPORTS
        }),

        # 一般従業員
        MemberRole.EMPLEADO: frozenset({
            Permission.READ, Permission.CREATE, Permission.UPDATE
        })
    }

    DEFAULT_ROLE = MemberRole.EMPLEADO

    # roleType（招待コードの種類）からロールを決めるメソッド
    @classmethod
    def role_for(cls, role_type: Optional[str]) -> MemberRole:
        try:
            return MemberRole((role_type or "").strip().lower())
        except ValueError:
            return cls.DEFAULT_ROLE

    # roleType からロールと権限を解決するメソッド
    @classmethod
    def resolve(cls, role_type: Optional[str]) -> ResolvedRole:
        role = cls.role_for(role_type)
        return ResolvedRole(role=role, permissions=cls.ROLE_PERMISSIONS[role])

    # ロールが指定された権限を持っているかチェックするメソッド
    @classmethod
    def has_permission(cls, role: MemberRole, permission: Permission) -> bool:
        return permission in cls.ROLE_PERMISSIONS.get(role, frozenset())

    # 権限グループ名で権限を取得するメソッド
    @classmethod
    def get_permissions_by_group(cls, group_name: str) -> Set[Permission]:
        return set(PERMISSION_GROUPS.get(group_name, []))
