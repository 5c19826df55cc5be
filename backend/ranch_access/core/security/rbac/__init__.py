# ranch_access/core/security/rbac/__init__.py

"""
RBAC (Role-Based Access Control) モジュール
招待コードの種類からメンバーのロール・権限を決める
"""

from .permissions import Permission, PERMISSION_GROUPS
from .models import MemberRole, ResolvedRole, RolePermissionMapping
from .service import RBACService

__all__ = [
    "Permission",
    "PERMISSION_GROUPS",
    "MemberRole",
    "ResolvedRole",
    "RolePermissionMapping",
    "RBACService",
]
