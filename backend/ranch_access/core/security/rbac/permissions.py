# ranch_access/core/security/rbac/permissions.py
"""
操作権限の定義
"""

from enum import Enum

""" 操作権限一覧 """
class Permission(str, Enum):

    # --- 基本操作 ---
    READ = "read"                      # 閲覧
    CREATE = "create"                  # 作成
    UPDATE = "update"                  # 更新
    DELETE = "delete"                  # 削除

    # --- 牧場管理 ---
    MANAGE_USERS = "manage_users"      # メンバー管理
    GENERATE_CODES = "generate_codes"  # 招待コード発行

    # --- 家畜・健康管理 ---
    MANAGE_ANIMALS = "manage_animals"              # 家畜管理
    RECORD_HEALTH = "record_health"                # 健康記録の登録
    VIEW_MEDICAL_REPORTS = "view_medical_reports"  # 医療レポート閲覧
    VIEW_REPORTS = "view_reports"                  # レポート閲覧

""" 権限グループ（関連する権限をまとめる） """
PERMISSION_GROUPS = {

    # 基本的なデータ操作
    "basic": [
        Permission.READ, Permission.CREATE, Permission.UPDATE
    ],

    # 牧場の管理者向け
    "ranch_management": [
        Permission.DELETE, Permission.MANAGE_USERS, Permission.GENERATE_CODES
    ],

    # 家畜・健康関連
    "animal_health": [
        Permission.MANAGE_ANIMALS, Permission.RECORD_HEALTH,
        Permission.VIEW_MEDICAL_REPORTS
    ],

    # レポート関連
    "reports": [
        Permission.VIEW_REPORTS, Permission.VIEW_MEDICAL_REPORTS
    ]
}
