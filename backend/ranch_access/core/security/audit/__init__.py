"""
監査ログモジュール
招待コード・メンバー登録イベントの記録と追跡
"""

from .models import AuditLog, AuditEventType
from .service import AuditService
from .config import AuditConfig

__all__ = [
    "AuditLog",
    "AuditEventType",
    "AuditService",
    "AuditConfig"
]
