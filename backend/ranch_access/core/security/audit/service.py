"""
監査ログサービスクラス
招待コード・メンバー登録イベントの記録と参照
"""
import logging
from typing import Optional, Dict, Any, List
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from ranch_access.core.security.audit.models import AuditLog, AuditEventType
from ranch_access.core.security.audit.config import AuditConfig

# ロガーの設定
logger = logging.getLogger(__name__)

SENSITIVE_FIELDS = ("password", "token", "secret", "key")


class AuditService:
    """監査ログのビジネスロジックを提供"""

    def __init__(self, db: Session, config: Optional[AuditConfig] = None):
        self.db = db
        self.config = config or AuditConfig()

    def log_event(
        self,
        event_type: AuditEventType,
        user_id: Optional[str] = None,
        resource: Optional[str] = None,
        action: Optional[str] = None,
        success: bool = True,
        details: Optional[Dict[str, Any]] = None,
    ) -> Optional[AuditLog]:
        """監査イベントを記録"""

        if not self.config.ENABLED:
            return None

        if details and self.config.MASK_SENSITIVE:
            details = self._mask_sensitive_data(details)

        audit_log = AuditLog(
            user_id=user_id,
            event_type=event_type.value,
            resource=resource,
            action=action,
            success=success,
            details=details,
        )

        try:
            self.db.add(audit_log)
            self.db.commit()
            self.db.refresh(audit_log)
        except SQLAlchemyError:
            self.db.rollback()
            raise

        return audit_log

    def log_event_safely(self, event_type: AuditEventType, **kwargs) -> Optional[AuditLog]:
        """監査ログの書き込み失敗で本処理を失敗させたくない箇所で使う"""
        try:
            return self.log_event(event_type, **kwargs)
        except SQLAlchemyError as e:
            logger.error("failed to write audit event %s: %s", event_type.value, e)
            return None

    def _mask_sensitive_data(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """機密情報をマスキング"""
        masked_data = data.copy()
        for field in masked_data:
            if any(s in field.lower() for s in SENSITIVE_FIELDS):
                masked_data[field] = "***MASKED***"
        return masked_data

    def get_user_audit_logs(
        self,
        user_id: str,
        limit: int = 100,
        offset: int = 0
    ) -> List[AuditLog]:
        """特定ユーザーの監査ログを取得"""
        return self.db.query(AuditLog)\
            .filter(AuditLog.user_id == user_id)\
            .order_by(AuditLog.timestamp.desc())\
            .offset(offset)\
            .limit(limit)\
            .all()

    def get_events(self, event_type: AuditEventType, limit: int = 100) -> List[AuditLog]:
        """イベント種別で監査ログを取得"""
        return self.db.query(AuditLog)\
            .filter(AuditLog.event_type == event_type.value)\
            .order_by(AuditLog.timestamp.desc())\
            .limit(limit)\
            .all()
