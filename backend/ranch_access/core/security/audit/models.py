"""
監査ログのデータベースモデル
招待コードとメンバー登録に関するイベントの記録と追跡
"""
from datetime import datetime, timezone
from enum import Enum
from sqlalchemy import Column, String, DateTime, Boolean, JSON
from ranch_access.db.base_class import Base
import uuid


class AuditEventType(str, Enum):
    """監査イベントのタイプ"""
    # 招待コード
    INVITATION_CODE_GENERATED = "invitation_code:generated"
    INVITATION_CODE_REDEEMED = "invitation_code:redeemed"
    INVITATION_CODE_REJECTED = "invitation_code:rejected"
    INVITATION_CODE_REVOKED = "invitation_code:revoked"
    INVITATION_CODE_DELETED = "invitation_code:deleted"
    READ_INVITATION_CODES = "read:invitation_codes"

    # メンバー登録
    MEMBER_REGISTER_SUCCESS = "member:register:success"
    MEMBER_REGISTER_FAILURE = "member:register:failure"

    # メンバー管理
    READ_MEMBERS = "read:members"
    MEMBER_ACTIVE_CHANGED = "member:active:changed"
    MEMBER_ROLE_CHANGED = "member:role:changed"

    # 権限
    AUTH_PERMISSION_DENIED = "auth:permission:denied"


class AuditLog(Base):
    """監査ログテーブル"""
    __tablename__ = "audit_logs"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    timestamp = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    user_id = Column(String, nullable=True)  # 未認証の登録などでは空
    event_type = Column(String, nullable=False, index=True)
    resource = Column(String, nullable=True)  # 操作対象のリソース
    action = Column(String, nullable=True)    # 実行されたアクション
    success = Column(Boolean, default=True)   # 成功/失敗
    details = Column(JSON, nullable=True)     # 追加の詳細情報

    def __repr__(self):
        return f"<AuditLog(id={self.id}, event_type={self.event_type}, user_id={self.user_id})>"
