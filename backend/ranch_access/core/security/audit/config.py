"""
監査ログの設定
"""
from pydantic_settings import BaseSettings, SettingsConfigDict


class AuditConfig(BaseSettings):
    """監査ログの設定"""

    model_config = SettingsConfigDict(env_prefix="AUDIT_", extra="ignore")

    # 監査ログの有効化
    ENABLED: bool = True

    # 機密情報のマスキング
    MASK_SENSITIVE: bool = True

    # 拒否された引き換えも記録するか
    RECORD_REJECTIONS: bool = True


# 設定インスタンスを作成
audit_config = AuditConfig()
