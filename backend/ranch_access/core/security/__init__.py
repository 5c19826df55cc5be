"""
牧場アクセス管理のセキュリティモジュール
"""

# JWT関連の機能をエクスポート
from .jwt import create_access_token, verify_access_token, decode_access_token

__all__ = [
    "create_access_token",
    "verify_access_token",
    "decode_access_token",
]
