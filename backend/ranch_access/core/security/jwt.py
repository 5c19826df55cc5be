# ranch_access/core/security/jwt.py
"""
 - JWT（JSON Web Token）を生成・検証するユーティリティモジュール。
 - トークンの発行自体は認証基盤側の責務。ここでは sub（メンバーのuid）を取り出すために検証する。
"""

from datetime import datetime, timedelta, timezone
from jose import JWTError, jwt
from ranch_access.core.config import settings

# アクセストークンを生成する関数 (指定されたデータを元にJWTアクセストークンを生成して返す。)
def create_access_token(data: dict, expires_delta: timedelta = None) -> str:
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=settings.access_token_expire_minutes))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)

# JWTトークンを検証し、有効であればペイロードを返す関数 (無効な場合は None を返す。)
def verify_access_token(token: str) -> dict | None:
    try:
        return jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError:
        return None

# JWTトークンをデコードしてペイロードを返す関数 (verify_access_tokenのエイリアスとして使用)
def decode_access_token(token: str) -> dict | None:
    return verify_access_token(token)
