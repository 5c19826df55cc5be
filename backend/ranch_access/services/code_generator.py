import secrets
import string

from ranch_access.core.exceptions import InvalidCodeLengthError

# 大文字・小文字・数字（62文字）
ALPHANUMERIC = string.ascii_letters + string.digits

# 発行するコードは大文字と数字のみ（照合時も大文字に正規化する）
CODE_ALPHABET = string.ascii_uppercase + string.digits


def generate(length: int, alphabet: str = ALPHANUMERIC) -> str:
    """ランダムな英数字コードを生成（各桁は独立に一様抽選）"""
    if isinstance(length, bool) or not isinstance(length, int) or length < 1:
        raise InvalidCodeLengthError(length)
    if not alphabet:
        raise ValueError("alphabet must not be empty")
    return "".join(secrets.choice(alphabet) for _ in range(length))


def normalize_code(code: str) -> str:
    """照合用にコードを正規化（前後の空白を除去して大文字化）"""
    return (code or "").strip().upper()
