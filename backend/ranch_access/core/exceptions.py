"""
招待コード・メンバー管理で使うアプリケーション例外

引き換えの「意味的な拒否」（存在しない・期限切れ・使用済み・競合）は
例外ではなく RedemptionResult として返す。ここに定義するのは
呼び出し側に伝播させるべき失敗のみ。
"""


class RanchAccessError(Exception):
    """アプリケーション例外の基底クラス"""

    pass


class StoreUnavailableError(RanchAccessError):
    """ストア（通信・バックエンド）障害。リトライ可能なエラー"""

    def __init__(self, operation: str, cause: Exception = None):
        self.operation = operation
        self.cause = cause
        message = f"Store unavailable during '{operation}'"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)


class GenerationExhaustedError(RanchAccessError):
    """一意なコードを上限回数内で生成できなかった"""

    def __init__(self, attempts: int, length: int):
        self.attempts = attempts
        self.length = length
        super().__init__(
            f"Could not generate a unique code of length {length} after {attempts} attempts; "
            "try a longer code length"
        )


class InvalidCodeLengthError(RanchAccessError, ValueError):
    """コード長が不正"""

    def __init__(self, length):
        self.length = length
        super().__init__(f"Code length must be a positive integer, got {length!r}")


class InvariantViolationError(RanchAccessError, ValueError):
    """active == (usesRemaining > 0) などの不変条件を破る書き込み"""

    pass


class MemberAlreadyExistsError(RanchAccessError):
    """ユーザー名またはメールアドレスが既に使われている"""

    def __init__(self, field: str, value: str):
        self.field = field
        self.value = value
        super().__init__(f"A member with {field} '{value}' already exists")


class MemberNotFoundError(RanchAccessError):
    """メンバーが見つからない"""

    def __init__(self, uid: str):
        self.uid = uid
        super().__init__(f"Member '{uid}' not found")


class OwnerProtectedError(RanchAccessError):
    """牧場オーナー自身のロール・有効状態は変更できない"""

    def __init__(self, uid: str):
        self.uid = uid
        super().__init__(f"The ranch owner '{uid}' cannot be deactivated or reassigned")
