from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, model_validator
from typing import Any, Dict, Optional
from datetime import datetime
from enum import Enum

from ranch_access.core.exceptions import InvariantViolationError


class InvitationRoleType(str, Enum):
    """招待コードに紐づく役割の種類"""
    ADMIN = "admin"
    VETERINARIO = "veterinario"
    SUPERVISOR = "supervisor"
    EMPLEADO = "empleado"
    USUARIO = "usuario"


class InvitationCode(BaseModel):
    """
    招待コードのドキュメント
    ストア上のフィールド名はエイリアス（camelCase）をそのまま使う
    """
    model_config = ConfigDict(populate_by_name=True)

    id: Optional[str] = None
    code: str = Field(min_length=1)
    issuer_id: str = Field(alias="issuerId")
    role_type: str = Field(default=InvitationRoleType.USUARIO.value, alias="roleType")
    active: bool = True
    created_at: datetime = Field(alias="createdAt")
    expires_at: Optional[datetime] = Field(default=None, alias="expiresAt")
    used_at: Optional[datetime] = Field(default=None, alias="usedAt")
    used_by: Optional[str] = Field(default=None, alias="usedBy")
    uses_remaining: int = Field(ge=0, alias="usesRemaining")
    uses_total: int = Field(ge=1, alias="usesTotal")

    @model_validator(mode="after")
    def _check_invariants(self, info: ValidationInfo):
        # ストアから読み込んだレコードは検証しない（不整合なデータも判定側で拒否理由を返す）
        if info.context and info.context.get("from_store"):
            return self
        self.ensure_invariants()
        return self

    def ensure_invariants(self) -> None:
        """書き込み前の整合性チェック"""
        if self.uses_remaining > self.uses_total:
            raise InvariantViolationError("usesRemaining must not exceed usesTotal")
        if self.active != (self.uses_remaining > 0):
            raise InvariantViolationError("active must be true exactly when usesRemaining > 0")

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and self.expires_at <= now

    def is_redeemable(self, now: datetime) -> bool:
        return self.active and self.uses_remaining > 0 and not self.is_expired(now)

    def to_document(self) -> Dict[str, Any]:
        """ストア保存用の辞書（idは除く）"""
        return self.model_dump(by_alias=True, exclude={"id"})

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "InvitationCode":
        data = dict(doc)
        if "_id" in data:
            data["id"] = str(data.pop("_id"))
        return cls.model_validate(data, context={"from_store": True})


class InvitationCodeCreate(BaseModel):
    """招待コード作成用スキーマ"""
    role_type: InvitationRoleType = InvitationRoleType.USUARIO
    uses_total: int = Field(default=1, ge=1, le=100)
    ttl_days: int = Field(default=30, ge=1, le=365)
    length: Optional[int] = Field(default=None, ge=6, le=12)  # 未指定なら既定の長さ


class InvitationCodeResponse(BaseModel):
    """招待コード発行結果用スキーマ"""
    id: str
    code: str
    issuer_id: str
    role_type: str
    active: bool
    created_at: datetime
    expires_at: Optional[datetime]
    used_at: Optional[datetime] = None
    used_by: Optional[str] = None
    uses_remaining: int
    uses_total: int

    @classmethod
    def from_record(cls, record: InvitationCode) -> "InvitationCodeResponse":
        return cls.model_validate(record.model_dump())


class InvitationCodeValidation(BaseModel):
    """招待コード検証用スキーマ"""
    code: str = Field(min_length=1, max_length=20)


class InvitationCodeValidationResponse(BaseModel):
    """招待コード検証結果用スキーマ（参考情報。引き換えの成功を保証しない）"""
    is_valid: bool
    message: str


class RedemptionStatus(str, Enum):
    """引き換え結果の種類"""
    SUCCESS = "success"
    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    EXHAUSTED = "exhausted"
    CONCURRENT_CONFLICT = "concurrent_conflict"


REDEMPTION_REASONS = {
    RedemptionStatus.SUCCESS: "invitation code redeemed",
    RedemptionStatus.NOT_FOUND: "invitation code not found",
    RedemptionStatus.EXPIRED: "invitation code has expired",
    RedemptionStatus.EXHAUSTED: "invitation code has no uses remaining",
    RedemptionStatus.CONCURRENT_CONFLICT: "invitation code was just redeemed concurrently",
}


class RedeemedInfo(BaseModel):
    """引き換え後の状態のスナップショット"""
    id: str
    code: str
    issuer_id: str
    role_type: str
    uses_remaining: int
    uses_total: int
    active: bool
    used_at: Optional[datetime] = None
    used_by: Optional[str] = None

    @classmethod
    def from_record(cls, record: InvitationCode) -> "RedeemedInfo":
        return cls(
            id=record.id,
            code=record.code,
            issuer_id=record.issuer_id,
            role_type=record.role_type,
            uses_remaining=record.uses_remaining,
            uses_total=record.uses_total,
            active=record.active,
            used_at=record.used_at,
            used_by=record.used_by,
        )


class RedemptionResult(BaseModel):
    """引き換え結果（成功 or 拒否理由）"""
    status: RedemptionStatus
    info: Optional[RedeemedInfo] = None
    reason: str = ""

    @property
    def ok(self) -> bool:
        return self.status == RedemptionStatus.SUCCESS

    @classmethod
    def success(cls, info: RedeemedInfo) -> "RedemptionResult":
        return cls(status=RedemptionStatus.SUCCESS, info=info, reason=REDEMPTION_REASONS[RedemptionStatus.SUCCESS])

    @classmethod
    def rejected(cls, status: RedemptionStatus) -> "RedemptionResult":
        return cls(status=status, reason=REDEMPTION_REASONS[status])


class InvitationCodeRedeem(BaseModel):
    """招待コード引き換え用スキーマ"""
    code: str = Field(min_length=1, max_length=20)


class ConsumeOutcome(BaseModel):
    """条件付き消費（CAS）の結果"""
    applied: bool
    deleted: bool = False
    record: Optional[InvitationCode] = None
