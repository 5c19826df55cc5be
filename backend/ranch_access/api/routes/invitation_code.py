import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from ranch_access.api.deps import get_current_member, get_db, get_invitation_service, require_member_permissions
from ranch_access.core.exceptions import GenerationExhaustedError, InvalidCodeLengthError, StoreUnavailableError
from ranch_access.core.security.audit import AuditEventType, AuditService
from ranch_access.core.security.rbac import Permission
from ranch_access.schemas.invitation_code import (
    InvitationCodeCreate,
    InvitationCodeRedeem,
    InvitationCodeResponse,
    InvitationCodeValidation,
    InvitationCodeValidationResponse,
    REDEMPTION_REASONS,
    RedemptionResult,
    RedemptionStatus,
)
from ranch_access.schemas.member import Member
from ranch_access.services.invitation_code import InvitationCodeService

# ロガーの設定
logger = logging.getLogger(__name__)

router = APIRouter(prefix="/invitation-codes", tags=["Invitation Codes"])

# 引き換え拒否理由 → HTTPステータス
REJECTION_STATUS_CODES = {
    RedemptionStatus.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    RedemptionStatus.EXPIRED: status.HTTP_410_GONE,
    RedemptionStatus.EXHAUSTED: status.HTTP_410_GONE,
    RedemptionStatus.CONCURRENT_CONFLICT: status.HTTP_409_CONFLICT,
}


def _unavailable(e: Exception) -> HTTPException:
    return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))


@router.post("/generate", response_model=InvitationCodeResponse)
async def generate_invitation_code(
    invitation_data: InvitationCodeCreate,
    db: Session = Depends(get_db),
    service: InvitationCodeService = Depends(get_invitation_service),
    current_member: Member = Depends(require_member_permissions(Permission.GENERATE_CODES)),
):
    """招待コードを発行（generate_codes 権限を持つメンバー）"""
    audit_service = AuditService(db)

    try:
        record = await service.generate_code(
            issuer_id=current_member.uid,
            role_type=invitation_data.role_type,
            uses_total=invitation_data.uses_total,
            ttl_days=invitation_data.ttl_days,
            length=invitation_data.length,
        )
    except InvalidCodeLengthError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))
    except GenerationExhaustedError as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"{e}; try a longer code length",
        )
    except StoreUnavailableError as e:
        raise _unavailable(e)

    audit_service.log_event_safely(
        AuditEventType.INVITATION_CODE_GENERATED,
        user_id=current_member.uid,
        resource="invitation_code",
        action="generate",
        details={
            "code_id": record.id,
            "role_type": record.role_type,
            "uses_total": record.uses_total,
            "expires_at": record.expires_at.isoformat() if record.expires_at else None,
        },
    )
    return InvitationCodeResponse.from_record(record)


@router.get("/my-codes", response_model=List[InvitationCodeResponse])
async def get_my_invitation_codes(
    db: Session = Depends(get_db),
    service: InvitationCodeService = Depends(get_invitation_service),
    current_member: Member = Depends(get_current_member),
):
    """自分が発行した招待コード一覧を取得（新しい順）"""
    try:
        records = await service.list_codes(current_member.uid)
    except StoreUnavailableError as e:
        raise _unavailable(e)

    AuditService(db).log_event_safely(
        AuditEventType.READ_INVITATION_CODES,
        user_id=current_member.uid,
        resource="invitation_code",
        action="list",
        details={"count": len(records)},
    )
    return [InvitationCodeResponse.from_record(r) for r in records]


@router.post("/redeem", response_model=RedemptionResult)
async def redeem_invitation_code(
    redeem_data: InvitationCodeRedeem,
    db: Session = Depends(get_db),
    service: InvitationCodeService = Depends(get_invitation_service),
    current_member: Member = Depends(get_current_member),
):
    """招待コードを1回分引き換える"""
    audit_service = AuditService(db)

    try:
        result = await service.redeem_code(redeem_data.code, current_member.uid)
    except StoreUnavailableError as e:
        raise _unavailable(e)

    if not result.ok:
        if audit_service.config.RECORD_REJECTIONS:
            audit_service.log_event_safely(
                AuditEventType.INVITATION_CODE_REJECTED,
                user_id=current_member.uid,
                resource="invitation_code",
                action="redeem",
                success=False,
                details={"code": redeem_data.code, "status": result.status.value},
            )
        raise HTTPException(status_code=REJECTION_STATUS_CODES[result.status], detail=result.reason)

    audit_service.log_event_safely(
        AuditEventType.INVITATION_CODE_REDEEMED,
        user_id=current_member.uid,
        resource="invitation_code",
        action="redeem",
        details={"code_id": result.info.id, "uses_remaining": result.info.uses_remaining},
    )
    return result


@router.post("/validate", response_model=InvitationCodeValidationResponse)
async def validate_invitation_code(
    validation_data: InvitationCodeValidation,
    service: InvitationCodeService = Depends(get_invitation_service),
):
    """招待コードの有効性を確認（誰でも使用可能・参考情報）"""
    try:
        code_status, _ = await service.inspect_code(validation_data.code)
    except StoreUnavailableError as e:
        raise _unavailable(e)

    if code_status == RedemptionStatus.SUCCESS:
        return InvitationCodeValidationResponse(is_valid=True, message="invitation code is valid")
    return InvitationCodeValidationResponse(is_valid=False, message=REDEMPTION_REASONS[code_status])


@router.delete("/{code_id}")
async def delete_invitation_code(
    code_id: str,
    db: Session = Depends(get_db),
    service: InvitationCodeService = Depends(get_invitation_service),
    current_member: Member = Depends(get_current_member),
):
    """自分が発行した招待コードを削除"""
    try:
        deleted = await service.delete_code(code_id, issuer_id=current_member.uid)
    except StoreUnavailableError as e:
        raise _unavailable(e)

    if not deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Invitation code not found")

    AuditService(db).log_event_safely(
        AuditEventType.INVITATION_CODE_DELETED,
        user_id=current_member.uid,
        resource="invitation_code",
        action="delete",
        details={"code_id": code_id},
    )
    return {"message": "Invitation code deleted"}


@router.post("/{code_id}/revoke")
async def revoke_invitation_code(
    code_id: str,
    db: Session = Depends(get_db),
    service: InvitationCodeService = Depends(get_invitation_service),
    current_member: Member = Depends(get_current_member),
):
    """自分が発行した招待コードを無効化（一覧には残る）"""
    try:
        revoked = await service.revoke_code(code_id, issuer_id=current_member.uid)
    except StoreUnavailableError as e:
        raise _unavailable(e)

    if not revoked:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Invitation code not found")

    AuditService(db).log_event_safely(
        AuditEventType.INVITATION_CODE_REVOKED,
        user_id=current_member.uid,
        resource="invitation_code",
        action="revoke",
        details={"code_id": code_id},
    )
    return {"message": "Invitation code revoked"}
