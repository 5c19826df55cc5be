import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from ranch_access.api.deps import (
    get_current_member,
    get_db,
    get_member_management_service,
    get_onboarding_service,
    require_member_permissions,
)
from ranch_access.api.routes.invitation_code import REJECTION_STATUS_CODES
from ranch_access.core.exceptions import (
    MemberAlreadyExistsError,
    MemberNotFoundError,
    OwnerProtectedError,
    StoreUnavailableError,
)
from ranch_access.core.security.audit import AuditEventType, AuditService
from ranch_access.core.security.rbac import Permission
from ranch_access.schemas.member import (
    Member,
    MemberActiveUpdate,
    MemberOut,
    MemberRegistration,
    MemberRegistrationResponse,
    MemberRoleUpdate,
)
from ranch_access.services.member_management import MemberManagementService
from ranch_access.services.onboarding import MemberOnboardingService

# ロガーの設定
logger = logging.getLogger(__name__)

router = APIRouter(prefix="/members", tags=["Members"])


@router.post("/register", response_model=MemberRegistrationResponse, status_code=status.HTTP_201_CREATED)
async def register_member(
    registration: MemberRegistration,
    db: Session = Depends(get_db),
    service: MemberOnboardingService = Depends(get_onboarding_service),
):
    """メンバー登録（招待コードなしならオーナー登録、ありなら従業員登録）"""
    audit_service = AuditService(db)

    try:
        result = await service.register_member(registration)
    except MemberAlreadyExistsError as e:
        audit_service.log_event_safely(
            AuditEventType.MEMBER_REGISTER_FAILURE,
            resource="member",
            action="register",
            success=False,
            details={"field": e.field},
        )
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except StoreUnavailableError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))

    if not result.ok:
        audit_service.log_event_safely(
            AuditEventType.MEMBER_REGISTER_FAILURE,
            resource="member",
            action="register",
            success=False,
            details={"username": registration.username, "status": result.redemption.status.value},
        )
        raise HTTPException(
            status_code=REJECTION_STATUS_CODES[result.redemption.status],
            detail=result.message,
        )

    audit_service.log_event_safely(
        AuditEventType.MEMBER_REGISTER_SUCCESS,
        user_id=result.member.uid,
        resource="member",
        action="register",
        details={"tenant_id": result.member.tenant_id, "role": result.member.role},
    )
    return MemberRegistrationResponse(
        message=result.message,
        member=MemberOut.from_member(result.member),
        owner_code=result.owner_code,
    )


@router.get("/me", response_model=MemberOut)
async def read_current_member(current_member: Member = Depends(get_current_member)):
    """ログイン中のメンバー情報を取得"""
    return MemberOut.from_member(current_member)


""" ----------
 メンバー管理（manage_users 権限を持つ管理者向け、自分の牧場のみ）
---------- """

def _management_error(e: Exception) -> HTTPException:
    if isinstance(e, MemberNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Member not found")
    if isinstance(e, OwnerProtectedError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))


@router.get("", response_model=List[MemberOut])
async def list_ranch_members(
    db: Session = Depends(get_db),
    service: MemberManagementService = Depends(get_member_management_service),
    current_member: Member = Depends(require_member_permissions(Permission.MANAGE_USERS)),
):
    """自分の牧場のメンバー一覧"""
    try:
        members = await service.list_members(current_member.tenant_id)
    except StoreUnavailableError as e:
        raise _management_error(e)

    AuditService(db).log_event_safely(
        AuditEventType.READ_MEMBERS,
        user_id=current_member.uid,
        resource="member",
        action="list",
        details={"count": len(members)},
    )
    return [MemberOut.from_member(m) for m in members]


@router.patch("/{uid}/active", response_model=MemberOut)
async def set_member_active(
    uid: str,
    update: MemberActiveUpdate,
    db: Session = Depends(get_db),
    service: MemberManagementService = Depends(get_member_management_service),
    current_member: Member = Depends(require_member_permissions(Permission.MANAGE_USERS)),
):
    """メンバーの有効/無効を切り替える"""
    try:
        member = await service.set_active(current_member.tenant_id, uid, update.active)
    except (MemberNotFoundError, OwnerProtectedError, StoreUnavailableError) as e:
        raise _management_error(e)

    AuditService(db).log_event_safely(
        AuditEventType.MEMBER_ACTIVE_CHANGED,
        user_id=current_member.uid,
        resource="member",
        action="set_active",
        details={"member_id": uid, "active": update.active},
    )
    return MemberOut.from_member(member)


@router.put("/{uid}/role", response_model=MemberOut)
async def change_member_role(
    uid: str,
    update: MemberRoleUpdate,
    db: Session = Depends(get_db),
    service: MemberManagementService = Depends(get_member_management_service),
    current_member: Member = Depends(require_member_permissions(Permission.MANAGE_USERS)),
):
    """メンバーのロールを変更（権限はロールから決め直す）"""
    try:
        member = await service.change_role(current_member.tenant_id, uid, update.role_type)
    except (MemberNotFoundError, OwnerProtectedError, StoreUnavailableError) as e:
        raise _management_error(e)

    AuditService(db).log_event_safely(
        AuditEventType.MEMBER_ROLE_CHANGED,
        user_id=current_member.uid,
        resource="member",
        action="change_role",
        details={"member_id": uid, "role": member.role},
    )
    return MemberOut.from_member(member)
