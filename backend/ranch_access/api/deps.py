# ranch_access/api/deps.py
""" ルートで使う依存関数を提供 """

import logging

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from ranch_access.core.config import get_settings
from ranch_access.core.security.jwt import decode_access_token
from ranch_access.core.security.audit import AuditEventType, AuditService
from ranch_access.core.security.rbac import Permission, RBACService
from ranch_access.crud.invitation_code import InvitationCodeStore
from ranch_access.crud.member import MemberStore
from ranch_access.db.session import get_db  # 監査ログ用のDBセッション
from ranch_access.schemas.member import Member
from ranch_access.services.invitation_code import InvitationCodeService
from ranch_access.services.member_management import MemberManagementService
from ranch_access.services.onboarding import MemberOnboardingService

# ロガーの設定
logger = logging.getLogger(__name__)

security = HTTPBearer()


""" ストアを取得する関数（startup で app.state に載せたもの） """
def get_invitation_store(request: Request) -> InvitationCodeStore:
    return request.app.state.invitation_store


def get_member_store(request: Request) -> MemberStore:
    return request.app.state.member_store


""" サービスを組み立てる関数 """
def get_invitation_service(
    store: InvitationCodeStore = Depends(get_invitation_store),
) -> InvitationCodeService:
    return InvitationCodeService(store, get_settings())


def get_onboarding_service(
    member_store: MemberStore = Depends(get_member_store),
    invitation_service: InvitationCodeService = Depends(get_invitation_service),
) -> MemberOnboardingService:
    return MemberOnboardingService(member_store, invitation_service, get_settings())


def get_member_management_service(
    member_store: MemberStore = Depends(get_member_store),
) -> MemberManagementService:
    return MemberManagementService(member_store)


""" Bearerトークンから現在のメンバーを取得 """
async def get_current_member(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    member_store: MemberStore = Depends(get_member_store),
) -> Member:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    payload = decode_access_token(credentials.credentials)
    member_id = payload.get("sub") if payload else None
    if not member_id:
        raise credentials_exception

    member = await member_store.get_member(member_id)
    if member is None or not member.active:
        logger.warning("token subject %s is not an active member", member_id)
        raise credentials_exception
    return member


def require_member_permissions(*permissions: Permission):
    """
    メンバーの権限チェック用の依存関数

    使用例:
    @router.post("/generate")
    async def generate(current_member: Member = Depends(require_member_permissions(Permission.GENERATE_CODES))):
        ...
    """
    async def _checker(
        current_member: Member = Depends(get_current_member),
        db: Session = Depends(get_db),
    ) -> Member:
        try:
            RBACService.enforce_member_permissions(current_member, list(permissions))
        except HTTPException:
            logger.warning("member %s lacks %s", current_member.uid, [p.value for p in permissions])
            AuditService(db).log_event_safely(
                AuditEventType.AUTH_PERMISSION_DENIED,
                user_id=current_member.uid,
                action="authorize",
                success=False,
                details={"required": [p.value for p in permissions], "role": current_member.role},
            )
            raise
        return current_member
    return _checker
