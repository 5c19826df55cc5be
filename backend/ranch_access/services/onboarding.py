"""
メンバー登録（オンボーディング）サービス

  - オーナー登録（コードなし）: 自分自身が牧場になり、管理者権限と初期招待コードを得る
  - 従業員登録（コードあり）: コードの roleType からロール・権限を、発行者から所属牧場を決める

コードの消費はメンバー作成が成功した後に行う。消費に失敗した場合は作成したメンバーを削除して
元に戻す（使われたコードにメンバーが紐づかない状態を作らない）。
"""

import asyncio
import logging
from typing import Optional
from uuid import uuid4

from ranch_access.core.config import Settings, get_settings
from ranch_access.core.exceptions import MemberAlreadyExistsError, RanchAccessError
from ranch_access.core.security.rbac import RBACService, ResolvedRole
from ranch_access.crud.member import MemberStore
from ranch_access.schemas.invitation_code import (
    InvitationCodeResponse,
    RedemptionResult,
    RedemptionStatus,
)
from ranch_access.schemas.member import Member, MemberRegistration, OnboardingResult
from ranch_access.services.code_generator import normalize_code
from ranch_access.services.invitation_code import InvitationCodeService

# ロガーの設定
logger = logging.getLogger(__name__)


class MemberOnboardingService:
    """メンバー登録のビジネスロジックを提供"""

    def __init__(
        self,
        member_store: MemberStore,
        invitation_service: InvitationCodeService,
        settings: Optional[Settings] = None,
    ):
        self.member_store = member_store
        self.invitation_service = invitation_service
        self.settings = settings or get_settings()

    async def check_availability(self, username: str, email: str) -> None:
        """ユーザー名とメールアドレスの重複を並行してチェック"""
        username_taken, email_taken = await asyncio.gather(
            self.member_store.username_exists(username),
            self.member_store.email_exists(email),
        )
        if username_taken:
            raise MemberAlreadyExistsError("username", username)
        if email_taken:
            raise MemberAlreadyExistsError("email", email)

    def _build_member(
        self,
        uid: str,
        registration: MemberRegistration,
        resolved: ResolvedRole,
        tenant_id: str,
        code: Optional[str],
    ) -> Member:
        now = self.invitation_service.now()
        return Member(
            uid=uid,
            username=registration.username,
            email=registration.email,
            name=registration.name,
            phone=registration.phone or "",
            role=resolved.role.value,
            permissions=resolved.permission_values(),
            tenant_id=tenant_id,
            ranch_owner=registration.ranch_owner,
            registered_at=now,
            active=True,
            last_access=now,
            invitation_code_used=code,
        )

    async def register_member(
        self,
        registration: MemberRegistration,
        uid: Optional[str] = None,
    ) -> OnboardingResult:
        """メンバーを登録する"""
        uid = uid or str(uuid4())
        await self.check_availability(registration.username, registration.email)

        if registration.ranch_owner:
            return await self._register_owner(uid, registration)
        return await self._register_employee(uid, registration)

    async def _register_owner(self, uid: str, registration: MemberRegistration) -> OnboardingResult:
        # オーナー: 自分自身が牧場（tenantId = 自分のuid）
        member = self._build_member(uid, registration, RBACService.owner_role(), uid, None)
        await self.member_store.create_member(member)
        logger.info("ranch owner %s registered", uid)

        owner_code = None
        try:
            record = await self.invitation_service.generate_code(
                issuer_id=uid,
                role_type=self.settings.owner_code_role_type,
                uses_total=self.settings.owner_code_uses,
                ttl_days=self.settings.owner_code_ttl_days,
            )
            owner_code = InvitationCodeResponse.from_record(record)
        except RanchAccessError as e:
            # 初期コードの発行失敗は登録自体を失敗させない（後から発行できる）
            logger.warning("initial invitation code for owner %s was not issued: %s", uid, e)

        return OnboardingResult(
            ok=True,
            message="Ranch owner registered; invitation codes can now be issued to staff",
            member=member,
            owner_code=owner_code,
        )

    async def _register_employee(self, uid: str, registration: MemberRegistration) -> OnboardingResult:
        code = normalize_code(registration.invitation_code)

        # 1. アカウント作成前にコードを確認し、ロール・所属牧場を決める
        status, record = await self.invitation_service.inspect_code(code)
        if status != RedemptionStatus.SUCCESS:
            redemption = RedemptionResult.rejected(status)
            return OnboardingResult(ok=False, message=redemption.reason, redemption=redemption)

        resolved = RBACService.resolve(record.role_type)
        member = self._build_member(uid, registration, resolved, record.issuer_id, code)

        # 2. メンバーを作成してからコードを消費する
        await self.member_store.create_member(member)
        try:
            redemption = await self.invitation_service.redeem_code(code, uid)
        except RanchAccessError:
            logger.error("store failure while redeeming %s for %s; removing member", code, uid)
            await self._compensate(uid)
            raise

        if not redemption.ok:
            logger.info("code %s could not be consumed for %s (%s); removing member", code, uid, redemption.status.value)
            await self._compensate(uid)
            return OnboardingResult(ok=False, message=redemption.reason, redemption=redemption)

        # 3. 消費したレコードが事前確認と異なる場合は、消費結果を正とする
        info = redemption.info
        if info.issuer_id != member.tenant_id or info.role_type != record.role_type:
            resolved = RBACService.resolve(info.role_type)
            member = await self.member_store.update_member(uid, {
                "tenant_id": info.issuer_id,
                "role": resolved.role.value,
                "permissions": resolved.permission_values(),
            })

        logger.info("member %s joined ranch %s as %s", uid, member.tenant_id, member.role)
        return OnboardingResult(
            ok=True,
            message=f"{member.role} registered",
            member=member,
            redemption=redemption,
        )

    async def _compensate(self, uid: str) -> None:
        try:
            await self.member_store.delete_member(uid)
        except RanchAccessError as e:
            logger.error("failed to remove member %s after unsuccessful redemption: %s", uid, e)
