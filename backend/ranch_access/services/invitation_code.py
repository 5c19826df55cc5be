import logging
from datetime import datetime, timezone, timedelta
from typing import Callable, List, Optional, Tuple

from ranch_access.core.config import Settings, get_settings
from ranch_access.core.exceptions import GenerationExhaustedError, InvalidCodeLengthError
from ranch_access.crud.invitation_code import InvitationCodeStore
from ranch_access.schemas.invitation_code import (
    InvitationCode,
    InvitationRoleType,
    RedeemedInfo,
    RedemptionResult,
    RedemptionStatus,
)
from ranch_access.services.code_generator import CODE_ALPHABET, generate, normalize_code

# ロガーの設定
logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class InvitationCodeService:
    """
    招待コードの発行・検証・引き換えサービス

    引き換えは「読み取り → 条件付き消費」を1試行とし、条件（usesRemaining が読み取り時のまま）が
    崩れていたら再読み取りして上限回数まで再試行する。意味的な拒否は RedemptionResult で返し、
    例外として伝播させるのはストア障害（StoreUnavailableError）と生成失敗のみ。
    """

    def __init__(
        self,
        store: InvitationCodeStore,
        settings: Optional[Settings] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.store = store
        self.settings = settings or get_settings()
        self._clock = clock or utc_now

    def now(self) -> datetime:
        return self._clock()

    # ---------- 発行 ----------

    async def create_unique(
        self,
        issuer_id: str,
        role_type: str,
        uses_total: int = 1,
        ttl_days: Optional[int] = None,
        length: Optional[int] = None,
    ) -> InvitationCode:
        """既存のどのレコードとも重複しないコードを生成して保存する"""
        length = self.settings.personalized_code_length if length is None else length
        if isinstance(length, int) and not isinstance(length, bool) and length > self.settings.max_code_length:
            raise InvalidCodeLengthError(length)
        if uses_total < 1:
            raise ValueError("uses_total must be at least 1")
        ttl_days = self.settings.default_code_ttl_days if ttl_days is None else ttl_days
        if ttl_days < 1:
            raise ValueError("ttl_days must be at least 1")

        max_attempts = self.settings.code_generation_max_attempts
        for attempt in range(1, max_attempts + 1):
            candidate = generate(length, CODE_ALPHABET)
            if not await self.store.code_exists(candidate):
                break
            logger.debug("generated code collided (attempt %d/%d)", attempt, max_attempts)
        else:
            logger.warning("could not generate a unique code of length %d for issuer %s", length, issuer_id)
            raise GenerationExhaustedError(max_attempts, length)

        created_at = self.now()
        record = InvitationCode(
            code=candidate,
            issuer_id=issuer_id,
            role_type=role_type,
            active=True,
            created_at=created_at,
            expires_at=created_at + timedelta(days=ttl_days),
            uses_remaining=uses_total,
            uses_total=uses_total,
        )
        code_id = await self.store.create(record)
        logger.info(
            "invitation code %s issued by %s (role_type=%s, uses=%d, ttl_days=%d)",
            candidate, issuer_id, role_type, uses_total, ttl_days,
        )
        return record.model_copy(update={"id": code_id})

    async def generate_code(
        self,
        issuer_id: str,
        role_type: str = InvitationRoleType.USUARIO.value,
        uses_total: int = 1,
        ttl_days: Optional[int] = None,
        length: Optional[int] = None,
    ) -> InvitationCode:
        """招待コードを発行（長さ未指定なら既定の6桁）"""
        if isinstance(role_type, InvitationRoleType):
            role_type = role_type.value
        length = self.settings.default_code_length if length is None else length
        return await self.create_unique(issuer_id, role_type, uses_total, ttl_days, length)

    async def list_codes(self, issuer_id: str) -> List[InvitationCode]:
        """発行者が発行した招待コード一覧を取得（新しい順）"""
        return await self.store.list_by_issuer(issuer_id)

    # ---------- 検証 ----------

    def _check(self, record: Optional[InvitationCode], now: datetime) -> RedemptionStatus:
        if record is None:
            return RedemptionStatus.NOT_FOUND
        if record.is_expired(now):
            return RedemptionStatus.EXPIRED
        if record.uses_remaining <= 0:
            return RedemptionStatus.EXHAUSTED
        return RedemptionStatus.SUCCESS

    async def inspect_code(self, code: str) -> Tuple[RedemptionStatus, Optional[InvitationCode]]:
        """書き込みなしで引き換え可能かを判定し、理由と対象レコードを返す"""
        normalized = normalize_code(code)
        if not normalized:
            return RedemptionStatus.NOT_FOUND, None
        record = await self.store.find_active_by_code(normalized)
        return self._check(record, self.now()), record

    async def is_redeemable(self, code: str) -> bool:
        """
        引き換え可能かどうか（参考情報）

        判定から引き換えまでの間に状態が変わりうるので、正しさの根拠には使わないこと。
        """
        status, _ = await self.inspect_code(code)
        return status == RedemptionStatus.SUCCESS

    async def check_code_valid(self, code: str) -> bool:
        return await self.is_redeemable(code)

    # ---------- 引き換え ----------

    async def redeem_code(self, code: str, redeemer_id: str) -> RedemptionResult:
        """招待コードを1回分消費し、消費後の状態を返す"""
        normalized = normalize_code(code)
        if not normalized:
            return RedemptionResult.rejected(RedemptionStatus.NOT_FOUND)

        max_attempts = max(1, self.settings.redeem_max_attempts)
        for attempt in range(1, max_attempts + 1):
            record = await self.store.find_active_by_code(normalized)
            if record is None and attempt > 1:
                # 直前の試行で読み取ったレコードが他の引き換えで消費・削除された
                logger.info("invitation code %s was consumed concurrently", normalized)
                return RedemptionResult.rejected(RedemptionStatus.CONCURRENT_CONFLICT)

            now = self.now()
            status = self._check(record, now)
            if status != RedemptionStatus.SUCCESS:
                logger.info("invitation code %s rejected: %s", normalized, status.value)
                return RedemptionResult.rejected(status)

            outcome = await self.store.consume(record.id, record.uses_remaining, redeemer_id, now)
            if outcome.applied:
                logger.info(
                    "invitation code %s redeemed by %s (uses_remaining=%d%s)",
                    normalized, redeemer_id, outcome.record.uses_remaining,
                    ", deleted" if outcome.deleted else "",
                )
                return RedemptionResult.success(RedeemedInfo.from_record(outcome.record))

            logger.info(
                "conditional consume of %s failed (attempt %d/%d), re-reading",
                normalized, attempt, max_attempts,
            )

        return RedemptionResult.rejected(RedemptionStatus.CONCURRENT_CONFLICT)

    # ---------- 削除・無効化 ----------

    async def _owned(self, code_id: str, issuer_id: Optional[str]) -> bool:
        if issuer_id is None:
            return True
        record = await self.store.get(code_id)
        return record is not None and record.issuer_id == issuer_id

    async def delete_code(self, code_id: str, issuer_id: Optional[str] = None) -> bool:
        """招待コードを削除（issuer_id 指定時は発行者本人のみ）"""
        if not await self._owned(code_id, issuer_id):
            return False
        deleted = await self.store.delete(code_id)
        if deleted:
            logger.info("invitation code %s deleted", code_id)
        return deleted

    async def revoke_code(self, code_id: str, issuer_id: Optional[str] = None) -> bool:
        """招待コードを無効化（レコードは一覧に残す）"""
        if not await self._owned(code_id, issuer_id):
            return False
        revoked = await self.store.update(code_id, {"active": False})
        if revoked:
            logger.info("invitation code %s revoked", code_id)
        return revoked
