from datetime import timedelta

import pytest
from pydantic import ValidationError
from pymongo.errors import AutoReconnect

from ranch_access.core.exceptions import MemberAlreadyExistsError, StoreUnavailableError
from ranch_access.crud.invitation_code import InMemoryInvitationCodeStore
from ranch_access.schemas.invitation_code import InvitationCode, RedemptionStatus
from ranch_access.schemas.member import MemberRegistration
from ranch_access.services.invitation_code import InvitationCodeService
from ranch_access.services.onboarding import MemberOnboardingService


def owner_registration(**kwargs):
    data = {"username": "don_pedro", "email": "pedro@ganaderia.mx", "name": "Pedro", "ranch_owner": True}
    data.update(kwargs)
    return MemberRegistration(**data)


def employee_registration(code, **kwargs):
    data = {"username": "lucia", "email": "lucia@ganaderia.mx", "name": "Lucía", "invitation_code": code}
    data.update(kwargs)
    return MemberRegistration(**data)


class TestMemberRegistrationSchema:

    def test_no_code_means_owner(self):
        registration = MemberRegistration(username="lucia", email="lucia@ganaderia.mx", name="Lucía", invitation_code="  ")
        assert registration.ranch_owner is True
        assert registration.invitation_code is None

    def test_username_too_short(self):
        with pytest.raises(ValidationError):
            MemberRegistration(username="lu", email="lucia@ganaderia.mx", name="Lucía")

    def test_owner_ignores_code(self):
        registration = owner_registration(invitation_code="ABC123")
        assert registration.invitation_code is None


class TestOwnerRegistration:

    async def test_owner_gets_admin_and_initial_code(self, onboarding_service, member_store, code_store):
        result = await onboarding_service.register_member(owner_registration(), uid="owner-1")

        assert result.ok
        member = await member_store.get_member("owner-1")
        assert member.tenant_id == "owner-1"
        assert member.role == "admin"
        assert "generate_codes" in member.permissions
        assert member.ranch_owner is True

        assert result.owner_code is not None
        assert result.owner_code.role_type == "admin"
        assert result.owner_code.uses_total == 10
        assert (result.owner_code.expires_at - result.owner_code.created_at).days == 365
        assert len(await code_store.list_by_issuer("owner-1")) == 1

    async def test_initial_code_failure_is_not_fatal(self, member_store, settings, clock):
        class FailingCreateStore(InMemoryInvitationCodeStore):
            async def create(self, record):
                raise StoreUnavailableError("create", AutoReconnect("connection reset"))

        invitation_service = InvitationCodeService(FailingCreateStore(), settings, clock=clock)
        service = MemberOnboardingService(member_store, invitation_service, settings)

        result = await service.register_member(owner_registration(), uid="owner-1")
        assert result.ok
        assert result.owner_code is None
        assert await member_store.get_member("owner-1") is not None

    async def test_duplicate_username_and_email(self, onboarding_service):
        await onboarding_service.register_member(owner_registration(), uid="owner-1")

        with pytest.raises(MemberAlreadyExistsError) as exc_info:
            await onboarding_service.register_member(owner_registration(email="otro@ganaderia.mx"))
        assert exc_info.value.field == "username"

        with pytest.raises(MemberAlreadyExistsError) as exc_info:
            await onboarding_service.register_member(owner_registration(username="otro"))
        assert exc_info.value.field == "email"

    async def test_owner_without_flag(self, onboarding_service, member_store):
        registration = MemberRegistration(username="don_pedro", email="pedro@ganaderia.mx", name="Pedro")

        result = await onboarding_service.register_member(registration, uid="owner-1")

        assert result.ok
        assert result.member.tenant_id == "owner-1"
        assert result.owner_code is not None


class TestEmployeeRegistration:

    async def test_employee_joins_issuer_ranch(self, onboarding_service, invitation_service, member_store, code_store):
        code = await invitation_service.generate_code("owner-1", "veterinario", uses_total=2)

        result = await onboarding_service.register_member(employee_registration(code.code.lower()), uid="vet-1")

        assert result.ok
        assert result.redemption.info.uses_remaining == 1
        member = await member_store.get_member("vet-1")
        assert member.tenant_id == "owner-1"
        assert member.role == "veterinario"
        assert "record_health" in member.permissions
        assert member.invitation_code_used == code.code
        assert (await code_store.get(code.id)).uses_remaining == 1

    async def test_usuario_code_gives_empleado(self, onboarding_service, invitation_service, member_store):
        code = await invitation_service.generate_code("owner-1")

        result = await onboarding_service.register_member(employee_registration(code.code), uid="emp-1")

        assert result.ok
        member = await member_store.get_member("emp-1")
        assert member.role == "empleado"
        assert member.permissions == ["create", "read", "update"]

    async def test_rejected_code_creates_nothing(self, onboarding_service, member_store, invitation_service, clock):
        code = await invitation_service.generate_code("owner-1", ttl_days=1)
        clock.advance(days=3)

        result = await onboarding_service.register_member(employee_registration(code.code), uid="emp-1")

        assert not result.ok
        assert result.redemption.status == RedemptionStatus.EXPIRED
        assert await member_store.get_member("emp-1") is None

    async def test_unknown_code(self, onboarding_service, member_store):
        result = await onboarding_service.register_member(employee_registration("ZZZZZZ"), uid="emp-1")

        assert result.redemption.status == RedemptionStatus.NOT_FOUND
        assert await member_store.get_member("emp-1") is None

    async def test_member_removed_when_consume_conflicts(self, member_store, settings, clock):
        class ContendedStore(InMemoryInvitationCodeStore):
            async def consume(self, code_id, expected_uses_remaining, redeemer_id, now):
                return await super().consume(code_id, expected_uses_remaining + 1, redeemer_id, now)

        invitation_service = InvitationCodeService(ContendedStore(), settings, clock=clock)
        service = MemberOnboardingService(member_store, invitation_service, settings)
        code = await invitation_service.generate_code("owner-1")

        result = await service.register_member(employee_registration(code.code), uid="emp-1")

        assert not result.ok
        assert result.redemption.status == RedemptionStatus.CONCURRENT_CONFLICT
        assert await member_store.get_member("emp-1") is None

    async def test_member_removed_when_store_fails(self, member_store, settings, clock):
        class BrokenConsumeStore(InMemoryInvitationCodeStore):
            async def consume(self, code_id, expected_uses_remaining, redeemer_id, now):
                raise StoreUnavailableError("consume", AutoReconnect("connection reset"))

        invitation_service = InvitationCodeService(BrokenConsumeStore(), settings, clock=clock)
        service = MemberOnboardingService(member_store, invitation_service, settings)
        code = await invitation_service.generate_code("owner-1")

        with pytest.raises(StoreUnavailableError):
            await service.register_member(employee_registration(code.code), uid="emp-1")
        assert await member_store.get_member("emp-1") is None

    async def test_consumed_record_decides_tenant_and_role(self, member_store, code_store, settings, clock):
        class NewerRecordService(InvitationCodeService):
            """確認と引き換えの間に同じ文字列の新しいコードが発行される"""

            async def inspect_code(self, code):
                result = await super().inspect_code(code)
                clock.advance(minutes=1)
                await self.store.create(InvitationCode(
                    code=result[1].code,
                    issuer_id="owner-2",
                    role_type="supervisor",
                    active=True,
                    created_at=self.now(),
                    expires_at=self.now() + timedelta(days=7),
                    uses_remaining=1,
                    uses_total=1,
                ))
                return result

        invitation_service = NewerRecordService(code_store, settings, clock=clock)
        service = MemberOnboardingService(member_store, invitation_service, settings)
        previewed = await invitation_service.generate_code("owner-1", "veterinario", uses_total=2)

        result = await service.register_member(employee_registration(previewed.code), uid="emp-1")

        assert result.ok
        assert result.redemption.info.issuer_id == "owner-2"
        member = await member_store.get_member("emp-1")
        assert member.tenant_id == "owner-2"
        assert member.role == "supervisor"
        assert "view_reports" in member.permissions
        assert (await code_store.get(previewed.id)).uses_remaining == 2
