import os
from datetime import datetime, timedelta, timezone

# テスト中は外部サービスに接続しない
os.environ.setdefault("STORE_BACKEND", "memory")
os.environ.setdefault("AUDIT_DATABASE_URL", "sqlite://")

import pytest  # noqa: E402

from ranch_access.core.config import Settings  # noqa: E402
from ranch_access.crud.invitation_code import InMemoryInvitationCodeStore  # noqa: E402
from ranch_access.crud.member import InMemoryMemberStore  # noqa: E402
from ranch_access.services.invitation_code import InvitationCodeService  # noqa: E402
from ranch_access.services.onboarding import MemberOnboardingService  # noqa: E402


class FakeClock:
    """テストで時刻を進めるための時計"""

    def __init__(self, start: datetime):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current = self.current + timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock(datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def settings():
    return Settings(store_backend="memory", audit_database_url="sqlite://")


@pytest.fixture
def code_store():
    return InMemoryInvitationCodeStore()


@pytest.fixture
def member_store():
    return InMemoryMemberStore()


@pytest.fixture
def invitation_service(code_store, settings, clock):
    return InvitationCodeService(code_store, settings, clock=clock)


@pytest.fixture
def onboarding_service(member_store, invitation_service, settings):
    return MemberOnboardingService(member_store, invitation_service, settings)
