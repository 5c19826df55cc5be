from .invitation_code import (
    InvitationCode, InvitationCodeCreate, InvitationCodeResponse,
    InvitationCodeRedeem, InvitationCodeValidation, InvitationCodeValidationResponse,
    InvitationRoleType, RedeemedInfo, RedemptionResult, RedemptionStatus,
)
from .member import (
    Member, MemberActiveUpdate, MemberOut, MemberRegistration,
    MemberRegistrationResponse, MemberRoleUpdate, OnboardingResult,
)

__all__ = [
    "InvitationCode",
    "InvitationCodeCreate",
    "InvitationCodeResponse",
    "InvitationCodeRedeem",
    "InvitationCodeValidation",
    "InvitationCodeValidationResponse",
    "InvitationRoleType",
    "RedeemedInfo",
    "RedemptionResult",
    "RedemptionStatus",
    "Member",
    "MemberActiveUpdate",
    "MemberOut",
    "MemberRegistration",
    "MemberRegistrationResponse",
    "MemberRoleUpdate",
    "OnboardingResult",
]
