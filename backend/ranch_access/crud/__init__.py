from .invitation_code import InvitationCodeStore, MongoInvitationCodeStore, InMemoryInvitationCodeStore
from .member import MemberStore, MongoMemberStore, InMemoryMemberStore


__all__ = [
    "InvitationCodeStore",
    "MongoInvitationCodeStore",
    "InMemoryInvitationCodeStore",
    "MemberStore",
    "MongoMemberStore",
    "InMemoryMemberStore",
]
