from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator
from typing import Any, Dict, List, Optional
from datetime import datetime

from ranch_access.schemas.invitation_code import InvitationCodeResponse, InvitationRoleType, RedemptionResult


# メンバードキュメント（members コレクション）
class Member(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    uid: str
    username: str
    email: str
    name: str
    phone: str = ""
    role: str
    permissions: List[str] = Field(default_factory=list)
    tenant_id: str = Field(alias="tenantId")  # 所属する牧場（オーナーのuid）
    ranch_owner: bool = Field(default=False, alias="ranchOwner")
    registered_at: datetime = Field(alias="registeredAt")
    active: bool = True
    last_access: Optional[datetime] = Field(default=None, alias="lastAccess")
    invitation_code_used: Optional[str] = Field(default=None, alias="invitationCodeUsed")

    def to_document(self) -> Dict[str, Any]:
        doc = self.model_dump(by_alias=True)
        doc["_id"] = doc["uid"]
        return doc

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "Member":
        data = {k: v for k, v in doc.items() if k != "_id"}
        return cls.model_validate(data)


# メンバー登録用スキーマ（POST /members/register で使う）
class MemberRegistration(BaseModel):
    username: str = Field(min_length=3, max_length=50)
    email: EmailStr
    name: str = Field(min_length=1, max_length=100)
    phone: Optional[str] = Field(default=None, max_length=30)
    ranch_owner: bool = False
    invitation_code: Optional[str] = Field(default=None, max_length=20)

    @model_validator(mode="after")
    def _check_invitation_code(self):
        code = (self.invitation_code or "").strip()
        if self.ranch_owner or not code:
            # コードなしの登録はオーナー登録（自分自身が牧場になる）
            self.ranch_owner = True
            self.invitation_code = None
        else:
            self.invitation_code = code
        return self


# メンバー表示用（レスポンスなどで使用）
class MemberOut(BaseModel):
    uid: str
    username: str
    email: str
    name: str
    phone: str
    role: str
    permissions: List[str]
    tenant_id: str
    ranch_owner: bool
    registered_at: datetime
    active: bool
    invitation_code_used: Optional[str] = None

    @classmethod
    def from_member(cls, member: Member) -> "MemberOut":
        return cls.model_validate(member.model_dump())


# 登録処理の結果
class OnboardingResult(BaseModel):
    ok: bool
    message: str
    member: Optional[Member] = None
    redemption: Optional[RedemptionResult] = None
    owner_code: Optional[InvitationCodeResponse] = None


# 登録APIのレスポンス
class MemberRegistrationResponse(BaseModel):
    message: str
    member: MemberOut
    owner_code: Optional[InvitationCodeResponse] = None


# メンバー管理（管理者向け）
class MemberActiveUpdate(BaseModel):
    active: bool


class MemberRoleUpdate(BaseModel):
    role_type: InvitationRoleType
