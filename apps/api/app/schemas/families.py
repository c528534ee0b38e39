from datetime import datetime

from pydantic import BaseModel, EmailStr, Field


class FamilyCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)


class FamilyUpdate(BaseModel):
    name: str = Field(min_length=1, max_length=255)


class FamilyResponse(BaseModel):
    id: int
    name: str
    created_by: str
    created_at: datetime


class FamilyListResponse(BaseModel):
    items: list[FamilyResponse]


class MembershipResponse(BaseModel):
    id: int
    family_id: int
    user_id: str
    display_name: str
    role: str
    joined_at: datetime


class MembershipListResponse(BaseModel):
    items: list[MembershipResponse]


class InviteCodeResponse(BaseModel):
    code: str
    family_id: int
    role: str
    created_by: str
    created_at: datetime
    expires_at: datetime | None
    revoked_at: datetime | None = None
    redeemed_count: int = 0
    status: str


class InviteCodeListResponse(BaseModel):
    items: list[InviteCodeResponse]


class FamilyCreatedResponse(BaseModel):
    family: FamilyResponse
    membership: MembershipResponse
    invite_code: InviteCodeResponse


class RoleResponse(BaseModel):
    family_id: int
    role: str
    capabilities: dict[str, list[str]]


class InviteCreate(BaseModel):
    role: str = Field(default="member", pattern="^(member|caregiver)$")
    expires_at: datetime | None = None


class InviteForward(BaseModel):
    email: EmailStr
    role: str = Field(default="caregiver", pattern="^(member|caregiver)$")
    invite_code: str | None = Field(default=None, min_length=1, max_length=16)


class InviteForwardResponse(BaseModel):
    accepted: bool
    code: str
    role: str


class JoinRequest(BaseModel):
    invite_code: str = Field(min_length=1, max_length=16)


class MeMembership(BaseModel):
    family_id: int
    family_name: str
    role: str


class MeResponse(BaseModel):
    user_id: str
    display_name: str
    email: str | None
    memberships: list[MeMembership]
