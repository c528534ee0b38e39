from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from app.core.auth import AuthContext, get_auth_context
from app.core.db import get_db
from app.models.entities import Family, FamilyMembership, InviteCode
from app.schemas.families import (
    FamilyCreate,
    FamilyCreatedResponse,
    FamilyListResponse,
    FamilyResponse,
    FamilyUpdate,
    InviteCodeListResponse,
    InviteCodeResponse,
    InviteCreate,
    InviteForward,
    InviteForwardResponse,
    MembershipListResponse,
    MembershipResponse,
    RoleResponse,
)
from app.services import invites, lifecycle
from app.services.access import FamilyScope, family_scope
from app.services.memberships import list_families, list_members
from app.services.policy import Action, ResourceKind, capabilities

router = APIRouter(prefix="/v1/families", tags=["families"])


def to_family_response(family: Family) -> FamilyResponse:
    return FamilyResponse.model_validate(family, from_attributes=True)


def to_membership_response(membership: FamilyMembership) -> MembershipResponse:
    return MembershipResponse(
        id=membership.id,
        family_id=membership.family_id,
        user_id=membership.user_id,
        display_name=membership.display_name,
        role=membership.role.value,
        joined_at=membership.joined_at,
    )


def to_invite_response(invite: InviteCode) -> InviteCodeResponse:
    return InviteCodeResponse(
        code=invite.code,
        family_id=invite.family_id,
        role=invite.role.value,
        created_by=invite.created_by,
        created_at=invite.created_at,
        expires_at=invite.expires_at,
        revoked_at=invite.revoked_at,
        redeemed_count=invite.redeemed_count or 0,
        status=invites.code_status(invite),
    )


@router.get("", response_model=FamilyListResponse)
def list_my_families(
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
):
    return FamilyListResponse(items=[to_family_response(item) for item in list_families(db, ctx.user_id)])


@router.post("", response_model=FamilyCreatedResponse, status_code=201)
def create_family(
    payload: FamilyCreate,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
):
    family, owner, invite = lifecycle.create_family(db, ctx.user_id, ctx.display_name, payload.name)
    return FamilyCreatedResponse(
        family=to_family_response(family),
        membership=to_membership_response(owner),
        invite_code=to_invite_response(invite),
    )


@router.get("/{family_id}", response_model=FamilyResponse)
def get_family(
    family_id: int,
    db: Session = Depends(get_db),
    scope: FamilyScope = Depends(family_scope(ResourceKind.family, Action.read)),
):
    return to_family_response(db.get(Family, family_id))


@router.patch("/{family_id}", response_model=FamilyResponse)
def update_family(
    family_id: int,
    payload: FamilyUpdate,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
):
    return to_family_response(lifecycle.rename_family(db, family_id, ctx.user_id, payload.name))


@router.delete("/{family_id}", status_code=204)
def delete_family(
    family_id: int,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
):
    lifecycle.delete_family(db, family_id, ctx.user_id)
    return Response(status_code=204)


@router.post("/{family_id}/leave", status_code=204)
def leave_family(
    family_id: int,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
):
    lifecycle.leave_family(db, family_id, ctx.user_id)
    return Response(status_code=204)


@router.get("/{family_id}/role", response_model=RoleResponse)
def get_my_role(
    family_id: int,
    scope: FamilyScope = Depends(family_scope(ResourceKind.family, Action.read)),
):
    role = scope.membership.role
    return RoleResponse(family_id=family_id, role=role.value, capabilities=capabilities(role))


@router.get("/{family_id}/members", response_model=MembershipListResponse)
def list_family_members(
    family_id: int,
    db: Session = Depends(get_db),
    scope: FamilyScope = Depends(family_scope(ResourceKind.family, Action.read)),
):
    return MembershipListResponse(items=[to_membership_response(item) for item in list_members(db, family_id)])


@router.get("/{family_id}/invites", response_model=InviteCodeListResponse)
def list_invite_codes(
    family_id: int,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
):
    codes = invites.list_codes(db, family_id, ctx.user_id)
    return InviteCodeListResponse(items=[to_invite_response(item) for item in codes])


@router.post("/{family_id}/invites", response_model=InviteCodeResponse, status_code=201)
def issue_invite_code(
    family_id: int,
    payload: InviteCreate,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
):
    invite = invites.issue(db, family_id, ctx.user_id, payload.role, payload.expires_at)
    return to_invite_response(invite)


@router.post("/{family_id}/invites/forward", response_model=InviteForwardResponse, status_code=202)
def forward_invite(
    family_id: int,
    payload: InviteForward,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
):
    invite = invites.forward(
        db,
        family_id,
        ctx.user_id,
        str(payload.email),
        role=payload.role,
        code=payload.invite_code,
    )
    return InviteForwardResponse(accepted=True, code=invite.code, role=invite.role.value)


@router.delete("/{family_id}/invites/{code}", status_code=204)
def revoke_invite_code(
    family_id: int,
    code: str,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
):
    invites.revoke(db, family_id, code, ctx.user_id)
    return Response(status_code=204)
