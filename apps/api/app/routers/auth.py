from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.auth import AuthContext, get_auth_context
from app.core.db import get_db
from app.schemas.families import MeMembership, MeResponse
from app.services.memberships import list_memberships_for_user

router = APIRouter(prefix="/v1", tags=["auth"])


@router.get("/me", response_model=MeResponse)
def get_me(
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
):
    """Returns the authenticated identity and its family memberships, oldest family first."""
    rows = list_memberships_for_user(db, ctx.user_id)
    return MeResponse(
        user_id=ctx.user_id,
        display_name=ctx.display_name,
        email=ctx.email,
        memberships=[
            MeMembership(family_id=family.id, family_name=family.name, role=membership.role.value)
            for membership, family in rows
        ],
    )

