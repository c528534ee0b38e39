from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from app.core.auth import AuthContext, get_auth_context
from app.core.db import get_db
from app.routers.families import to_membership_response
from app.schemas.families import JoinRequest, MembershipResponse
from app.services import invites

router = APIRouter(prefix="/v1/invites", tags=["invites"])


@router.post("/join", response_model=MembershipResponse, status_code=201)
def join_family(
    payload: JoinRequest,
    response: Response,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
):
    redemption = invites.redeem(db, payload.invite_code, ctx.user_id, ctx.display_name)
    if not redemption.created:
        # Double submission: hand back the existing membership untouched.
        response.status_code = 200
    return to_membership_response(redemption.membership)
