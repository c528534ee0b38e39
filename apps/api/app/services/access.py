from __future__ import annotations

import logging
from dataclasses import dataclass

from fastapi import Depends
from sqlalchemy.orm import Session

from app.core.auth import AuthContext, get_auth_context
from app.core.db import get_db
from app.core.errors import ForbiddenError, NotFoundError
from app.core.logging import log_structured
from app.models.entities import FamilyMembership
from app.services.memberships import find_membership
from app.services.policy import Action, ResourceKind, is_allowed

REASON_NOT_A_MEMBER = "not_a_member"
REASON_INSUFFICIENT_ROLE = "insufficient_role"


@dataclass(frozen=True)
class AccessDecision:
    allowed: bool
    reason: str | None = None
    membership: FamilyMembership | None = None


@dataclass(frozen=True)
class FamilyScope:
    ctx: AuthContext
    membership: FamilyMembership

    @property
    def family_id(self) -> int:
        return self.membership.family_id

    @property
    def user_id(self) -> str:
        return self.ctx.user_id


def authorize(
    db: Session,
    user_id: str,
    family_id: int,
    kind: ResourceKind | str,
    action: Action | str,
) -> AccessDecision:
    membership = find_membership(db, user_id, family_id)
    if membership is None:
        return AccessDecision(allowed=False, reason=REASON_NOT_A_MEMBER)
    if not is_allowed(membership.role, kind, action):
        return AccessDecision(allowed=False, reason=REASON_INSUFFICIENT_ROLE, membership=membership)
    return AccessDecision(allowed=True, membership=membership)


def require_access(
    db: Session,
    user_id: str,
    family_id: int,
    kind: ResourceKind | str,
    action: Action | str,
) -> FamilyMembership:
    decision = authorize(db, user_id, family_id, kind, action)
    if decision.allowed:
        return decision.membership

    log_structured(
        logging.WARNING,
        "authz_deny",
        user_id=user_id,
        family_id=family_id,
        kind=str(getattr(kind, "value", kind)),
        action=str(getattr(action, "value", action)),
        reason=decision.reason,
    )
    # Non-members get the same answer whether or not the family exists.
    if decision.reason == REASON_NOT_A_MEMBER:
        raise ForbiddenError("forbidden")
    raise ForbiddenError("insufficient role")


def get_scoped(db: Session, model, resource_id: int, family_id: int, label: str):
    """Load a family-owned row; rows of other families look exactly like missing ones."""
    item = db.get(model, resource_id)
    if item is None or item.family_id != family_id:
        raise NotFoundError(f"{label} not found")
    return item


def family_scope(kind: ResourceKind, action: Action):
    """Dependency factory: guard a route with a `family_id` path parameter."""

    def _dependency(
        family_id: int,
        db: Session = Depends(get_db),
        ctx: AuthContext = Depends(get_auth_context),
    ) -> FamilyScope:
        membership = require_access(db, ctx.user_id, family_id, kind, action)
        return FamilyScope(ctx=ctx, membership=membership)

    return _dependency
