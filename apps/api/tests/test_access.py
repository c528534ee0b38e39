import itertools
import logging

import pytest

from app.core.errors import ForbiddenError, NotFoundError
from app.models.entities import Event, Family, FamilyMembership, RoleEnum, utcnow
from app.services.access import (
    REASON_INSUFFICIENT_ROLE,
    REASON_NOT_A_MEMBER,
    authorize,
    get_scoped,
    require_access,
)
from app.services.memberships import get_membership, get_owner, list_members
from app.services.policy import Action, ResourceKind, is_allowed


def _seed(db_session):
    family = Family(name="Guarded", created_by="owner")
    other = Family(name="Elsewhere", created_by="stranger")
    db_session.add_all([family, other])
    db_session.flush()
    db_session.add_all(
        [
            FamilyMembership(family_id=family.id, user_id="owner", display_name="Owner", role=RoleEnum.owner),
            FamilyMembership(family_id=family.id, user_id="member", display_name="Member", role=RoleEnum.member),
            FamilyMembership(family_id=family.id, user_id="carer", display_name="Carer", role=RoleEnum.caregiver),
            FamilyMembership(family_id=other.id, user_id="stranger", display_name="Stranger", role=RoleEnum.owner),
        ]
    )
    db_session.commit()
    return family, other


def test_guard_matches_membership_and_policy(db_session):
    family, _ = _seed(db_session)
    roles = {"owner": RoleEnum.owner, "member": RoleEnum.member, "carer": RoleEnum.caregiver}

    for user_id, kind, action in itertools.product([*roles, "stranger"], ResourceKind, Action):
        decision = authorize(db_session, user_id, family.id, kind, action)
        expected = user_id in roles and is_allowed(roles[user_id], kind, action)
        assert decision.allowed is expected, (user_id, kind, action)
        if user_id == "stranger":
            assert decision.reason == REASON_NOT_A_MEMBER
        elif not expected:
            assert decision.reason == REASON_INSUFFICIENT_ROLE


def test_missing_family_looks_like_foreign_family(db_session):
    _, other = _seed(db_session)

    with pytest.raises(ForbiddenError) as foreign:
        require_access(db_session, "member", other.id, ResourceKind.family, Action.read)
    with pytest.raises(ForbiddenError) as missing:
        require_access(db_session, "member", 9999, ResourceKind.family, Action.read)

    assert foreign.value.message == missing.value.message == "forbidden"


def test_role_denial_is_logged(db_session, caplog):
    family, _ = _seed(db_session)

    with caplog.at_level(logging.WARNING, logger="family_calendar"):
        with pytest.raises(ForbiddenError) as exc_info:
            require_access(db_session, "carer", family.id, ResourceKind.event, Action.delete)

    assert exc_info.value.message == "insufficient role"
    denies = [r for r in caplog.records if getattr(r, "structured", {}).get("event") == "authz_deny"]
    assert denies
    assert denies[0].structured["reason"] == REASON_INSUFFICIENT_ROLE


def test_get_scoped_hides_other_families_rows(db_session):
    family, other = _seed(db_session)
    now = utcnow()
    event = Event(family_id=other.id, title="Private", start_time=now, end_time=now, created_by="stranger")
    db_session.add(event)
    db_session.commit()

    with pytest.raises(NotFoundError):
        get_scoped(db_session, Event, event.id, family.id, "event")
    assert get_scoped(db_session, Event, event.id, other.id, "event").title == "Private"


def test_membership_store_reads(db_session):
    family, _ = _seed(db_session)

    assert get_membership(db_session, "carer", family.id).role == RoleEnum.caregiver
    assert get_owner(db_session, family.id).user_id == "owner"
    assert [m.user_id for m in list_members(db_session, family.id)][0] == "owner"
    with pytest.raises(NotFoundError):
        get_membership(db_session, "stranger", family.id)
