from datetime import timedelta

import pytest
from sqlalchemy import func, select

from app.core.errors import ConflictError, ExpiredError, ForbiddenError, NotFoundError, ValidationError
from app.models.entities import FamilyMembership, InviteCode, RoleEnum, utcnow
from app.services import invites


def test_create_family_returns_member_invite(family):
    code = family["invite_code"]
    assert len(code["code"]) == 8
    assert code["code"].isalnum() and code["code"].upper() == code["code"]
    assert code["role"] == "member"
    assert code["status"] == "active"
    assert family["membership"]["role"] == "owner"


def test_redeem_grants_the_codes_role_in_its_family(client, family, join, issue_code, as_user):
    family_id = family["family"]["id"]
    code = issue_code(family_id, role="caregiver")

    resp = join("carol", code)
    assert resp.status_code == 201
    assert resp.json()["family_id"] == family_id
    assert resp.json()["role"] == "caregiver"

    role = client.get(f"/v1/families/{family_id}/role", headers=as_user("carol"))
    assert role.json()["role"] == "caregiver"


def test_redeem_is_idempotent(client, family, join, owner_headers):
    family_id = family["family"]["id"]
    code = family["invite_code"]["code"]

    first = join("bob", code)
    second = join("bob", code.lower())
    assert first.status_code == 201
    assert second.status_code == 200
    assert second.json()["id"] == first.json()["id"]

    members = client.get(f"/v1/families/{family_id}/members", headers=owner_headers).json()["items"]
    assert [m["user_id"] for m in members] == ["alice", "bob"]


def test_existing_member_keeps_role_when_redeeming_another_code(family, join, issue_code):
    family_id = family["family"]["id"]
    join("bob", family["invite_code"]["code"])
    caregiver_code = issue_code(family_id, role="caregiver")

    resp = join("bob", caregiver_code)
    assert resp.status_code == 200
    assert resp.json()["role"] == "member"


def test_unknown_code_is_not_found(join, family):
    resp = join("bob", "NOPE0000")
    assert resp.status_code == 404
    assert resp.json()["error"]["code"] == "NOT_FOUND"


def test_expired_code_is_rejected(client, family, join, db_session):
    invite = db_session.execute(select(InviteCode)).scalar_one()
    invite.expires_at = utcnow() - timedelta(minutes=1)
    db_session.commit()

    resp = join("bob", family["invite_code"]["code"])
    assert resp.status_code == 410
    assert resp.json()["error"]["code"] == "EXPIRED"


def test_revoked_code_cannot_be_redeemed(client, family, join, owner_headers):
    family_id = family["family"]["id"]
    code = family["invite_code"]["code"]

    assert client.delete(f"/v1/families/{family_id}/invites/{code}", headers=owner_headers).status_code == 204
    assert client.delete(f"/v1/families/{family_id}/invites/{code}", headers=owner_headers).status_code == 204

    assert join("bob", code).status_code == 410
    listed = client.get(f"/v1/families/{family_id}/invites", headers=owner_headers).json()["items"]
    assert listed[0]["status"] == "revoked"


def test_member_can_issue_but_caregiver_cannot(client, family, join, issue_code, as_user):
    family_id = family["family"]["id"]
    join("bob", family["invite_code"]["code"])
    join("carol", issue_code(family_id, role="caregiver"))

    by_member = client.post(f"/v1/families/{family_id}/invites", json={"role": "caregiver"}, headers=as_user("bob"))
    assert by_member.status_code == 201

    by_caregiver = client.post(f"/v1/families/{family_id}/invites", json={}, headers=as_user("carol"))
    assert by_caregiver.status_code == 403
    assert by_caregiver.json()["error"]["message"] == "insufficient role"


def test_owner_role_cannot_be_issued(client, family, owner_headers, db_session):
    family_id = family["family"]["id"]
    resp = client.post(f"/v1/families/{family_id}/invites", json={"role": "owner"}, headers=owner_headers)
    assert resp.status_code == 422

    with pytest.raises(ValidationError):
        invites.issue(db_session, family_id, "alice", RoleEnum.owner)


def test_past_expiry_is_rejected(client, family, owner_headers):
    family_id = family["family"]["id"]
    past = (utcnow() - timedelta(days=1)).isoformat()
    resp = client.post(f"/v1/families/{family_id}/invites", json={"expires_at": past}, headers=owner_headers)
    assert resp.status_code == 422


def test_issue_retries_past_collisions(db_session, family):
    family_id = family["family"]["id"]
    taken = family["invite_code"]["code"]
    candidates = iter([taken, taken, "FRESH123"])

    invite = invites.issue(db_session, family_id, "alice", generator=lambda: next(candidates))
    assert invite.code == "FRESH123"


def test_issue_gives_up_after_max_attempts(db_session, family):
    family_id = family["family"]["id"]
    taken = family["invite_code"]["code"]
    calls = []

    def always_taken():
        calls.append(1)
        return taken

    with pytest.raises(ConflictError):
        invites.issue(db_session, family_id, "alice", generator=always_taken)
    assert len(calls) == 5


def test_exhausted_retries_surface_as_internal_error(client, family, owner_headers, monkeypatch):
    family_id = family["family"]["id"]
    monkeypatch.setattr(invites, "generate_code", lambda: family["invite_code"]["code"])

    resp = client.post(f"/v1/families/{family_id}/invites", json={}, headers=owner_headers)
    assert resp.status_code == 500
    assert resp.json()["error"]["code"] == "INTERNAL_ERROR"


def test_redeem_service_errors(db_session, family):
    with pytest.raises(NotFoundError):
        invites.redeem(db_session, "", "bob")

    code = family["invite_code"]["code"]
    invites.revoke(db_session, family["family"]["id"], code, "alice")
    with pytest.raises(ExpiredError):
        invites.redeem(db_session, code, "bob")


def test_redeem_counts_fresh_joins_only(db_session, family):
    code = family["invite_code"]["code"]
    assert invites.redeem(db_session, code, "bob").created is True
    assert invites.redeem(db_session, code, "bob").created is False
    assert invites.redeem(db_session, code, "dave").created is True

    invite = invites.find_code(db_session, code)
    db_session.refresh(invite)
    assert invite.redeemed_count == 2
    count = db_session.execute(select(func.count()).select_from(FamilyMembership)).scalar_one()
    assert count == 3


def test_unique_index_violation_retries_inside_savepoint(db_session, family, monkeypatch):
    family_id = family["family"]["id"]
    taken = family["invite_code"]["code"]
    candidates = iter([taken, "FRESH123"])
    # A concurrent issuer wins between the existence check and the insert.
    monkeypatch.setattr(invites, "_code_exists", lambda db, code: False)

    invite = invites.create_code(
        db_session,
        family_id=family_id,
        created_by="alice",
        role=RoleEnum.member,
        expires_at=None,
        generator=lambda: next(candidates),
    )
    db_session.commit()

    assert invite.code == "FRESH123"
    codes = db_session.execute(select(InviteCode.code).where(InviteCode.family_id == family_id)).scalars().all()
    assert sorted(codes) == sorted([taken, "FRESH123"])


def test_redeem_race_returns_the_winning_membership(db_session, family, monkeypatch):
    code = family["invite_code"]["code"]
    assert invites.redeem(db_session, code, "bob").created is True

    real_find = invites.find_membership
    calls = []

    def misses_once(db, user_id, family_id):
        calls.append(user_id)
        if len(calls) == 1:
            return None
        return real_find(db, user_id, family_id)

    monkeypatch.setattr(invites, "find_membership", misses_once)
    redemption = invites.redeem(db_session, code, "bob")

    assert redemption.created is False
    assert redemption.membership.user_id == "bob"
    assert len(calls) == 2
    invite = invites.find_code(db_session, code)
    db_session.refresh(invite)
    assert invite.redeemed_count == 1
    bobs = db_session.execute(
        select(func.count()).select_from(FamilyMembership).where(FamilyMembership.user_id == "bob")
    ).scalar_one()
    assert bobs == 1



def test_non_member_cannot_list_or_revoke(db_session, family):
    family_id = family["family"]["id"]
    with pytest.raises(ForbiddenError):
        invites.list_codes(db_session, family_id, "mallory")
    with pytest.raises(ForbiddenError):
        invites.revoke(db_session, family_id, family["invite_code"]["code"], "mallory")
