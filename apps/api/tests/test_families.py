from datetime import timedelta

import pytest
from sqlalchemy import delete, func, select

from app.core.errors import ForbiddenError, ValidationError
from app.models.entities import Event, Family, FamilyMembership, InviteCode, utcnow
from app.services import lifecycle
from app.services.purge import SCOPED_RESOURCES


def _add_event(client, family_id, headers, title="Dentist"):
    start = utcnow() + timedelta(days=1)
    resp = client.post(
        f"/v1/families/{family_id}/events",
        json={"title": title, "start_time": start.isoformat(), "end_time": (start + timedelta(hours=1)).isoformat()},
        headers=headers,
    )
    assert resp.status_code == 201, resp.text
    return resp.json()


def _row_count(db_session, model):
    return db_session.execute(select(func.count()).select_from(model)).scalar_one()


def test_family_crud(client, owner_headers):
    create_family = client.post("/v1/families", json={"name": "  Household  "}, headers=owner_headers)
    assert create_family.status_code == 201
    body = create_family.json()
    family_id = body["family"]["id"]
    assert body["family"]["name"] == "Household"
    assert body["family"]["created_by"] == "alice"
    assert body["membership"]["display_name"] == "Alice"

    list_families = client.get("/v1/families", headers=owner_headers)
    assert list_families.status_code == 200
    assert [f["id"] for f in list_families.json()["items"]] == [family_id]

    update_family = client.patch(f"/v1/families/{family_id}", json={"name": "Household Prime"}, headers=owner_headers)
    assert update_family.status_code == 200
    assert update_family.json()["name"] == "Household Prime"

    role = client.get(f"/v1/families/{family_id}/role", headers=owner_headers).json()
    assert role["role"] == "owner"
    assert "delete" in role["capabilities"]["family"]

    assert client.delete(f"/v1/families/{family_id}", headers=owner_headers).status_code == 204
    assert client.get("/v1/families", headers=owner_headers).json()["items"] == []


@pytest.mark.parametrize("name", ["", "   ", "x" * 256])
def test_family_name_is_validated(client, owner_headers, name):
    resp = client.post("/v1/families", json={"name": name}, headers=owner_headers)
    assert resp.status_code == 422
    assert resp.json()["error"]["code"] == "VALIDATION_ERROR"


def test_create_family_service_rejects_blank_name(db_session):
    with pytest.raises(ValidationError):
        lifecycle.create_family(db_session, "alice", "Alice", " ")
    assert _row_count(db_session, Family) == 0


def test_families_are_listed_oldest_first(client, owner_headers):
    first = client.post("/v1/families", json={"name": "First"}, headers=owner_headers).json()["family"]["id"]
    second = client.post("/v1/families", json={"name": "Second"}, headers=owner_headers).json()["family"]["id"]

    items = client.get("/v1/families", headers=owner_headers).json()["items"]
    assert [f["id"] for f in items] == [first, second]


def test_non_member_sees_forbidden_for_existing_and_missing_families(client, family, as_user):
    family_id = family["family"]["id"]
    existing = client.get(f"/v1/families/{family_id}", headers=as_user("mallory"))
    missing = client.get("/v1/families/9999", headers=as_user("mallory"))

    assert existing.status_code == missing.status_code == 403
    assert existing.json() == missing.json()


def test_only_owner_renames(client, family, join, as_user):
    family_id = family["family"]["id"]
    join("bob", family["invite_code"]["code"])

    resp = client.patch(f"/v1/families/{family_id}", json={"name": "Bob's"}, headers=as_user("bob"))
    assert resp.status_code == 403


def test_owner_cannot_leave(client, family, owner_headers):
    resp = client.post(f"/v1/families/{family['family']['id']}/leave", headers=owner_headers)
    assert resp.status_code == 403
    assert "owner cannot leave" in resp.json()["error"]["message"]


def test_non_member_cannot_leave(client, family, as_user):
    resp = client.post(f"/v1/families/{family['family']['id']}/leave", headers=as_user("mallory"))
    assert resp.status_code == 403


def test_leave_removes_only_own_membership(client, family, join, issue_code, owner_headers, as_user, db_session):
    family_id = family["family"]["id"]
    join("bob", family["invite_code"]["code"])
    join("carol", issue_code(family_id, role="caregiver"))
    _add_event(client, family_id, as_user("bob"), title="Bob's event")

    assert client.post(f"/v1/families/{family_id}/leave", headers=as_user("bob")).status_code == 204

    members = client.get(f"/v1/families/{family_id}/members", headers=owner_headers).json()["items"]
    assert [m["user_id"] for m in members] == ["alice", "carol"]
    assert client.get(f"/v1/families/{family_id}/role", headers=as_user("bob")).status_code == 403
    events = client.get(f"/v1/families/{family_id}/events", headers=owner_headers).json()["items"]
    assert [e["title"] for e in events] == ["Bob's event"]


def test_delete_cascades_every_scoped_row(client, family, join, owner_headers, as_user, db_session):
    family_id = family["family"]["id"]
    join("bob", family["invite_code"]["code"])
    event = _add_event(client, family_id, owner_headers)
    med = client.post(f"/v1/families/{family_id}/medications", json={"name": "Aspirin"}, headers=owner_headers).json()
    client.post(f"/v1/families/{family_id}/medications/{med['id']}/logs", json={}, headers=owner_headers)
    client.post(f"/v1/families/{family_id}/documents", json={"title": "Plan", "file_url": "s3://plan"}, headers=owner_headers)
    client.post(f"/v1/families/{family_id}/messages", json={"content": "hi", "event_id": event["id"]}, headers=as_user("bob"))
    client.post(
        f"/v1/families/{family_id}/time-entries",
        json={"start_time": utcnow().isoformat()},
        headers=as_user("bob"),
    )
    client.put(f"/v1/families/{family_id}/pay-rates/bob", json={"hourly_rate": 20}, headers=owner_headers)

    other = client.post("/v1/families", json={"name": "Other"}, headers=as_user("zoe")).json()["family"]["id"]
    _add_event(client, other, as_user("zoe"))

    assert client.delete(f"/v1/families/{family_id}", headers=owner_headers).status_code == 204

    for model in (*SCOPED_RESOURCES, InviteCode, FamilyMembership):
        rows = db_session.execute(select(model).where(model.family_id == family_id)).scalars().all()
        assert rows == [], model.__tablename__
    assert db_session.get(Family, family_id) is None
    assert _row_count(db_session, Event) == 1
    assert client.get(f"/v1/families/{family_id}/role", headers=as_user("bob")).status_code == 403


@pytest.mark.parametrize("role", ["member", "caregiver"])
def test_non_owner_delete_changes_nothing(client, family, join, issue_code, owner_headers, as_user, db_session, role):
    family_id = family["family"]["id"]
    join("bob", issue_code(family_id, role=role))
    _add_event(client, family_id, owner_headers)
    before = {model: _row_count(db_session, model) for model in (Family, FamilyMembership, InviteCode, Event)}

    resp = client.delete(f"/v1/families/{family_id}", headers=as_user("bob"))
    assert resp.status_code == 403

    after = {model: _row_count(db_session, model) for model in before}
    assert after == before


def test_failed_purge_rolls_back_everything(client, family, owner_headers, db_session, monkeypatch):
    family_id = family["family"]["id"]
    _add_event(client, family_id, owner_headers)

    def purge_then_fail(db, fid):
        db.execute(delete(Event).where(Event.family_id == fid))
        db.execute(delete(InviteCode).where(InviteCode.family_id == fid))
        raise RuntimeError("storage offline")

    monkeypatch.setattr(lifecycle, "purge_family", purge_then_fail)

    with pytest.raises(RuntimeError):
        lifecycle.delete_family(db_session, family_id, "alice")

    assert _row_count(db_session, Event) == 1
    assert _row_count(db_session, InviteCode) == 1
    assert db_session.get(Family, family_id) is not None


def test_delete_service_requires_owner(db_session, family, join):
    join("bob", family["invite_code"]["code"])
    with pytest.raises(ForbiddenError):
        lifecycle.delete_family(db_session, family["family"]["id"], "bob")
