"""The Smith family walkthrough: create, join, forward, leave, delete."""

from datetime import timedelta

from sqlalchemy import select

from app.models.entities import FamilyMembership, InviteCode, Medication, utcnow


def test_smith_family_walkthrough(client, as_user, db_session):
    alice, bob, carol = as_user("alice", "Alice"), as_user("bob", "Bob"), as_user("carol", "Carol")

    # 1. Owner creates the family and receives a member invite.
    created = client.post("/v1/families", json={"name": "Smith Family"}, headers=alice)
    assert created.status_code == 201
    family_id = created.json()["family"]["id"]
    code_x = created.json()["invite_code"]
    assert len(code_x["code"]) == 8 and code_x["role"] == "member"
    assert client.get(f"/v1/families/{family_id}/role", headers=alice).json()["role"] == "owner"

    # 2. Bob redeems X and can read and create events.
    joined = client.post("/v1/invites/join", json={"invite_code": code_x["code"]}, headers=bob)
    assert joined.status_code == 201
    assert joined.json()["role"] == "member"
    start = utcnow() + timedelta(days=1)
    event = client.post(
        f"/v1/families/{family_id}/events",
        json={"title": "Soccer", "start_time": start.isoformat(), "end_time": (start + timedelta(hours=2)).isoformat()},
        headers=bob,
    )
    assert event.status_code == 201
    assert client.get(f"/v1/families/{family_id}/events", headers=bob).status_code == 200

    # 3. Alice forwards a caregiver code Y to Carol, who logs a dose but cannot delete events.
    forwarded = client.post(
        f"/v1/families/{family_id}/invites/forward",
        json={"email": "carol@example.com", "role": "caregiver"},
        headers=alice,
    )
    assert forwarded.status_code == 202
    code_y = forwarded.json()["code"]
    assert code_y != code_x["code"]
    assert forwarded.json()["role"] == "caregiver"

    joined = client.post("/v1/invites/join", json={"invite_code": code_y}, headers=carol)
    assert joined.status_code == 201
    assert joined.json()["role"] == "caregiver"

    med_id = client.post(f"/v1/families/{family_id}/medications", json={"name": "Vitamin D"}, headers=alice).json()["id"]
    dose = client.post(f"/v1/families/{family_id}/medications/{med_id}/logs", json={}, headers=carol)
    assert dose.status_code == 201
    denied = client.delete(f"/v1/families/{family_id}/events/{event.json()['id']}", headers=carol)
    assert denied.status_code == 403
    assert denied.json()["error"]["code"] == "FORBIDDEN"

    # 4. Bob leaves; Alice's and Carol's memberships and data stay.
    assert client.post(f"/v1/families/{family_id}/leave", headers=bob).status_code == 204
    members = client.get(f"/v1/families/{family_id}/members", headers=alice).json()["items"]
    assert {(m["user_id"], m["role"]) for m in members} == {("alice", "owner"), ("carol", "caregiver")}
    assert len(client.get(f"/v1/families/{family_id}/events", headers=carol).json()["items"]) == 1

    # 5. Alice deletes the family; everything scoped to it is gone.
    assert client.delete(f"/v1/families/{family_id}", headers=alice).status_code == 204
    assert db_session.execute(select(FamilyMembership).where(FamilyMembership.family_id == family_id)).first() is None
    assert db_session.execute(select(InviteCode).where(InviteCode.family_id == family_id)).first() is None
    assert db_session.execute(select(Medication).where(Medication.family_id == family_id)).first() is None
    assert client.get(f"/v1/families/{family_id}/role", headers=carol).status_code == 403
