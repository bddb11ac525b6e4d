"""Tests for membership listing, updates and removal."""
import pytest

import config


@pytest.mark.asyncio
async def test_list_memberships(client, team_setup, register):
    team_id = team_setup["team_id"]
    r = await client.get("/api/memberships", params={"team_id": team_id}, headers=team_setup["member"])
    assert r.status_code == 200
    members = r.json()["memberships"]
    assert [m["role"] for m in members] == ["ADMIN", "MEMBER"]
    assert members[0]["user"]["email"] == "admin@example.com"

    r = await client.get("/api/memberships", headers=team_setup["member"])
    assert r.status_code == 400
    assert r.json()["error"] == "team_id is required"

    outsider = await register("outsider@example.com")
    r = await client.get("/api/memberships", params={"team_id": team_id}, headers=outsider)
    assert r.status_code == 403


@pytest.mark.asyncio
async def test_update_labels_and_role(client, team_setup):
    mid = team_setup["member_membership_id"]
    r = await client.patch(
        f"/api/memberships/{mid}", json={"roles": ["CAPTAIN", "CAPTAIN"], "role": "ADMIN"}, headers=team_setup["admin"]
    )
    assert r.status_code == 200
    membership = r.json()["membership"]
    assert membership["roles"] == ["CAPTAIN"]
    assert membership["role"] == "ADMIN"
    # subteam untouched when not sent
    assert membership["subteam_id"] == team_setup["subteam_id"]


@pytest.mark.asyncio
async def test_update_rejects_unknown_label(client, team_setup):
    r = await client.patch(
        f"/api/memberships/{team_setup['member_membership_id']}", json={"roles": ["PRESIDENT"]}, headers=team_setup["admin"]
    )
    assert r.status_code == 400


@pytest.mark.asyncio
async def test_update_requires_admin_and_changes(client, team_setup):
    mid = team_setup["member_membership_id"]
    r = await client.patch(f"/api/memberships/{mid}", json={"roles": ["COACH"]}, headers=team_setup["member"])
    assert r.status_code == 403

    r = await client.patch(f"/api/memberships/{mid}", json={}, headers=team_setup["admin"])
    assert r.status_code == 400
    assert r.json()["error"] == "No updates provided"

    r = await client.patch("/api/memberships/9999", json={"roles": []}, headers=team_setup["admin"])
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_unassign_subteam_with_null(client, team_setup):
    r = await client.patch(
        f"/api/memberships/{team_setup['member_membership_id']}", json={"subteam_id": None}, headers=team_setup["admin"]
    )
    assert r.status_code == 200
    assert r.json()["membership"]["subteam_id"] is None
    assert r.json()["membership"]["subteam"] is None


@pytest.mark.asyncio
async def test_subteam_from_other_team_rejected(client, team_setup, create_team):
    other = await create_team(team_setup["admin"], name="Other")
    r = await client.post(f"/api/teams/{other['team']['id']}/subteams", json={"name": "X"}, headers=team_setup["admin"])
    foreign_subteam = r.json()["subteam"]["id"]
    r = await client.patch(
        f"/api/memberships/{team_setup['member_membership_id']}",
        json={"subteam_id": foreign_subteam},
        headers=team_setup["admin"],
    )
    assert r.status_code == 400
    assert r.json()["error"] == "Invalid subteam"


@pytest.mark.asyncio
async def test_subteam_capacity(client, team_setup, monkeypatch):
    monkeypatch.setattr(config, "SUBTEAM_MAX_MEMBERS", 1)
    # the member already on the subteam may be re-saved
    r = await client.patch(
        f"/api/memberships/{team_setup['member_membership_id']}",
        json={"subteam_id": team_setup["subteam_id"]},
        headers=team_setup["admin"],
    )
    assert r.status_code == 200

    r = await client.patch(
        f"/api/memberships/{team_setup['admin_membership_id']}",
        json={"subteam_id": team_setup["subteam_id"]},
        headers=team_setup["admin"],
    )
    assert r.status_code == 400
    assert "Subteam is full" in r.json()["error"]


@pytest.mark.asyncio
async def test_cannot_demote_only_admin(client, team_setup):
    r = await client.patch(
        f"/api/memberships/{team_setup['admin_membership_id']}", json={"role": "MEMBER"}, headers=team_setup["admin"]
    )
    assert r.status_code == 400
    assert "only admin" in r.json()["error"]


@pytest.mark.asyncio
async def test_member_can_leave(client, team_setup):
    r = await client.delete(f"/api/memberships/{team_setup['member_membership_id']}", headers=team_setup["member"])
    assert r.status_code == 200
    r = await client.get("/api/teams", headers=team_setup["member"])
    assert r.json()["memberships"] == []


@pytest.mark.asyncio
async def test_member_cannot_remove_others(client, team_setup):
    r = await client.delete(f"/api/memberships/{team_setup['admin_membership_id']}", headers=team_setup["member"])
    assert r.status_code == 403
    assert r.json()["error"] == "Only admins can remove other members"


@pytest.mark.asyncio
async def test_admin_removes_member(client, team_setup):
    r = await client.delete(f"/api/memberships/{team_setup['member_membership_id']}", headers=team_setup["admin"])
    assert r.status_code == 200
    r = await client.get(f"/api/teams/{team_setup['team_id']}", headers=team_setup["member"])
    assert r.status_code == 403


@pytest.mark.asyncio
async def test_last_admin_cannot_leave(client, team_setup, register):
    r = await client.delete(f"/api/memberships/{team_setup['admin_membership_id']}", headers=team_setup["admin"])
    assert r.status_code == 400

    outsider = await register("outsider@example.com")
    r = await client.delete(f"/api/memberships/{team_setup['member_membership_id']}", headers=outsider)
    assert r.status_code == 403
    assert r.json()["error"] == "You are not a member of this team"
