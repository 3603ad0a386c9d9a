"""Campaign lifecycle endpoints"""
import uuid
from datetime import datetime, timedelta

import pytest

from app.core.claims import AdminClaims, OrgManagerClaims, ResidentClaims
from app.models import Campaign, CampaignStatus, Invitation, InvitationStatus


@pytest.fixture
def org(make_org):
    return make_org()


@pytest.fixture
def prop(make_property, org):
    return make_property(org)


@pytest.fixture
def admin(make_account):
    return make_account("admin@example.com", claims=AdminClaims())


@pytest.fixture
def manager(make_account, org):
    return make_account("om@example.com", claims=OrgManagerClaims(organization_ids=(org.id,)))


def _create(client, headers, org, prop, **fields):
    body = {"organization_id": str(org.id), "property_id": str(prop.id), "name": "Spring move-ins"}
    body.update(fields)
    return client.post("/campaigns", json=body, headers=headers)


def _load(db, campaign_id):
    db.expire_all()
    return db.query(Campaign).filter(Campaign.id == uuid.UUID(campaign_id)).one()


def test_create_public_link_campaign(client, manager, org, prop, auth_headers):
    response = _create(client, auth_headers(manager), org, prop, max_uses=25)
    assert response.status_code == 201
    campaign = response.json()["campaign"]
    assert campaign["status"] == "active"
    assert campaign["campaign_type"] == "public_link"
    assert campaign["roles_to_assign"] == ["resident"]
    assert campaign["total_accepted"] == 0
    assert campaign["details"]["type"] == "public_link"
    assert campaign["details"]["access_url"].endswith(f"campaign={campaign['id']}")


@pytest.mark.parametrize("fields", [
    {"name": "ab"},
    {"max_uses": 0},
    {"max_uses": 10001},
    {"roles_to_assign": ["property_manager"]},
])
def test_create_rejects_invalid_fields(client, manager, org, prop, auth_headers, fields):
    response = _create(client, auth_headers(manager), org, prop, **fields)
    assert response.status_code == 400
    assert response.json()["code"] == "invalid_argument"


def test_create_rejects_past_expiry(client, manager, org, prop, auth_headers):
    past = (datetime.utcnow() - timedelta(hours=1)).isoformat()
    response = _create(client, auth_headers(manager), org, prop, expires_at=past)
    assert response.status_code == 400


def test_create_rejects_property_from_another_org(client, admin, make_org, make_property, org, auth_headers):
    foreign = make_property(make_org("Elsewhere"))
    response = _create(client, auth_headers(admin), org, foreign)
    assert response.status_code == 404


def test_resident_cannot_create_campaign(client, make_account, org, prop, auth_headers):
    resident = make_account("r@example.com", claims=ResidentClaims(organization_id=org.id, property_id=prop.id))
    response = _create(client, auth_headers(resident), org, prop)
    assert response.status_code == 403


def test_list_campaigns(client, manager, make_property, org, prop, auth_headers):
    headers = auth_headers(manager)
    other_prop = make_property(org, "Cedar Row")
    first = _create(client, headers, org, prop).json()["campaign"]["id"]
    second = _create(client, headers, org, other_prop, name="Cedar launch").json()["campaign"]["id"]

    listed = client.get(f"/campaigns?organization_id={org.id}", headers=headers).json()["campaigns"]
    assert {c["id"] for c in listed} == {first, second}

    filtered = client.get(f"/campaigns?organization_id={org.id}&property_id={prop.id}", headers=headers).json()
    assert [c["id"] for c in filtered["campaigns"]] == [first]


def test_update_campaign(client, db, manager, org, prop, auth_headers):
    headers = auth_headers(manager)
    campaign_id = _create(client, headers, org, prop, max_uses=10).json()["campaign"]["id"]
    expires = (datetime.utcnow() + timedelta(days=3)).replace(microsecond=0)

    response = client.patch(
        f"/campaigns/{campaign_id}",
        json={"name": "Renamed", "max_uses": 20, "expires_at": expires.isoformat()},
        headers=headers,
    )
    assert response.status_code == 200
    campaign = _load(db, campaign_id)
    assert campaign.name == "Renamed"
    assert campaign.max_uses == 20
    assert campaign.expires_at == expires

    # Explicit null clears the cap; omitted fields are untouched
    response = client.patch(f"/campaigns/{campaign_id}", json={"max_uses": None}, headers=headers)
    assert response.status_code == 200
    campaign = _load(db, campaign_id)
    assert campaign.max_uses is None
    assert campaign.name == "Renamed"


def test_update_cannot_lower_cap_below_accepted(client, db, manager, org, prop, auth_headers):
    headers = auth_headers(manager)
    campaign_id = _create(client, headers, org, prop, max_uses=10).json()["campaign"]["id"]
    campaign = _load(db, campaign_id)
    campaign.total_accepted = 5
    db.commit()

    response = client.patch(f"/campaigns/{campaign_id}", json={"max_uses": 4}, headers=headers)
    assert response.status_code == 409
    assert response.json()["code"] == "failed_precondition"
    assert _load(db, campaign_id).max_uses == 10


def test_update_to_cap_completes_campaign(client, db, manager, org, prop, auth_headers):
    headers = auth_headers(manager)
    campaign_id = _create(client, headers, org, prop, max_uses=10).json()["campaign"]["id"]
    campaign = _load(db, campaign_id)
    campaign.total_accepted = 5
    db.commit()
    minted = client.post(f"/campaigns/{campaign_id}/public-link")
    invitation_id = uuid.UUID(minted.json()["invitation_id"])

    response = client.patch(f"/campaigns/{campaign_id}", json={"max_uses": 5}, headers=headers)
    assert response.status_code == 200
    assert response.json()["campaign"]["status"] == "completed"
    db.expire_all()
    assert db.query(Invitation).filter(Invitation.id == invitation_id).one().status == InvitationStatus.CANCELLED


def test_deactivate_cancels_pending_and_activate_restores(client, db, manager, org, prop, auth_headers):
    headers = auth_headers(manager)
    campaign_id = _create(client, headers, org, prop).json()["campaign"]["id"]
    minted = client.post(f"/campaigns/{campaign_id}/public-link")
    assert minted.status_code == 200
    invitation_id = uuid.UUID(minted.json()["invitation_id"])

    response = client.post(f"/campaigns/{campaign_id}/deactivate", headers=headers)
    assert response.status_code == 200
    assert response.json()["campaign"]["status"] == "inactive"
    db.expire_all()
    assert db.query(Invitation).filter(Invitation.id == invitation_id).one().status == InvitationStatus.CANCELLED

    # Deactivating again is a no-op
    again = client.post(f"/campaigns/{campaign_id}/deactivate", headers=headers)
    assert again.status_code == 200

    closed = client.post(f"/campaigns/{campaign_id}/public-link")
    assert closed.status_code == 409
    assert closed.json()["code"] == "failed_precondition"

    response = client.post(f"/campaigns/{campaign_id}/activate", headers=headers)
    assert response.status_code == 200
    assert response.json()["campaign"]["status"] == "active"


def test_activate_rejects_expired_campaign(client, db, manager, org, prop, auth_headers):
    headers = auth_headers(manager)
    campaign_id = _create(client, headers, org, prop).json()["campaign"]["id"]
    client.post(f"/campaigns/{campaign_id}/deactivate", headers=headers)
    campaign = _load(db, campaign_id)
    campaign.expires_at = datetime.utcnow() - timedelta(minutes=5)
    db.commit()

    response = client.post(f"/campaigns/{campaign_id}/activate", headers=headers)
    assert response.status_code == 409


def test_completed_campaign_cannot_be_deactivated(client, db, manager, org, prop, auth_headers):
    headers = auth_headers(manager)
    campaign_id = _create(client, headers, org, prop).json()["campaign"]["id"]
    campaign = _load(db, campaign_id)
    campaign.status = CampaignStatus.COMPLETED
    db.commit()

    response = client.post(f"/campaigns/{campaign_id}/deactivate", headers=headers)
    assert response.status_code == 409
    edit = client.patch(f"/campaigns/{campaign_id}", json={"name": "Too late"}, headers=headers)
    assert edit.status_code == 409


def test_delete_requires_deactivation(client, db, manager, org, prop, auth_headers):
    headers = auth_headers(manager)
    campaign_id = _create(client, headers, org, prop).json()["campaign"]["id"]

    response = client.delete(f"/campaigns/{campaign_id}", headers=headers)
    assert response.status_code == 409

    client.post(f"/campaigns/{campaign_id}/deactivate", headers=headers)
    response = client.delete(f"/campaigns/{campaign_id}", headers=headers)
    assert response.status_code == 200
    db.expire_all()
    assert db.query(Campaign).filter(Campaign.id == uuid.UUID(campaign_id)).first() is None

    missing = client.get(f"/campaigns/{campaign_id}", headers=headers)
    assert missing.status_code == 404


def test_delete_with_accepted_signups_needs_admin(client, db, admin, manager, org, prop, auth_headers):
    campaign_id = _create(client, auth_headers(manager), org, prop).json()["campaign"]["id"]
    client.post(f"/campaigns/{campaign_id}/deactivate", headers=auth_headers(manager))
    campaign = _load(db, campaign_id)
    campaign.total_accepted = 3
    db.commit()

    denied = client.delete(f"/campaigns/{campaign_id}", headers=auth_headers(manager))
    assert denied.status_code == 409

    allowed = client.delete(f"/campaigns/{campaign_id}", headers=auth_headers(admin))
    assert allowed.status_code == 200


def test_campaign_details_include_invitations(client, manager, org, prop, auth_headers):
    headers = auth_headers(manager)
    campaign_id = _create(client, headers, org, prop).json()["campaign"]["id"]
    client.post(f"/campaigns/{campaign_id}/public-link")
    client.post(f"/campaigns/{campaign_id}/public-link")

    response = client.get(f"/campaigns/{campaign_id}", headers=headers)
    assert response.status_code == 200
    body = response.json()
    assert body["campaign"]["id"] == campaign_id
    assert len(body["invitations"]) == 2
    assert all(i["invitee_email"] is None for i in body["invitations"])


def test_public_link_invitation_ttl_is_capped_by_campaign_expiry(client, manager, org, prop, auth_headers):
    expires = (datetime.utcnow() + timedelta(hours=2)).replace(microsecond=0)
    campaign_id = _create(
        client, auth_headers(manager), org, prop, expires_at=expires.isoformat()
    ).json()["campaign"]["id"]

    minted = client.post(f"/campaigns/{campaign_id}/public-link").json()
    assert datetime.fromisoformat(minted["expires_at"]) == expires


def test_join_redirects_to_signup_page(client, manager, org, prop, auth_headers):
    campaign_id = _create(client, auth_headers(manager), org, prop).json()["campaign"]["id"]

    response = client.get(f"/campaigns/join?campaign={campaign_id}", follow_redirects=False)
    assert response.status_code == 302
    location = response.headers["location"]
    assert "/join-campaign?invitationId=" in location
    assert f"campaignId={campaign_id}" in location
    assert f"organizationId={org.id}" in location


def test_expired_public_link_is_marked_expired(client, db, manager, org, prop, auth_headers):
    campaign_id = _create(client, auth_headers(manager), org, prop).json()["campaign"]["id"]
    campaign = _load(db, campaign_id)
    campaign.expires_at = datetime.utcnow() - timedelta(seconds=1)
    db.commit()

    response = client.post(f"/campaigns/{campaign_id}/public-link")
    assert response.status_code == 410
    assert response.json()["code"] == "expired"
    assert _load(db, campaign_id).status == CampaignStatus.EXPIRED
