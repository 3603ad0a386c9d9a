"""Invitation ledger endpoints"""
import json
import uuid
from datetime import datetime, timedelta

import pytest

from app.core.claims import AdminClaims, OrgManagerClaims, PropertyManagerClaims, ResidentClaims
from app.models import AuditEventType, AuditLog, Invitation, InvitationStatus


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
def org_manager(make_account, org):
    return make_account("om@example.com", claims=OrgManagerClaims(organization_ids=(org.id,)))


def _invite(client, headers, org, email, roles, property_id=None):
    body = {"email": email, "roles_to_assign": roles}
    if property_id is not None:
        body["target_property_id"] = str(property_id)
    return client.post(f"/organizations/{org.id}/invitations", json=body, headers=headers)


def test_admin_invites_resident(client, db, admin, org, prop, auth_headers):
    response = _invite(client, auth_headers(admin), org, " Tenant@Example.com ", ["resident"], prop.id)
    assert response.status_code == 201
    body = response.json()
    assert body["invitation"]["invitee_email"] == "tenant@example.com"
    assert body["invitation"]["status"] == "pending"
    assert body["invitation"]["invited_by_role"] == "admin"

    inv = db.query(Invitation).filter(Invitation.id == uuid.UUID(body["invitation_id"])).one()
    assert inv.target_property_id == prop.id
    assert inv.expires_at > datetime.utcnow() + timedelta(days=6)

    audit = db.query(AuditLog).filter(AuditLog.event_type == AuditEventType.INVITATION_CREATED).one()
    assert audit.account_id == admin.id


def test_org_manager_cannot_invite_org_manager(client, org_manager, org, auth_headers):
    response = _invite(client, auth_headers(org_manager), org, "peer@example.com", ["organization_manager"])
    assert response.status_code == 403
    assert response.json()["code"] == "permission_denied"


def test_org_manager_invites_property_manager(client, org_manager, org, auth_headers):
    response = _invite(client, auth_headers(org_manager), org, "pm@example.com", ["property_manager"])
    assert response.status_code == 201


def test_org_manager_outside_org_is_denied(client, make_org, org_manager, auth_headers):
    other = make_org("Elsewhere")
    response = _invite(client, auth_headers(org_manager), other, "pm@example.com", ["property_manager"])
    assert response.status_code == 403


def test_resident_invite_without_property_is_invalid(client, admin, org, auth_headers):
    response = _invite(client, auth_headers(admin), org, "tenant@example.com", ["resident"])
    assert response.status_code == 400
    assert response.json()["code"] == "invalid_argument"


def test_invalid_email_is_rejected(client, admin, org, prop, auth_headers):
    response = _invite(client, auth_headers(admin), org, "not-an-email", ["resident"], prop.id)
    assert response.status_code == 400


def test_admin_role_cannot_be_invited(client, admin, org, auth_headers):
    response = _invite(client, auth_headers(admin), org, "root2@example.com", ["admin"])
    assert response.status_code == 400


def test_property_manager_invites_only_to_managed_property(
    client, make_account, make_property, org, auth_headers
):
    manager = make_account("pm@example.com", claims=PropertyManagerClaims(organization_id=org.id))
    colleague = make_account("pm2@example.com", claims=PropertyManagerClaims(organization_id=org.id))
    own = make_property(org, "Maple Court", managed_by=manager.id)
    other = make_property(org, "Cedar Row", managed_by=colleague.id)

    ok = _invite(client, auth_headers(manager), org, "a@example.com", ["resident"], own.id)
    assert ok.status_code == 201

    denied = _invite(client, auth_headers(manager), org, "b@example.com", ["resident"], other.id)
    assert denied.status_code == 403


def test_resident_cannot_invite(client, make_account, org, prop, auth_headers):
    resident = make_account("r@example.com", claims=ResidentClaims(organization_id=org.id, property_id=prop.id))
    response = _invite(client, auth_headers(resident), org, "friend@example.com", ["resident"], prop.id)
    assert response.status_code == 403


def test_duplicate_pending_invitation(client, admin, org, prop, auth_headers):
    headers = auth_headers(admin)
    assert _invite(client, headers, org, "tenant@example.com", ["resident"], prop.id).status_code == 201
    response = _invite(client, headers, org, "TENANT@example.com", ["resident"], prop.id)
    assert response.status_code == 409
    assert response.json()["code"] == "failed_precondition"


def test_revoke_twice(client, db, admin, org, prop, auth_headers):
    headers = auth_headers(admin)
    inv_id = _invite(client, headers, org, "tenant@example.com", ["resident"], prop.id).json()["invitation_id"]

    first = client.post(f"/organizations/{org.id}/invitations/{inv_id}/revoke", headers=headers)
    assert first.status_code == 200

    second = client.post(f"/organizations/{org.id}/invitations/{inv_id}/revoke", headers=headers)
    assert second.status_code == 409
    assert second.json()["code"] == "failed_precondition"

    inv = db.query(Invitation).filter(Invitation.id == uuid.UUID(inv_id)).one()
    assert inv.status == InvitationStatus.CANCELLED
    assert inv.cancelled_by == admin.id


def test_revoked_invitation_cannot_be_redeemed(client, admin, org, prop, auth_headers):
    headers = auth_headers(admin)
    inv_id = _invite(client, headers, org, "tenant@example.com", ["resident"], prop.id).json()["invitation_id"]
    client.post(f"/organizations/{org.id}/invitations/{inv_id}/revoke", headers=headers)

    response = client.post(
        "/invitations/redeem",
        json={"invitation_id": inv_id, "email": "tenant@example.com", "password": "password123"},
    )
    assert response.status_code == 409
    assert response.json()["code"] == "already_used"
    assert "revoked" in response.json()["detail"]


def test_list_invitations_with_status_filter(client, db, admin, org, prop, auth_headers):
    headers = auth_headers(admin)
    keep = _invite(client, headers, org, "one@example.com", ["resident"], prop.id).json()["invitation_id"]
    gone = _invite(client, headers, org, "two@example.com", ["resident"], prop.id).json()["invitation_id"]
    client.post(f"/organizations/{org.id}/invitations/{gone}/revoke", headers=headers)

    all_invites = client.get(f"/organizations/{org.id}/invitations", headers=headers).json()["invitations"]
    assert {i["id"] for i in all_invites} == {keep, gone}

    pending = client.get(f"/organizations/{org.id}/invitations?status=pending", headers=headers).json()
    assert [i["id"] for i in pending["invitations"]] == [keep]

    bad = client.get(f"/organizations/{org.id}/invitations?status=bogus", headers=headers)
    assert bad.status_code == 400


def test_invitation_details_are_public(client, admin, org, prop, auth_headers):
    inv_id = _invite(
        client, auth_headers(admin), org, "tenant@example.com", ["resident"], prop.id
    ).json()["invitation_id"]

    response = client.get(f"/invitations/{org.id}/{inv_id}")
    assert response.status_code == 200
    body = response.json()
    assert body["organization_name"] == org.name
    assert body["property_name"] == prop.name
    assert body["invitee_email"] == "tenant@example.com"


def test_expired_invitation_details(client, db, admin, org, prop, auth_headers):
    inv_id = _invite(
        client, auth_headers(admin), org, "tenant@example.com", ["resident"], prop.id
    ).json()["invitation_id"]
    inv = db.query(Invitation).filter(Invitation.id == uuid.UUID(inv_id)).one()
    inv.expires_at = datetime.utcnow() - timedelta(minutes=1)
    db.commit()

    response = client.get(f"/invitations/{org.id}/{inv_id}")
    assert response.status_code == 410
    assert response.json()["code"] == "expired"


def test_expire_stale_sweep(client, db, admin, org, prop, auth_headers):
    headers = auth_headers(admin)
    stale = _invite(client, headers, org, "old@example.com", ["resident"], prop.id).json()["invitation_id"]
    fresh = _invite(client, headers, org, "new@example.com", ["resident"], prop.id).json()["invitation_id"]
    inv = db.query(Invitation).filter(Invitation.id == uuid.UUID(stale)).one()
    inv.expires_at = datetime.utcnow() - timedelta(days=1)
    db.commit()

    listed = client.get(f"/organizations/{org.id}/invitations", headers=headers).json()["invitations"]
    assert {i["id"]: i["status"] for i in listed} == {stale: "expired", fresh: "pending"}

    response = client.post(f"/organizations/{org.id}/invitations/expire-stale", headers=headers)
    assert response.status_code == 200
    assert response.json()["expired_count"] == 1

    db.expire_all()
    assert db.query(Invitation).filter(Invitation.id == uuid.UUID(stale)).one().status == InvitationStatus.EXPIRED
    assert db.query(Invitation).filter(Invitation.id == uuid.UUID(fresh)).one().status == InvitationStatus.PENDING

    audit = db.query(AuditLog).filter(AuditLog.event_type == AuditEventType.INVITATIONS_EXPIRED).one()
    assert json.loads(audit.details) == {"expired_count": 1}
