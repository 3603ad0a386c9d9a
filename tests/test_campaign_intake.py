"""CSV campaign intake"""
import os
from datetime import datetime, timedelta
import uuid

import pytest

from app.core.claims import OrgManagerClaims
from app.core.config import settings
from app.core.errors import FailedPrecondition
from app.models import Campaign, CampaignStatus, Invitation, InvitationStatus
from app.services import campaign_intake
from app.services.campaign_intake import CsvValidationError, normalize_header, parse_recipients

VALID_CSV = (
    "Email Address,Full Name,Unit No,Move-in Date\n"
    "ana@example.com,Ana Ruiz,101,2026-11-01\n"
    "BEN@example.com,Ben Ode,102,\n"
    "cy@example.com,,103,2026-12-01\n"
)


@pytest.fixture
def org(make_org):
    return make_org()


@pytest.fixture
def prop(make_property, org):
    return make_property(org)


@pytest.fixture
def manager(make_account, org):
    return make_account("om@example.com", claims=OrgManagerClaims(organization_ids=(org.id,)))


def _upload(client, headers, org, prop, content, name="Fall residents", filename="residents.csv"):
    return client.post(
        "/campaigns/csv",
        data={"organization_id": str(org.id), "property_id": str(prop.id), "name": name},
        files={"file": (filename, content, "text/csv")},
        headers=headers,
    )


def test_normalize_header():
    assert normalize_header("  Email Address ") == "email_address"
    assert normalize_header("Apt #") == "apt_"
    assert normalize_header("Unit-No") == "unit_no"
    assert normalize_header(None) == ""


def test_parse_recipients_maps_aliases():
    rows = parse_recipients("E-mail,Name,Unit,Pets\nana@example.com,Ana,4B,cat\n")
    assert rows == [{
        "email": "ana@example.com",
        "display_name": "Ana",
        "unit_number": "4B",
        "additional_data": {"Pets": "cat"},
    }]


def test_parse_recipients_skips_blank_lines():
    rows = parse_recipients("email\nana@example.com\n,\nben@example.com\n")
    assert [r["email"] for r in rows] == ["ana@example.com", "ben@example.com"]


@pytest.mark.parametrize("content, message", [
    ("", "empty"),
    ("name,unit\nAna,1\n", "no email column"),
    ("email\n", "no recipients"),
    ("email\nana@example.com\nnot-an-email\n", "Row 3"),
    ("email\nana@example.com\nANA@example.com\n", "duplicate"),
])
def test_parse_recipients_rejects_bad_files(content, message):
    with pytest.raises(CsvValidationError) as exc:
        parse_recipients(content)
    assert message in str(exc.value)


def test_valid_csv_expands_into_invitations(client, db, manager, org, prop, auth_headers):
    response = _upload(client, auth_headers(manager), org, prop, VALID_CSV)
    assert response.status_code == 201
    campaign = response.json()["campaign"]
    assert campaign["status"] == "active"
    assert campaign["details"]["type"] == "csv_import"
    assert campaign["details"]["total_invited_from_csv"] == 3
    assert campaign["details"]["source_file_name"] == "residents.csv"

    stored = campaign["details"]["storage_file_path"]
    assert os.path.exists(stored)
    assert os.path.dirname(stored) == os.path.join(settings.CAMPAIGN_UPLOAD_DIR, "processed")

    invitations = db.query(Invitation).filter(Invitation.campaign_id == uuid.UUID(campaign["id"])).all()
    by_email = {i.invitee_email: i for i in invitations}
    assert set(by_email) == {"ana@example.com", "ben@example.com", "cy@example.com"}
    assert all(i.status == InvitationStatus.PENDING for i in invitations)
    assert all(i.target_property_id == prop.id for i in invitations)
    assert by_email["ana@example.com"].invitee_name == "Ana Ruiz"
    assert by_email["ana@example.com"].unit_number == "101"
    assert by_email["ana@example.com"].additional_data == {"Move-in Date": "2026-11-01"}
    assert by_email["ben@example.com"].additional_data is None


def test_malformed_row_leaves_campaign_in_error(client, db, manager, org, prop, auth_headers):
    content = "email,name\nana@example.com,Ana\nnope,Broken\n"
    response = _upload(client, auth_headers(manager), org, prop, content)
    assert response.status_code == 201
    campaign = response.json()["campaign"]
    assert campaign["status"] == "error"
    assert "Row 3" in campaign["error_details"]
    assert os.path.dirname(campaign["details"]["storage_file_path"]) == os.path.join(
        settings.CAMPAIGN_UPLOAD_DIR, "failed"
    )
    assert db.query(Invitation).filter(Invitation.campaign_id == uuid.UUID(campaign["id"])).count() == 0


def test_non_utf8_file_is_rejected(client, manager, org, prop, auth_headers):
    response = _upload(client, auth_headers(manager), org, prop, "email\nj\xf6rg@example.com\n".encode("latin-1"))
    assert response.json()["campaign"]["status"] == "error"


def test_empty_upload_is_invalid(client, manager, org, prop, auth_headers):
    response = _upload(client, auth_headers(manager), org, prop, b"")
    assert response.status_code == 400


def test_oversized_upload_is_invalid(client, manager, org, prop, auth_headers, monkeypatch):
    monkeypatch.setattr(settings, "CAMPAIGN_CSV_MAX_BYTES", 20)
    response = _upload(client, auth_headers(manager), org, prop, VALID_CSV)
    assert response.status_code == 400


def test_expansion_runs_once(client, db, manager, org, prop, auth_headers):
    response = _upload(client, auth_headers(manager), org, prop, VALID_CSV)
    campaign_id = uuid.UUID(response.json()["campaign"]["id"])

    with pytest.raises(FailedPrecondition):
        campaign_intake.expand_csv_campaign(db, campaign_id, send_emails=False)
    assert db.query(Invitation).filter(Invitation.campaign_id == campaign_id).count() == 3


def test_expansion_respects_campaign_expiry(db, manager, org, prop):
    expires = (datetime.utcnow() + timedelta(days=2)).replace(microsecond=0)
    campaign = campaign_intake.create_csv_campaign(
        db,
        manager.claims,
        manager.id,
        organization_id=org.id,
        property_id=prop.id,
        name="Short window",
        content=b"email\nana@example.com\n",
        expires_at=expires,
        send_emails=False,
    )
    assert campaign.status == CampaignStatus.ACTIVE
    inv = db.query(Invitation).filter(Invitation.campaign_id == campaign.id).one()
    assert inv.expires_at == expires


def test_deactivate_cancels_csv_invitations(client, db, manager, org, prop, auth_headers):
    headers = auth_headers(manager)
    campaign_id = _upload(client, headers, org, prop, VALID_CSV).json()["campaign"]["id"]

    response = client.post(f"/campaigns/{campaign_id}/deactivate", headers=headers)
    assert response.status_code == 200
    assert "3 pending invitations cancelled" in response.json()["message"]

    db.expire_all()
    statuses = {
        i.status for i in db.query(Invitation).filter(Invitation.campaign_id == uuid.UUID(campaign_id)).all()
    }
    assert statuses == {InvitationStatus.CANCELLED}


def test_delete_removes_stored_file(client, db, manager, org, prop, auth_headers):
    headers = auth_headers(manager)
    campaign = _upload(client, headers, org, prop, VALID_CSV).json()["campaign"]
    path = campaign["details"]["storage_file_path"]
    client.post(f"/campaigns/{campaign['id']}/deactivate", headers=headers)

    response = client.delete(f"/campaigns/{campaign['id']}", headers=headers)
    assert response.status_code == 200
    assert not os.path.exists(path)
    db.expire_all()
    assert db.query(Campaign).count() == 0
    assert db.query(Invitation).count() == 0
