"""
Campaign intake adapters: the two producers of campaign invitations.

csv_import: the uploaded file is stored under CAMPAIGN_UPLOAD_DIR, the campaign
is created in `processing` and then expanded exactly once. Either every row
becomes a pending invitation and the campaign goes `active` in the same
transaction, or the campaign settles in `error` with no invitations.

public_link: each click mints a fresh pending invitation with no email. The
campaign checks here are a pre-check only; redemption re-checks them.
"""
import csv
import io
import logging
import os
import re
import shutil
import uuid
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.orm import Session

from app.core.audit import log_security_event
from app.core.claims import Claims
from app.core.config import settings
from app.core.errors import FailedPrecondition, InvalidArgument, NotFound, RedemptionEngineError
from app.db.transaction import run_in_transaction
from app.models.audit_log import AuditEventType
from app.models.campaign import Campaign, CampaignStatus, CampaignType
from app.models.invitation import Invitation, InvitationStatus
from app.models.organization import Organization
from app.models.property import Property
from app.services import campaign_ledger, onboarding_email
from app.services.invitation_ledger import normalize_email

logger = logging.getLogger(__name__)

# Canonical field -> accepted (normalized) header names
HEADER_ALIASES = {
    "email": ["email", "e_mail", "emailaddress", "email_address"],
    "display_name": ["displayname", "display_name", "name", "fullname", "full_name"],
    "unit_number": [
        "unitnumber", "unit_number", "unit", "unitno", "apt",
        "apartmentnumber", "unit_no", "apt_number", "apt_no",
    ],
}


class CsvValidationError(ValueError):
    """The uploaded recipient list cannot be expanded."""


def normalize_header(header: Optional[str]) -> str:
    """Lower-case, spaces/hyphens to underscores, drop anything else non-alphanumeric."""
    if not header:
        return ""
    return re.sub(r"[^a-z0-9_]", "", re.sub(r"[\s-]+", "_", header.strip().lower()))


def _cell(record: dict, mapped: Dict[str, str], field: str) -> Optional[str]:
    header = mapped.get(field)
    if header is None:
        return None
    return (record.get(header) or "").strip() or None


def _map_headers(headers: List[str]) -> Tuple[Dict[str, str], List[str]]:
    """Return ({canonical: original header}, [unmapped original headers])."""
    by_normalized = {}
    for h in headers:
        by_normalized.setdefault(normalize_header(h), h)
    mapped = {}
    for canonical, aliases in HEADER_ALIASES.items():
        for alias in aliases:
            if alias in by_normalized:
                mapped[canonical] = by_normalized.pop(alias)
                break
    return mapped, list(by_normalized.values())


def parse_recipients(content: str) -> List[dict]:
    """
    Parse a recipient CSV into row dicts with email, display_name, unit_number
    and additional_data. Any bad row fails the whole file.
    """
    reader = csv.DictReader(io.StringIO(content))
    if not reader.fieldnames:
        raise CsvValidationError("The CSV file is empty.")
    mapped, extra_headers = _map_headers(reader.fieldnames)
    if "email" not in mapped:
        raise CsvValidationError("The CSV file has no email column.")

    rows = []
    seen = {}
    # Header is line 1
    for line_no, record in enumerate(reader, start=2):
        if not any((v or "").strip() for v in record.values() if isinstance(v, str)):
            continue
        raw_email = (record.get(mapped["email"]) or "").strip()
        try:
            email = normalize_email(raw_email)
        except InvalidArgument:
            raise CsvValidationError(f"Row {line_no}: '{raw_email}' is not a valid email address.")
        if email in seen:
            raise CsvValidationError(f"Row {line_no}: duplicate email {email} (first seen on row {seen[email]}).")
        seen[email] = line_no

        additional = {}
        for header in extra_headers:
            value = record.get(header)
            if header and isinstance(value, str) and value.strip():
                additional[header] = value.strip()
        rows.append({
            "email": email,
            "display_name": _cell(record, mapped, "display_name"),
            "unit_number": _cell(record, mapped, "unit_number"),
            "additional_data": additional or None,
        })

    if not rows:
        raise CsvValidationError("The CSV file has no recipients.")
    return rows


def _upload_dir(*parts: str) -> str:
    path = os.path.join(settings.CAMPAIGN_UPLOAD_DIR, *parts)
    os.makedirs(path, exist_ok=True)
    return path


def _move_file(path: str, bucket: str) -> str:
    """Move a stored CSV into processed/ or failed/. Returns the new path."""
    if not path or not os.path.exists(path):
        return path
    target = os.path.join(_upload_dir(bucket), os.path.basename(path))
    try:
        shutil.move(path, target)
    except OSError as e:
        logger.warning(f"[CAMPAIGN] Could not move {path} to {bucket}/: {str(e)}")
        return path
    return target


def store_upload(organization_id: UUID, property_id: UUID, campaign_id: UUID, content: bytes) -> str:
    """Write the raw upload to the pending area and return its path."""
    directory = _upload_dir("pending", str(organization_id), str(property_id))
    path = os.path.join(directory, f"{campaign_id}.csv")
    with open(path, "wb") as f:
        f.write(content)
    return path


def create_csv_campaign(
    db: Session,
    claims: Claims,
    actor_id: Optional[UUID],
    organization_id: UUID,
    property_id: UUID,
    name: str,
    content: bytes,
    source_file_name: Optional[str] = None,
    roles_to_assign: Optional[List[str]] = None,
    max_uses: Optional[int] = None,
    expires_at: Optional[datetime] = None,
    send_emails: bool = True,
) -> Campaign:
    """Store the file, create the campaign in `processing` and expand it."""
    now = datetime.utcnow()
    name = campaign_ledger.validate_name(name)
    roles = campaign_ledger.validate_campaign_roles(roles_to_assign or ["resident"])
    max_uses = campaign_ledger.validate_max_uses(max_uses)
    expires_at = campaign_ledger.validate_expires_at(expires_at, now)
    if not content:
        raise InvalidArgument("The uploaded CSV file is empty.")
    if len(content) > settings.CAMPAIGN_CSV_MAX_BYTES:
        raise InvalidArgument(f"The CSV file is larger than {settings.CAMPAIGN_CSV_MAX_BYTES} bytes.")
    campaign_ledger.resolve_scope(db, claims, organization_id, property_id)

    campaign_id = uuid.uuid4()
    path = store_upload(organization_id, property_id, campaign_id, content)
    campaign = Campaign(
        id=campaign_id,
        organization_id=organization_id,
        property_id=property_id,
        name=name,
        campaign_type=CampaignType.CSV_IMPORT,
        status=CampaignStatus.PROCESSING,
        roles_to_assign=roles,
        max_uses=max_uses,
        total_accepted=0,
        expires_at=expires_at,
        storage_file_path=path,
        source_file_name=source_file_name,
        created_by=actor_id,
        created_at=now,
        updated_at=now,
    )
    db.add(campaign)
    db.flush()
    log_security_event(
        db,
        AuditEventType.CAMPAIGN_CREATED,
        organization_id=organization_id,
        account_id=actor_id,
        resource_type="campaign",
        resource_id=campaign_id,
        details={"campaign_type": "csv_import", "source_file_name": source_file_name},
        commit=False,
    )
    db.commit()
    logger.info(f"[CAMPAIGN] CSV campaign {campaign_id} created from {source_file_name or path}")

    return expand_csv_campaign(db, campaign_id, send_emails=send_emails)


def expand_csv_campaign(db: Session, campaign_id: UUID, send_emails: bool = True) -> Campaign:
    """
    Turn a `processing` CSV campaign into pending invitations, once.

    A campaign in any other status is rejected, so re-running never duplicates
    invitations. Validation failures leave the campaign in `error`.
    """
    campaign = db.query(Campaign).filter(Campaign.id == campaign_id).first()
    if not campaign:
        raise NotFound("Campaign not found.")
    if campaign.campaign_type != CampaignType.CSV_IMPORT:
        raise FailedPrecondition("Only csv_import campaigns can be expanded.")
    if campaign.status != CampaignStatus.PROCESSING:
        raise FailedPrecondition(f"Campaign is already {campaign.status.value}; it can only be expanded once.")

    try:
        with open(campaign.storage_file_path, "rb") as f:
            raw = f.read()
        rows = parse_recipients(raw.decode("utf-8-sig"))
    except UnicodeDecodeError:
        return _fail_campaign(db, campaign, "The CSV file must be UTF-8 encoded.")
    except (OSError, csv.Error, CsvValidationError) as e:
        return _fail_campaign(db, campaign, str(e))

    def work(db: Session) -> List[Invitation]:
        now = datetime.utcnow()
        ttl = now + timedelta(days=settings.INVITATION_TTL_DAYS)
        if campaign.expires_at is not None:
            ttl = min(ttl, campaign.expires_at)

        # Claim the campaign first; a concurrent expansion matches zero rows
        result = db.execute(
            update(Campaign)
            .where(Campaign.id == campaign.id, Campaign.status == CampaignStatus.PROCESSING)
            .values(status=CampaignStatus.ACTIVE, total_invited_from_csv=len(rows), updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise FailedPrecondition("Campaign is no longer processing; it can only be expanded once.")

        invitations = []
        for row in rows:
            inv = Invitation(
                organization_id=campaign.organization_id,
                invitee_email=row["email"],
                invitee_name=row["display_name"],
                roles_to_assign=list(campaign.roles_to_assign),
                target_property_id=campaign.property_id,
                invited_by_role="campaign",
                created_by=campaign.created_by,
                status=InvitationStatus.PENDING,
                campaign_id=campaign.id,
                unit_number=row["unit_number"],
                additional_data=row["additional_data"],
                created_at=now,
                expires_at=ttl,
            )
            db.add(inv)
            invitations.append(inv)
        db.flush()
        log_security_event(
            db,
            AuditEventType.CAMPAIGN_EXPANDED,
            organization_id=campaign.organization_id,
            account_id=campaign.created_by,
            resource_type="campaign",
            resource_id=campaign.id,
            details={"invitations": len(invitations)},
            commit=False,
        )
        return invitations

    invitations = run_in_transaction(db, work)

    campaign.storage_file_path = _move_file(campaign.storage_file_path, "processed")
    db.commit()
    db.refresh(campaign)
    logger.info(f"[CAMPAIGN] Campaign {campaign.id} expanded into {len(invitations)} invitations")

    if send_emails:
        org = db.query(Organization).filter(Organization.id == campaign.organization_id).first()
        prop = db.query(Property).filter(Property.id == campaign.property_id).first()
        sent = onboarding_email.send_campaign_invitation_emails(
            invitations,
            org.name if org else settings.APP_NAME,
            property_name=prop.name if prop else None,
        )
        logger.info(f"[CAMPAIGN] Sent {sent}/{len(invitations)} invitation emails for campaign {campaign.id}")
    return campaign


def _fail_campaign(db: Session, campaign: Campaign, reason: str) -> Campaign:
    logger.warning(f"[CAMPAIGN] Campaign {campaign.id} failed: {reason}")
    now = datetime.utcnow()
    db.execute(
        update(Campaign)
        .where(Campaign.id == campaign.id, Campaign.status == CampaignStatus.PROCESSING)
        .values(
            status=CampaignStatus.ERROR,
            error_details=reason,
            storage_file_path=_move_file(campaign.storage_file_path, "failed"),
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    log_security_event(
        db,
        AuditEventType.CAMPAIGN_FAILED,
        organization_id=campaign.organization_id,
        account_id=campaign.created_by,
        resource_type="campaign",
        resource_id=campaign.id,
        details={"error": reason},
        commit=False,
    )
    db.commit()
    db.refresh(campaign)
    return campaign


def process_public_link(db: Session, campaign_id: UUID) -> Invitation:
    """Mint a pending, email-less invitation for one click on a public link."""
    campaign = db.query(Campaign).filter(Campaign.id == campaign_id).first()
    if not campaign:
        raise NotFound("Campaign not found.")
    if campaign.campaign_type != CampaignType.PUBLIC_LINK:
        raise InvalidArgument("This campaign does not have a public sign-up link.")

    now = datetime.utcnow()
    try:
        campaign_ledger.check_campaign_open(campaign, now)
    except RedemptionEngineError:
        campaign_ledger.mark_lapsed(db, campaign, now)
        raise

    def work(db: Session) -> Invitation:
        expires_at = now + timedelta(hours=settings.PUBLIC_LINK_INVITATION_TTL_HOURS)
        if campaign.expires_at is not None:
            expires_at = min(expires_at, campaign.expires_at)
        inv = Invitation(
            organization_id=campaign.organization_id,
            invitee_email=None,
            roles_to_assign=list(campaign.roles_to_assign),
            target_property_id=campaign.property_id,
            invited_by_role="campaign",
            created_by=None,
            status=InvitationStatus.PENDING,
            campaign_id=campaign.id,
            created_at=now,
            expires_at=expires_at,
        )
        db.add(inv)
        db.flush()
        # Re-read under the write lock: a redemption that filled the campaign
        # meanwhile has already cancelled its pending invitations
        locked = db.query(Campaign).filter(Campaign.id == campaign.id).with_for_update().populate_existing().one()
        campaign_ledger.check_campaign_open(locked, now)
        return inv

    inv = run_in_transaction(db, work)
    db.refresh(inv)
    logger.info(f"[CAMPAIGN] Public link {campaign.id} minted invitation {inv.id}")
    return inv
