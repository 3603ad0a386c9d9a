"""
Send invitation emails via Brevo using BREVO_API_KEY.
Best effort: a missing key or a transport failure returns False and is logged;
the ledger operation that triggered the email has already committed.
"""
import logging
from typing import Iterable, Optional
import httpx
from app.core.config import settings

logger = logging.getLogger(__name__)

ROLE_LABELS = {
    "organization_manager": "Organization Manager",
    "property_manager": "Property Manager",
    "resident": "Resident",
}


def send_onboarding_email(
    to_email: str,
    subject: str,
    html_content: str,
    *,
    to_name: Optional[str] = None,
    reply_to: Optional[str] = None,
) -> bool:
    """
    Send a single transactional email using Brevo API with BREVO_API_KEY.
    Returns True if sent successfully, False otherwise (e.g. BREVO_API_KEY not set).
    """
    api_key = settings.BREVO_API_KEY
    if not api_key or not str(api_key).strip():
        logger.info(f"[EMAIL] BREVO_API_KEY not set; skipping email to {to_email}")
        return False
    api_key = str(api_key).strip()

    sender = {
        "name": settings.APP_NAME,
        "email": settings.SENDER_EMAIL,
    }
    to_list = [{"email": to_email.strip().lower(), "name": (to_name or "").strip() or None}]
    payload = {
        "sender": sender,
        "to": to_list,
        "subject": subject,
        "htmlContent": html_content,
    }
    if reply_to:
        payload["replyTo"] = {"email": reply_to, "name": settings.APP_NAME}

    headers = {
        "accept": "application/json",
        "content-type": "application/json",
        "api-key": api_key,
    }
    try:
        resp = httpx.post(
            "https://api.brevo.com/v3/smtp/email",
            headers=headers,
            json=payload,
            timeout=15.0,
        )
    except httpx.HTTPError as e:
        logger.warning(f"[EMAIL] Brevo request failed for {to_email}: {str(e)}")
        return False
    if resp.status_code not in (200, 201):
        logger.warning(f"[EMAIL] Brevo returned {resp.status_code} for {to_email}: {resp.text[:200]}")
        return False
    return True


def invitation_link(invitation_id, organization_id) -> str:
    return f"{settings.FRONTEND_URL.rstrip('/')}/accept-invitation?token={invitation_id}&orgId={organization_id}"


def send_invitation_email(
    to_email: str,
    role: str,
    org_name: str,
    link: str,
    *,
    property_name: Optional[str] = None,
    inviter_name: Optional[str] = None,
    invitee_name: Optional[str] = None,
) -> bool:
    """Invite someone to join an organization (managers) or a property (residents)."""
    inviter = inviter_name or "The management team"
    label = ROLE_LABELS.get(role, role)
    where = property_name if role == "resident" and property_name else org_name
    subject = f"You've been invited to join {where} on {settings.APP_NAME}"
    greeting = f"<p>Hi {invitee_name},</p>" if invitee_name else ""
    html = f"""
    {greeting}
    <p>{inviter} has invited you to join <strong>{where}</strong> as a <strong>{label}</strong>.</p>
    <p>Click the link below to create your account, or sign in with this email address if you already have one.
    This link expires in {settings.INVITATION_TTL_DAYS} days.</p>
    <p><a href="{link}">{link}</a></p>
    <p>If you didn't expect this email, you can ignore it.</p>
    """
    return send_onboarding_email(to_email, subject, html, to_name=invitee_name)


def send_campaign_invitation_emails(
    invitations: Iterable,
    org_name: str,
    property_name: Optional[str] = None,
    inviter_name: Optional[str] = None,
) -> int:
    """Send one resident invitation per CSV row. Returns the number sent."""
    sent = 0
    for inv in invitations:
        if not inv.invitee_email:
            continue
        if send_invitation_email(
            inv.invitee_email,
            "resident",
            org_name,
            invitation_link(inv.id, inv.organization_id),
            property_name=property_name,
            inviter_name=inviter_name,
            invitee_name=inv.invitee_name,
        ):
            sent += 1
    return sent
