from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session
from datetime import timedelta
import logging
from app.db.session import get_db
from app.models.account import Account
from app.schemas.account import AccountCreate, AccountLogin, Token, Account as AccountSchema
from app.core.claims import AdminClaims
from app.core.errors import InvalidArgument
from app.core.security import verify_password, create_access_token, get_password_hash
from app.core.config import settings
from app.core.rate_limit import rate_limit
from app.api.deps import get_current_account
from app.services.invitation_ledger import normalize_email
from app.services.redemption import MIN_PASSWORD_LENGTH

logger = logging.getLogger(__name__)

router = APIRouter()


def issue_token(account: Account) -> dict:
    """Mint an access token carrying the account's current claims and claims version."""
    claims = account.raw_claims()
    access_token = create_access_token(
        data={
            "sub": account.email,
            "account_id": str(account.id),
            "claims": claims,
            "cv": account.claims_version,
        },
        expires_delta=timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
    )
    return {
        "access_token": access_token,
        "token_type": "bearer",
        "claims": claims,
        "claims_version": account.claims_version,
    }


@router.post("/register", response_model=Token, status_code=status.HTTP_201_CREATED)
@rate_limit(max_requests=10, window_seconds=900)  # 10 sign-ups per 15 min per IP
def register(
    body: AccountCreate,
    request: Request,
    db: Session = Depends(get_db),
):
    """
    Create an account without a role. Roles arrive through invitations; emails
    listed in ADMIN_EMAILS are bootstrapped as admins.
    """
    email = normalize_email(body.email)
    password = (body.password or "").strip()
    if len(password) < MIN_PASSWORD_LENGTH:
        raise InvalidArgument(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.")

    existing = db.query(Account).filter(Account.email == email).first()
    if existing:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="An account with this email already exists",
        )

    account = Account(
        email=email,
        hashed_password=get_password_hash(password),
        display_name=(body.display_name or "").strip() or None,
        status="active",
        roles=[],
        organization_ids=[],
        claims_version=0,
    )
    if email in settings.get_admin_emails():
        account.set_claims(AdminClaims())
        logger.info(f"[AUTH] Bootstrapping admin claims for {email}")
    db.add(account)
    db.commit()
    db.refresh(account)
    logger.info(f"[AUTH] Registered account {account.id}")
    return issue_token(account)


@router.post("/login", response_model=Token)
def login(
    credentials: AccountLogin,
    db: Session = Depends(get_db),
):
    """Login always issues a token with the account's current claims."""
    # Normalize email: lowercase and strip whitespace
    normalized_email = credentials.email.lower().strip()
    normalized_password = credentials.password.strip()

    account = db.query(Account).filter(Account.email == normalized_email).first()
    if not account or not verify_password(normalized_password, account.hashed_password):
        # Don't reveal if the account exists or not
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if account.status != "active":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="This account is disabled",
        )
    return issue_token(account)


@router.post("/refresh", response_model=Token)
def refresh_token(current_account: Account = Depends(get_current_account)):
    """
    Re-issue the caller's token with the claims currently stored on the account.
    Clients call this right after a redemption, before any role-gated request.
    """
    stale = current_account.token_payload.get("cv") != current_account.claims_version
    if stale:
        logger.info(f"[AUTH] Refreshing stale claims for account {current_account.id}")
    return issue_token(current_account)


@router.get("/me", response_model=AccountSchema)
def read_current_account(current_account: Account = Depends(get_current_account)):
    return current_account
