"""Pytest configuration and fixtures"""
import os

# Must be set before app.core.config is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["BREVO_API_KEY"] = ""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.main import app
from app.api.auth import issue_token
from app.core.config import settings
from app.core.rate_limit import reset_rate_limits
from app.core.security import get_password_hash
from app.db.session import Base, get_db
from app.models import Account, Organization, Property

TEST_PASSWORD = "password123"
# Hashing is slow; every factory account shares one hash
TEST_PASSWORD_HASH = get_password_hash(TEST_PASSWORD)


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "CAMPAIGN_UPLOAD_DIR", str(tmp_path / "campaign_csvs"))
    monkeypatch.setattr(settings, "BREVO_API_KEY", None)
    monkeypatch.setattr(settings, "ADMIN_EMAILS", "")
    # Concurrency tests contend on the SQLite write lock
    monkeypatch.setattr(settings, "TRANSACTION_MAX_ATTEMPTS", 10)
    reset_rate_limits()
    yield
    reset_rate_limits()


@pytest.fixture
def engine(tmp_path):
    """File-backed SQLite so worker threads get their own connections"""
    test_engine = create_engine(
        f"sqlite:///{tmp_path / 'test.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=test_engine)
    yield test_engine
    test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    """Create a fresh database session for each test"""
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(session_factory):
    """Test client whose requests each get their own session"""
    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def make_org(db):
    def _make(name="Harbor Living"):
        org = Organization(name=name)
        db.add(org)
        db.commit()
        db.refresh(org)
        return org
    return _make


@pytest.fixture
def make_property(db):
    def _make(org, name="Maple Court", managed_by=None):
        prop = Property(organization_id=org.id, name=name, managed_by=managed_by)
        db.add(prop)
        db.commit()
        db.refresh(prop)
        return prop
    return _make


@pytest.fixture
def make_account(db):
    def _make(email, claims=None, display_name=None):
        account = Account(
            email=email.lower(),
            hashed_password=TEST_PASSWORD_HASH,
            display_name=display_name,
            status="active",
            roles=[],
            organization_ids=[],
            claims_version=0,
        )
        if claims is not None:
            account.set_claims(claims)
        db.add(account)
        db.commit()
        db.refresh(account)
        return account
    return _make


@pytest.fixture
def auth_headers():
    """Bearer header for an account's current claims"""
    def _headers(account):
        return {"Authorization": f"Bearer {issue_token(account)['access_token']}"}
    return _headers
