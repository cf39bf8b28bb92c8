"""
Pytest fixtures for WhatsApp integration tests.
"""

from uuid import UUID

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from whatsapp_integration.contracts.config import BusinessProfile, WhatsAppConfig
from whatsapp_integration.core.settings import Settings
from whatsapp_integration.persistence.models import WhatsAppBase
from whatsapp_integration.persistence.repo import WhatsAppRepository
from whatsapp_integration.providers.stub import StubGraphGateway
from whatsapp_integration.service.config_store import ConfigStore

from factories import ACCESS_TOKEN, APP_ID, PHONE_NUMBER_ID, WABA_ID


@pytest.fixture
def engine():
    """In-memory SQLite engine shared across threads (TestClient)."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    WhatsAppBase.metadata.create_all(engine)
    yield engine
    WhatsAppBase.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def db_session(engine):
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def repo(db_session):
    return WhatsAppRepository(db_session)


@pytest.fixture
def settings():
    """Settings with system app credentials, isolated from the environment."""
    return Settings(
        _env_file=None,
        DATABASE_URL="sqlite://",
        WHATSAPP_APP_ID="111",
        WHATSAPP_CLIENT_ID="111",
        WHATSAPP_CLIENT_SECRET="system_secret",
        WHATSAPP_CONFIG_ID="cfg_1",
        APP_URL="https://app.example.com",
        WEBHOOK_BASE_URL="https://hooks.example.com",
        WHATSAPP_WEBHOOK_VERIFY_TOKEN="global_verify_token",
        WHATSAPP_APP_SECRET="",
        WHATSAPP_ENCRYPTION_KEY="",
    )


@pytest.fixture
def gateway():
    """Recording stub gateway."""
    return StubGraphGateway()


@pytest.fixture
def config_store(repo):
    return ConfigStore(repo, encryption_key="")


@pytest.fixture
def organization(repo):
    """Tenant without WhatsApp configuration."""
    org = repo.create_org(name="Acme Materials", slug="acme", metadata={"plan": "pro"})
    repo.commit()
    return org


@pytest.fixture
def organization_id(organization) -> UUID:
    return organization.id


@pytest.fixture
def complete_config():
    return WhatsAppConfig(
        is_embedded_signup=False,
        access_token=ACCESS_TOKEN,
        app_id=APP_ID,
        waba_id=WABA_ID,
        phone_number_id=PHONE_NUMBER_ID,
        display_phone_number="+1 555 0100",
        verified_name="Acme",
        quality_rating="GREEN",
        account_review_status="APPROVED",
        business_profile=BusinessProfile(about="We sell cement", email="hi@acme.test"),
    )


@pytest.fixture
def configured_org(organization, config_store, complete_config):
    """Tenant with a complete WhatsApp configuration."""
    config_store.store(organization.id, complete_config)
    return organization


@pytest.fixture
def sample_phone():
    """Sample customer phone number."""
    return "5511888888888"
