"""Shared fixtures.

``ac_store.app`` reads its configuration at import time, so the environment
is pinned here before any test module imports it.
"""
import os
import tempfile

_TMP = tempfile.mkdtemp(prefix="ac_store_tests_")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TMP, 'test.db')}"
os.environ["LOG_FILE"] = os.path.join(_TMP, "test.log")
os.environ["FLASK_SECRET_KEY"] = "test-secret"
os.environ["RAZORPAY_KEY_ID"] = "rzp_test_key"
os.environ["GOOGLE_CLIENT_ID"] = "test-client.apps.googleusercontent.com"
# empty, not unset: load_dotenv never overrides variables that already exist
for name in ("OPENROUTER_API_KEY", "SLACK_WEBHOOK_URL", "SMTP_HOST", "ALERT_EMAIL_TO"):
    os.environ[name] = ""

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from ac_store.addresses import AddressDirectory
from ac_store.catalog import get_product
from ac_store.gateway import ConfiguredKey, GatewayBridge
from ac_store.identity import Identity, IdentityProvider
from ac_store.llm import LLMProvider, LLMResponse
from ac_store.models import Base


@pytest.fixture
def engine():
    eng = create_engine("sqlite://", poolclass=StaticPool, connect_args={"check_same_thread": False})
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def directory(engine):
    return AddressDirectory(engine)


@pytest.fixture
def identities(engine):
    return IdentityProvider(engine, google_client_id="test-client")


@pytest.fixture
def alice(identities):
    return identities.register("alice@example.com", "secret123", "Alice")


@pytest.fixture
def bob(identities):
    return identities.register("bob@example.com", "secret456", "Bob")


@pytest.fixture
def make_orchestrator(directory):
    from ac_store.orchestrator import CheckoutOrchestrator

    def make(product_id="2", bridge=None, gateway_key=ConfiguredKey("rzp_test_key"), **kwargs):
        return CheckoutOrchestrator(
            product_id,
            lookup_product=get_product,
            directory=directory,
            bridge=bridge or GatewayBridge(),
            gateway_key=gateway_key,
            merchant_name="Classic-Solution",
            theme_color="#2563EB",
            **kwargs,
        )

    return make


class FakeProvider(LLMProvider):
    """Returns canned replies in order; an Exception instance is raised instead."""

    def __init__(self, *replies):
        super().__init__(api_key="test", model="fake")
        self.replies = list(replies)
        self.calls = []

    async def run(self, query, **kwargs):
        self.calls.append((query, kwargs))
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if isinstance(reply, Exception):
            raise reply
        return LLMResponse(content=reply, model="fake")


@pytest.fixture
def fake_provider():
    return FakeProvider


# ---------- app ----------
@pytest.fixture
def shop():
    from ac_store import app as shop_module

    Base.metadata.drop_all(shop_module.engine)
    Base.metadata.create_all(shop_module.engine)
    shop_module.describer.clear()
    shop_module.app.config.update(TESTING=True)
    yield shop_module
    for visit_id in list(shop_module.visits._visits):
        shop_module.visits.close(visit_id)


@pytest.fixture
def client(shop):
    return shop.app.test_client()


@pytest.fixture
def signed_in(shop, client):
    """Register a shopper through the form and return their identity."""
    resp = client.post("/register", data={"email": "shopper@example.com", "password": "secret123", "name": "Shopper"})
    assert resp.status_code == 302
    identity = shop.identity_provider.load(1)
    assert isinstance(identity, Identity)
    return identity
