# tests/conftest.py
import os
import tempfile
from decimal import Decimal

# konfiguracja musi byc ustawiona zanim storefront.utils.settings zostanie zaimportowany
_DB_DIR = tempfile.mkdtemp(prefix="storefront-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_DB_DIR, 'test.db')}"
os.environ["CELERY_TASK_ALWAYS_EAGER"] = "true"
os.environ["JWT_SECRET"] = "storefront-test-secret-0123456789abcdef"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test"
os.environ["ADMIN_EMAIL"] = ""

import pytest
from fastapi.testclient import TestClient

import storefront.data.models  # noqa: F401
from storefront.api import deps
from storefront.data.database import Base, SessionLocal, engine
from storefront.data.models import ProductModel, UserModel
from storefront.main import app
from tests.helpers import FakeIdempotencyStore, FakeNotifier, FakePaymentClient


@pytest.fixture(autouse=True)
def tables():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def seed(db):
    db.add_all(
        [
            UserModel(id="u1", email="alice@example.com", name="Alice"),
            UserModel(id="u2", email="bob@example.com", name="Bob"),
            UserModel(id="admin", email="admin@example.com", name="Admin", role="admin"),
            ProductModel(id="prod-1", name="Linen Shirt", price=Decimal("10.00"), stock=5, image_url="/img/1.jpg"),
            ProductModel(id="prod-2", name="Socks", price=Decimal("2.50"), stock=100),
            ProductModel(id="prod-3", name="Sold Out Hat", price=Decimal("15.00"), stock=0),
        ]
    )
    db.commit()
    return db


@pytest.fixture
def payment_client():
    return FakePaymentClient()


@pytest.fixture
def idempotency_store():
    return FakeIdempotencyStore()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def client(seed, payment_client, idempotency_store, notifier):
    app.dependency_overrides[deps.get_payment_client] = lambda: payment_client
    app.dependency_overrides[deps.get_idempotency_store] = lambda: idempotency_store
    app.dependency_overrides[deps.get_notification_service] = lambda: notifier
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
