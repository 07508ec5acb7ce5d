"""
Pytest configuration.

Settings are read at import time, so the environment is prepared before
anything from `app` is imported. Every test gets its own in-memory SQLite
database and its own FakeGateway.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("PAYMENT_GATEWAY", "fake")

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.main import app
from app.database import Base, get_db
from app.models.farm import Farm
from app.models.inventory import Inventory
from app.models.products import Product
from app.payments.fake import FakeGateway
from app.payments.gateway import get_payment_gateway


@pytest.fixture()
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)

    yield sessionmaker(bind=engine, autocommit=False, autoflush=False)

    engine.dispose()


@pytest.fixture()
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture()
def gateway():
    return FakeGateway(fee="5.00")


@pytest.fixture()
def client(session_factory, gateway):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payment_gateway] = lambda: gateway

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture()
def farm(db_session):
    farm = Farm(id=1, name="Laguna Coconut Farm", region="Laguna", paypal_email="farm@example.com")
    db_session.add(farm)
    db_session.commit()
    return farm


def add_product(db_session, farm_id, name, price, amount_to_sell=100):
    inventory = Inventory(farm_id=farm_id, name=name, stock_qty=500, amount_per_unit=Decimal("1.00"), unit="pc")
    db_session.add(inventory)
    db_session.flush()

    product = Product(
        farm_id=farm_id,
        inventory_id=inventory.id,
        description=f"Fresh {name.lower()}",
        price=Decimal(price),
        amount_to_sell=amount_to_sell,
        total_sales=0,
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture()
def coconut(db_session, farm):
    return add_product(db_session, farm.id, "Young Coconut", "75.00")


@pytest.fixture()
def copra(db_session, farm):
    return add_product(db_session, farm.id, "Copra", "12.50")
