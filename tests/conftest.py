from datetime import datetime, timedelta
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from main import app
from core import clock as core_clock
from core import config as core_config
from core.clock import FrozenClock
from core.db import Base, build_engine, get_db
from models.category import Category
from models.discount import Discount
from models.discount_code import DiscountCode
from models.enums import PlanType, Role
from models.product import Product, ProductVariant
from models.shop import Shop
from models.system_limit import SystemLimit
from models.user import User
from security import jwt as jwt_utils
from services import notifications

NOW = datetime(2026, 3, 15, 12, 0, 0)


@pytest.fixture(scope="session", autouse=True)
def test_settings():
    core_config.settings.JWT_SECRET = "test-secret"
    core_config.settings.TESTING = True
    core_config.settings.NOTIFICATIONS_ASYNC = False
    yield


@pytest.fixture(autouse=True)
def frozen_clock():
    """Pin "now" for every window check."""
    frozen = FrozenClock(NOW)
    previous = core_clock.set_clock(frozen)
    yield frozen
    core_clock.set_clock(previous)


@pytest.fixture(autouse=True)
def sent_notifications(monkeypatch):
    sent = []

    def _fake_notify(shop_id, user_id, title, message, type):
        sent.append({"shop_id": shop_id, "user_id": user_id, "title": title, "message": message, "type": type})

    monkeypatch.setattr(notifications, "notify", _fake_notify)
    return sent


@pytest.fixture()
def db():
    """Fresh in-memory database, also served to the app through get_db."""
    engine = build_engine("sqlite:///:memory:")
    Base.metadata.create_all(bind=engine)
    TestingSessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)
    session = TestingSessionLocal()

    def _get_db():
        yield session

    app.dependency_overrides[get_db] = _get_db
    try:
        yield session
    finally:
        session.close()
        app.dependency_overrides.clear()
        engine.dispose()


@pytest.fixture()
def client(db):
    with TestClient(app) as c:
        yield c


@pytest.fixture()
def shop(db):
    shop = Shop(name="Test Shop", domain="test.example.com", plan_type=PlanType.STANDARD.value, is_active=True)
    db.add(shop)
    db.commit()
    db.refresh(shop)
    return shop


def _user(db, shop, name, role):
    user = User(shop_id=shop.id if shop else None, name=name, email=f"{name.lower()}@example.com", role=role.value)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture()
def customer(db, shop):
    return _user(db, shop, "Customer", Role.CUSTOMER)


@pytest.fixture()
def other_customer(db, shop):
    return _user(db, shop, "Other", Role.CUSTOMER)


@pytest.fixture()
def staff(db, shop):
    return _user(db, shop, "Staff", Role.SHOP_STAFF)


@pytest.fixture()
def superadmin(db):
    return _user(db, None, "Root", Role.SUPER_ADMIN)


@pytest.fixture()
def catalog(db, shop):
    """Electronics laptop without variants, Clothing t-shirt with two variants."""
    electronics = Category(shop_id=shop.id, name="Electronics")
    clothing = Category(shop_id=shop.id, name="Clothing")
    laptop = Product(shop_id=shop.id, name="Laptop", price=100, cost=70, inventory=10, tva=0, categories=[electronics])
    shirt = Product(shop_id=shop.id, name="T-Shirt", price=20, inventory=0, tva=20, categories=[clothing])
    red = ProductVariant(product=shirt, name="Red", sku="TS-RED", price=20, inventory=5, options={"color": "red"})
    blue = ProductVariant(product=shirt, name="Blue", sku="TS-BLUE", price=20, inventory=5, options={"color": "blue"})
    db.add_all([electronics, clothing, laptop, shirt, red, blue])
    db.commit()
    return SimpleNamespace(
        electronics=electronics, clothing=clothing, laptop=laptop, shirt=shirt, red=red, blue=blue,
    )


@pytest.fixture()
def make_discount(db, shop):
    def _make(percentage, start=None, end=None, **fields):
        discount = Discount(
            shop_id=shop.id,
            percentage=percentage,
            enabled=fields.pop("enabled", True),
            start_date=start or NOW - timedelta(days=1),
            end_date=end or NOW + timedelta(days=7),
            **fields,
        )
        db.add(discount)
        db.commit()
        db.refresh(discount)
        return discount
    return _make


@pytest.fixture()
def make_code(db, shop):
    def _make(code, percentage=10, start=None, end=None, **fields):
        discount_code = DiscountCode(
            shop_id=shop.id,
            code=code,
            percentage=percentage,
            is_active=fields.pop("is_active", True),
            start_date=start or NOW - timedelta(days=1),
            end_date=end or NOW + timedelta(days=7),
            used_count=fields.pop("used_count", 0),
            **fields,
        )
        db.add(discount_code)
        db.commit()
        db.refresh(discount_code)
        return discount_code
    return _make


@pytest.fixture()
def make_limit(db):
    def _make(code_name, value, plan_type=None, category="DISCOUNTS"):
        row = SystemLimit(code_name=code_name, name=code_name, value=value, category=category, plan_type=plan_type)
        db.add(row)
        db.commit()
        return row
    return _make


def headers_for(user, plan_type=PlanType.STANDARD.value):
    token = jwt_utils.create_principal_token(user.id, user.shop_id, user.role, plan_type)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def customer_headers(customer):
    return headers_for(customer)


@pytest.fixture()
def staff_headers(staff):
    return headers_for(staff)


@pytest.fixture()
def superadmin_headers(superadmin):
    return headers_for(superadmin, plan_type=None)
