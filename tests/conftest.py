import os

# Settings are read at import time
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.pop("FEDAPAY_WEBHOOK_SECRET", None)

import itertools

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from freshmarket.database import Base, get_db, make_engine
from freshmarket.errors import GatewayTimeout
from freshmarket.main import app
from freshmarket.models.product import Product
from freshmarket.models.users import User
from freshmarket.utils.fedapay_client import get_payment_gateway
from freshmarket.utils.hashing import get_password_hash
from freshmarket.utils.tokenJWT import token_for

PASSWORD = "secret123"
# bcrypt is slow on purpose; hash once for every fixture account
PASSWORD_HASH = get_password_hash(PASSWORD)

_counter = itertools.count(1)


class FakeGateway:
    """Stands in for FedaPayClient; records calls, answers from ``statuses``."""

    def __init__(self):
        self.created = []
        self.statuses = {}
        self.metadata = {}
        self.lookups = []
        self.timeout = False
        self._ids = itertools.count(1000)

    async def create_transaction(self, amount, phone, order_id, mode):
        txn_id = str(next(self._ids))
        self.created.append({"id": txn_id, "amount": amount, "phone": phone, "order_id": order_id, "mode": mode})
        self.statuses[txn_id] = "pending"
        self.metadata[txn_id] = {"order_id": order_id}
        return {"id": txn_id, "reference": f"trx_{txn_id}", "status": "pending", "payment_url": None}

    async def get_transaction(self, transaction_id):
        self.lookups.append(transaction_id)
        if self.timeout:
            raise GatewayTimeout()
        return {
            "id": transaction_id,
            "reference": f"trx_{transaction_id}",
            "status": self.statuses.get(transaction_id, "pending"),
            "custom_metadata": self.metadata.get(transaction_id, {}),
        }


@pytest.fixture
def engine(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'test.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def client(session_factory, gateway):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db):
    def _make(role="acheteur", **kwargs):
        n = next(_counter)
        user = User(
            name=kwargs.pop("name", f"User {n}"),
            phone=kwargs.pop("phone", f"+2299700{n:04d}"),
            email=kwargs.pop("email", f"user{n}@example.com"),
            password_hash=PASSWORD_HASH,
            role=role,
            city=kwargs.pop("city", "Cotonou"),
            district=kwargs.pop("district", "Akpakpa"),
            **kwargs,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user
    return _make


@pytest.fixture
def buyer(make_user):
    return make_user("acheteur", name="Awa")


@pytest.fixture
def supplier(make_user):
    return make_user("fournisseur", name="Koffi", product_type="legumes")


@pytest.fixture
def make_product(db):
    def _make(supplier, **kwargs):
        product = Product(
            supplier_id=supplier.id,
            name=kwargs.pop("name", "Tomates"),
            category=kwargs.pop("category", "tomate"),
            type=kwargs.pop("type", "legumes"),
            price=kwargs.pop("price", 500),
            unit=kwargs.pop("unit", "kg"),
            quantity=kwargs.pop("quantity", 10),
            available=kwargs.pop("available", True),
            photos=kwargs.pop("photos", []),
            city=kwargs.pop("city", "Cotonou"),
            **kwargs,
        )
        db.add(product)
        db.commit()
        db.refresh(product)
        return product
    return _make


@pytest.fixture
def auth():
    def _headers(user):
        return {"Authorization": f"Bearer {token_for(user)}"}
    return _headers


@pytest.fixture
def stock_of(db):
    def _stock(product_id):
        db.expire_all()
        return db.get(Product, product_id).quantity
    return _stock
