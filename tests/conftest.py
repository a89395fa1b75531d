import os

os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.pop("DATABASE_URL", None)

import mongomock
import pytest
from fastapi.testclient import TestClient

from auth import AdminGate, make_password_context
from catalog import Catalog
from database import ensure_indexes, get_db
from main import app
from orders import OrderEngine
from schemas import Role

ADDRESS = {
    "name": "Asha Rao",
    "phone": "9800000000",
    "email": "asha@example.com",
    "address": "12 Park Street",
    "city": "Pune",
    "state": "Maharashtra",
    "pincode": "411001",
}


@pytest.fixture
def mongo_db():
    database = mongomock.MongoClient()["uniform_store_test"]
    ensure_indexes(database)
    return database


@pytest.fixture
def catalog(mongo_db):
    return Catalog(mongo_db, low_stock_threshold=5)


@pytest.fixture
def engine(mongo_db, catalog):
    return OrderEngine(mongo_db, catalog)


@pytest.fixture
def gate(mongo_db):
    return AdminGate(mongo_db, password_context=make_password_context(4))


@pytest.fixture
def school(catalog):
    return catalog.create_school({"name": "St. Mary's School", "category": "secondary"})


@pytest.fixture
def make_product(catalog):
    counter = {"n": 0}

    def factory(stock=None, price=500.0, **fields):
        counter["n"] += 1
        data = {
            "name": f"Shirt {counter['n']}",
            "sku": f"shirt-{counter['n']}",
            "category": "uniforms",
            "price": price,
            "images": [f"https://img.example.com/shirt-{counter['n']}.jpg"],
            "sizes": ["S", "M", "L"],
            "stock": stock if stock is not None else [{"size": "M", "quantity": 5}],
        }
        data.update(fields)
        return catalog.create_product(data)

    return factory


@pytest.fixture
def super_admin(gate):
    return gate.register_admin("Root", "root@example.com", "secret123", Role.SUPER_ADMIN)


@pytest.fixture
def client(mongo_db):
    app.dependency_overrides[get_db] = lambda: mongo_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers(gate, super_admin):
    token = gate.login("root@example.com", "secret123")["token"]
    return {"Authorization": f"Bearer {token}"}
