import os

# Tests always run against in-memory repositories
os.environ.pop("DATABASE_URL", None)

import pytest
from fastapi.testclient import TestClient

from auth import issue_token
from main import app, install_services
from schemas import Product, new_id
from services import CartEngine


@pytest.fixture
def test_client():
    """TestClient over an app whose repositories are fresh for every test."""
    install_services(app, None)
    with TestClient(app) as client:
        yield client


@pytest.fixture
def cart_engine(test_client) -> CartEngine:
    return app.state.carts


@pytest.fixture
def product_factory(test_client):
    def make(name="Classic Tee", price=19.99, **extra):
        return app.state.catalog.create_product(Product(name=name, price=price, **extra))
    return make


@pytest.fixture
def user_id() -> str:
    return new_id()


@pytest.fixture
def user_headers(user_id):
    return {"Authorization": f"Bearer {issue_token(user_id, False)}"}


@pytest.fixture
def admin_headers():
    return {"Authorization": f"Bearer {issue_token(new_id(), True)}"}
