from decimal import Decimal

import pytest
from django.contrib.auth import get_user_model
from rest_framework.test import APIClient

from apps.catalog.models import Product

CREATE_URL = "/api/orders/"


@pytest.fixture
def user(db):
    return get_user_model().objects.create_user(
        username="asha", email="asha@example.com", password="x", first_name="Asha", last_name="Rai"
    )


@pytest.fixture
def other_user(db):
    return get_user_model().objects.create_user(username="bikash", email="bikash@example.com", password="x")


@pytest.fixture
def admin_user(db):
    return get_user_model().objects.create_user(username="admin", email="admin@example.com", password="x", is_staff=True)


@pytest.fixture
def api_client(user):
    c = APIClient()
    c.force_authenticate(user=user)
    return c


@pytest.fixture
def other_client(other_user):
    c = APIClient()
    c.force_authenticate(user=other_user)
    return c


@pytest.fixture
def admin_client(admin_user):
    c = APIClient()
    c.force_authenticate(user=admin_user)
    return c


@pytest.fixture
def product(db):
    return Product.objects.create(
        sku="RNG-GLD-001",
        name="Gold Ring",
        price=Decimal("1500.00"),
        images=["https://cdn.example.com/rng-gld-001.jpg"],
        specifications={"metal": "gold", "purity": "22K"},
        stock_quantity=5,
    )


def address(**overrides):
    data = {
        "firstName": "Asha",
        "lastName": "Rai",
        "email": "asha@example.com",
        "phone": "+9779800000001",
        "street": "12 Durbar Marg",
        "city": "Kathmandu",
        "state": "Bagmati",
        "zipCode": "44600",
    }
    data.update(overrides)
    return data


@pytest.fixture
def order_payload(product):
    def build(quantity=2, **overrides):
        payload = {
            "items": [{"product": str(product.pk), "quantity": quantity}],
            "customerInfo": {
                "email": "asha@example.com",
                "firstName": "Asha",
                "lastName": "Rai",
                "phone": "+9779800000001",
            },
            "shippingAddress": address(),
            "payment": {"method": "qr-code"},
        }
        payload.update(overrides)
        return payload

    return build


@pytest.fixture
def place_order(api_client, order_payload):
    def place(quantity=2, **overrides):
        r = api_client.post(CREATE_URL, order_payload(quantity, **overrides), format="json")
        assert r.status_code == 201, r.json()
        return r.json()["order"]

    return place
