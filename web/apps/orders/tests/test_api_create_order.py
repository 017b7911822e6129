"""API tests for the create-order endpoint.

These tests exercise the orders HTTP API for the main scenarios: successful
creation, insufficient stock, unknown products, payload validation errors
and upstream failures. They run against the local catalog table and the
locmem mail backend.
"""
from decimal import Decimal

import httpx
import pytest
from django.core import mail
from rest_framework.test import APIClient

from apps.catalog.models import Product
from apps.orders.models import CustomerStatsModel, OrderModel

CREATE_URL = "/api/orders/"


@pytest.mark.django_db
def test_create_order_returns_order_and_payment_qr(api_client, order_payload, product, settings):
    """Scenario A: two units at 1500 -> 3000 + 540 tax + 200 shipping."""
    settings.ESEWA_ID = "9800000000"
    r = api_client.post(CREATE_URL, order_payload(quantity=2), format="json")
    assert r.status_code == 201, r.json()
    body = r.json()
    order = body["order"]

    assert order["status"] == "pending"
    assert order["orderNumber"].startswith("UJ")
    assert order["pricing"] == {
        "subtotal": "3000.00",
        "tax": "540.00",
        "shippingCost": "200.00",
        "discount": "0.00",
        "total": "3740.00",
    }
    assert order["statusHistory"] == []
    assert order["items"][0]["productSnapshot"]["sku"] == "RNG-GLD-001"
    assert order["items"][0]["productSnapshot"]["image"] == "https://cdn.example.com/rng-gld-001.jpg"
    assert order["payment"]["qrCode"].startswith("data:image/png;base64,")
    assert body["paymentQR"]["qrImageData"] == order["payment"]["qrCode"]
    assert body["paymentQR"]["paymentDetails"]["amount"] == "3740.00"
    assert body["paymentQR"]["paymentDetails"]["payment_uri"].startswith("esewa://pay?scd=9800000000")

    product.refresh_from_db()
    assert product.stock_quantity == 3
    assert product.stock_status == Product.StockStatus.LOW_STOCK


@pytest.mark.django_db
def test_create_sends_order_placed_notifications(api_client, order_payload, user):
    r = api_client.post(CREATE_URL, order_payload(), format="json")
    number = r.json()["order"]["orderNumber"]

    subjects = sorted(m.subject for m in mail.outbox)
    assert subjects == [f"New Order Received - {number}", f"Order Confirmation - {number}"]
    row = OrderModel.objects.get(order_number=number)
    assert row.email_sent is True
    assert row.whatsapp_sent is False  # Twilio not configured
    assert CustomerStatsModel.objects.get(user=user).total_orders == 1


@pytest.mark.django_db
def test_cod_order_has_no_payment_qr(api_client, order_payload):
    r = api_client.post(CREATE_URL, order_payload(payment={"method": "cod"}), format="json")
    assert r.status_code == 201
    assert r.json()["paymentQR"] is None


@pytest.mark.django_db
def test_customer_info_defaults_to_profile(api_client, order_payload):
    payload = order_payload()
    del payload["customerInfo"]
    r = api_client.post(CREATE_URL, payload, format="json")
    assert r.status_code == 201
    info = r.json()["order"]["customerInfo"]
    assert info["email"] == "asha@example.com"
    assert info["firstName"] == "Asha"
    assert info["phone"] == "+9779800000001"


@pytest.mark.django_db
def test_partial_customer_info_is_completed_from_profile(api_client, order_payload):
    payload = order_payload(customerInfo={"firstName": "Asha Devi"})
    r = api_client.post(CREATE_URL, payload, format="json")
    assert r.status_code == 201, r.json()
    info = r.json()["order"]["customerInfo"]
    assert info["firstName"] == "Asha Devi"
    assert info["lastName"] == "Rai"
    assert info["email"] == "asha@example.com"
    # the phone comes from the shipping address so status updates still reach WhatsApp
    assert info["phone"] == "+9779800000001"


@pytest.mark.django_db
def test_customer_email_required_when_profile_has_none(api_client, order_payload, user):
    user.email = ""
    user.save()
    payload = order_payload(customerInfo={"firstName": "Asha"})
    r = api_client.post(CREATE_URL, payload, format="json")
    assert r.status_code == 400
    assert r.json()["detail"] == "CUSTOMER_EMAIL_REQUIRED"


@pytest.mark.django_db
def test_supplied_pricing_is_trusted(api_client, order_payload):
    pricing = {"subtotal": "3000", "tax": "0", "shippingCost": "0", "discount": "0", "total": "3000"}
    r = api_client.post(CREATE_URL, order_payload(pricing=pricing), format="json")
    assert r.status_code == 201
    assert r.json()["order"]["pricing"]["total"] == "3000"


@pytest.mark.django_db
def test_pricing_tolerance_rejects_tampered_total(api_client, order_payload, product, settings):
    settings.ORDER_PRICING_TOLERANCE = "1.00"
    pricing = {"subtotal": "1", "total": "1"}
    r = api_client.post(CREATE_URL, order_payload(pricing=pricing), format="json")
    assert r.status_code == 400
    assert r.json()["detail"] == "PRICING_MISMATCH"
    product.refresh_from_db()
    assert product.stock_quantity == 5


@pytest.mark.django_db
def test_create_order_insufficient_stock(api_client, order_payload, product):
    """Returns 422 and leaves stock untouched when a line cannot be debited."""
    r = api_client.post(CREATE_URL, order_payload(quantity=6), format="json")
    assert r.status_code == 422
    assert r.json() == {"detail": "INSUFFICIENT_STOCK", "sku": "RNG-GLD-001"}
    product.refresh_from_db()
    assert product.stock_quantity == 5
    assert OrderModel.objects.count() == 0


@pytest.mark.django_db
def test_multi_line_shortage_restores_earlier_lines(api_client, order_payload, product):
    other = Product.objects.create(sku="CHN-SLV-002", name="Silver Chain", price=Decimal("800"), stock_quantity=1)
    items = [{"product": str(product.pk), "quantity": 2}, {"product": str(other.pk), "quantity": 2}]
    r = api_client.post(CREATE_URL, order_payload(items=items), format="json")
    assert r.status_code == 422
    assert r.json()["sku"] == "CHN-SLV-002"
    product.refresh_from_db()
    assert product.stock_quantity == 5


@pytest.mark.django_db
def test_unknown_product_is_404(api_client, order_payload):
    items = [{"product": "5b0c3a52-8d7e-4f0e-9f52-1b2c3d4e5f60", "quantity": 1}]
    r = api_client.post(CREATE_URL, order_payload(items=items), format="json")
    assert r.status_code == 404
    assert r.json()["detail"] == "PRODUCT_NOT_FOUND"


@pytest.mark.django_db
def test_snapshot_only_item_is_accepted(api_client, order_payload):
    items = [{"productSnapshot": {"name": "Archived Bangle", "sku": "OLD-1", "price": "900"}, "quantity": 1}]
    r = api_client.post(CREATE_URL, order_payload(items=items), format="json")
    assert r.status_code == 201
    item = r.json()["order"]["items"][0]
    assert item["productId"] is None
    assert item["productSnapshot"]["name"] == "Archived Bangle"


@pytest.mark.django_db
def test_empty_order_rejected(api_client, order_payload):
    r = api_client.post(CREATE_URL, order_payload(items=[]), format="json")
    assert r.status_code == 400
    assert r.json()["detail"] == "EMPTY_ORDER"


@pytest.mark.django_db
def test_create_order_validation_error(api_client, order_payload):
    """Returns 400 with field errors when the payload fails DTO validation."""
    payload = order_payload(quantity=0)
    payload["shippingAddress"]["email"] = "not-an-email"
    r = api_client.post(CREATE_URL, payload, format="json")
    assert r.status_code == 400
    body = r.json()
    assert body["detail"] == "VALIDATION_ERROR"
    fields = {e["field"] for e in body["errors"]}
    assert "items.0.quantity" in fields
    assert "shippingAddress.email" in fields


@pytest.mark.django_db
def test_create_requires_authentication(order_payload):
    r = APIClient().post(CREATE_URL, order_payload(), format="json")
    assert r.status_code == 401


@pytest.mark.django_db
def test_catalog_unreachable_is_503(api_client, order_payload, settings, monkeypatch):
    settings.USE_HTTP_ADAPTERS = True
    settings.HTTP_RETRY_MAX = 1
    from apps.orders.http_adapters import _catalog_cb
    _catalog_cb.on_success()

    def fake_get(self, url, headers=None, **kw):
        raise httpx.ConnectError("refused")

    monkeypatch.setattr(httpx.Client, "get", fake_get, raising=True)
    try:
        r = api_client.post(CREATE_URL, order_payload(), format="json")
    finally:
        _catalog_cb.on_success()
    assert r.status_code == 503
    assert r.json()["detail"] == "UPSTREAM_UNAVAILABLE"
