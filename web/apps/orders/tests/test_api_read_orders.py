from uuid import uuid4

import pytest

DETAIL_URL = "/api/orders/{oid}/"
LIST_URL = "/api/orders/"


@pytest.mark.django_db
def test_get_order_by_id_returns_200_and_payload(api_client, place_order):
    order = place_order()
    r = api_client.get(DETAIL_URL.format(oid=order["id"]))
    assert r.status_code == 200
    body = r.json()
    assert body["id"] == order["id"]
    assert body["orderNumber"] == order["orderNumber"]
    assert body["status"] == "pending"
    assert body["pricing"]["total"] == "3740.00"
    assert body["notifications"]["emailSent"] is True
    assert body["shippingAddress"]["zipCode"] == "44600"


@pytest.mark.django_db
def test_get_order_not_found_returns_404(api_client):
    r = api_client.get(DETAIL_URL.format(oid=str(uuid4())))
    assert r.status_code == 404
    assert r.json()["detail"] == "ORDER_NOT_FOUND"


@pytest.mark.django_db
def test_other_customers_order_is_hidden(other_client, place_order):
    order = place_order()
    r = other_client.get(DETAIL_URL.format(oid=order["id"]))
    assert r.status_code == 404


@pytest.mark.django_db
def test_list_orders_returns_own_orders_paginated(api_client, other_client, place_order, order_payload):
    place_order(quantity=1)
    place_order(quantity=1)
    other_client.post(LIST_URL, order_payload(quantity=1), format="json")

    r = api_client.get(LIST_URL, {"limit": 1})
    assert r.status_code == 200
    body = r.json()
    assert body["count"] == 2
    assert body["page"] == 1 and body["limit"] == 1
    assert len(body["results"]) == 1
    assert {"id", "orderNumber", "status", "pricing", "items"} <= set(body["results"][0])


@pytest.mark.django_db
def test_list_filters_by_status(api_client, place_order):
    order = place_order(quantity=1)
    place_order(quantity=1)
    api_client.post(f"/api/orders/{order['id']}/cancel/", {}, format="json")

    body = api_client.get(LIST_URL, {"status": "cancelled"}).json()
    assert body["count"] == 1
    assert body["results"][0]["id"] == order["id"]


@pytest.mark.django_db
def test_list_rejects_bad_query(api_client):
    r = api_client.get(LIST_URL, {"limit": 1000})
    assert r.status_code == 400
    assert r.json()["errors"][0]["field"] == "limit"
