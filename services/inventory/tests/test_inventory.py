from decimal import Decimal

from repo import INSUFFICIENT, NOT_FOUND, OK


def seed(catalog, qty=8, sku="RNG-GLD-001"):
    return catalog.upsert(
        sku=sku,
        name="Gold Ring",
        price=Decimal("1500.00"),
        stock_quantity=qty,
        images=["https://cdn.example.com/ring.jpg"],
        specifications={"metal": "gold"},
    )


def test_upsert_sets_status_and_replaces_by_sku(catalog):
    pid = seed(catalog, qty=3)
    assert catalog.get(pid)["stock_status"] == "low-stock"
    assert seed(catalog, qty=20) == pid
    assert catalog.get(pid)["stock_quantity"] == 20
    assert catalog.get(pid)["stock_status"] == "in-stock"


def test_decrement_outcomes(catalog):
    pid = seed(catalog, qty=2)
    assert catalog.decrement(pid, 3) == INSUFFICIENT
    assert catalog.get(pid)["stock_quantity"] == 2
    assert catalog.decrement(pid, 2) == OK
    assert catalog.get(pid)["stock_status"] == "out-of-stock"
    assert catalog.decrement("missing", 1) == NOT_FOUND


def test_get_product_endpoints(api, catalog):
    pid = seed(catalog)
    r = api.get(f"/products/{pid}")
    assert r.status_code == 200
    body = r.json()
    assert body["sku"] == "RNG-GLD-001"
    assert Decimal(str(body["price"])) == Decimal("1500")
    assert body["images"] == ["https://cdn.example.com/ring.jpg"]

    assert api.get("/products/by-sku/RNG-GLD-001").json()["id"] == pid
    assert api.get("/products/by-sku/NOPE").status_code == 404
    assert api.get("/products/missing").json() == {"detail": "PRODUCT_NOT_FOUND"}


def test_decrement_endpoint(api, catalog):
    pid = seed(catalog, qty=2)
    r = api.post(f"/products/{pid}/decrement", json={"quantity": 2}, headers={"X-Request-ID": "rid-1"})
    assert r.status_code == 200
    assert r.json() == {"ok": True, "product_id": pid, "quantity": 2}
    assert r.headers["X-Request-ID"] == "rid-1"

    r = api.post(f"/products/{pid}/decrement", json={"quantity": 1})
    assert r.status_code == 409
    assert r.json()["detail"] == "INSUFFICIENT_STOCK"
    assert api.post("/products/missing/decrement", json={"quantity": 1}).status_code == 404


def test_increment_endpoint(api, catalog):
    pid = seed(catalog, qty=0)
    assert api.post(f"/products/{pid}/increment", json={"quantity": 4}).status_code == 200
    assert catalog.get(pid)["stock_quantity"] == 4
    assert catalog.get(pid)["stock_status"] == "low-stock"
    assert api.post("/products/missing/increment", json={"quantity": 1}).status_code == 404


def test_quantity_must_be_positive(api, catalog):
    pid = seed(catalog)
    assert api.post(f"/products/{pid}/decrement", json={"quantity": 0}).status_code == 422


def test_health(api):
    assert api.get("/health").json() == {"ok": True}
