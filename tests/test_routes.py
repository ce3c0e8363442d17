"""HTTP surface: status codes and response envelopes."""

from decimal import Decimal

from shopflow.models import LoyaltyPointTransaction, Product


def sale_payload(user, product, quantity=2, paid="22.00", **extra):
    payload = {
        "user_id": user.id,
        "items": [{"product_id": product.id, "quantity": quantity, "price": str(product.price)}],
        "payment_method": "CASH",
        "paid_amount": paid,
    }
    payload.update(extra)
    return payload


# =============================================================================
# Sales
# =============================================================================

def test_create_sale(client, db_session, store_config, cashier, make_product):
    product = make_product(stock=10, price="10.00")

    response = client.post('/api/sales', json=sale_payload(cashier, product))

    assert response.status_code == 201
    data = response.json["data"]
    assert response.json["success"] is True
    assert data["invoice_number"] == "INV-000001"
    assert data["total"] == "22.00"
    assert data["items"][0]["product"]["sku"] == product.sku
    assert db_session.get(Product, product.id).stock == 8


def test_create_sale_invalid_payload(client, db_session, store_config):
    response = client.post('/api/sales', json={"items": "nope"})

    assert response.status_code == 400
    assert response.json["success"] is False
    assert response.json["error"]["kind"] == "VALIDATION_ERROR"


def test_create_sale_rejects_float_quantity(client, db_session, store_config, cashier, make_product):
    product = make_product(stock=10)
    payload = sale_payload(cashier, product)
    payload["items"][0]["quantity"] = 1.5

    response = client.post('/api/sales', json=payload)

    assert response.status_code == 400


def test_create_sale_insufficient_stock(client, db_session, store_config, cashier, make_product):
    product = make_product(stock=1)

    response = client.post('/api/sales', json=sale_payload(cashier, product, quantity=5, paid="100"))

    assert response.status_code == 409
    assert response.json["error"]["kind"] == "INSUFFICIENT_STOCK"


def test_create_sale_unknown_customer(client, db_session, store_config, cashier, make_product):
    product = make_product(stock=5)

    response = client.post('/api/sales', json=sale_payload(cashier, product, customer_id=9999))

    assert response.status_code == 404
    assert response.json["error"]["kind"] == "CUSTOMER_NOT_FOUND"


def test_create_sale_without_store_config(client, db_session, cashier, make_product):
    product = make_product(stock=5)

    response = client.post('/api/sales', json=sale_payload(cashier, product))

    assert response.status_code == 500
    assert response.json["error"]["kind"] == "CONFIGURATION_MISSING"


def test_cancel_then_refund(client, db_session, store_config, cashier, make_product):
    product = make_product(stock=10, price="10.00")
    sale_id = client.post('/api/sales', json=sale_payload(cashier, product)).json["data"]["id"]

    cancelled = client.post(f'/api/sales/{sale_id}/cancel')
    again = client.post(f'/api/sales/{sale_id}/cancel')
    refund = client.post(f'/api/sales/{sale_id}/refund')

    assert cancelled.status_code == 200
    assert cancelled.json["data"]["status"] == "CANCELLED"
    assert again.status_code == 409
    assert again.json["error"]["kind"] == "ALREADY_CANCELLED"
    assert refund.status_code == 409
    assert refund.json["error"]["kind"] == "INVALID_STATE_FOR_REFUND"
    assert db_session.get(Product, product.id).stock == 10


def test_get_and_list_sales(client, db_session, store_config, cashier, make_product):
    product = make_product(stock=10, price="10.00")
    sale_id = client.post('/api/sales', json=sale_payload(cashier, product, quantity=1, paid="11")).json["data"]["id"]

    single = client.get(f'/api/sales/{sale_id}')
    listing = client.get('/api/sales?status=completed')
    missing = client.get('/api/sales/9999')

    assert single.status_code == 200
    assert single.json["data"]["id"] == sale_id
    assert listing.json["data"]["pagination"]["total"] == 1
    assert missing.status_code == 404
    assert missing.json["error"]["kind"] == "SALE_NOT_FOUND"


# =============================================================================
# Transfers
# =============================================================================

def test_transfer_lifecycle(client, db_session, stores, make_product):
    main, branch = stores
    product = make_product(stock=5, store_id=main.id)

    created = client.post('/api/inventory-transfers', json={
        "from_store_id": main.id,
        "to_store_id": branch.id,
        "product_id": product.id,
        "quantity": 3,
    })
    transfer_id = created.json["data"]["id"]
    shipped = client.post(f'/api/inventory-transfers/{transfer_id}/ship')
    completed = client.post(f'/api/inventory-transfers/{transfer_id}/complete')
    cancel = client.post(f'/api/inventory-transfers/{transfer_id}/cancel')

    assert created.status_code == 201
    assert created.json["data"]["status"] == "PENDING"
    assert shipped.json["data"]["status"] == "IN_TRANSIT"
    assert completed.json["data"]["status"] == "COMPLETED"
    assert cancel.status_code == 409
    assert cancel.json["error"]["kind"] == "CANNOT_CANCEL_COMPLETED"

    moved = db_session.get(Product, product.id)
    assert moved.stock == 2
    assert moved.store_id == branch.id


def test_transfer_same_store(client, db_session, stores, make_product):
    main, _ = stores
    product = make_product(stock=5, store_id=main.id)

    response = client.post('/api/inventory-transfers', json={
        "from_store_id": main.id,
        "to_store_id": main.id,
        "product_id": product.id,
        "quantity": 1,
    })

    assert response.status_code == 409
    assert response.json["error"]["kind"] == "SAME_STORE"


def test_list_transfers(client, db_session, stores, make_product):
    main, branch = stores
    product = make_product(stock=5, store_id=main.id)
    client.post('/api/inventory-transfers', json={
        "from_store_id": main.id, "to_store_id": branch.id, "product_id": product.id, "quantity": 1,
    })

    response = client.get(f'/api/inventory-transfers?from_store_id={main.id}')

    assert response.status_code == 200
    assert response.json["data"]["pagination"]["total"] == 1


# =============================================================================
# Loyalty
# =============================================================================

def test_loyalty_config_round_trip(client, db_session):
    missing = client.get('/api/loyalty/config')
    updated = client.put('/api/loyalty/config', json={"points_per_dollar": "2", "max_points_per_purchase": 15})
    current = client.get('/api/loyalty/config')

    assert missing.status_code == 500
    assert missing.json["error"]["kind"] == "CONFIGURATION_MISSING"
    assert updated.status_code == 200
    assert current.json["data"]["points_per_dollar"] == "2"
    assert current.json["data"]["max_points_per_purchase"] == 15


def test_award_and_redeem_points(client, db_session, store_config, cashier, customer, make_product, loyalty_config):
    product = make_product(stock=10, price="10.00")
    sale = client.post('/api/sales', json=sale_payload(cashier, product, customer_id=customer.id)).json["data"]

    award = client.post('/api/loyalty/points/award', json={
        "customer_id": customer.id, "purchase_amount": sale["total"], "sale_id": sale["id"],
    })
    duplicate = client.post('/api/loyalty/points/award', json={
        "customer_id": customer.id, "purchase_amount": sale["total"], "sale_id": sale["id"],
    })
    redeem = client.post('/api/loyalty/points/redeem', json={"customer_id": customer.id, "points": 10})
    balance = client.get(f'/api/loyalty/points/{customer.id}')

    assert award.json["data"] == {"points_awarded": 22}
    assert duplicate.status_code == 409
    assert duplicate.json["error"]["kind"] == "DUPLICATE_AWARD"
    assert redeem.json["data"] == {"points_redeemed": 10, "value": "0.10"}
    assert balance.json["data"]["total_points"] == 12
    assert balance.json["data"]["last_activity"].endswith("Z")
    assert db_session.query(LoyaltyPointTransaction).count() == 2


def test_award_missing_fields(client, db_session):
    response = client.post('/api/loyalty/points/award', json={"customer_id": 1})

    assert response.status_code == 400
    assert set(response.json["error"]["details"]["fields"]) == {"purchase_amount", "sale_id"}


def test_points_for_unknown_customer(client, db_session):
    response = client.get('/api/loyalty/points/9999')

    assert response.status_code == 404


# =============================================================================
# Store configuration
# =============================================================================

def test_store_config_endpoints(client, db_session, store_config):
    first = client.post('/api/store-config/next-invoice-number')
    update = client.put('/api/store-config', json={"invoice_prefix": "R-", "tax_rate": "0.16"})
    second = client.post('/api/store-config/next-invoice-number')
    current = client.get('/api/store-config')

    assert first.json["data"] == {"invoice_number": "INV-000001"}
    assert update.status_code == 200
    assert second.json["data"] == {"invoice_number": "R-000002"}
    assert current.json["data"]["tax_rate"] == "0.16"
    assert current.json["data"]["invoice_number"] == 2


def test_store_config_counter_is_not_writable(client, db_session, store_config):
    response = client.put('/api/store-config', json={"invoice_number": 100})

    assert response.status_code == 400
    assert client.get('/api/store-config').json["data"]["invoice_number"] == 0


# =============================================================================
# Products / system
# =============================================================================

def test_low_stock(client, db_session, make_product):
    low = make_product(stock=1, min_stock=3)
    make_product(stock=10, min_stock=3)

    response = client.get('/api/products/low-stock')
    bad = client.get('/api/products/low-stock?threshold=-1')

    assert response.status_code == 200
    assert [p["id"] for p in response.json["data"]["products"]] == [low.id]
    assert bad.status_code == 400


def test_product_stock(client, db_session, make_product):
    product = make_product(stock=7)

    assert client.get(f'/api/products/{product.id}/stock').json["data"]["stock"] == 7
    assert client.get('/api/products/9999/stock').status_code == 404


def test_adjust_inventory(client, db_session, make_product):
    product = make_product(stock=2)

    response = client.put(f'/api/products/{product.id}/inventory', json={"stock": 15, "min_stock": 4})
    negative = client.put(f'/api/products/{product.id}/inventory', json={"stock": -1})
    missing = client.put('/api/products/9999/inventory', json={"stock": 1})

    assert response.status_code == 200
    assert response.json["data"]["stock"] == 15
    assert response.json["data"]["min_stock"] == 4
    assert negative.status_code == 400
    assert missing.status_code == 404
    assert client.get(f'/api/products/{product.id}/stock').json["data"]["stock"] == 15


def test_health(client, db_session):
    response = client.get('/health')

    assert response.status_code == 200
    assert response.json["checks"]["database"]["status"] == "healthy"
