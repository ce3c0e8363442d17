"""Sale creation, totals and the COMPLETED -> CANCELLED/REFUNDED lifecycle."""

from decimal import Decimal

import pytest

from shopflow.errors import (
    AlreadyCancelled,
    AlreadyRefunded,
    ConfigurationMissing,
    CustomerNotFound,
    InsufficientPayment,
    InsufficientStock,
    InvalidStateForRefund,
    ProductInactive,
    ProductNotFound,
    UserNotFound,
    ValidationError,
)
from shopflow.models import Sale, SaleItem, StoreConfig
from shopflow.money import quantize_money
from shopflow.services import sales_service
from shopflow.services.sales_service import SaleItemRequest, SaleRequest


def item(product, quantity=1, price=None, discount="0"):
    return SaleItemRequest(
        product_id=product.id,
        quantity=quantity,
        price=Decimal(price) if price is not None else product.price,
        discount=Decimal(discount),
    )


def sale_request(user, *items, paid="1000.00", method="CASH", **kwargs):
    return SaleRequest(
        user_id=user.id,
        items=tuple(items),
        payment_method=method,
        paid_amount=Decimal(paid),
        **kwargs,
    )


def counter(db_session):
    return db_session.query(StoreConfig.invoice_number).scalar()


# =============================================================================
# Totals
# =============================================================================

def test_compute_totals_basic():
    items = [SaleItemRequest(product_id=1, quantity=2, price=Decimal("10.00"))]

    totals = sales_service.compute_totals(items, Decimal("0"), Decimal("0.1"))

    assert totals.subtotal == Decimal("20.00")
    assert totals.tax == Decimal("2.00")
    assert totals.total == Decimal("22.00")


def test_compute_totals_with_discounts():
    items = [
        SaleItemRequest(product_id=1, quantity=3, price=Decimal("4.99"), discount=Decimal("0.97")),
        SaleItemRequest(product_id=2, quantity=1, price=Decimal("12.50")),
    ]

    totals = sales_service.compute_totals(items, Decimal("1.50"), Decimal("0.0825"))

    assert totals.item_subtotals == (Decimal("14.00"), Decimal("12.50"))
    assert totals.subtotal == Decimal("26.50")
    assert totals.tax == Decimal("2.06")
    assert totals.total == Decimal("27.06")


def test_compute_totals_discount_larger_than_subtotal():
    items = [SaleItemRequest(product_id=1, quantity=1, price=Decimal("5.00"))]

    with pytest.raises(ValidationError):
        sales_service.compute_totals(items, Decimal("6.00"), Decimal("0"))


@pytest.mark.parametrize("rate", ["0", "0.07", "0.1", "0.16", "0.2125"])
@pytest.mark.parametrize("price,quantity,discount", [
    ("0.99", 3, "0"),
    ("19.95", 2, "1.10"),
    ("333.33", 1, "0.01"),
])
def test_total_matches_rounded_gross(rate, price, quantity, discount):
    items = [SaleItemRequest(product_id=1, quantity=quantity, price=Decimal(price))]
    rate = Decimal(rate)

    totals = sales_service.compute_totals(items, Decimal(discount), rate)

    expected = quantize_money((totals.subtotal - totals.discount) * (1 + rate))
    assert abs(totals.total - expected) <= Decimal("0.01")


# =============================================================================
# Create
# =============================================================================

def test_create_sale_round_trip(db_session, store_config, cashier, make_product, stock_of):
    product = make_product(stock=10, price="10.00")

    sale = sales_service.create_sale(
        sale_request(cashier, item(product, quantity=2), paid="22.00", method="cash")
    )

    assert sale.subtotal == Decimal("20.00")
    assert sale.tax == Decimal("2.00")
    assert sale.total == Decimal("22.00")
    assert sale.change == Decimal("0.00")
    assert sale.status == "COMPLETED"
    assert sale.payment_method == "CASH"
    assert sale.invoice_number == "INV-000001"
    assert stock_of(product.id) == 8


def test_create_sale_expands_items(db_session, store_config, cashier, customer, make_product):
    first = make_product(stock=5, price="3.00")
    second = make_product(stock=5, price="7.25")

    sale = sales_service.create_sale(
        sale_request(cashier, item(first, 2), item(second, 1), customer_id=customer.id)
    )
    data = sale.to_dict()

    assert [line["product_id"] for line in data["items"]] == [first.id, second.id]
    assert data["customer"]["id"] == customer.id
    assert data["user"]["id"] == cashier.id
    assert data["subtotal"] == "13.25"


def test_cash_sale_gives_change(db_session, store_config, cashier, make_product):
    product = make_product(stock=5, price="10.00")

    sale = sales_service.create_sale(sale_request(cashier, item(product), paid="20.00"))

    assert sale.change == Decimal("9.00")


def test_card_sale_has_no_change(db_session, store_config, cashier, make_product):
    product = make_product(stock=5, price="10.00")

    sale = sales_service.create_sale(sale_request(cashier, item(product), paid="20.00", method="CARD"))

    assert sale.change == Decimal("0.00")


def test_tax_rate_override(db_session, store_config, cashier, make_product):
    product = make_product(stock=5, price="100.00")

    sale = sales_service.create_sale(
        sale_request(cashier, item(product), tax_rate_override=Decimal("0"))
    )

    assert sale.tax == Decimal("0.00")
    assert sale.total == Decimal("100.00")


def test_stock_guard_leaves_stock_untouched(db_session, store_config, cashier, make_product, stock_of):
    product = make_product(stock=1)

    with pytest.raises(InsufficientStock):
        sales_service.create_sale(sale_request(cashier, item(product, quantity=5)))

    assert stock_of(product.id) == 1
    assert db_session.query(Sale).count() == 0


def test_repeated_product_lines_are_checked_together(db_session, store_config, cashier, make_product, stock_of):
    product = make_product(stock=3)

    with pytest.raises(InsufficientStock):
        sales_service.create_sale(sale_request(cashier, item(product, 2), item(product, 2)))

    assert stock_of(product.id) == 3


def test_inactive_product(db_session, store_config, cashier, make_product):
    product = make_product(stock=5, is_active=False)

    with pytest.raises(ProductInactive):
        sales_service.create_sale(sale_request(cashier, item(product)))


def test_unknown_references(db_session, store_config, cashier, make_product):
    product = make_product(stock=5)

    with pytest.raises(ProductNotFound):
        sales_service.create_sale(
            sale_request(cashier, SaleItemRequest(product_id=9999, quantity=1, price=Decimal("1")))
        )
    with pytest.raises(CustomerNotFound):
        sales_service.create_sale(sale_request(cashier, item(product), customer_id=9999))
    with pytest.raises(UserNotFound):
        sales_service.create_sale(
            SaleRequest(user_id=9999, items=(item(product),), payment_method="CASH", paid_amount=Decimal("100"))
        )


def test_insufficient_payment_rolls_back_everything(db_session, store_config, cashier, make_product, stock_of):
    product = make_product(stock=5, price="10.00")

    with pytest.raises(InsufficientPayment):
        sales_service.create_sale(sale_request(cashier, item(product), paid="10.99"))

    assert stock_of(product.id) == 5
    assert counter(db_session) == 0
    assert db_session.query(Sale).count() == 0


def test_failed_reservation_skips_no_number_and_leaves_no_rows(db_session, store_config, cashier, make_product, stock_of):
    product = make_product(stock=2)

    with pytest.raises(InsufficientStock):
        sales_service.create_sale(sale_request(cashier, item(product, quantity=3)))
    sale = sales_service.create_sale(sale_request(cashier, item(product, quantity=2)))

    assert sale.invoice_number == "INV-000001"
    assert db_session.query(SaleItem).count() == 1
    assert stock_of(product.id) == 0


def test_missing_store_config(db_session, cashier, make_product):
    product = make_product(stock=5)

    with pytest.raises(ConfigurationMissing):
        sales_service.create_sale(sale_request(cashier, item(product)))


def test_invoice_numbers_are_distinct_across_sales(db_session, store_config, cashier, make_product):
    product = make_product(stock=50)

    numbers = [
        sales_service.create_sale(sale_request(cashier, item(product))).invoice_number
        for _ in range(10)
    ]

    assert len(set(numbers)) == 10
    assert numbers == sorted(numbers)


def test_sale_request_validation():
    with pytest.raises(ValidationError):
        SaleRequest(user_id=1, items=(), payment_method="CASH", paid_amount=Decimal("1")).validate()
    with pytest.raises(ValidationError):
        SaleRequest(
            user_id=1,
            items=(SaleItemRequest(product_id=1, quantity=1, price=Decimal("1"), discount=Decimal("2")),),
            payment_method="CASH",
            paid_amount=Decimal("1"),
        ).validate()


def test_sale_request_from_payload():
    request = SaleRequest.from_payload({
        "user_id": 1,
        "customer_id": 2,
        "items": [{"product_id": 3, "quantity": 2, "price": "4.50"}],
        "payment_method": "card",
        "paid_amount": 9,
        "notes": "gift wrap",
    })

    assert request.items[0].price == Decimal("4.50")
    assert request.items[0].discount == Decimal("0.00")
    assert request.paid_amount == Decimal("9")
    assert request.discount == Decimal("0.00")


def test_sale_request_from_payload_missing_fields():
    with pytest.raises(ValidationError) as exc_info:
        SaleRequest.from_payload({"items": []})

    assert set(exc_info.value.details["fields"]) == {"user_id", "payment_method", "paid_amount"}


# =============================================================================
# Cancel / refund
# =============================================================================

@pytest.fixture
def completed_sale(db_session, store_config, cashier, make_product):
    product = make_product(stock=10, price="10.00")
    sale = sales_service.create_sale(sale_request(cashier, item(product, quantity=2), paid="22.00"))
    return sale, product


def test_cancel_restores_stock(db_session, completed_sale, stock_of):
    sale, product = completed_sale

    cancelled = sales_service.cancel_sale(sale.id)

    assert cancelled.status == "CANCELLED"
    assert stock_of(product.id) == 10


def test_cancel_twice_releases_once(db_session, completed_sale, stock_of):
    sale, product = completed_sale
    sales_service.cancel_sale(sale.id)

    with pytest.raises(AlreadyCancelled):
        sales_service.cancel_sale(sale.id)

    assert stock_of(product.id) == 10


def test_refund_after_cancel_is_rejected(db_session, completed_sale, stock_of):
    sale, product = completed_sale
    sales_service.cancel_sale(sale.id)

    with pytest.raises(InvalidStateForRefund) as exc_info:
        sales_service.refund_sale(sale.id)

    assert exc_info.value.kind == "INVALID_STATE_FOR_REFUND"
    assert stock_of(product.id) == 10


def test_refund_restores_stock(db_session, completed_sale, stock_of):
    sale, product = completed_sale

    refunded = sales_service.refund_sale(sale.id)

    assert refunded.status == "REFUNDED"
    assert stock_of(product.id) == 10


def test_refund_twice_releases_once(db_session, completed_sale, stock_of):
    sale, product = completed_sale
    sales_service.refund_sale(sale.id)

    with pytest.raises(AlreadyRefunded):
        sales_service.refund_sale(sale.id)

    assert stock_of(product.id) == 10


def test_cancel_after_refund_is_rejected(db_session, completed_sale):
    sale, _ = completed_sale
    sales_service.refund_sale(sale.id)

    with pytest.raises(AlreadyRefunded):
        sales_service.cancel_sale(sale.id)

    assert sales_service.get_sale(sale.id).status == "REFUNDED"


# =============================================================================
# Reads
# =============================================================================

def test_list_sales_filters_and_paginates(db_session, store_config, cashier, make_product):
    product = make_product(stock=20)
    created = [sales_service.create_sale(sale_request(cashier, item(product))) for _ in range(3)]
    sales_service.cancel_sale(created[0].id)

    sales, pagination = sales_service.list_sales(sales_service.SaleFilters(status="COMPLETED", limit=1))

    assert len(sales) == 1
    assert pagination == {"page": 1, "limit": 1, "total": 2, "total_pages": 2}


def test_sale_filters_reject_unknown_status():
    with pytest.raises(ValidationError):
        sales_service.SaleFilters.from_args({"status": "VOIDED"})
