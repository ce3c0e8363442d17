"""Stock ledger: conditional reserve/release and low-stock queries."""

import pytest

from shopflow.errors import InsufficientStock, ProductNotAtSource, ProductNotFound, ValidationError
from shopflow.services import stock_service
from shopflow.services.stock_service import StockAdjustment


def test_reserve_decrements_stock(db_session, make_product, stock_of):
    product = make_product(stock=5)

    stock_service.reserve(product.id, 3)
    db_session.commit()

    assert stock_of(product.id) == 2


def test_reserve_exact_stock_reaches_zero(db_session, make_product, stock_of):
    product = make_product(stock=4)

    stock_service.reserve(product.id, 4)
    db_session.commit()

    assert stock_of(product.id) == 0


def test_reserve_more_than_available_changes_nothing(db_session, make_product, stock_of):
    product = make_product(stock=2, name="Espresso Beans")

    with pytest.raises(InsufficientStock) as exc_info:
        stock_service.reserve(product.id, 3)

    assert exc_info.value.details == {"product_id": product.id, "available": 2, "requested": 3}
    assert "Espresso Beans" in exc_info.value.message
    assert stock_of(product.id) == 2


def test_reserve_unknown_product(db_session):
    with pytest.raises(ProductNotFound):
        stock_service.reserve(9999, 1)


@pytest.mark.parametrize("quantity", [0, -1, True, 1.5])
def test_reserve_rejects_non_positive_quantities(db_session, make_product, quantity):
    product = make_product(stock=5)

    with pytest.raises(ValidationError):
        stock_service.reserve(product.id, quantity)


def test_sequential_reserves_never_go_negative(db_session, make_product, stock_of):
    product = make_product(stock=3)

    stock_service.reserve(product.id, 2)
    with pytest.raises(InsufficientStock):
        stock_service.reserve(product.id, 2)
    stock_service.reserve(product.id, 1)
    db_session.commit()

    assert stock_of(product.id) == 0


def test_release_restores_stock(db_session, make_product, stock_of):
    product = make_product(stock=1)

    stock_service.reserve(product.id, 1)
    stock_service.release(product.id, 1)
    db_session.commit()

    assert stock_of(product.id) == 1


def test_release_unknown_product(db_session):
    with pytest.raises(ProductNotFound):
        stock_service.release(9999, 1)


def test_reserve_refreshes_loaded_product(db_session, make_product):
    product = make_product(stock=8)

    stock_service.reserve(product.id, 5)

    assert product.stock == 3


def test_reserve_at_location_requires_source_store(db_session, make_product, stores, stock_of):
    main, branch = stores
    product = make_product(stock=5, store_id=branch.id)

    with pytest.raises(ProductNotAtSource):
        stock_service.reserve_at_location(product.id, 1, main.id)

    stock_service.reserve_at_location(product.id, 1, branch.id)
    db_session.commit()
    assert stock_of(product.id) == 4


def test_reserve_at_location_treats_unplaced_product_as_anywhere(db_session, make_product, stores, stock_of):
    main, _ = stores
    product = make_product(stock=5, store_id=None)

    stock_service.reserve_at_location(product.id, 2, main.id)
    db_session.commit()

    assert stock_of(product.id) == 3


def test_relocate_moves_product(db_session, make_product, stores):
    main, branch = stores
    product = make_product(store_id=main.id)

    stock_service.relocate(product.id, branch.id)
    db_session.commit()

    assert product.store_id == branch.id


def test_get_stock(db_session, make_product):
    product = make_product(stock=12)

    assert stock_service.get_stock(product.id) == 12
    with pytest.raises(ProductNotFound):
        stock_service.get_stock(9999)


def test_list_low_stock_uses_min_stock(db_session, make_product):
    low = make_product(stock=2, min_stock=5)
    at_threshold = make_product(stock=5, min_stock=5)
    make_product(stock=9, min_stock=5)
    make_product(stock=0, min_stock=5, is_active=False)

    ids = {p.id for p in stock_service.list_low_stock()}

    assert ids == {low.id, at_threshold.id}


def test_list_low_stock_with_explicit_threshold(db_session, make_product):
    low = make_product(stock=3, min_stock=0)
    make_product(stock=7, min_stock=10)

    ids = {p.id for p in stock_service.list_low_stock(threshold=3)}

    assert ids == {low.id}


def test_set_stock_overwrites_count(db_session, make_product, stock_of):
    product = make_product(stock=5, min_stock=1)
    before = product.updated_at

    updated = stock_service.set_stock(product.id, StockAdjustment(stock=12))

    assert stock_of(product.id) == 12
    assert updated.min_stock == 1
    assert updated.updated_at >= before


def test_set_stock_updates_min_stock(db_session, make_product):
    product = make_product(stock=5)

    updated = stock_service.set_stock(product.id, StockAdjustment(stock=0, min_stock=3))

    assert updated.stock == 0
    assert updated.min_stock == 3
    assert [p.id for p in stock_service.list_low_stock()] == [product.id]


def test_set_stock_rejects_negative(db_session, make_product, stock_of):
    product = make_product(stock=5)

    with pytest.raises(ValidationError):
        stock_service.set_stock(product.id, StockAdjustment(stock=-1))
    with pytest.raises(ValidationError):
        stock_service.set_stock(product.id, StockAdjustment(stock=1, min_stock=-2))

    assert stock_of(product.id) == 5


def test_set_stock_unknown_product(db_session):
    with pytest.raises(ProductNotFound):
        stock_service.set_stock(9999, StockAdjustment(stock=1))


def test_stock_adjustment_from_payload():
    assert StockAdjustment.from_payload({"stock": "7"}) == StockAdjustment(stock=7)
    with pytest.raises(ValidationError):
        StockAdjustment.from_payload({})
    with pytest.raises(ValidationError):
        StockAdjustment.from_payload({"stock": 1, "price": "9.99"})
    with pytest.raises(ValidationError):
        StockAdjustment.from_payload({"stock": -3})
