from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from storefront.data.database import SessionLocal
from storefront.data.models import CartItemModel, CartModel, ProductModel
from storefront.domain.errors import InsufficientStock, NotFound, ValidationError
from storefront.services.cart_service import CartService


def test_add_to_empty_cart_creates_cart(seed):
    cart = CartService(seed).add_item("u1", "prod-1", 2)

    assert len(cart.items) == 1
    assert cart.items[0].product_id == "prod-1"
    assert cart.items[0].quantity == 2
    assert cart.total == Decimal("20.00")
    assert cart.item_count == 2
    assert seed.execute(select(func.count()).select_from(CartModel)).scalar_one() == 1


def test_adding_same_product_twice_increments_quantity(seed):
    svc = CartService(seed)
    svc.add_item("u1", "prod-2", 1)
    cart = svc.add_item("u1", "prod-2", 1)

    assert len(cart.items) == 1
    assert cart.items[0].quantity == 2
    assert seed.execute(select(func.count()).select_from(CartItemModel)).scalar_one() == 1


def test_concurrent_adds_do_not_lose_updates(seed):
    def add(_):
        session = SessionLocal()
        try:
            CartService(session).add_item("u1", "prod-2", 1)
        finally:
            session.close()

    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(add, range(8)))

    session = SessionLocal()
    try:
        cart = CartService(session).get_cart("u1")
        carts = session.execute(select(func.count()).select_from(CartModel)).scalar_one()
    finally:
        session.close()

    assert carts == 1
    assert cart.items[0].quantity == 8


def test_total_follows_live_catalog_price(seed):
    svc = CartService(seed)
    svc.add_item("u1", "prod-1", 3)

    product = seed.get(ProductModel, "prod-1")
    product.price = Decimal("12.50")
    seed.commit()

    cart = svc.get_cart("u1")
    assert cart.items[0].price == Decimal("12.50")
    assert cart.total == Decimal("37.50")


def test_get_cart_without_cart_is_empty(seed):
    cart = CartService(seed).get_cart("u1")
    assert cart.items == []
    assert cart.total == Decimal("0")
    assert cart.item_count == 0


def test_remove_item_leaves_empty_cart(seed):
    svc = CartService(seed)
    svc.add_item("u1", "prod-1", 3)

    cart = svc.remove_item("u1", "prod-1")

    assert cart.items == []
    assert cart.total == Decimal("0")
    assert cart.item_count == 0


def test_remove_item_not_in_cart(seed):
    svc = CartService(seed)
    with pytest.raises(NotFound):
        svc.remove_item("u1", "prod-1")

    svc.add_item("u1", "prod-2", 1)
    with pytest.raises(NotFound):
        svc.remove_item("u1", "prod-1")
    assert svc.get_cart("u1").item_count == 1


def test_clear_requires_cart(seed):
    svc = CartService(seed)
    with pytest.raises(NotFound):
        svc.clear("u1")

    svc.add_item("u1", "prod-1", 1)
    svc.add_item("u1", "prod-2", 4)
    cleared = svc.clear("u1")

    assert cleared.items == []
    assert svc.get_cart("u1").item_count == 0


@pytest.mark.parametrize("quantity", [0, -3])
def test_non_positive_quantity_rejected_without_side_effects(seed, quantity):
    with pytest.raises(ValidationError):
        CartService(seed).add_item("u1", "prod-1", quantity)
    assert seed.execute(select(func.count()).select_from(CartModel)).scalar_one() == 0


def test_unknown_product(seed):
    with pytest.raises(NotFound):
        CartService(seed).add_item("u1", "nope", 1)


def test_stock_limit_on_single_add(seed):
    with pytest.raises(InsufficientStock):
        CartService(seed).add_item("u1", "prod-3", 1)
    assert seed.execute(select(func.count()).select_from(CartModel)).scalar_one() == 0


def test_stock_limit_on_accumulated_quantity_rolls_back(seed):
    svc = CartService(seed)
    svc.add_item("u1", "prod-1", 4)

    with pytest.raises(InsufficientStock):
        svc.add_item("u1", "prod-1", 2)

    cart = svc.get_cart("u1")
    assert cart.items[0].quantity == 4
    assert cart.total == Decimal("40.00")


def test_update_item_sets_absolute_quantity(seed):
    svc = CartService(seed)
    svc.add_item("u1", "prod-2", 1)

    cart = svc.update_item("u1", "prod-2", 7)
    assert cart.items[0].quantity == 7

    cart = svc.update_item("u1", "prod-2", 0)
    assert cart.items == []


def test_update_item_errors(seed):
    svc = CartService(seed)
    with pytest.raises(NotFound):
        svc.update_item("u1", "prod-1", 1)

    svc.add_item("u1", "prod-1", 1)
    with pytest.raises(ValidationError):
        svc.update_item("u1", "prod-1", -1)
    with pytest.raises(InsufficientStock):
        svc.update_item("u1", "prod-1", 6)
    with pytest.raises(NotFound):
        svc.update_item("u1", "prod-2", 1)


def test_carts_are_per_user(seed):
    svc = CartService(seed)
    svc.add_item("u1", "prod-1", 1)
    svc.add_item("u2", "prod-2", 3)

    assert svc.get_cart("u1").item_count == 1
    assert svc.get_cart("u2").item_count == 3
