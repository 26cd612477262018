# storefront/repos/cart_repo.py
import uuid
from datetime import datetime, timezone

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session

from storefront.data.database import upsert
from storefront.data.models.cart import CartModel
from storefront.data.models.cart_item import CartItemModel
from storefront.data.models.product import ProductModel


class CartRepo:
    def __init__(self, db: Session):
        self.db = db

    def get_product(self, product_id: str) -> ProductModel | None:
        return self.db.get(ProductModel, product_id)

    def get_cart_id(self, user_id: str) -> str | None:
        return self.db.execute(
            select(CartModel.id).where(CartModel.user_id == user_id)
        ).scalar_one_or_none()

    def ensure_cart(self, user_id: str) -> str:
        # INSERT ... ON CONFLICT (user_id) DO NOTHING, dwa rownolegle "pierwsze" add nie zrobia dwoch koszykow
        now = datetime.now(timezone.utc)
        stmt = upsert(self.db, CartModel.__table__).values(
            id=str(uuid.uuid4()),
            user_id=user_id,
            created_at=now,
            updated_at=now,
        )
        self.db.execute(stmt.on_conflict_do_nothing(index_elements=["user_id"]))
        return self.get_cart_id(user_id)

    def add_quantity(self, cart_id: str, product_id: str, quantity: int) -> int:
        """
        Atomowy upsert: nowa pozycja albo quantity = quantity + :qty.
        Zwraca ilosc po zmianie.
        """
        table = CartItemModel.__table__
        stmt = upsert(self.db, table).values(
            id=str(uuid.uuid4()),
            cart_id=cart_id,
            product_id=product_id,
            quantity=quantity,
            created_at=datetime.now(timezone.utc),
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["cart_id", "product_id"],
            set_={"quantity": table.c.quantity + stmt.excluded.quantity},
        )
        self.db.execute(stmt)
        return self.get_item_quantity(cart_id, product_id)

    def get_item_quantity(self, cart_id: str, product_id: str) -> int | None:
        return self.db.execute(
            select(CartItemModel.quantity).where(
                CartItemModel.cart_id == cart_id,
                CartItemModel.product_id == product_id,
            )
        ).scalar_one_or_none()

    def set_quantity(self, cart_id: str, product_id: str, quantity: int) -> int:
        result = self.db.execute(
            update(CartItemModel)
            .where(
                CartItemModel.cart_id == cart_id,
                CartItemModel.product_id == product_id,
            )
            .values(quantity=quantity)
        )
        return result.rowcount

    def delete_item(self, cart_id: str, product_id: str) -> int:
        result = self.db.execute(
            delete(CartItemModel).where(
                CartItemModel.cart_id == cart_id,
                CartItemModel.product_id == product_id,
            )
        )
        return result.rowcount

    def clear_items(self, cart_id: str) -> int:
        result = self.db.execute(delete(CartItemModel).where(CartItemModel.cart_id == cart_id))
        return result.rowcount

    def get_cart_rows(self, cart_id: str):
        # cena/nazwa/obrazek/stan zawsze z katalogu, nigdy z cache
        return self.db.execute(
            select(
                CartItemModel.id.label("item_id"),
                CartItemModel.product_id,
                CartItemModel.quantity,
                ProductModel.name,
                ProductModel.price,
                ProductModel.image_url,
                ProductModel.stock,
            )
            .join(ProductModel, CartItemModel.product_id == ProductModel.id)
            .where(CartItemModel.cart_id == cart_id)
            .order_by(CartItemModel.created_at.desc(), CartItemModel.id)
        ).all()

    def commit(self):
        self.db.commit()

    def rollback(self):
        self.db.rollback()
