from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from storefront.domain.errors import InsufficientStock, NotFound, ValidationError
from storefront.domain.schemas import CartItemOut, CartOut
from storefront.repos.cart_repo import CartRepo
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


class CartService:
    """
    Prosta implementacja cqrs dla domeny cart
    commands (add, update, remove, clear) modyfikuja stan, kazda w jednej transakcji
    query (get) tylko odczyt, total liczony na zywo z cen katalogu
    """

    def __init__(self, db: Session):
        self.repo = CartRepo(db)

    #query - odczyt
    def get_cart(self, user_id: str) -> CartOut:
        cart_id = self.repo.get_cart_id(user_id)
        if not cart_id:
            return CartOut(items=[], total=Decimal("0.00"), item_count=0)
        return self._build_cart(cart_id)

    def _build_cart(self, cart_id: Optional[str]) -> CartOut:
        rows = self.repo.get_cart_rows(cart_id) if cart_id else []
        items = [
            CartItemOut(
                id=r.item_id,
                product_id=r.product_id,
                name=r.name,
                price=Decimal(r.price),
                image=r.image_url,
                quantity=r.quantity,
                stock=r.stock,
            )
            for r in rows
        ]
        total = sum((i.price * i.quantity for i in items), Decimal("0.00"))
        item_count = sum(i.quantity for i in items)
        return CartOut(items=items, total=total, item_count=item_count)

    #commands
    def add_item(self, user_id: str, product_id: str, quantity: int) -> CartOut:
        # Walidacje przed transakcja
        if quantity <= 0:
            raise ValidationError("Ilosc musi byc wieksza niz 0")

        try:
            product = self.repo.get_product(product_id)
            if not product:
                raise NotFound("Produkt nie istnieje")

            if product.stock < quantity:
                raise InsufficientStock(f"Niewystarczajacy stan produktu {product.name}")

            cart_id = self.repo.ensure_cart(user_id)

            # upsert z dodaniem ilosci - bez read-modify-write, wiec rownolegle add nie gubia inkrementow
            new_quantity = self.repo.add_quantity(cart_id, product_id, quantity)

            if new_quantity > product.stock:
                raise InsufficientStock(
                    f"Niewystarczajacy stan produktu {product.name} dla ilosci {new_quantity}"
                )

            cart = self._build_cart(cart_id)
            self.repo.commit()
        except Exception:
            self.repo.rollback()
            raise

        logger.info(f"Produkt {product_id} dodany do koszyka uzytkownika {user_id}, ilosc {new_quantity}")
        return cart

    def update_item(self, user_id: str, product_id: str, quantity: int) -> CartOut:
        if quantity < 0:
            raise ValidationError("Ilosc nie moze byc ujemna")

        try:
            cart_id = self.repo.get_cart_id(user_id)
            if not cart_id:
                raise NotFound("Koszyk nie istnieje")

            if quantity == 0:
                if self.repo.delete_item(cart_id, product_id) == 0:
                    raise NotFound("Produktu nie ma w koszyku")
            else:
                product = self.repo.get_product(product_id)
                if not product or self.repo.get_item_quantity(cart_id, product_id) is None:
                    raise NotFound("Produktu nie ma w koszyku")
                if product.stock < quantity:
                    raise InsufficientStock(f"Niewystarczajacy stan produktu {product.name}")
                self.repo.set_quantity(cart_id, product_id, quantity)

            cart = self._build_cart(cart_id)
            self.repo.commit()
        except Exception:
            self.repo.rollback()
            raise

        logger.info(f"Produkt {product_id} w koszyku uzytkownika {user_id} ustawiony na {quantity}")
        return cart

    def remove_item(self, user_id: str, product_id: str) -> CartOut:
        try:
            cart_id = self.repo.get_cart_id(user_id)
            if not cart_id:
                raise NotFound("Koszyk nie istnieje")

            if self.repo.delete_item(cart_id, product_id) == 0:
                raise NotFound("Produktu nie ma w koszyku")

            # przeliczenie w tej samej transakcji co delete
            cart = self._build_cart(cart_id)
            self.repo.commit()
        except Exception:
            self.repo.rollback()
            raise

        logger.info(f"Produkt {product_id} usuniety z koszyka uzytkownika {user_id}")
        return cart

    def clear(self, user_id: str) -> CartOut:
        try:
            cart_id = self.repo.get_cart_id(user_id)
            if not cart_id:
                raise NotFound("Koszyk nie istnieje")

            removed = self.repo.clear_items(cart_id)
            self.repo.commit()
        except Exception:
            self.repo.rollback()
            raise

        logger.info(f"Koszyk uzytkownika {user_id} wyczyszczony, usunieto {removed} pozycji")
        return CartOut(items=[], total=Decimal("0.00"), item_count=0)
