# storefront/services/checkout_service.py
import json
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, List, Optional

from redis.exceptions import RedisError
from sqlalchemy.orm import Session

from storefront.domain.errors import Conflict, NotFound, ValidationError
from storefront.domain.schemas import (
    CheckoutItemIn,
    CheckoutSessionOut,
    CurrentUser,
    OrderOut,
    SessionDetailsOut,
    StripeSessionOut,
)
from storefront.repos.order_repo import OrderRepo
from storefront.repos.user_repo import UserRepo
from storefront.services.cart_service import CartService
from storefront.services.idempotency_store import PENDING, IdempotencyStore
from storefront.services.order_service import order_to_out
from storefront.services.payment_client import PaymentClient
from storefront.utils.logging import get_logger
from storefront.utils.settings import (
    APP_URL,
    CHECKOUT_IDEMPOTENCY_TTL_SECONDS,
    CHECKOUT_RESERVATION_TTL_SECONDS,
    CURRENCY,
)

logger = get_logger(__name__)

SESSION_CREATED = "session_created"
ORDER_RECORDED = "order_recorded"
ABANDONED = "abandoned"


def to_minor_units(amount: Decimal) -> int:
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class CheckoutService:
    """
    Checkout: snapshot koszyka -> sesja u procesora platnosci.
    Lokalnie nic nie zapisujemy - zamowienie powstaje dopiero po potwierdzeniu
    platnosci (webhook, OrderService.record_payment).
    """

    def __init__(
        self,
        db: Session,
        payment_client: PaymentClient,
        idempotency_store: Optional[IdempotencyStore] = None,
    ):
        self.db = db
        self.users = UserRepo(db)
        self.orders = OrderRepo(db)
        self.payment_client = payment_client
        self.idempotency_store = idempotency_store

    def _snapshot_cart(self, user_id: str) -> List[CheckoutItemIn]:
        cart = CartService(self.db).get_cart(user_id)
        return [
            CheckoutItemIn(id=i.product_id, name=i.name, price=i.price, quantity=i.quantity, image=i.image)
            for i in cart.items
        ]

    @staticmethod
    def _validate_items(items: List[CheckoutItemIn]) -> None:
        if not items:
            raise ValidationError("Lista produktow jest wymagana")
        for item in items:
            if item.quantity <= 0:
                raise ValidationError(f"Niepoprawna ilosc dla {item.name}")
            if item.price <= 0:
                raise ValidationError(f"Niepoprawna cena dla {item.name}")

    @staticmethod
    def _line_items(items: List[CheckoutItemIn]) -> List[Dict[str, Any]]:
        lines = []
        for item in items:
            product_data = {"name": item.name, "metadata": {"product_id": item.id}}
            if item.image:
                product_data["images"] = [item.image]
            lines.append(
                {
                    "price_data": {
                        "currency": CURRENCY,
                        "product_data": product_data,
                        "unit_amount": to_minor_units(item.price),
                    },
                    "quantity": item.quantity,
                }
            )
        return lines

    # =====================================================
    # COMMAND
    # =====================================================
    def create_session(
        self,
        user: CurrentUser,
        items: Optional[List[CheckoutItemIn]] = None,
        shipping_address: Optional[Dict[str, Any]] = None,
        success_url: Optional[str] = None,
        cancel_url: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> CheckoutSessionOut:
        """
        Use Case: utworzenie sesji platnosci.

        Walidacja (bez wywolania procesora):
        - items niepuste, cena i ilosc > 0
        - uzytkownik istnieje (email klienta)

        Powtorzenie z tym samym Idempotency-Key zwraca te sama sesje.
        """
        if items is None:
            items = self._snapshot_cart(user.user_id)
        self._validate_items(items)

        email = self.users.get_email(user.user_id)
        if not email:
            raise NotFound("Uzytkownik nie istnieje")

        total = sum((i.price * i.quantity for i in items), Decimal("0.00"))

        cache_key = None
        if idempotency_key and self.idempotency_store:
            cache_key = IdempotencyStore.key_for(user.user_id, idempotency_key)
            cached = self._cached_session(cache_key)
            if cached is not None:
                return cached

        metadata = {
            "user_id": user.user_id,
            "total_amount": str(total),
            "shipping_address": json.dumps(shipping_address) if shipping_address else "",
        }

        try:
            remote = self.payment_client.create_checkout_session(
                line_items=self._line_items(items),
                customer_email=email,
                metadata=metadata,
                success_url=success_url or f"{APP_URL}/checkout/success?session_id={{CHECKOUT_SESSION_ID}}",
                cancel_url=cancel_url or f"{APP_URL}/cart",
                idempotency_key=f"{user.user_id}:{idempotency_key}" if idempotency_key else None,
            )
        except Exception:
            if cache_key:
                self._release(cache_key)
            raise

        result = CheckoutSessionOut(session_id=remote.id, url=remote.url)
        if cache_key:
            self._remember(cache_key, result)

        logger.info(f"Utworzono sesje platnosci {remote.id} dla uzytkownika {user.user_id}, total {total}")
        return result

    def _cached_session(self, cache_key: str) -> Optional[CheckoutSessionOut]:
        try:
            cached = self.idempotency_store.get(cache_key)
            if isinstance(cached, dict):
                logger.info(f"Klucz {cache_key} uzyty ponownie, zwracam sesje {cached['session_id']}")
                return CheckoutSessionOut(**cached)
            if cached == PENDING or not self.idempotency_store.reserve(cache_key, CHECKOUT_RESERVATION_TTL_SECONDS):
                raise Conflict("Sesja platnosci z tym kluczem jest wlasnie tworzona")
        except RedisError as e:
            # bez Redisa zostaje naglowek Idempotency-Key po stronie procesora
            logger.warning(f"Redis niedostepny dla klucza idempotencji {cache_key}: {e}")
        return None

    def _remember(self, cache_key: str, result: CheckoutSessionOut) -> None:
        try:
            self.idempotency_store.save(cache_key, result.model_dump(), CHECKOUT_IDEMPOTENCY_TTL_SECONDS)
        except RedisError as e:
            # rezerwacja nie moze zostac bez wyniku, ponowienie trafi do Stripe z tym samym kluczem
            logger.warning(f"Nie zapisano sesji pod kluczem {cache_key}: {e}")
            self._release(cache_key)

    def _release(self, cache_key: str) -> None:
        try:
            self.idempotency_store.release(cache_key)
        except RedisError as e:
            logger.warning(f"Nie zwolniono klucza {cache_key}: {e}")

    # =====================================================
    # QUERY
    # =====================================================
    def session_details(self, user_id: str, session_id: str) -> SessionDetailsOut:
        """
        Use Case: stan checkoutu dla sesji.

        Sesja obca albo nieistniejaca -> NotFound (nie zdradzamy, ze istnieje).
        Brak zamowienia przy istniejacej sesji to nie blad - webhook
        jeszcze nie dotarl, klient moze odpytywac dalej.
        """
        if not session_id:
            raise ValidationError("session_id jest wymagany")

        remote = self.payment_client.retrieve_checkout_session(session_id)

        if remote.metadata.get("user_id") != user_id:
            logger.warning(f"Uzytkownik {user_id} pytal o cudza sesje {session_id}")
            raise NotFound("Sesja nie istnieje")

        order = self.orders.get_by_session(session_id)

        order_out: Optional[OrderOut] = None
        if order:
            checkout_status = ORDER_RECORDED
            order_out = order_to_out(order)
        elif remote.status == "expired":
            checkout_status = ABANDONED
        else:
            checkout_status = SESSION_CREATED

        return SessionDetailsOut(
            checkout_status=checkout_status,
            order=order_out,
            stripe_session=StripeSessionOut(
                id=remote.id,
                status=remote.status,
                payment_status=remote.payment_status,
                amount_total=Decimal(remote.amount_total or 0) / 100,
            ),
        )
