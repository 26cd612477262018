# storefront/services/order_service.py
from decimal import Decimal, InvalidOperation
from typing import Optional

from sqlalchemy.orm import Session

from storefront.data.models.order import OrderModel
from storefront.data.models.order_item import OrderItemModel
from storefront.domain.errors import NotFound, PermissionDenied, ValidationError
from storefront.domain.schemas import (
    CurrentUser,
    OrderItemOut,
    OrderListOut,
    OrderOut,
    OrderStatusHistoryOut,
    PaginationOut,
    PaymentEvent,
    StatusHistoryEntryOut,
)
from storefront.domain.status import OrderStatus, can_transition, ensure_transition, parse_status
from storefront.repos.order_repo import OrderRepo
from storefront.repos.user_repo import UserRepo
from storefront.services.notification_service import NotificationService
from storefront.services.payment_client import PaymentClient
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

PAID_PAYMENT_STATUSES = ("paid", "no_payment_required")
ASYNC_PAYMENT_FAILED = "checkout.session.async_payment_failed"


def order_to_out(order: OrderModel) -> OrderOut:
    return OrderOut(
        id=order.id,
        user_id=order.user_id,
        status=order.status,
        total=order.total_amount,
        stripe_session_id=order.stripe_session_id,
        shipping_address=order.shipping_address,
        tracking_number=order.tracking_number,
        notes=order.notes,
        created_at=order.created_at,
        updated_at=order.updated_at,
        items=[OrderItemOut.model_validate(i) for i in order.items],
    )


class OrderService:
    """
    Serwis odpowiedzialny za domene zamowien.
    Zamowienie materializuje sie dopiero po potwierdzeniu platnosci,
    dokladnie raz na stripe_session_id, niezaleznie od liczby powiadomien.
    """

    def __init__(
        self,
        db: Session,
        payment_client: Optional[PaymentClient] = None,
        notification_service: Optional[NotificationService] = None,
    ):
        self.repo = OrderRepo(db)
        self.users = UserRepo(db)
        self.payment_client = payment_client
        self.notification_service = notification_service or NotificationService()

    # =====================================================
    # RECONCILIATION
    # =====================================================
    def record_payment(self, event: PaymentEvent) -> Optional[OrderOut]:
        """
        Use Case: potwierdzenie platnosci od procesora.

        1. brak user_id w metadanych - log i ignorujemy (ponowienie nic nie zmieni)
        2. zamowienie istnieje - tylko przesuniecie statusu do przodu (pending -> paid)
        3. nowe - pozycje z procesora (poza transakcja), potem
           INSERT ... ON CONFLICT DO NOTHING + pozycje w jednej transakcji
        4. po commit nowego oplaconego zamowienia - powiadomienie (async)
        """
        user_id = event.metadata.get("user_id")
        if not user_id:
            logger.error(f"Brak user_id w metadanych sesji {event.session_id}, pomijam")
            return None

        target = OrderStatus.PAID if event.payment_status in PAID_PAYMENT_STATUSES else OrderStatus.PENDING

        existing = self.repo.get_by_session(event.session_id)
        if existing:
            logger.info(f"Zamowienie dla sesji {event.session_id} juz istnieje ({existing.status})")
            return self._advance(existing, target, event.payment_intent_id)

        line_items = self.payment_client.list_line_items(event.session_id) if self.payment_client else []
        total = self._event_total(event)
        email = event.customer_email or self.users.get_email(user_id)

        try:
            order_id = self.repo.insert_if_absent(
                user_id=user_id,
                stripe_session_id=event.session_id,
                status=target.value,
                total_amount=total,
                customer_email=email,
                shipping_address=event.metadata.get("shipping_address") or None,
                payment_intent_id=event.payment_intent_id,
            )

            if order_id is None:
                # przegralismy wyscig z rownoleglym powiadomieniem
                self.repo.rollback()
                winner = self.repo.get_by_session(event.session_id)
                logger.info(f"Zamowienie dla sesji {event.session_id} utworzone rownolegle")
                return self._advance(winner, target, event.payment_intent_id)

            self.repo.add_items(
                order_id,
                [
                    OrderItemModel(
                        product_id=li.product_id,
                        product_name=li.name,
                        quantity=li.quantity,
                        price=Decimal(li.unit_amount) / 100,
                    )
                    for li in line_items
                ],
            )
            self.repo.add_history(order_id, target.value, "Zamowienie utworzone z potwierdzenia platnosci")
            self.repo.commit()
        except Exception:
            self.repo.rollback()
            raise

        order = self.repo.get_by_session(event.session_id)
        logger.info(f"Zamowienie {order.id} utworzone z sesji {event.session_id} ({order.status})")

        if order.status == OrderStatus.PAID.value:
            self.notification_service.send_order_confirmation(order.id, order.customer_email, order.total_amount)

        return order_to_out(order)

    def record_failure(self, event: PaymentEvent) -> Optional[OrderOut]:
        """
        Platnosc odrzucona albo sesja wygasla.
        Bez zamowienia -> ABANDONED, nic nie zapisujemy.
        Zamowienie pending -> failed/cancelled. Oplaconego nie ruszamy.
        """
        existing = self.repo.get_by_session(event.session_id)
        if not existing:
            logger.info(f"Sesja {event.session_id} porzucona ({event.event_type}), brak zamowienia")
            return None

        if existing.status != OrderStatus.PENDING.value:
            logger.info(f"Ignoruje {event.event_type} dla zamowienia {existing.id} w stanie {existing.status}")
            return order_to_out(existing)

        target = OrderStatus.FAILED if event.event_type == ASYNC_PAYMENT_FAILED else OrderStatus.CANCELLED
        return self._advance(existing, target, event.payment_intent_id)

    def _advance(self, order: OrderModel, target: OrderStatus, payment_intent_id: Optional[str]) -> OrderOut:
        if order.status == target.value or not can_transition(order.status, target.value):
            # duplikat albo spozniony event (np. pending po paid) - no-op
            return order_to_out(order)

        try:
            locked = self.repo.get_order(order.id, for_update=True)
            changed = can_transition(locked.status, target.value) and locked.status != target.value
            if changed:
                values = {"status": target.value}
                if payment_intent_id:
                    values["stripe_payment_intent_id"] = payment_intent_id
                self.repo.update_order(locked.id, **values)
                self.repo.add_history(locked.id, target.value)
            self.repo.commit()
        except Exception:
            self.repo.rollback()
            raise

        updated = self.repo.get_order(order.id)
        if changed:
            logger.info(f"Zamowienie {updated.id}: {order.status} -> {updated.status}")
            if target == OrderStatus.PAID:
                self.notification_service.send_order_confirmation(
                    updated.id, updated.customer_email, updated.total_amount
                )
        return order_to_out(updated)

    @staticmethod
    def _event_total(event: PaymentEvent) -> Decimal:
        # kwota z procesora jest rozstrzygajaca, metadane tylko jako fallback
        if event.amount_total is not None:
            return Decimal(event.amount_total) / 100
        try:
            return Decimal(event.metadata.get("total_amount") or "0")
        except InvalidOperation:
            return Decimal("0")

    # =====================================================
    # QUERY
    # =====================================================
    def get_order(self, user_id: str, order_id: str) -> OrderOut:
        order = self.repo.get_order(order_id)
        if not order or order.user_id != user_id:
            raise NotFound("Zamowienie nie istnieje")
        return order_to_out(order)

    def status_history(self, user_id: str, order_id: str) -> OrderStatusHistoryOut:
        order = self.repo.get_order(order_id)
        if not order or order.user_id != user_id:
            raise NotFound("Zamowienie nie istnieje")
        return OrderStatusHistoryOut(
            order_id=order.id,
            status_history=[
                StatusHistoryEntryOut(id=h.id, status=h.status, notes=h.notes, timestamp=h.created_at)
                for h in self.repo.list_history(order.id)
            ],
        )

    def list_orders(self, user_id: str, page: int = 1, limit: int = 10) -> OrderListOut:
        if page < 1:
            raise ValidationError("page musi byc >= 1")
        if limit < 1 or limit > 100:
            raise ValidationError("limit musi byc w zakresie 1-100")

        offset = (page - 1) * limit
        orders = self.repo.list_for_user(user_id, limit, offset)
        total = self.repo.count_for_user(user_id)

        return OrderListOut(
            orders=[order_to_out(o) for o in orders],
            pagination=PaginationOut(
                page=page,
                limit=limit,
                total=total,
                has_more=offset + len(orders) < total,
            ),
        )

    # =====================================================
    # ADMIN
    # =====================================================
    def update_status(
        self,
        actor: CurrentUser,
        order_id: str,
        status: str,
        tracking_number: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> OrderOut:
        if actor.role != "admin":
            raise PermissionDenied("Tylko administrator moze zmieniac status zamowienia")

        target = parse_status(status)

        try:
            order = self.repo.get_order(order_id, for_update=True)
            if not order:
                raise NotFound("Zamowienie nie istnieje")

            ensure_transition(order.status, target.value)

            values = {"status": target.value}
            if tracking_number and target == OrderStatus.SHIPPED:
                values["tracking_number"] = tracking_number
            if notes:
                values["notes"] = notes

            previous = order.status
            self.repo.update_order(order_id, **values)
            self.repo.add_history(order_id, target.value, notes)
            self.repo.commit()
        except Exception:
            self.repo.rollback()
            raise

        logger.info(f"Zamowienie {order_id}: {previous} -> {target.value} (admin {actor.user_id})")
        return order_to_out(self.repo.get_order(order_id))
