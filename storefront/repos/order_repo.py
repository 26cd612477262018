# storefront/repos/order_repo.py
import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session, selectinload

from storefront.data.database import upsert
from storefront.data.models.order import OrderModel
from storefront.data.models.order_item import OrderItemModel
from storefront.data.models.order_status_history import OrderStatusHistoryModel


class OrderRepo:
    def __init__(self, db: Session):
        self.db = db

    def insert_if_absent(
        self,
        user_id: str,
        stripe_session_id: str,
        status: str,
        total_amount: Decimal,
        customer_email: str | None = None,
        shipping_address: str | None = None,
        payment_intent_id: str | None = None,
    ) -> str | None:
        """
        INSERT ... ON CONFLICT (stripe_session_id) DO NOTHING.
        Zwraca id nowego zamowienia albo None, jesli zamowienie juz istnialo.
        """
        order_id = str(uuid.uuid4())
        now = datetime.now(timezone.utc)
        stmt = upsert(self.db, OrderModel.__table__).values(
            id=order_id,
            user_id=user_id,
            status=status,
            total_amount=total_amount,
            stripe_session_id=stripe_session_id,
            stripe_payment_intent_id=payment_intent_id,
            customer_email=customer_email,
            shipping_address=shipping_address,
            created_at=now,
            updated_at=now,
        )
        result = self.db.execute(stmt.on_conflict_do_nothing(index_elements=["stripe_session_id"]))
        return order_id if result.rowcount == 1 else None

    def add_items(self, order_id: str, items: list[OrderItemModel]) -> None:
        for item in items:
            item.order_id = order_id
            self.db.add(item)
        self.db.flush()

    def get_by_session(self, stripe_session_id: str, for_update: bool = False) -> OrderModel | None:
        stmt = (
            select(OrderModel)
            .options(selectinload(OrderModel.items))
            .where(OrderModel.stripe_session_id == stripe_session_id)
            .execution_options(populate_existing=True)
        )
        if for_update:
            stmt = stmt.with_for_update(of=OrderModel)
        return self.db.execute(stmt).scalar_one_or_none()

    def get_order(self, order_id: str, for_update: bool = False) -> OrderModel | None:
        stmt = (
            select(OrderModel)
            .options(selectinload(OrderModel.items))
            .where(OrderModel.id == order_id)
            .execution_options(populate_existing=True)
        )
        if for_update:
            stmt = stmt.with_for_update(of=OrderModel)
        return self.db.execute(stmt).scalar_one_or_none()

    def list_for_user(self, user_id: str, limit: int, offset: int) -> list[OrderModel]:
        return list(
            self.db.execute(
                select(OrderModel)
                .options(selectinload(OrderModel.items))
                .where(OrderModel.user_id == user_id)
                .order_by(OrderModel.created_at.desc(), OrderModel.id)
                .limit(limit)
                .offset(offset)
            ).scalars()
        )

    def count_for_user(self, user_id: str) -> int:
        return self.db.execute(
            select(func.count()).select_from(OrderModel).where(OrderModel.user_id == user_id)
        ).scalar_one()

    def update_order(self, order_id: str, **values) -> None:
        values["updated_at"] = datetime.now(timezone.utc)
        self.db.execute(update(OrderModel).where(OrderModel.id == order_id).values(**values))

    def add_history(self, order_id: str, status: str, notes: str | None = None) -> None:
        # w biezacej transakcji, commit robi serwis razem ze zmiana statusu
        self.db.add(OrderStatusHistoryModel(order_id=order_id, status=status, notes=notes))

    def list_history(self, order_id: str) -> list[OrderStatusHistoryModel]:
        return list(
            self.db.execute(
                select(OrderStatusHistoryModel)
                .where(OrderStatusHistoryModel.order_id == order_id)
                .order_by(OrderStatusHistoryModel.created_at.desc())
            ).scalars()
        )

    def commit(self):
        self.db.commit()

    def rollback(self):
        self.db.rollback()
