# storefront/services/notification_service.py
from decimal import Decimal

from storefront.celery_worker import celery_app
from storefront.utils.logging import get_logger
from storefront.utils.settings import ADMIN_EMAIL

logger = get_logger(__name__)


class NotificationService:
    """
    Powiadomienia fire-and-forget przez Celery.
    Blad kolejkowania jest logowany, nigdy nie psuje requestu.
    """

    @staticmethod
    def send_order_confirmation(order_id: str, email: str | None, total: Decimal):
        try:
            if email:
                send_order_confirmation_task.delay(order_id, email, str(total))
            if ADMIN_EMAIL:
                send_admin_order_notification_task.delay(order_id, ADMIN_EMAIL, str(total))
        except Exception as e:
            logger.error(f"Nie udalo sie zakolejkowac powiadomien dla zamowienia {order_id}: {e}")


@celery_app.task(name="storefront.services.notification_service.send_order_confirmation_task")
def send_order_confirmation_task(order_id: str, email: str, total: str):
    """
    Potwierdzenie zamowienia dla klienta. Dostarczanie maili jest poza
    serwisem, tu tylko log z numerem zamowienia.
    """
    order_number = order_id[-8:].upper()
    logger.info(f"[NOTIFICATION] {email}: zamowienie {order_number} potwierdzone, kwota {total}")
    return {"order_id": order_id, "email": email, "status": "sent"}


@celery_app.task(name="storefront.services.notification_service.send_admin_order_notification_task")
def send_admin_order_notification_task(order_id: str, email: str, total: str):
    logger.info(f"[NOTIFICATION] admin {email}: nowe zamowienie {order_id}, kwota {total}")
    return {"order_id": order_id, "email": email, "status": "sent"}
