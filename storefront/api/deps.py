# storefront/api/deps.py
from typing import Optional

import jwt
from fastapi import Depends, Request
from sqlalchemy.orm import Session

from storefront.data.database import get_db
from storefront.domain.errors import AuthenticationRequired
from storefront.domain.schemas import CurrentUser
from storefront.services.address_service import AddressService
from storefront.services.cart_service import CartService
from storefront.services.checkout_service import CheckoutService
from storefront.services.idempotency_store import IdempotencyStore
from storefront.services.notification_service import NotificationService
from storefront.services.order_service import OrderService
from storefront.services.payment_client import PaymentClient
from storefront.utils.logging import get_logger
from storefront.utils.settings import JWT_ALGORITHM, JWT_SECRET, SESSION_COOKIE_NAME

logger = get_logger(__name__)


def _read_token(request: Request) -> Optional[str]:
    token = request.cookies.get(SESSION_COOKIE_NAME)
    if token:
        return token
    auth = request.headers.get("authorization", "")
    if auth.lower().startswith("bearer "):
        return auth[7:]
    return None


def get_current_user(request: Request) -> CurrentUser:
    """
    Tozsamosc z podpisanego ciasteczka sesji (JWT HS256: userId, email, role).
    Brak/niewazny token -> AuthenticationRequired.
    """
    if not JWT_SECRET:
        # bez sekretu nie da sie zweryfikowac podpisu - nie wpuszczamy nikogo
        logger.error("Brak JWT_SECRET, odrzucam token sesji")
        raise AuthenticationRequired()

    token = _read_token(request)
    if not token:
        raise AuthenticationRequired()

    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except jwt.PyJWTError as e:
        logger.info(f"Odrzucony token sesji: {e}")
        raise AuthenticationRequired()

    user_id = payload.get("userId") or payload.get("sub")
    if not user_id:
        raise AuthenticationRequired()

    return CurrentUser(
        user_id=str(user_id),
        email=payload.get("email"),
        role=payload.get("role") or "customer",
    )


def get_payment_client() -> PaymentClient:
    return PaymentClient()


def get_idempotency_store() -> IdempotencyStore:
    return IdempotencyStore()


def get_notification_service() -> NotificationService:
    return NotificationService()


def get_cart_service(db: Session = Depends(get_db)) -> CartService:
    return CartService(db)


def get_address_service(db: Session = Depends(get_db)) -> AddressService:
    return AddressService(db)


def get_checkout_service(
    db: Session = Depends(get_db),
    payment_client: PaymentClient = Depends(get_payment_client),
    idempotency_store: IdempotencyStore = Depends(get_idempotency_store),
) -> CheckoutService:
    return CheckoutService(db=db, payment_client=payment_client, idempotency_store=idempotency_store)


def get_order_service(
    db: Session = Depends(get_db),
    payment_client: PaymentClient = Depends(get_payment_client),
    notification_service: NotificationService = Depends(get_notification_service),
) -> OrderService:
    return OrderService(db=db, payment_client=payment_client, notification_service=notification_service)
