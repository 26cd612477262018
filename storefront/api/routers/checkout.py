# storefront/api/routers/checkout.py
from typing import Optional

from fastapi import APIRouter, Depends, Header, Query

from storefront.api.deps import get_checkout_service, get_current_user
from storefront.domain.schemas import (
    CheckoutSessionOut,
    CreateSessionIn,
    CurrentUser,
    Envelope,
    SessionDetailsOut,
)
from storefront.services.checkout_service import CheckoutService

router = APIRouter(prefix="/checkout", tags=["checkout"])


@router.post("/create-session", response_model=Envelope[CheckoutSessionOut], response_model_exclude_none=True)
def create_session(
    payload: CreateSessionIn,
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
    user: CurrentUser = Depends(get_current_user),
    svc: CheckoutService = Depends(get_checkout_service),
):
    session = svc.create_session(
        user,
        items=payload.items,
        shipping_address=payload.shipping_address,
        success_url=payload.success_url,
        cancel_url=payload.cancel_url,
        idempotency_key=idempotency_key,
    )
    return Envelope(data=session)


@router.get("/session-details", response_model=Envelope[SessionDetailsOut], response_model_exclude_none=True)
def session_details(
    session_id: str = Query(""),
    user: CurrentUser = Depends(get_current_user),
    svc: CheckoutService = Depends(get_checkout_service),
):
    """
    Stan checkoutu. checkout_status == session_created oznacza, ze
    potwierdzenie platnosci jeszcze nie dotarlo - odpytuj ponownie.
    """
    return Envelope(data=svc.session_details(user.user_id, session_id))
