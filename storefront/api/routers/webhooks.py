# storefront/api/routers/webhooks.py
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Header, Request

from storefront.api.deps import get_order_service, get_payment_client
from storefront.domain.errors import ValidationError
from storefront.domain.schemas import PaymentEvent
from storefront.services.order_service import OrderService
from storefront.services.payment_client import PaymentClient
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])

PAYMENT_CONFIRMED = ("checkout.session.completed", "checkout.session.async_payment_succeeded")
PAYMENT_ABANDONED = ("checkout.session.async_payment_failed", "checkout.session.expired")


async def raw_body(request: Request) -> bytes:
    # podpis liczony jest po surowych bajtach, nie po sparsowanym JSON
    return await request.body()


def to_payment_event(event: Dict[str, Any]) -> PaymentEvent:
    session = (event.get("data") or {}).get("object")
    if not isinstance(session, dict) or not session.get("id"):
        raise ValidationError(f"Event {event.get('id')} bez obiektu sesji")

    payment_intent = session.get("payment_intent")
    if isinstance(payment_intent, dict):
        payment_intent = payment_intent.get("id")
    return PaymentEvent(
        session_id=session["id"],
        event_type=event["type"],
        payment_status=session.get("payment_status"),
        metadata={k: str(v) for k, v in (session.get("metadata") or {}).items()},
        amount_total=session.get("amount_total"),
        customer_email=session.get("customer_email") or (session.get("customer_details") or {}).get("email"),
        payment_intent_id=payment_intent,
    )


@router.post("/stripe")
def stripe_webhook(
    payload: bytes = Depends(raw_body),
    stripe_signature: Optional[str] = Header(None, alias="stripe-signature"),
    payment_client: PaymentClient = Depends(get_payment_client),
    svc: OrderService = Depends(get_order_service),
):
    """
    Powiadomienia Stripe. Duplikat = 200 i brak zmian, zeby Stripe nie ponawial.
    Blad zapisu = 5xx, Stripe ponowi i upsert i tak nie zdubluje zamowienia.
    Zly ksztalt podpisanego eventu = 400, ponawianie nic by nie dalo.
    """
    event = payment_client.construct_event(payload, stripe_signature)
    event_type = event.get("type")

    if event_type in PAYMENT_CONFIRMED:
        svc.record_payment(to_payment_event(event))
    elif event_type in PAYMENT_ABANDONED:
        svc.record_failure(to_payment_event(event))
    else:
        logger.info(f"Nieobslugiwany typ eventu: {event_type}")

    return {"received": True}
