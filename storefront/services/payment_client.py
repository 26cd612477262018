# storefront/services/payment_client.py
import json
from typing import Any, Dict, List, Optional

import stripe

from storefront.domain.errors import InternalError, NotFound, UpstreamError, ValidationError
from storefront.domain.schemas import RemoteLineItem, RemoteSession
from storefront.utils.logging import get_logger
from storefront.utils.retry import stripe_retry
from storefront.utils.settings import (
    STRIPE_API_BASE,
    STRIPE_SECRET_KEY,
    STRIPE_TIMEOUT_SECONDS,
    STRIPE_WEBHOOK_SECRET,
    STRIPE_WEBHOOK_TOLERANCE_SECONDS,
)

logger = get_logger(__name__)

# ponawiamy sami (stripe_retry), tylko odczyty
stripe.max_network_retries = 0
stripe.api_base = STRIPE_API_BASE
stripe.default_http_client = stripe.RequestsClient(timeout=STRIPE_TIMEOUT_SECONDS)


def _to_remote_session(session) -> RemoteSession:
    payment_intent = session.get("payment_intent")
    if isinstance(payment_intent, dict):
        payment_intent = payment_intent.get("id")
    customer_email = session.get("customer_email") or (session.get("customer_details") or {}).get("email")
    return RemoteSession(
        id=session["id"],
        url=session.get("url"),
        status=session.get("status"),
        payment_status=session.get("payment_status"),
        metadata={k: str(v) for k, v in (session.get("metadata") or {}).items()},
        amount_total=session.get("amount_total"),
        customer_email=customer_email,
        payment_intent=payment_intent,
    )


def _to_line_item(item) -> RemoteLineItem:
    price = item.get("price") or {}
    product = price.get("product")
    product_id = None
    name = item.get("description") or "item"
    if isinstance(product, dict):
        product_id = (product.get("metadata") or {}).get("product_id") or product.get("id")
        name = product.get("name") or name
    quantity = item.get("quantity") or 1
    unit_amount = price.get("unit_amount")
    if unit_amount is None:
        unit_amount = (item.get("amount_total") or 0) // quantity
    return RemoteLineItem(product_id=product_id, name=name, quantity=quantity, unit_amount=unit_amount)


def _upstream(e: stripe.StripeError, not_found_message: str) -> Exception:
    if isinstance(e, stripe.InvalidRequestError) and e.http_status == 404:
        return NotFound(not_found_message)
    logger.error(f"Stripe odpowiedzial bledem {e.http_status}: {e.user_message or e}")
    return UpstreamError()


class PaymentClient:
    """
    Klient Stripe Checkout na oficjalnym SDK.
    Tworzenie sesji NIE jest ponawiane (dubel sesji), odczyty tak.
    """

    def __init__(
        self,
        secret_key: str | None = None,
        webhook_secret: str | None = None,
        tolerance: int = STRIPE_WEBHOOK_TOLERANCE_SECONDS,
    ):
        self.secret_key = secret_key or STRIPE_SECRET_KEY
        self.webhook_secret = webhook_secret or STRIPE_WEBHOOK_SECRET
        self.tolerance = tolerance

    # =====================================================
    # CHECKOUT SESSIONS
    # =====================================================
    def create_checkout_session(
        self,
        line_items: List[Dict[str, Any]],
        customer_email: str,
        metadata: Dict[str, str],
        success_url: str,
        cancel_url: str,
        idempotency_key: str | None = None,
    ) -> RemoteSession:
        params = {
            "api_key": self.secret_key,
            "mode": "payment",
            "customer_email": customer_email,
            "line_items": line_items,
            "metadata": metadata,
            "success_url": success_url,
            "cancel_url": cancel_url,
        }
        if idempotency_key:
            params["idempotency_key"] = idempotency_key

        logger.info(f"PaymentClient tworzy sesje dla {customer_email}")
        try:
            session = stripe.checkout.Session.create(**params)
        except stripe.StripeError as e:
            raise _upstream(e, "Nie znaleziono zasobu procesora platnosci") from e
        return _to_remote_session(session)

    @stripe_retry()
    def _retrieve(self, session_id: str):
        return stripe.checkout.Session.retrieve(session_id, api_key=self.secret_key)

    @stripe_retry()
    def _line_items(self, session_id: str) -> List[RemoteLineItem]:
        page = stripe.checkout.Session.list_line_items(
            session_id,
            api_key=self.secret_key,
            limit=100,
            expand=["data.price.product"],
        )
        return [_to_line_item(item) for item in page.auto_paging_iter()]

    def retrieve_checkout_session(self, session_id: str) -> RemoteSession:
        logger.info(f"PaymentClient pobiera sesje {session_id}")
        try:
            return _to_remote_session(self._retrieve(session_id))
        except stripe.StripeError as e:
            raise _upstream(e, "Sesja nie istnieje") from e

    def list_line_items(self, session_id: str) -> List[RemoteLineItem]:
        try:
            return self._line_items(session_id)
        except stripe.StripeError as e:
            raise _upstream(e, "Sesja nie istnieje") from e

    # =====================================================
    # WEBHOOKS
    # =====================================================
    def construct_event(self, payload: bytes, signature_header: Optional[str]) -> Dict[str, Any]:
        """
        Weryfikacja naglowka Stripe-Signature przez SDK (HMAC + tolerancja czasu).
        """
        if not self.webhook_secret:
            raise InternalError("Brak konfiguracji sekretu webhooka")
        if not signature_header:
            raise ValidationError("Brak naglowka stripe-signature")

        if isinstance(payload, bytes):
            payload = payload.decode("utf-8", errors="replace")
        try:
            stripe.WebhookSignature.verify_header(
                payload, signature_header, self.webhook_secret, tolerance=self.tolerance
            )
        except stripe.SignatureVerificationError as e:
            logger.warning(f"Odrzucony podpis webhooka: {e}")
            raise ValidationError("Niepoprawny podpis webhooka")

        # zwykly dict, a nie StripeObject - dalej walidujemy ksztalt sami
        try:
            event = json.loads(payload)
        except ValueError:
            raise ValidationError("Niepoprawny JSON webhooka")
        if not isinstance(event, dict):
            raise ValidationError("Niepoprawny JSON webhooka")
        return event
