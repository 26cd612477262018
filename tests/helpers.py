# tests/helpers.py
import hashlib
import hmac
import json
import time
from decimal import Decimal

import jwt
from redis.exceptions import RedisError

from storefront.domain.errors import NotFound, UpstreamError
from storefront.domain.schemas import RemoteLineItem, RemoteSession
from storefront.services.idempotency_store import PENDING
from storefront.services.payment_client import PaymentClient

JWT_SECRET = "storefront-test-secret-0123456789abcdef"
WEBHOOK_SECRET = "whsec_test"


class FakePaymentClient(PaymentClient):
    """Procesor platnosci w pamieci; weryfikacja podpisu webhooka jest prawdziwa."""

    def __init__(self):
        super().__init__(secret_key="sk_test", webhook_secret=WEBHOOK_SECRET)
        self.sessions = {}
        self.line_items = {}
        self.created = []
        self.create_calls = []
        self.by_idempotency_key = {}
        self.fail_next_create = False

    def create_checkout_session(self, line_items, customer_email, metadata, success_url, cancel_url,
                                idempotency_key=None):
        self.create_calls.append(idempotency_key)
        if self.fail_next_create:
            self.fail_next_create = False
            raise UpstreamError()
        # Stripe zwraca te sama sesje dla powtorzonego Idempotency-Key
        if idempotency_key in self.by_idempotency_key:
            return self.by_idempotency_key[idempotency_key]
        session_id = f"cs_test_{len(self.created) + 1}"
        amount = sum(li["price_data"]["unit_amount"] * li["quantity"] for li in line_items)
        session = RemoteSession(
            id=session_id,
            url=f"https://checkout.stripe.test/{session_id}",
            status="open",
            payment_status="unpaid",
            metadata=metadata,
            amount_total=amount,
            customer_email=customer_email,
        )
        self.sessions[session_id] = session
        if idempotency_key:
            self.by_idempotency_key[idempotency_key] = session
        self.created.append(
            {
                "line_items": line_items,
                "customer_email": customer_email,
                "metadata": metadata,
                "idempotency_key": idempotency_key,
            }
        )
        return session

    def retrieve_checkout_session(self, session_id):
        if session_id not in self.sessions:
            raise NotFound("Sesja nie istnieje")
        return self.sessions[session_id]

    def list_line_items(self, session_id):
        return self.line_items.get(session_id, [])

    def add_session(self, session_id, user_id, status="complete", payment_status="paid", amount_total=2000):
        self.sessions[session_id] = RemoteSession(
            id=session_id,
            status=status,
            payment_status=payment_status,
            metadata={"user_id": user_id, "total_amount": str(Decimal(amount_total) / 100)},
            amount_total=amount_total,
        )
        return self.sessions[session_id]


class FakeIdempotencyStore:
    def __init__(self):
        self.data = {}
        self.reserve_ttls = []
        self.fail_next_save = False

    @staticmethod
    def key_for(user_id, idempotency_key):
        return f"checkout:idem:{user_id}:{idempotency_key}"

    def get(self, key):
        return self.data.get(key)

    def reserve(self, key, ttl):
        self.reserve_ttls.append(ttl)
        if key in self.data:
            return False
        self.data[key] = PENDING
        return True

    def save(self, key, value, ttl):
        if self.fail_next_save:
            self.fail_next_save = False
            raise RedisError("save failed")
        self.data[key] = value

    def release(self, key):
        if self.data.get(key) == PENDING:
            del self.data[key]
            return True
        return False


class FakeNotifier:
    def __init__(self):
        self.sent = []

    def send_order_confirmation(self, order_id, email, total):
        self.sent.append((order_id, email, total))


def token_for(user_id, role="customer"):
    return jwt.encode(
        {"userId": user_id, "email": f"{user_id}@example.com", "role": role},
        JWT_SECRET,
        algorithm="HS256",
    )


def auth(user_id, role="customer"):
    return {"Authorization": f"Bearer {token_for(user_id, role=role)}"}


def signed_webhook(event, secret=WEBHOOK_SECRET, timestamp=None):
    payload = json.dumps(event).encode()
    ts = str(timestamp or int(time.time()))
    signature = hmac.new(secret.encode(), ts.encode() + b"." + payload, hashlib.sha256).hexdigest()
    return payload, {"stripe-signature": f"t={ts},v1={signature}", "content-type": "application/json"}


def session_event(session_id, user_id, payment_status="paid", amount_total=2000,
                  event_type="checkout.session.completed"):
    return {
        "id": f"evt_{session_id}",
        "type": event_type,
        "data": {
            "object": {
                "id": session_id,
                "object": "checkout.session",
                "payment_status": payment_status,
                "amount_total": amount_total,
                "customer_details": {"email": f"{user_id}@example.com"},
                "payment_intent": "pi_123",
                "metadata": {"user_id": user_id, "total_amount": "20.00", "shipping_address": ""},
            }
        },
    }


def line_item(product_id, name, quantity, unit_amount):
    return RemoteLineItem(product_id=product_id, name=name, quantity=quantity, unit_amount=unit_amount)
