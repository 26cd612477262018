# storefront/domain/schemas.py
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field

T = TypeVar("T")


class Envelope(BaseModel, Generic[T]):
    """Jednolita koperta odpowiedzi."""

    success: bool = True
    data: Optional[T] = None
    error: Optional[str] = None
    message: Optional[str] = None


class CurrentUser(BaseModel):
    """Zweryfikowana tozsamosc z ciasteczka sesji."""

    user_id: str
    email: Optional[str] = None
    role: str = "customer"


# =====================================================
# CART
# =====================================================
class CartAddIn(BaseModel):
    """Schema dla dodawania produktu do koszyka."""

    product_id: str = Field(..., min_length=1)
    quantity: int = 1


class CartUpdateIn(BaseModel):
    """Schema dla ustawienia ilosci (0 usuwa pozycje)."""

    product_id: str = Field(..., min_length=1)
    quantity: int


class CartRemoveIn(BaseModel):
    product_id: str = Field(..., min_length=1)


class CartItemOut(BaseModel):
    """Pozycja koszyka z cena, nazwa i stanem z katalogu (join na zywo)."""

    id: str
    product_id: str
    name: str
    price: Decimal
    image: Optional[str] = None
    quantity: int
    stock: int


class CartOut(BaseModel):
    """Koszyk - total i item_count liczone przy odczycie, nie przechowywane."""

    items: List[CartItemOut]
    total: Decimal
    item_count: int


# =====================================================
# CHECKOUT
# =====================================================
class CheckoutItemIn(BaseModel):
    id: str
    name: str
    price: Decimal
    quantity: int
    image: Optional[str] = None


class CreateSessionIn(BaseModel):
    """Brak items = snapshot koszyka uzytkownika."""

    items: Optional[List[CheckoutItemIn]] = None
    shipping_address: Optional[Dict[str, Any]] = None
    success_url: Optional[str] = None
    cancel_url: Optional[str] = None


class CheckoutSessionOut(BaseModel):
    session_id: str
    url: Optional[str] = None


class RemoteSession(BaseModel):
    """Projekcja sesji checkoutu po stronie procesora platnosci."""

    id: str
    url: Optional[str] = None
    status: Optional[str] = None  # open | complete | expired
    payment_status: Optional[str] = None  # paid | unpaid | no_payment_required
    metadata: Dict[str, str] = Field(default_factory=dict)
    amount_total: Optional[int] = None  # w groszach/centach
    customer_email: Optional[str] = None
    payment_intent: Optional[str] = None


class RemoteLineItem(BaseModel):
    product_id: Optional[str] = None
    name: str
    quantity: int
    unit_amount: int  # w centach


class PaymentEvent(BaseModel):
    """
    Komunikat przychodzacy od procesora (webhook), niezalezny od requestu
    ktory utworzyl sesje.
    """

    session_id: str
    event_type: str
    payment_status: Optional[str] = None
    metadata: Dict[str, str] = Field(default_factory=dict)
    amount_total: Optional[int] = None
    customer_email: Optional[str] = None
    payment_intent_id: Optional[str] = None


class StripeSessionOut(BaseModel):
    id: str
    status: Optional[str] = None
    payment_status: Optional[str] = None
    amount_total: Decimal


# =====================================================
# ORDERS
# =====================================================
class OrderItemOut(BaseModel):
    id: str
    product_id: Optional[str] = None
    product_name: str
    quantity: int
    price: Decimal

    model_config = ConfigDict(from_attributes=True)


class OrderOut(BaseModel):
    id: str
    user_id: str
    status: str
    total: Decimal
    stripe_session_id: str
    shipping_address: Optional[str] = None
    tracking_number: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    items: List[OrderItemOut] = Field(default_factory=list)


class SessionDetailsOut(BaseModel):
    """checkout_status: session_created | order_recorded | abandoned"""

    checkout_status: str
    order: Optional[OrderOut] = None
    stripe_session: StripeSessionOut


class PaginationOut(BaseModel):
    page: int
    limit: int
    total: int
    has_more: bool


class OrderListOut(BaseModel):
    orders: List[OrderOut]
    pagination: PaginationOut


class OrderStatusIn(BaseModel):
    status: str
    tracking_number: Optional[str] = None
    notes: Optional[str] = None


class StatusHistoryEntryOut(BaseModel):
    id: str
    status: str
    notes: Optional[str] = None
    timestamp: datetime


class OrderStatusHistoryOut(BaseModel):
    """Historia statusow, od najnowszego."""

    order_id: str
    status_history: List[StatusHistoryEntryOut]


# =====================================================
# ADDRESSES
# =====================================================
class AddressIn(BaseModel):
    """Schema dla tworzenia adresu."""

    type: str = "shipping"
    name: str = Field(..., min_length=1, max_length=255)
    company: Optional[str] = None
    address_line_1: str = Field(..., min_length=1, max_length=255)
    address_line_2: Optional[str] = None
    city: str = Field(..., min_length=1, max_length=100)
    state: str = Field(..., min_length=1, max_length=100)
    zip_code: str = Field(..., min_length=1, max_length=20)
    country: str = Field("US", min_length=2, max_length=2)
    phone: Optional[str] = None
    is_default: bool = False


class AddressUpdateIn(BaseModel):
    """Czesciowa aktualizacja - tylko przeslane pola sa zmieniane."""

    type: Optional[str] = None
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    company: Optional[str] = None
    address_line_1: Optional[str] = Field(None, min_length=1, max_length=255)
    address_line_2: Optional[str] = None
    city: Optional[str] = Field(None, min_length=1, max_length=100)
    state: Optional[str] = Field(None, min_length=1, max_length=100)
    zip_code: Optional[str] = Field(None, min_length=1, max_length=20)
    country: Optional[str] = Field(None, min_length=2, max_length=2)
    phone: Optional[str] = None
    is_default: Optional[bool] = None


class AddressOut(BaseModel):
    id: str
    type: str
    name: str
    company: Optional[str] = None
    address_line_1: str
    address_line_2: Optional[str] = None
    city: str
    state: str
    zip_code: str
    country: str
    phone: Optional[str] = None
    is_default: bool
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)
