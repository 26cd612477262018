# storefront/api/routers/orders.py
from fastapi import APIRouter, Depends, Query

from storefront.api.deps import get_current_user, get_order_service
from storefront.domain.schemas import (
    CurrentUser,
    Envelope,
    OrderListOut,
    OrderOut,
    OrderStatusHistoryOut,
    OrderStatusIn,
)
from storefront.services.order_service import OrderService

router = APIRouter(prefix="/orders", tags=["orders"])


@router.get("", response_model=Envelope[OrderListOut], response_model_exclude_none=True)
def list_orders(
    page: int = Query(1),
    limit: int = Query(10),
    user: CurrentUser = Depends(get_current_user),
    svc: OrderService = Depends(get_order_service),
):
    """
    Zamowienia uzytkownika, od najnowszych.
    """
    return Envelope(data=svc.list_orders(user.user_id, page, limit))


@router.get("/{order_id}", response_model=Envelope[OrderOut], response_model_exclude_none=True)
def get_order(
    order_id: str,
    user: CurrentUser = Depends(get_current_user),
    svc: OrderService = Depends(get_order_service),
):
    return Envelope(data=svc.get_order(user.user_id, order_id))


@router.put("/{order_id}/status", response_model=Envelope[OrderOut], response_model_exclude_none=True)
def update_order_status(
    order_id: str,
    payload: OrderStatusIn,
    user: CurrentUser = Depends(get_current_user),
    svc: OrderService = Depends(get_order_service),
):
    """
    Zmiana statusu (tylko admin), przejscia wylacznie do przodu.
    """
    order = svc.update_status(user, order_id, payload.status, payload.tracking_number, payload.notes)
    return Envelope(data=order, message=f"Status zmieniony na {order.status}")


@router.get("/{order_id}/status", response_model=Envelope[OrderStatusHistoryOut], response_model_exclude_none=True)
def get_order_status_history(
    order_id: str,
    user: CurrentUser = Depends(get_current_user),
    svc: OrderService = Depends(get_order_service),
):
    return Envelope(data=svc.status_history(user.user_id, order_id))
