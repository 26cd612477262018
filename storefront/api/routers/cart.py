# storefront/api/routers/cart.py
from fastapi import APIRouter, Depends

from storefront.api.deps import get_cart_service, get_current_user
from storefront.domain.schemas import (
    CartAddIn,
    CartOut,
    CartRemoveIn,
    CartUpdateIn,
    CurrentUser,
    Envelope,
)
from storefront.services.cart_service import CartService

router = APIRouter(prefix="/cart", tags=["cart"])


@router.get("", response_model=Envelope[CartOut], response_model_exclude_none=True)
def get_cart(
    user: CurrentUser = Depends(get_current_user),
    svc: CartService = Depends(get_cart_service),
):
    return Envelope(data=svc.get_cart(user.user_id))


@router.post("/add", response_model=Envelope[CartOut], response_model_exclude_none=True)
def add_item(
    payload: CartAddIn,
    user: CurrentUser = Depends(get_current_user),
    svc: CartService = Depends(get_cart_service),
):
    cart = svc.add_item(user.user_id, payload.product_id, payload.quantity)
    return Envelope(data=cart, message="Produkt dodany do koszyka")


@router.post("/update", response_model=Envelope[CartOut], response_model_exclude_none=True)
def update_item(
    payload: CartUpdateIn,
    user: CurrentUser = Depends(get_current_user),
    svc: CartService = Depends(get_cart_service),
):
    cart = svc.update_item(user.user_id, payload.product_id, payload.quantity)
    return Envelope(data=cart, message="Koszyk zaktualizowany")


@router.post("/remove", response_model=Envelope[CartOut], response_model_exclude_none=True)
def remove_item(
    payload: CartRemoveIn,
    user: CurrentUser = Depends(get_current_user),
    svc: CartService = Depends(get_cart_service),
):
    cart = svc.remove_item(user.user_id, payload.product_id)
    return Envelope(data=cart, message="Produkt usuniety z koszyka")


@router.post("/clear", response_model=Envelope[CartOut], response_model_exclude_none=True)
def clear_cart(
    user: CurrentUser = Depends(get_current_user),
    svc: CartService = Depends(get_cart_service),
):
    return Envelope(data=svc.clear(user.user_id), message="Koszyk wyczyszczony")
