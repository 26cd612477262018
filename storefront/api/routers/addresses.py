# storefront/api/routers/addresses.py
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from storefront.api.deps import get_address_service, get_current_user
from storefront.domain.schemas import AddressIn, AddressOut, AddressUpdateIn, CurrentUser, Envelope
from storefront.services.address_service import AddressService

router = APIRouter(prefix="/addresses", tags=["addresses"])


@router.get("", response_model=Envelope[List[AddressOut]], response_model_exclude_none=True)
def list_addresses(
    type: Optional[str] = Query(None),
    user: CurrentUser = Depends(get_current_user),
    svc: AddressService = Depends(get_address_service),
):
    return Envelope(data=svc.list_addresses(user.user_id, type))


@router.post("", response_model=Envelope[AddressOut], response_model_exclude_none=True, status_code=201)
def create_address(
    payload: AddressIn,
    user: CurrentUser = Depends(get_current_user),
    svc: AddressService = Depends(get_address_service),
):
    return Envelope(data=svc.create_address(user.user_id, payload), message="Adres utworzony")


@router.get("/{address_id}", response_model=Envelope[AddressOut], response_model_exclude_none=True)
def get_address(
    address_id: str,
    user: CurrentUser = Depends(get_current_user),
    svc: AddressService = Depends(get_address_service),
):
    return Envelope(data=svc.get_address(user.user_id, address_id))


@router.put("/{address_id}", response_model=Envelope[AddressOut], response_model_exclude_none=True)
def update_address(
    address_id: str,
    payload: AddressUpdateIn,
    user: CurrentUser = Depends(get_current_user),
    svc: AddressService = Depends(get_address_service),
):
    return Envelope(data=svc.update_address(user.user_id, address_id, payload), message="Adres zaktualizowany")


@router.delete("/{address_id}", response_model=Envelope[None], response_model_exclude_none=True)
def delete_address(
    address_id: str,
    user: CurrentUser = Depends(get_current_user),
    svc: AddressService = Depends(get_address_service),
):
    svc.delete_address(user.user_id, address_id)
    return Envelope(message="Adres usuniety")


@router.put("/{address_id}/default", response_model=Envelope[AddressOut], response_model_exclude_none=True)
def set_default_address(
    address_id: str,
    user: CurrentUser = Depends(get_current_user),
    svc: AddressService = Depends(get_address_service),
):
    address, changed = svc.set_default(user.user_id, address_id)
    message = "Adres domyslny zaktualizowany" if changed else "Adres jest juz domyslny"
    return Envelope(data=address, message=message)
