# storefront/api/routers/health.py
from fastapi import APIRouter

from storefront.domain.schemas import Envelope

router = APIRouter(tags=["health"])


@router.get("/health", response_model=Envelope[dict], response_model_exclude_none=True)
def health():
    return Envelope(data={"status": "ok"})
