# storefront/routers/promo.py
from fastapi import APIRouter, Depends
from sqlmodel import Session

from storefront.database import get_session
from storefront.repositories.promo_repo import PromoRepository
from storefront.schemas.pricing import PromoRule
from storefront.services.promo_service import PromoService

router = APIRouter(prefix="/promo-codes", tags=["Promo codes"])

service = PromoService(PromoRepository())


@router.get("/{code}", response_model=PromoRule)
def get_promo_code(code: str, session: Session = Depends(get_session)):
    """
    Look up a promo code. Public; 404 when the code is unknown.
    """
    return service.get_rule(session, code)
