# storefront/models/promo.py
from decimal import Decimal

from sqlmodel import SQLModel, Field

from storefront.schemas.pricing import PromoKind


class PromoCode(SQLModel, table=True):
    """
    Server-side promo code table. Codes are stored upper-case.
    """

    __tablename__ = "promo_codes"

    code: str = Field(primary_key=True, max_length=50)
    kind: PromoKind
    value: Decimal = Field(ge=0, max_digits=12, decimal_places=2)
    is_active: bool = True
