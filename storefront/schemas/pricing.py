# storefront/schemas/pricing.py
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum

from sqlmodel import SQLModel, Field

CENT = Decimal("0.01")


class ShippingOption(SQLModel):
    """
    A selectable shipping method. Inactive options cost nothing because
    they cannot be charged.
    """

    id: str
    name: str
    description: str | None = None
    price: Decimal = Field(ge=0)
    duration: str | None = None
    is_active: bool = True


class PromoKind(str, Enum):
    PERCENT = "percent"
    FLAT = "flat"


class PromoRule(SQLModel):
    """
    One row of the promo code table.

    PERCENT: value is a percentage of the subtotal (10 => 10%).
    FLAT:    value is an absolute amount.
    """

    code: str
    kind: PromoKind
    value: Decimal = Field(ge=0)

    def discount_for(self, subtotal: Decimal) -> Decimal:
        if self.kind == PromoKind.PERCENT:
            return subtotal * self.value / Decimal(100)
        return self.value


class PromoApplication(SQLModel):
    """
    An applied promo code. discount_amount is frozen at apply time.
    """

    code: str
    discount_amount: Decimal
    applied_at: datetime


class PricingSnapshot(SQLModel):
    """
    Itemized total derived from the cart. Never stored.

    Values keep full Decimal precision; use `display()` for the
    2-digit rendering.
    """

    subtotal: Decimal
    shipping_cost: Decimal
    tax: Decimal
    gift_wrap_cost: Decimal
    discount: Decimal
    total: Decimal

    def display(self) -> dict[str, str]:
        """
        Round each component to cents for rendering.
        """
        return {
            name: str(value.quantize(CENT, rounding=ROUND_HALF_UP))
            for name, value in self.model_dump().items()
        }
