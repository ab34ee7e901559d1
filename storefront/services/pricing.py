# storefront/services/pricing.py
from decimal import Decimal
from typing import Iterable, Sequence

from storefront.schemas.cart import LineItem
from storefront.schemas.pricing import (
    PricingSnapshot,
    PromoApplication,
    ShippingOption,
)

ZERO = Decimal("0")

DEFAULT_SHIPPING_OPTIONS: tuple[ShippingOption, ...] = (
    ShippingOption(
        id="standard",
        name="Standard Shipping",
        description="5-7 business days",
        price=Decimal("4.99"),
        duration="7 days",
    ),
    ShippingOption(
        id="express",
        name="Express Shipping",
        description="2-3 business days",
        price=Decimal("9.99"),
        duration="4 days",
    ),
    ShippingOption(
        id="priority",
        name="Priority Shipping",
        description="1-2 business days",
        price=Decimal("14.99"),
        duration="2 days",
    ),
)


def find_shipping_option(
    options: Iterable[ShippingOption],
    option_id: str | None,
) -> ShippingOption | None:
    if option_id is None:
        return None
    return next((opt for opt in options if opt.id == option_id), None)


def compute_pricing(
    cart_items: Sequence[LineItem],
    shipping_option: ShippingOption | None,
    gift_wrap: bool,
    promo: PromoApplication | None,
    *,
    tax_rate: Decimal,
    gift_wrap_fee: Decimal,
) -> PricingSnapshot:
    """
    Compute the itemized total for the current cart.

    Order of operations:
      1. subtotal       = sum(unit_price * quantity) over cart lines
      2. shipping_cost  = selected option price (0 if none / inactive)
      3. tax            = subtotal * tax_rate (before discount and shipping)
      4. gift_wrap_cost = flat fee if gift wrap is on
      5. discount       = frozen promo discount
      6. total          = subtotal + shipping + tax + gift wrap - discount,
                          floored at 0

    No rounding happens here; see PricingSnapshot.display().
    """
    subtotal = sum(
        (item.unit_price * item.quantity for item in cart_items),
        ZERO,
    )

    if shipping_option is not None and shipping_option.is_active:
        shipping_cost = shipping_option.price
    else:
        shipping_cost = ZERO

    tax = subtotal * tax_rate
    gift_wrap_cost = gift_wrap_fee if gift_wrap else ZERO
    discount = promo.discount_amount if promo is not None else ZERO

    total = subtotal + shipping_cost + tax + gift_wrap_cost - discount
    if total < ZERO:
        total = ZERO

    return PricingSnapshot(
        subtotal=subtotal,
        shipping_cost=shipping_cost,
        tax=tax,
        gift_wrap_cost=gift_wrap_cost,
        discount=discount,
        total=total,
    )
