# storefront/core/errors.py
"""
Failure taxonomy for the remote store.

Adapters translate every transport or HTTP failure into one of these, so
the cart session only ever handles `StoreError` subclasses.
"""


class StoreError(Exception):
    """Base class for recoverable remote store failures."""

    kind = "store_error"

    def __init__(self, message: str, key: str | None = None):
        super().__init__(message)
        self.message = message
        self.key = key


class OutOfStock(StoreError):
    """Requested quantity exceeds the stock the store reports."""

    kind = "out_of_stock"

    def __init__(self, message: str, available: int, key: str | None = None):
        super().__init__(message, key)
        self.available = max(available, 0)


class NotFound(StoreError):
    """The product, variant or entry no longer exists server-side."""

    kind = "not_found"


class NetworkFailure(StoreError):
    """Transport error or an unexpected response; the caller may retry."""

    kind = "network_failure"

    def __init__(
        self,
        message: str,
        key: str | None = None,
        status_code: int | None = None,
    ):
        super().__init__(message, key)
        self.status_code = status_code


class InvalidPromoCode(StoreError):
    """The submitted promo code is not in the code table."""

    kind = "invalid_promo_code"
