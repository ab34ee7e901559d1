# storefront/core/identity.py
"""
Item identity helpers.

A purchasable line is named by (product_id, variant_id). Everything that
compares, merges or looks up cart lines goes through `item_key` so the
composite key is built in exactly one place.

Product and variant ids never contain ':'.
"""

IDENTITY_SEPARATOR = ":"


def item_key(product_id: str, variant_id: str | None = None) -> str:
    """
    Build the composite identity key.

    A missing variant yields the bare product id, so the base product and
    its variants never collide.
    """
    if not variant_id:
        return str(product_id)
    return f"{product_id}{IDENTITY_SEPARATOR}{variant_id}"


def split_key(key: str) -> tuple[str, str | None]:
    """Inverse of `item_key`."""
    product_id, sep, variant_id = key.partition(IDENTITY_SEPARATOR)
    return product_id, (variant_id if sep else None)
