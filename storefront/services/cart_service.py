# storefront/services/cart_service.py
from datetime import datetime

from fastapi import HTTPException, status
from sqlmodel import Session

from storefront.core.clock import as_utc, utc_now
from storefront.core.identity import item_key
from storefront.models.cart import CartEntry
from storefront.models.product import Product, ProductVariant
from storefront.repositories.cart_repo import CartRepository
from storefront.repositories.product_repo import ProductRepository
from storefront.schemas.cart import (
    CartEntryUpsert,
    Collection,
    CreatorSummary,
    StoreCollections,
    StoreEntry,
)


class CartService:
    """
    Business logic for the cart / saved-for-later store.

    Responsibilities:
      - validate product (and variant) existence and active flag
      - enforce quantity <= stock for cart rows (409 with available stock)
      - keep one row per identity; moving between lists rewrites the row
      - last write wins on the client's mutation timestamp
      - deletes leave a tombstone so delayed older writes are ignored
    """

    def __init__(self, cart_repo: CartRepository, product_repo: ProductRepository):
        self.cart_repo = cart_repo
        self.product_repo = product_repo

    # ---- internal helpers ----

    def _get_valid_product(
        self,
        session: Session,
        product_id: str,
        variant_id: str | None,
    ) -> tuple[Product, ProductVariant | None]:
        product = self.product_repo.get_by_id(session, product_id)
        if not product or not product.is_active:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail={"code": "not_found", "message": "Product not found"},
            )

        variant = None
        if variant_id is not None:
            variant = self.product_repo.get_variant(session, product_id, variant_id)
            if not variant:
                raise HTTPException(
                    status_code=status.HTTP_404_NOT_FOUND,
                    detail={"code": "not_found", "message": "Variant not found"},
                )
        return product, variant

    @staticmethod
    def _to_store_entry(
        entry: CartEntry,
        product: Product,
        variant: ProductVariant | None,
    ) -> StoreEntry:
        """
        Price and stock come from the variant when one is set.
        """
        stock = variant.stock_on_hand if variant else product.stock_on_hand
        creator = None
        if product.creator_name:
            creator = CreatorSummary(
                id=product.creator_id or "",
                name=product.creator_name,
                is_verified=product.creator_verified,
            )

        return StoreEntry(
            product_id=product.id,
            variant_id=variant.id if variant else None,
            variant_name=variant.name if variant else None,
            name=product.name,
            unit_price=variant.price if variant else product.price,
            stock_available=stock,
            image=product.hero_image_url,
            slug=product.slug,
            creator=creator,
            out_of_stock=stock == 0,
            collection=entry.collection,
            quantity=entry.quantity,
            updated_at=as_utc(entry.updated_at),
        )

    # ---- public operations ----

    def get_collections(self, session: Session, user_id: str) -> StoreCollections:
        """
        Return the user's cart and saved lists. Rows whose product has
        since disappeared are left out.
        """
        result = StoreCollections()

        for row in self.cart_repo.list_for_user(session, user_id):
            product = self.product_repo.get_by_id(session, row.product_id)
            if not product:
                continue
            variant = None
            if row.variant_id is not None:
                variant = self.product_repo.get_variant(session, row.product_id, row.variant_id)
                if not variant:
                    continue

            entry = self._to_store_entry(row, product, variant)
            if row.collection == Collection.CART:
                result.cart_items.append(entry)
            else:
                result.saved_items.append(entry)

        return result

    def upsert_entry(
        self,
        session: Session,
        user_id: str,
        payload: CartEntryUpsert,
    ) -> StoreEntry:
        """
        Write one identity into the cart or saved list.

        Rules:
          - product (and variant) must exist and be active
          - cart quantity <= stock, else 409 with the available stock
          - a write older than the stored row is ignored; the stored row is
            returned, or 404 if the stored row is a tombstone
        """
        product, variant = self._get_valid_product(
            session, payload.product_id, payload.variant_id
        )
        key = item_key(payload.product_id, payload.variant_id)
        mutated_at = as_utc(payload.mutated_at or utc_now())

        entry = self.cart_repo.get_entry(session, user_id, key)
        if entry is not None and as_utc(entry.updated_at) > mutated_at:
            if entry.collection is None:
                raise HTTPException(
                    status_code=status.HTTP_404_NOT_FOUND,
                    detail={"code": "not_found", "message": "Item was removed"},
                )
            return self._to_store_entry(entry, product, variant)

        quantity = None
        if payload.collection == Collection.CART:
            quantity = payload.quantity or 1
            stock = variant.stock_on_hand if variant else product.stock_on_hand
            if quantity > stock:
                raise HTTPException(
                    status_code=status.HTTP_409_CONFLICT,
                    detail={
                        "code": "out_of_stock",
                        "message": f"Only {stock} of {product.name} available",
                        "available": stock,
                    },
                )

        if entry is None:
            entry = CartEntry(
                user_id=user_id,
                item_key=key,
                product_id=payload.product_id,
                variant_id=payload.variant_id,
            )

        entry.collection = payload.collection
        entry.quantity = quantity
        entry.updated_at = mutated_at
        entry = self.cart_repo.save(session, entry)

        return self._to_store_entry(entry, product, variant)

    def delete_entry(
        self,
        session: Session,
        user_id: str,
        product_id: str,
        variant_id: str | None,
        mutated_at: datetime | None,
    ) -> None:
        """
        Remove an identity from whichever list holds it. Idempotent.
        """
        key = item_key(product_id, variant_id)
        mutated_at = as_utc(mutated_at or utc_now())

        entry = self.cart_repo.get_entry(session, user_id, key)
        if entry is None:
            if not self.product_repo.get_by_id(session, product_id):
                return
            if variant_id is not None and not self.product_repo.get_variant(
                session, product_id, variant_id
            ):
                return
            entry = CartEntry(
                user_id=user_id,
                item_key=key,
                product_id=product_id,
                variant_id=variant_id,
            )
        elif as_utc(entry.updated_at) > mutated_at:
            return

        entry.collection = None
        entry.quantity = None
        entry.updated_at = mutated_at
        self.cart_repo.save(session, entry)
