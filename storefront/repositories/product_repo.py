# storefront/repositories/product_repo.py
from sqlmodel import Session, select

from storefront.models.product import Product, ProductVariant


class ProductRepository:
    """
    Data access layer for Product & ProductVariant.

    - Pure DB operations (CRUD + queries).
    - No FastAPI, no business logic.
    """

    def get_by_id(self, session: Session, product_id: str) -> Product | None:
        return session.get(Product, product_id)

    def get_variant(
        self,
        session: Session,
        product_id: str,
        variant_id: str,
    ) -> ProductVariant | None:
        stmt = select(ProductVariant).where(
            ProductVariant.id == variant_id,
            ProductVariant.product_id == product_id,
        )
        return session.exec(stmt).first()
