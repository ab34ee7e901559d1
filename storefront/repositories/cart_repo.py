# storefront/repositories/cart_repo.py
from sqlmodel import Session, select

from storefront.models.cart import CartEntry


class CartRepository:

    # Live rows (cart + saved) for a user; tombstones are skipped
    def list_for_user(self, session: Session, user_id: str) -> list[CartEntry]:
        stmt = (
            select(CartEntry)
            .where(CartEntry.user_id == user_id, CartEntry.collection != None)
            .order_by(CartEntry.updated_at)
        )
        return session.exec(stmt).all()

    def get_entry(self, session: Session, user_id: str, item_key: str) -> CartEntry | None:
        stmt = select(CartEntry).where(
            CartEntry.user_id == user_id,
            CartEntry.item_key == item_key,
        )
        return session.exec(stmt).first()

    def save(self, session: Session, entry: CartEntry) -> CartEntry:
        session.add(entry)
        session.commit()
        session.refresh(entry)
        return entry
