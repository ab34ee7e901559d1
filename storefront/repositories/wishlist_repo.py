# storefront/repositories/wishlist_repo.py
from sqlmodel import Session, select

from storefront.models.wishlist import WishlistEntry


class WishlistRepository:

    def list_members(self, session: Session, user_id: str) -> list[WishlistEntry]:
        stmt = (
            select(WishlistEntry)
            .where(WishlistEntry.user_id == user_id, WishlistEntry.member == True)
            .order_by(WishlistEntry.updated_at)
        )
        return session.exec(stmt).all()

    def get(self, session: Session, user_id: str, product_id: str) -> WishlistEntry | None:
        return session.get(WishlistEntry, (user_id, product_id))

    def save(self, session: Session, entry: WishlistEntry) -> WishlistEntry:
        session.add(entry)
        session.commit()
        session.refresh(entry)
        return entry
