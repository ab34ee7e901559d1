# storefront/repositories/promo_repo.py
from sqlmodel import Session

from storefront.models.promo import PromoCode


class PromoRepository:

    def get_by_code(self, session: Session, code: str) -> PromoCode | None:
        return session.get(PromoCode, code)

    def create(self, session: Session, promo: PromoCode) -> PromoCode:
        session.add(promo)
        session.commit()
        session.refresh(promo)
        return promo
