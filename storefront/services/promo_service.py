# storefront/services/promo_service.py
from fastapi import HTTPException, status
from sqlmodel import Session

from storefront.models.promo import PromoCode
from storefront.repositories.promo_repo import PromoRepository
from storefront.schemas.pricing import PromoRule
from storefront.services.promo_validator import normalize_code


class PromoService:
    def __init__(self, promo_repo: PromoRepository):
        self.promo_repo = promo_repo

    def get_rule(self, session: Session, code: str) -> PromoRule:
        """
        Look up an active code (case-insensitive). 404 when unknown.
        """
        promo = self.promo_repo.get_by_code(session, normalize_code(code))
        if not promo or not promo.is_active:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail={"code": "invalid_promo_code", "message": "Invalid promo code"},
            )
        return PromoRule(code=promo.code, kind=promo.kind, value=promo.value)

    def seed_defaults(self, session: Session, rules) -> int:
        """
        Insert any of `rules` missing from the table. Returns how many
        were added.
        """
        added = 0
        for rule in rules:
            code = normalize_code(rule.code)
            if self.promo_repo.get_by_code(session, code):
                continue
            self.promo_repo.create(
                session,
                PromoCode(code=code, kind=rule.kind, value=rule.value),
            )
            added += 1
        return added
