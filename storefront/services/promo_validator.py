# storefront/services/promo_validator.py
import logging
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Awaitable, Callable, Iterable

from storefront.core.clock import utc_now
from storefront.core.errors import InvalidPromoCode, StoreError
from storefront.schemas.pricing import PromoApplication, PromoKind, PromoRule

logger = logging.getLogger(__name__)

PromoLookup = Callable[[str], Awaitable[PromoRule | None]]

DEFAULT_PROMO_RULES: tuple[PromoRule, ...] = (
    PromoRule(code="SAVE10", kind=PromoKind.PERCENT, value=Decimal("10")),
    PromoRule(code="FLAT100", kind=PromoKind.FLAT, value=Decimal("100")),
)


def normalize_code(code: str) -> str:
    return code.strip().upper()


def static_lookup(rules: Iterable[PromoRule] = DEFAULT_PROMO_RULES) -> PromoLookup:
    """
    Build a lookup over a fixed code table. Codes match case-insensitively.
    """
    table = {normalize_code(rule.code): rule for rule in rules}

    async def lookup(code: str) -> PromoRule | None:
        return table.get(normalize_code(code))

    return lookup


class PromoStatus(str, Enum):
    UNAPPLIED = "unapplied"
    VALIDATING = "validating"
    APPLIED = "applied"
    REJECTED = "rejected"


class PromoCodeValidator:
    """
    State machine for promo code entry.

      UNAPPLIED --submit--> VALIDATING --> APPLIED | REJECTED
      APPLIED   --remove--> UNAPPLIED
      REJECTED  --submit--> VALIDATING (retry with another code)

    Only one code is active at a time: submitting a new code drops the
    current application. The discount is computed once, against the
    subtotal at the moment the code becomes APPLIED, and then frozen.
    """

    def __init__(
        self,
        lookup: PromoLookup | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self._lookup = lookup or static_lookup()
        self._clock = clock or utc_now
        self._generation = 0

        self.status = PromoStatus.UNAPPLIED
        self.application: PromoApplication | None = None
        self.pending_code: str | None = None
        self.error: StoreError | None = None

    @property
    def discount(self) -> Decimal:
        if self.application is None:
            return Decimal("0")
        return self.application.discount_amount

    async def submit(
        self,
        code: str,
        subtotal: Callable[[], Decimal],
    ) -> PromoStatus:
        """
        Validate `code` and apply it.

        `subtotal` is read after the lookup resolves, so the frozen amount
        reflects the cart at apply time. A newer submit() or remove() that
        happens while this one is validating wins; this call then returns
        without touching state.
        """
        self._generation += 1
        generation = self._generation

        normalized = normalize_code(code)
        self.status = PromoStatus.VALIDATING
        self.application = None
        self.pending_code = normalized
        self.error = None

        if not normalized:
            return self._reject(normalized)

        try:
            rule = await self._lookup(normalized)
        except StoreError as exc:
            if generation != self._generation:
                return self.status
            logger.warning("Promo lookup for %s failed: %s", normalized, exc.message)
            self.status = PromoStatus.UNAPPLIED
            self.pending_code = None
            self.error = exc
            return self.status

        if generation != self._generation:
            logger.debug("Promo submission %s superseded", normalized)
            return self.status

        if rule is None:
            return self._reject(normalized)

        self.application = PromoApplication(
            code=normalized,
            discount_amount=rule.discount_for(subtotal()),
            applied_at=self._clock(),
        )
        self.status = PromoStatus.APPLIED
        self.pending_code = None
        logger.info(
            "Promo %s applied, discount frozen at %s",
            normalized,
            self.application.discount_amount,
        )
        return self.status

    def remove(self) -> PromoStatus:
        """
        Drop the current code (or cancel one still validating).
        """
        self._generation += 1
        self.status = PromoStatus.UNAPPLIED
        self.application = None
        self.pending_code = None
        self.error = None
        return self.status

    def _reject(self, code: str) -> PromoStatus:
        self.status = PromoStatus.REJECTED
        self.pending_code = None
        self.error = InvalidPromoCode(f"Invalid promo code: {code or '(empty)'}")
        logger.info("Promo %s rejected", code)
        return self.status
