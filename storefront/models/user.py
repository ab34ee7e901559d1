# storefront/models/user.py
from datetime import datetime, timezone

from sqlmodel import SQLModel, Field


class User(SQLModel, table=True):
    """
    Shopper account.

    Identity:
      - id: the "sub" claim of the access token

    Rows are created on first authenticated request (see core.auth).
    """

    __tablename__ = "users"

    id: str = Field(
        primary_key=True,
        index=True,
        description="Matches the token subject",
    )

    email: str | None = Field(
        default=None,
        index=True,
    )

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Creation timestamp (UTC)",
    )
