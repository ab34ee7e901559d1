# storefront/routers/cart.py
from datetime import datetime

from fastapi import APIRouter, Depends, Response, status
from sqlmodel import Session

from storefront.core.auth import require_owner
from storefront.database import get_session
from storefront.models.user import User
from storefront.repositories.cart_repo import CartRepository
from storefront.repositories.product_repo import ProductRepository
from storefront.schemas.cart import CartEntryUpsert, StoreCollections, StoreEntry
from storefront.services.cart_service import CartService

router = APIRouter(prefix="/users/{user_id}/cart", tags=["Cart"])

cart_repo = CartRepository()
product_repo = ProductRepository()
service = CartService(cart_repo, product_repo)


@router.get("", response_model=StoreCollections)
def get_collections(
    user_id: str,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_owner),
):
    """
    Get the user's cart and saved-for-later lists.
    """
    return service.get_collections(session, current_user.id)


@router.put("/items", response_model=StoreEntry)
def upsert_entry(
    user_id: str,
    payload: CartEntryUpsert,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_owner),
):
    """
    Put one identity into the cart or saved list (also moves it).

    Returns the stored row, which may be newer than the payload.
    """
    return service.upsert_entry(session, current_user.id, payload)


@router.delete("/items/{product_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_entry(
    user_id: str,
    product_id: str,
    variant_id: str | None = None,
    mutated_at: datetime | None = None,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_owner),
):
    """
    Remove one identity from whichever list holds it. Safe to repeat.
    """
    service.delete_entry(session, current_user.id, product_id, variant_id, mutated_at)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
