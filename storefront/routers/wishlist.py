# storefront/routers/wishlist.py
from fastapi import APIRouter, Depends
from sqlmodel import Session

from storefront.core.auth import require_owner
from storefront.database import get_session
from storefront.models.user import User
from storefront.repositories.product_repo import ProductRepository
from storefront.repositories.wishlist_repo import WishlistRepository
from storefront.schemas.wishlist import (
    WishlistMembershipUpdate,
    WishlistRead,
    WishlistToggleRead,
)
from storefront.services.wishlist_service import WishlistService

router = APIRouter(prefix="/users/{user_id}/wishlist", tags=["Wishlist"])

service = WishlistService(WishlistRepository(), ProductRepository())


@router.get("", response_model=WishlistRead)
def get_wishlist(
    user_id: str,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_owner),
):
    return service.list_wishlist(session, current_user.id)


@router.put("/{product_id}", response_model=WishlistToggleRead)
def set_wishlist_entry(
    user_id: str,
    product_id: str,
    payload: WishlistMembershipUpdate,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_owner),
):
    """
    Set membership of `product_id`. Returns the membership as stored.
    """
    return service.set_membership(session, current_user.id, product_id, payload)
