# users.py
import logging
import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import field_validator
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

import ledger
from auth import any_account, ensure_self_or_admin
from db import get_db
from errors import AccountNotFound
from models import CreditPurchase, User
from schemas import CamelModel, CreditPurchaseOut, clean_url
from settings import settings

log = logging.getLogger(__name__)
router = APIRouter(tags=["Auth & Users"])


class ProfilePhotoIn(CamelModel):
    image_url: str
    user_id: Optional[uuid.UUID] = None

    @field_validator("image_url")
    @classmethod
    def _image_url(cls, v: str) -> str:
        url = clean_url(v)
        if not url:
            raise ValueError("Image URL is required")
        return url


class ProfilePhotoOut(CamelModel):
    success: bool = True
    credits_remaining: int
    profile_image_url: str


class CreditsOut(CamelModel):
    credits: int


@router.post("/upload-profile-photo", response_model=ProfilePhotoOut)
async def upload_profile_photo(
    payload: ProfilePhotoIn,
    db: AsyncSession = Depends(get_db),
    account: User = Depends(any_account),
):
    """
    Sets the account's profile photo for `PROFILE_PHOTO_COST` credits.
    The debit and the new photo commit together.
    """
    user_id = ensure_self_or_admin(account, payload.user_id)
    target = account if user_id == account.id else await db.get(User, user_id)
    if target is None:
        raise AccountNotFound()

    credits_remaining = await ledger.debit(db, target.id, settings.PROFILE_PHOTO_COST)
    target.profile_image_url = payload.image_url
    await db.commit()

    log.info(f"User {target.id} updated profile photo; {credits_remaining} credits remaining")
    return ProfilePhotoOut(credits_remaining=credits_remaining, profile_image_url=payload.image_url)


@router.get("/user-credits/{user_id}", response_model=CreditsOut)
async def read_user_credits(
    user_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    account: User = Depends(any_account),
):
    user_id = ensure_self_or_admin(account, user_id)
    return CreditsOut(credits=await ledger.balance(db, user_id))


@router.get("/purchase-history/{user_id}", response_model=List[CreditPurchaseOut])
async def read_purchase_history(
    user_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    account: User = Depends(any_account),
):
    """Credit receipts of the account, newest first."""
    user_id = ensure_self_or_admin(account, user_id)
    result = await db.execute(
        select(CreditPurchase)
        .where(CreditPurchase.user_id == user_id)
        .order_by(CreditPurchase.created_at.desc())
    )
    return result.scalars().all()
