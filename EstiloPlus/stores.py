# stores.py
import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import field_validator
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from auth import is_admin, store_or_admin
from db import get_db
from errors import InvalidInput, StoreNotFound, Unauthorized
from models import Store, User
from schemas import CamelModel, StoreOut, clean_text, clean_url, require_name

log = logging.getLogger(__name__)
router = APIRouter(prefix="/stores", tags=["Stores"])


# --- Pydantic Schemas ---

class StoreIn(CamelModel):
    name: Optional[str] = None
    description: Optional[str] = None
    logo_url: Optional[str] = None
    website_url: Optional[str] = None

    @field_validator("name")
    @classmethod
    def _name(cls, v: Optional[str]) -> Optional[str]:
        return require_name(v, "Store name") if v is not None else None

    @field_validator("description")
    @classmethod
    def _description(cls, v: Optional[str]) -> Optional[str]:
        return clean_text(v, 1000)

    @field_validator("logo_url", "website_url")
    @classmethod
    def _url(cls, v: Optional[str]) -> Optional[str]:
        return clean_url(v)


# --- Core Logic ---

async def get_store_for_owner(db: AsyncSession, user_id: uuid.UUID) -> Optional[Store]:
    result = await db.execute(select(Store).where(Store.user_id == user_id))
    return result.scalar_one_or_none()


def _apply(store: Store, payload: StoreIn):
    changes = payload.model_dump(exclude_unset=True)
    if "name" in changes and changes["name"] is None:
        raise InvalidInput("Store name cannot be empty.")
    for field, value in changes.items():
        setattr(store, field, value)
    store.updated_at = datetime.now(timezone.utc)


async def upsert_store(db: AsyncSession, owner: User, payload: StoreIn) -> Store:
    """
    Creates the owner's store on first submission, updates it afterwards.
    An account owns at most one store.
    """
    store = await get_store_for_owner(db, owner.id)
    if store is None:
        if not payload.name:
            raise InvalidInput("Store name is required.")
        store = Store(user_id=owner.id, name=payload.name)
        db.add(store)
        log.info(f"Creating store for user {owner.id}")
    _apply(store, payload)
    await db.commit()
    return store


# --- API Endpoints ---

@router.get("/mine", response_model=Optional[StoreOut])
async def read_my_store(
    db: AsyncSession = Depends(get_db),
    account: User = Depends(store_or_admin),
):
    """Returns the caller's store, or null before store settings are saved."""
    return await get_store_for_owner(db, account.id)


@router.put("/mine", response_model=StoreOut)
async def save_my_store(
    payload: StoreIn,
    db: AsyncSession = Depends(get_db),
    account: User = Depends(store_or_admin),
):
    return await upsert_store(db, account, payload)


@router.patch("/{store_id}", response_model=StoreOut)
async def update_store(
    store_id: uuid.UUID,
    payload: StoreIn,
    db: AsyncSession = Depends(get_db),
    account: User = Depends(store_or_admin),
):
    store = await db.get(Store, store_id)
    if not store:
        raise StoreNotFound()
    if not is_admin(account) and store.user_id != account.id:
        raise Unauthorized("You can only edit your own store.")
    _apply(store, payload)
    await db.commit()
    return store
