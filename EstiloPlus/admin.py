# admin.py
"""
Administrator surface.

Every route here requires the ADMIN role. Writes are direct: deleting an
account leaves its stores, products and artifacts in place. The one
exception is product deletion, which goes through `catalog.delete_product`.
"""

import logging
import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, status
from pydantic import Field, field_validator
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

import ledger
from auth import admin_only
from catalog import delete_product, get_product, list_products_with_stores
from db import get_db
from errors import AccountNotFound, InvalidInput, PackageNotFound, StoreNotFound
from models import CreditPackage, GeneratedImage, Product, Role, Store, User
from schemas import (
    AccountOut, CamelModel, CreditPackageOut, ProductOut, StoreOut, SuccessOut,
    clean_text, require_name
)

log = logging.getLogger(__name__)
router = APIRouter(prefix="/admin", tags=["Admin"], dependencies=[Depends(admin_only)])


# ===================================================================
# SCHEMAS
# ===================================================================

class AccountUpdateIn(CamelModel):
    name: Optional[str] = None
    role: Optional[Role] = None
    credits: Optional[int] = Field(default=None, ge=0)

    @field_validator("name")
    @classmethod
    def _name(cls, v: Optional[str]) -> Optional[str]:
        return require_name(v) if v is not None else None


class CreditAdjustmentIn(CamelModel):
    amount: int
    reason: Optional[str] = None

    @field_validator("amount")
    @classmethod
    def _nonzero(cls, v: int) -> int:
        if v == 0:
            raise ValueError("Amount must not be zero")
        return v

    @field_validator("reason")
    @classmethod
    def _reason(cls, v: Optional[str]) -> Optional[str]:
        return clean_text(v)


class CreditPackageIn(CamelModel):
    name: str
    credits: int = Field(gt=0)
    price_in_cents: int = Field(gt=0)
    description: Optional[str] = None
    stripe_price_id: Optional[str] = None
    is_active: bool = True

    @field_validator("name")
    @classmethod
    def _name(cls, v: str) -> str:
        return require_name(v, "Package name")

    @field_validator("description")
    @classmethod
    def _description(cls, v: Optional[str]) -> Optional[str]:
        return clean_text(v)


class CreditPackageUpdate(CamelModel):
    name: Optional[str] = None
    credits: Optional[int] = Field(default=None, gt=0)
    price_in_cents: Optional[int] = Field(default=None, gt=0)
    description: Optional[str] = None
    stripe_price_id: Optional[str] = None
    is_active: Optional[bool] = None

    @field_validator("name")
    @classmethod
    def _name(cls, v: Optional[str]) -> Optional[str]:
        return require_name(v, "Package name") if v is not None else None

    @field_validator("description")
    @classmethod
    def _description(cls, v: Optional[str]) -> Optional[str]:
        return clean_text(v)


class StatsOut(CamelModel):
    total_users: int
    client_count: int
    store_count: int
    admin_count: int
    total_stores: int
    total_products: int
    total_generated_images: int
    total_credits_in_circulation: int


# ===================================================================
# ACCOUNTS
# ===================================================================

async def _get_account(db: AsyncSession, user_id: uuid.UUID) -> User:
    account = await db.get(User, user_id)
    if account is None:
        raise AccountNotFound()
    return account


@router.get("/users", response_model=List[AccountOut])
async def list_users(db: AsyncSession = Depends(get_db)):
    result = await db.execute(select(User).order_by(User.created_at.desc()))
    return result.scalars().all()


@router.patch("/users/{user_id}", response_model=AccountOut)
async def update_user(user_id: uuid.UUID, payload: AccountUpdateIn, db: AsyncSession = Depends(get_db)):
    account = await _get_account(db, user_id)
    changes = payload.model_dump(exclude_unset=True)
    if any(changes.get(field) is None for field in changes):
        raise InvalidInput("Fields cannot be set to null.")

    if "name" in changes:
        account.name = changes["name"]
    if "role" in changes:
        account.role = Role(changes["role"]).value
    if "credits" in changes:
        await ledger.set_balance(db, account.id, changes["credits"])
        log.info(f"Admin set balance of user {account.id} to {changes['credits']}")

    await db.commit()
    await db.refresh(account)
    return account


@router.delete("/users/{user_id}", response_model=SuccessOut)
async def delete_user(user_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    await _get_account(db, user_id)
    await db.execute(delete(User).where(User.id == user_id))
    await db.commit()
    log.info(f"Admin deleted user {user_id}")
    return SuccessOut()


@router.post("/users/{user_id}/credits", response_model=AccountOut)
async def adjust_user_credits(
    user_id: uuid.UUID, payload: CreditAdjustmentIn, db: AsyncSession = Depends(get_db)
):
    """
    Adds (or with a negative amount, removes) credits.

    The balance never goes below zero; positive grants leave a zero-amount
    receipt in the purchase history.
    """
    account = await _get_account(db, user_id)
    new_balance = await ledger.adjust(db, account.id, payload.amount, payload.reason)
    await db.commit()
    await db.refresh(account)
    log.info(f"Admin adjusted credits of user {account.id} by {payload.amount}; new balance {new_balance}")
    return account


# ===================================================================
# STORES & PRODUCTS
# ===================================================================

@router.get("/stores", response_model=List[StoreOut])
async def list_stores(db: AsyncSession = Depends(get_db)):
    """All stores, newest first, each with its owner if the account still exists."""
    result = await db.execute(
        select(Store, User)
        .outerjoin(User, User.id == Store.user_id)
        .order_by(Store.created_at.desc())
    )
    stores = []
    for store, owner in result.all():
        out = StoreOut.model_validate(store)
        if owner is not None:
            out.user = AccountOut.model_validate(owner)
        stores.append(out)
    return stores


@router.delete("/stores/{store_id}", response_model=SuccessOut)
async def delete_store(store_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    if await db.get(Store, store_id) is None:
        raise StoreNotFound()
    await db.execute(delete(Store).where(Store.id == store_id))
    await db.commit()
    log.info(f"Admin deleted store {store_id}")
    return SuccessOut()


@router.get("/products", response_model=List[ProductOut])
async def list_products(db: AsyncSession = Depends(get_db)):
    return await list_products_with_stores(db)


@router.delete("/products/{product_id}", response_model=SuccessOut)
async def remove_product(product_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    await get_product(db, product_id)
    await delete_product(db, product_id)
    return SuccessOut()


# ===================================================================
# CREDIT PACKAGES
# ===================================================================

async def _get_package(db: AsyncSession, package_id: uuid.UUID) -> CreditPackage:
    package = await db.get(CreditPackage, package_id)
    if package is None:
        raise PackageNotFound()
    return package


@router.get("/credit-packages", response_model=List[CreditPackageOut])
async def list_all_packages(db: AsyncSession = Depends(get_db)):
    """Every package, inactive ones included."""
    result = await db.execute(select(CreditPackage).order_by(CreditPackage.price_in_cents.asc()))
    return result.scalars().all()


@router.post("/credit-packages", response_model=CreditPackageOut, status_code=status.HTTP_201_CREATED)
async def create_package(payload: CreditPackageIn, db: AsyncSession = Depends(get_db)):
    package = CreditPackage(**payload.model_dump())
    db.add(package)
    await db.commit()
    log.info(f"Admin created credit package {package.id} ({package.credits} credits)")
    return package


@router.patch("/credit-packages/{package_id}", response_model=CreditPackageOut)
async def update_package(
    package_id: uuid.UUID, payload: CreditPackageUpdate, db: AsyncSession = Depends(get_db)
):
    package = await _get_package(db, package_id)
    changes = payload.model_dump(exclude_unset=True)
    for field in ("name", "credits", "price_in_cents", "is_active"):
        if field in changes and changes[field] is None:
            raise InvalidInput(f"{field} cannot be null.")
    for field, value in changes.items():
        setattr(package, field, value)
    await db.commit()
    return package


@router.delete("/credit-packages/{package_id}", response_model=SuccessOut)
async def delete_package(package_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    await _get_package(db, package_id)
    await db.execute(delete(CreditPackage).where(CreditPackage.id == package_id))
    await db.commit()
    log.info(f"Admin deleted credit package {package_id}")
    return SuccessOut()


# ===================================================================
# STATS
# ===================================================================

async def _count(db: AsyncSession, model, *where) -> int:
    result = await db.execute(select(func.count()).select_from(model).where(*where))
    return result.scalar_one()


@router.get("/stats", response_model=StatsOut)
async def read_stats(db: AsyncSession = Depends(get_db)):
    credits = await db.execute(select(func.coalesce(func.sum(User.credits), 0)))
    return StatsOut(
        total_users=await _count(db, User),
        client_count=await _count(db, User, User.role == Role.CLIENT.value),
        store_count=await _count(db, User, User.role == Role.STORE.value),
        admin_count=await _count(db, User, User.role == Role.ADMIN.value),
        total_stores=await _count(db, Store),
        total_products=await _count(db, Product),
        total_generated_images=await _count(db, GeneratedImage),
        total_credits_in_circulation=credits.scalar_one(),
    )
