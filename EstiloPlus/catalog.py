# catalog.py
import logging
import uuid
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, status
from pydantic import field_validator
from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from auth import is_admin, store_or_admin
from db import get_db
from errors import InvalidInput, ProductNotFound, StoreNotFound, Unauthorized
from models import GeneratedImage, Product, Store, User
from schemas import (
    CamelModel, ProductOut, StoreOut, SuccessOut, clean_text, clean_url, require_name
)

# --- Configuration & Setup ---
log = logging.getLogger(__name__)
router = APIRouter(prefix="/products", tags=["Products"])


# --- Pydantic Schemas for Data Validation ---

class ProductIn(CamelModel):
    store_id: uuid.UUID
    name: str
    image_url: str
    description: Optional[str] = None
    product_url: Optional[str] = None
    category: Optional[str] = None
    size: Optional[str] = None
    color: Optional[str] = None
    style: Optional[str] = None

    @field_validator("name")
    @classmethod
    def _name(cls, v: str) -> str:
        return require_name(v, "Product name")

    @field_validator("image_url")
    @classmethod
    def _image_url(cls, v: str) -> str:
        url = clean_url(v)
        if not url:
            raise ValueError("Product image is required")
        return url

    @field_validator("product_url")
    @classmethod
    def _product_url(cls, v: Optional[str]) -> Optional[str]:
        return clean_url(v)

    @field_validator("description")
    @classmethod
    def _description(cls, v: Optional[str]) -> Optional[str]:
        return clean_text(v, 1000)

    @field_validator("category", "style")
    @classmethod
    def _long_tag(cls, v: Optional[str]) -> Optional[str]:
        return clean_text(v, 100)

    @field_validator("size", "color")
    @classmethod
    def _short_tag(cls, v: Optional[str]) -> Optional[str]:
        return clean_text(v, 50)


class ProductUpdate(CamelModel):
    """Partial update; only the fields sent are touched."""
    name: Optional[str] = None
    image_url: Optional[str] = None
    description: Optional[str] = None
    product_url: Optional[str] = None
    category: Optional[str] = None
    size: Optional[str] = None
    color: Optional[str] = None
    style: Optional[str] = None

    @field_validator("name")
    @classmethod
    def _name(cls, v: Optional[str]) -> Optional[str]:
        return require_name(v, "Product name") if v is not None else None

    @field_validator("image_url")
    @classmethod
    def _image_url(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        url = clean_url(v)
        if not url:
            raise ValueError("Product image cannot be empty")
        return url

    @field_validator("product_url")
    @classmethod
    def _product_url(cls, v: Optional[str]) -> Optional[str]:
        return clean_url(v)

    @field_validator("description")
    @classmethod
    def _description(cls, v: Optional[str]) -> Optional[str]:
        return clean_text(v, 1000)

    @field_validator("category", "style")
    @classmethod
    def _long_tag(cls, v: Optional[str]) -> Optional[str]:
        return clean_text(v, 100)

    @field_validator("size", "color")
    @classmethod
    def _short_tag(cls, v: Optional[str]) -> Optional[str]:
        return clean_text(v, 50)


# --- Core Catalog Logic ---

def product_out(product: Product, store: Optional[Store] = None) -> ProductOut:
    out = ProductOut.model_validate(product)
    if store is not None:
        out.store = StoreOut.model_validate(store)
    return out


async def get_product(db: AsyncSession, product_id: uuid.UUID) -> Product:
    product = await db.get(Product, product_id)
    if not product:
        raise ProductNotFound()
    return product


async def list_products_with_stores(db: AsyncSession) -> List[ProductOut]:
    """All products, newest first, each with its store (if it still exists)."""
    result = await db.execute(
        select(Product, Store)
        .outerjoin(Store, Store.id == Product.store_id)
        .order_by(Product.created_at.desc())
    )
    return [product_out(product, store) for product, store in result.all()]


def ensure_owns_store(account: User, store: Optional[Store]):
    """Store owners manage their own store's catalog; admins manage any."""
    if is_admin(account):
        return
    if store is None or store.user_id != account.id:
        raise Unauthorized("You can only manage products of your own store.")


async def delete_product(db: AsyncSession, product_id: uuid.UUID):
    """
    Removes a product.

    Artifacts generated from it keep their images but lose the product
    reference, in the same transaction, so no row is left pointing at a
    missing product.
    """
    await db.execute(
        update(GeneratedImage)
        .where(GeneratedImage.product_id == product_id)
        .values(product_id=None)
        .execution_options(synchronize_session=False)
    )
    await db.execute(delete(Product).where(Product.id == product_id))
    await db.commit()
    log.info(f"Deleted product {product_id}")


# --- API Endpoints ---

@router.get("", response_model=List[ProductOut], summary="List all catalog products")
async def list_products(db: AsyncSession = Depends(get_db)):
    return await list_products_with_stores(db)


@router.get("/{product_id}", response_model=ProductOut)
async def read_product(product_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    product = await get_product(db, product_id)
    store = await db.get(Store, product.store_id)
    return product_out(product, store)


@router.post("", response_model=ProductOut, status_code=status.HTTP_201_CREATED)
async def create_product(
    payload: ProductIn,
    db: AsyncSession = Depends(get_db),
    account: User = Depends(store_or_admin),
):
    store = await db.get(Store, payload.store_id)
    if not store:
        raise StoreNotFound()
    ensure_owns_store(account, store)
    product = Product(**payload.model_dump())
    db.add(product)
    await db.commit()
    log.info(f"Store {store.id} created product {product.id}")
    return product_out(product, store)


@router.patch("/{product_id}", response_model=ProductOut)
async def update_product(
    product_id: uuid.UUID,
    payload: ProductUpdate,
    db: AsyncSession = Depends(get_db),
    account: User = Depends(store_or_admin),
):
    product = await get_product(db, product_id)
    store = await db.get(Store, product.store_id)
    ensure_owns_store(account, store)

    changes = payload.model_dump(exclude_unset=True)
    if "name" in changes and changes["name"] is None:
        raise InvalidInput("Product name cannot be empty.")
    if "image_url" in changes and changes["image_url"] is None:
        raise InvalidInput("Product image cannot be empty.")
    for field, value in changes.items():
        setattr(product, field, value)
    product.updated_at = datetime.now(timezone.utc)

    await db.commit()
    return product_out(product, store)


@router.delete("/{product_id}", response_model=SuccessOut)
async def remove_product(
    product_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    account: User = Depends(store_or_admin),
):
    product = await get_product(db, product_id)
    ensure_owns_store(account, await db.get(Store, product.store_id))
    await delete_product(db, product_id)
    return SuccessOut()
