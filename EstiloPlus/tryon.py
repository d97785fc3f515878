# tryon.py
"""
Credit-metered virtual try-on.

One request runs straight through, with no retries:

1. load the account, refuse if the balance is below the try-on cost
2. resolve the garment image (catalog product or caller-supplied URL)
3. resolve the active prompt template and render it
4. ask the composition provider for the composite image
5. upload the composite to object storage
6. debit the ledger (atomic; may still fail if a concurrent request spent
   the credits first)
7. record the artifact and commit it together with the debit

A failure at 4 or 5 aborts before the ledger is touched. A failure at 6
leaves the uploaded image orphaned in storage; nothing is compensated.
"""

import logging
import time
import uuid
from dataclasses import dataclass
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import field_validator
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

import ledger
from auth import any_account, ensure_self_or_admin
from catalog import get_product, product_out
from composer import compose_try_on
from db import get_db
from errors import AccountNotFound, InsufficientCredits, InvalidInput
from models import GeneratedImage, Product, User
from prompts import render_prompt, resolve_active_prompt
from schemas import CamelModel, GeneratedImageOut, clean_url
from settings import settings
from storage import generated_folder, upload_image

log = logging.getLogger(__name__)
router = APIRouter(tags=["Try-On"])


# ===================================================================
# SCHEMAS
# ===================================================================

def _required_url(v: Optional[str], what: str) -> str:
    url = clean_url(v)
    if not url:
        raise ValueError(f"{what} is required")
    return url


class TryOnIn(CamelModel):
    product_id: uuid.UUID
    user_image_url: str
    user_id: Optional[uuid.UUID] = None

    @field_validator("user_image_url")
    @classmethod
    def _user_image(cls, v: str) -> str:
        return _required_url(v, "Profile photo URL")


class LocalTryOnIn(CamelModel):
    clothing_image_url: str
    user_image_url: str
    user_id: Optional[uuid.UUID] = None

    @field_validator("clothing_image_url")
    @classmethod
    def _clothing_image(cls, v: str) -> str:
        return _required_url(v, "Clothing image URL")

    @field_validator("user_image_url")
    @classmethod
    def _user_image(cls, v: str) -> str:
        return _required_url(v, "Profile photo URL")


class TryOnOut(CamelModel):
    image_url: str
    credits_remaining: int


@dataclass
class TryOnResult:
    image_url: str
    credits_remaining: int
    artifact_id: uuid.UUID


# ===================================================================
# WORKFLOW
# ===================================================================

async def run_try_on(
    db: AsyncSession,
    user_id: uuid.UUID,
    user_image_url: str,
    product_id: Optional[uuid.UUID] = None,
    clothing_image_url: Optional[str] = None,
) -> TryOnResult:
    """Runs one try-on generation for `user_id` and charges it to their balance."""
    if (product_id is None) == (clothing_image_url is None):
        raise InvalidInput("Provide either a product or a clothing image.")

    cost = settings.TRY_ON_COST
    account = await db.get(User, user_id)
    if account is None:
        raise AccountNotFound()
    if account.credits < cost:
        raise InsufficientCredits(required=cost, current=account.credits)

    if product_id is not None:
        product = await get_product(db, product_id)
        clothing_image_url = product.image_url

    template = await resolve_active_prompt(db)
    instruction = render_prompt(template)

    image_bytes = await compose_try_on(user_image_url, clothing_image_url, instruction)

    image_url = await upload_image(
        image_bytes,
        folder=generated_folder(account.id),
        public_id=f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}",
    )

    credits_remaining = await ledger.debit(db, account.id, cost)

    artifact = GeneratedImage(
        user_id=account.id,
        product_id=product_id,
        original_image_url=user_image_url,
        generated_image_url=image_url,
        prompt_used=template,
    )
    db.add(artifact)
    await db.commit()

    log.info(
        f"Try-on generated for user {account.id} (product={product_id}); "
        f"{credits_remaining} credits remaining"
    )
    return TryOnResult(image_url=image_url, credits_remaining=credits_remaining, artifact_id=artifact.id)


# ===================================================================
# API Endpoints
# ===================================================================

@router.post("/generate-try-on", response_model=TryOnOut)
async def generate_try_on(
    payload: TryOnIn,
    db: AsyncSession = Depends(get_db),
    account: User = Depends(any_account),
):
    """Try on a catalog product."""
    user_id = ensure_self_or_admin(account, payload.user_id)
    result = await run_try_on(db, user_id, payload.user_image_url, product_id=payload.product_id)
    return TryOnOut(image_url=result.image_url, credits_remaining=result.credits_remaining)


@router.post("/generate-try-on-local", response_model=TryOnOut)
async def generate_try_on_local(
    payload: LocalTryOnIn,
    db: AsyncSession = Depends(get_db),
    account: User = Depends(any_account),
):
    """Try on a garment photo supplied directly by the caller."""
    user_id = ensure_self_or_admin(account, payload.user_id)
    result = await run_try_on(
        db, user_id, payload.user_image_url, clothing_image_url=payload.clothing_image_url
    )
    return TryOnOut(image_url=result.image_url, credits_remaining=result.credits_remaining)


@router.get("/generated-images/{user_id}", response_model=List[GeneratedImageOut])
async def list_generated_images(
    user_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    account: User = Depends(any_account),
):
    """The account's artifacts, newest first, each with its product if it still exists."""
    user_id = ensure_self_or_admin(account, user_id)
    result = await db.execute(
        select(GeneratedImage, Product)
        .outerjoin(Product, Product.id == GeneratedImage.product_id)
        .where(GeneratedImage.user_id == user_id)
        .order_by(GeneratedImage.created_at.desc())
    )
    images = []
    for artifact, product in result.all():
        out = GeneratedImageOut.model_validate(artifact)
        if product is not None:
            out.product = product_out(product)
        images.append(out)
    return images
