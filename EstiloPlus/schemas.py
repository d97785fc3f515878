# schemas.py
"""
Shared Pydantic schemas.

Response shapes reused by more than one router live here; request bodies
stay next to the endpoint that accepts them. Wire names are camelCase.
"""

import uuid
from datetime import datetime
from typing import Optional
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# --- Sanitation helpers (used from field validators) ---

def clean_text(value: Optional[str], max_length: int = 500) -> Optional[str]:
    """Trims and truncates free text; blank becomes None."""
    if value is None:
        return None
    value = value.strip()[:max_length]
    return value or None


def clean_url(value: Optional[str]) -> Optional[str]:
    """Accepts http(s) URLs only; blank becomes None."""
    if value is None or not value.strip():
        return None
    value = value.strip()
    parsed = urlparse(value)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValueError("URL must use http or https")
    return value[:2000]


def require_name(value: str, what: str = "Name") -> str:
    value = (value or "").strip()
    if len(value) < 2:
        raise ValueError(f"{what} must have at least 2 characters")
    return value[:200]


# --- Response schemas ---

class AccountOut(CamelModel):
    id: uuid.UUID
    email: str
    name: str
    role: str
    credits: int
    profile_image_url: Optional[str] = None
    stripe_customer_id: Optional[str] = None
    created_at: Optional[datetime] = None


class StoreOut(CamelModel):
    id: uuid.UUID
    user_id: uuid.UUID
    name: str
    description: Optional[str] = None
    logo_url: Optional[str] = None
    website_url: Optional[str] = None
    is_active: bool = True
    created_at: Optional[datetime] = None
    user: Optional[AccountOut] = None


class ProductOut(CamelModel):
    id: uuid.UUID
    store_id: uuid.UUID
    name: str
    description: Optional[str] = None
    image_url: str
    product_url: Optional[str] = None
    category: Optional[str] = None
    size: Optional[str] = None
    color: Optional[str] = None
    style: Optional[str] = None
    created_at: Optional[datetime] = None
    store: Optional[StoreOut] = None


class GeneratedImageOut(CamelModel):
    id: uuid.UUID
    user_id: uuid.UUID
    product_id: Optional[uuid.UUID] = None
    original_image_url: str
    generated_image_url: str
    prompt_used: str
    created_at: Optional[datetime] = None
    product: Optional[ProductOut] = None


class PromptOut(CamelModel):
    id: uuid.UUID
    name: str
    content: str
    is_active: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class CreditPackageOut(CamelModel):
    id: uuid.UUID
    name: str
    description: Optional[str] = None
    credits: int
    price_in_cents: int
    stripe_price_id: Optional[str] = None
    is_active: bool


class CreditPurchaseOut(CamelModel):
    id: uuid.UUID
    user_id: uuid.UUID
    credits: int
    amount_paid: int
    stripe_session_id: str
    stripe_payment_intent_id: Optional[str] = None
    status: str
    reason: Optional[str] = None
    created_at: Optional[datetime] = None


class SuccessOut(BaseModel):
    success: bool = True
