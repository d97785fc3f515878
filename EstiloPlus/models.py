# models.py
"""
Database models for EstiloPlus.

This file defines all SQLAlchemy models used by the application,
providing a single source of truth for the database schema.

Relations between tables are opaque UUID columns resolved by lookup.
The one integrity rule (artifacts losing their product on delete) is
enforced by `catalog.delete_product`.
"""

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Column, String, Boolean, DateTime, Text, Integer, Uuid
)

from db import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Role(str, enum.Enum):
    CLIENT = "client"
    STORE = "store"
    ADMIN = "admin"


# -----------------------
# Models
# -----------------------
class User(Base):
    __tablename__ = "users"
    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    email = Column(String(320), unique=True, nullable=False, index=True)
    name = Column(String(200), nullable=False, default="")
    role = Column(String(16), nullable=False, default=Role.CLIENT.value, index=True)
    credits = Column(Integer, nullable=False, default=0)
    profile_image_url = Column(String(2048), nullable=True)
    stripe_customer_id = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)


class Store(Base):
    __tablename__ = "stores"
    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    # At most one store per owning account.
    user_id = Column(Uuid, nullable=False, unique=True, index=True)
    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    logo_url = Column(String(2048), nullable=True)
    website_url = Column(String(2048), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class Product(Base):
    __tablename__ = "products"
    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    store_id = Column(Uuid, nullable=False, index=True)
    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    image_url = Column(String(2048), nullable=False)
    product_url = Column(String(2048), nullable=True)
    category = Column(String(100), nullable=True)
    size = Column(String(50), nullable=True)
    color = Column(String(50), nullable=True)
    style = Column(String(100), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class GeneratedImage(Base):
    __tablename__ = "generated_images"
    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, nullable=False, index=True)
    product_id = Column(Uuid, nullable=True, index=True)  # NULL for user-supplied garments
    original_image_url = Column(String(2048), nullable=False)
    generated_image_url = Column(String(2048), nullable=False)
    prompt_used = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)


class Prompt(Base):
    __tablename__ = "prompts"
    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(200), nullable=False)
    content = Column(Text, nullable=False)
    is_active = Column(Boolean, nullable=False, default=False, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class CreditPackage(Base):
    __tablename__ = "credit_packages"
    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(200), nullable=False)
    description = Column(String(500), nullable=True)
    credits = Column(Integer, nullable=False)
    price_in_cents = Column(Integer, nullable=False)
    stripe_price_id = Column(String(255), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)


class CreditPurchase(Base):
    __tablename__ = "credit_purchases"
    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, nullable=False, index=True)
    credits = Column(Integer, nullable=False)
    amount_paid = Column(Integer, nullable=False, default=0)  # minor currency units
    # Checkout Session id for paid grants, "manual_<uuid>" for admin grants.
    # UNIQUE: a redelivered completion notification cannot grant twice.
    stripe_session_id = Column(String(255), nullable=False, unique=True)
    stripe_payment_intent_id = Column(String(255), nullable=True)
    status = Column(String(32), nullable=False, default="completed")
    reason = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
