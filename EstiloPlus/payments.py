# payments.py
"""
Credit packages, Stripe Checkout and payment completion.

Flow:
1.  `POST /create-checkout-session` opens a hosted Checkout Session for one
    credit package. The account id, package id and credit quantity ride along
    as session metadata.
2.  Stripe calls `POST /stripe/webhook` with `checkout.session.completed`.
    The handler inserts a `CreditPurchase` keyed by the session id and credits
    the ledger in the same transaction. The session id is UNIQUE, so a
    redelivered notification finds its receipt already there and changes
    nothing.
"""

import asyncio
import logging
import uuid
from typing import List, Optional

import stripe
from fastapi import APIRouter, Depends, Header, Request
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

import ledger
from auth import any_account, ensure_self_or_admin
from db import get_db
from errors import AccountNotFound, InvalidInput, PackageNotFound, PaymentProviderError
from models import CreditPackage, User
from schemas import CamelModel, CreditPackageOut
from settings import settings

# --- Configuration & Setup ---
log = logging.getLogger(__name__)
router = APIRouter(tags=["Credits & Payments"])
stripe.api_key = settings.STRIPE_SECRET_KEY


# --- Pydantic Schemas for Data Validation ---

class CheckoutSessionIn(CamelModel):
    package_id: uuid.UUID
    user_id: Optional[uuid.UUID] = None


class CheckoutSessionOut(BaseModel):
    url: str


class PublishableKeyOut(CamelModel):
    publishable_key: str


class WebhookOut(BaseModel):
    received: bool = True
    status: str


# --- Core Payment Logic ---

def _require_stripe():
    if not settings.STRIPE_SECRET_KEY:
        raise PaymentProviderError.not_configured("Payments")


async def ensure_customer(db: AsyncSession, account: User) -> str:
    """Returns the account's Stripe customer id, creating the customer on first checkout."""
    if account.stripe_customer_id:
        return account.stripe_customer_id

    customer = await asyncio.to_thread(
        stripe.Customer.create,
        email=account.email,
        metadata={"userId": str(account.id)},
    )
    account.stripe_customer_id = customer.id
    await db.commit()
    log.info(f"Created Stripe customer {customer.id} for user {account.id}")
    return customer.id


async def create_checkout_session(db: AsyncSession, account: User, package: CreditPackage) -> str:
    """Opens a hosted Checkout Session for `package` and returns its redirect URL."""
    _require_stripe()
    try:
        customer_id = await ensure_customer(db, account)
        checkout_session = await asyncio.to_thread(
            stripe.checkout.Session.create,
            customer=customer_id,
            payment_method_types=["card"],
            line_items=[{
                "price_data": {
                    "currency": settings.CHECKOUT_CURRENCY,
                    "product_data": {
                        "name": package.name,
                        "description": f"{package.credits} credits for the virtual fitting room",
                    },
                    "unit_amount": package.price_in_cents,
                },
                "quantity": 1,
            }],
            mode="payment",
            success_url=f"{settings.FRONTEND_URL}/client?payment=success",
            cancel_url=f"{settings.FRONTEND_URL}/client?payment=cancelled",
            metadata={
                "userId": str(account.id),
                "packageId": str(package.id),
                "credits": str(package.credits),
            },
        )
    except stripe.StripeError as e:
        log.error(f"Stripe checkout session creation failed for user {account.id}: {e}")
        raise PaymentProviderError("Failed to create payment session.")

    log.info(f"Checkout session {checkout_session.id} opened for user {account.id}, package {package.id}")
    return checkout_session.url


def _parse_metadata(metadata: dict):
    try:
        user_id = uuid.UUID(str(metadata.get("userId")))
        credits = int(metadata.get("credits") or 0)
    except (TypeError, ValueError):
        return None, 0
    return user_id, credits


async def handle_checkout_completed(db: AsyncSession, session: dict) -> str:
    """
    Grants the credits of a completed Checkout Session, at most once per session.

    Returns the outcome: "processed", "duplicate" or "ignored".
    """
    session_id = session.get("id")
    user_id, credits = _parse_metadata(session.get("metadata") or {})

    if not session_id or user_id is None or credits <= 0:
        log.error(f"Checkout session {session_id} is missing userId or credits metadata; ignoring.")
        return "ignored"
    if session.get("payment_status") == "unpaid":
        log.warning(f"Checkout session {session_id} completed without payment; ignoring.")
        return "ignored"

    if await ledger.purchase_exists(db, session_id):
        log.info(f"Checkout session {session_id} already processed; ignoring duplicate delivery.")
        return "duplicate"

    if await db.get(User, user_id) is None:
        log.error(f"Checkout session {session_id} names unknown user {user_id}; ignoring.")
        return "ignored"

    try:
        new_balance = await ledger.record_purchase(
            db,
            user_id,
            credits=credits,
            amount_paid=session.get("amount_total") or 0,
            session_id=session_id,
            payment_intent_id=session.get("payment_intent"),
        )
        await db.commit()
    except IntegrityError:
        # Lost the race against a concurrent delivery of the same session.
        await db.rollback()
        log.info(f"Checkout session {session_id} recorded concurrently; ignoring duplicate delivery.")
        return "duplicate"

    log.info(f"Added {credits} credits to user {user_id} (session {session_id}). New total: {new_balance}")
    return "processed"


# --- API Endpoints ---

@router.get("/credit-packages", response_model=List[CreditPackageOut])
async def list_credit_packages(db: AsyncSession = Depends(get_db)):
    """Active packages, cheapest first."""
    result = await db.execute(
        select(CreditPackage)
        .where(CreditPackage.is_active.is_(True))
        .order_by(CreditPackage.price_in_cents.asc())
    )
    return result.scalars().all()


@router.get("/stripe/publishable-key", response_model=PublishableKeyOut)
async def read_publishable_key():
    if not settings.STRIPE_PUBLISHABLE_KEY:
        raise PaymentProviderError.not_configured("Payments")
    return PublishableKeyOut(publishable_key=settings.STRIPE_PUBLISHABLE_KEY)


@router.post("/create-checkout-session", response_model=CheckoutSessionOut)
async def start_checkout(
    payload: CheckoutSessionIn,
    db: AsyncSession = Depends(get_db),
    account: User = Depends(any_account),
):
    user_id = ensure_self_or_admin(account, payload.user_id)
    buyer = account if user_id == account.id else await db.get(User, user_id)
    if buyer is None:
        raise AccountNotFound()

    package = await db.get(CreditPackage, payload.package_id)
    if package is None or not package.is_active:
        raise PackageNotFound()

    url = await create_checkout_session(db, buyer, package)
    return CheckoutSessionOut(url=url)


@router.post("/stripe/webhook", response_model=WebhookOut, include_in_schema=False)
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None),
    db: AsyncSession = Depends(get_db),
):
    """
    Receives Stripe events. The body is read raw: signature verification
    needs the exact bytes Stripe sent.
    """
    if not settings.STRIPE_WEBHOOK_SECRET:
        log.error("STRIPE_WEBHOOK_SECRET is not set; rejecting webhook.")
        raise PaymentProviderError.not_configured("Payment webhook")
    if not stripe_signature:
        raise InvalidInput("Missing Stripe-Signature header.")

    payload = await request.body()
    try:
        event = stripe.Webhook.construct_event(
            payload=payload, sig_header=stripe_signature, secret=settings.STRIPE_WEBHOOK_SECRET
        )
    except ValueError:
        raise InvalidInput("Invalid payload.")
    except stripe.SignatureVerificationError:
        log.warning("Stripe webhook signature verification failed.")
        raise InvalidInput("Invalid signature.")

    event_type = event["type"]
    if event_type != "checkout.session.completed":
        log.info(f"Stripe event {event.get('id')} of type {event_type} acknowledged without action.")
        return WebhookOut(status="ignored")

    outcome = await handle_checkout_completed(db, event["data"]["object"])
    return WebhookOut(status=outcome)
