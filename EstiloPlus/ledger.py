# ledger.py
"""
Credit ledger.

Balances only ever change through the conditional UPDATE statements below,
so concurrent requests cannot lose each other's writes:

- `debit` succeeds only while the stored balance still covers the amount
  (`... WHERE credits >= :amount`); a racing request that finds the balance
  already spent gets `InsufficientCredits`.
- `credit` adds a signed amount and clamps the result at zero in the same
  statement.

None of these functions commit. The caller owns the transaction so that a
debit and the row it pays for (an artifact, a profile photo) commit together.
Accounts already loaded in the session keep their old balance until refreshed.
"""

import logging
import uuid
from typing import Optional

from sqlalchemy import case, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from errors import AccountNotFound, InsufficientCredits
from models import CreditPurchase, User

log = logging.getLogger(__name__)


async def balance(db: AsyncSession, user_id: uuid.UUID) -> int:
    """Returns the current balance, raising `AccountNotFound` for unknown ids."""
    result = await db.execute(select(User.credits).where(User.id == user_id))
    credits = result.scalar_one_or_none()
    if credits is None:
        raise AccountNotFound()
    return credits


async def debit(db: AsyncSession, user_id: uuid.UUID, amount: int = 1) -> int:
    """Atomically removes `amount` credits and returns the new balance."""
    if amount < 0:
        raise ValueError("debit amount must be non-negative")

    result = await db.execute(
        update(User)
        .where(User.id == user_id, User.credits >= amount)
        .values(credits=User.credits - amount)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        current = await balance(db, user_id)
        log.info(f"Debit of {amount} rejected for user {user_id}: balance {current}")
        raise InsufficientCredits(required=amount, current=current)

    return await balance(db, user_id)


async def credit(db: AsyncSession, user_id: uuid.UUID, amount: int) -> int:
    """Atomically adds a signed `amount`, never going below zero."""
    new_value = User.credits + amount
    result = await db.execute(
        update(User)
        .where(User.id == user_id)
        .values(credits=case((new_value < 0, 0), else_=new_value))
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise AccountNotFound()
    return await balance(db, user_id)


async def set_balance(db: AsyncSession, user_id: uuid.UUID, credits: int) -> int:
    """Overwrites the balance (operator correction). No receipt is written."""
    if credits < 0:
        raise ValueError("balance cannot be negative")
    result = await db.execute(
        update(User)
        .where(User.id == user_id)
        .values(credits=credits)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise AccountNotFound()
    return credits


async def adjust(
    db: AsyncSession, user_id: uuid.UUID, amount: int, reason: Optional[str] = None
) -> int:
    """
    Manual adjustment by an operator.

    Positive grants leave a zero-amount `CreditPurchase` receipt so they show
    up in the account's purchase history; deductions leave none.
    """
    new_balance = await credit(db, user_id, amount)
    if amount > 0:
        db.add(CreditPurchase(
            user_id=user_id,
            credits=amount,
            amount_paid=0,
            stripe_session_id=f"manual_{uuid.uuid4().hex}",
            status="completed",
            reason=reason,
        ))
        await db.flush()
    return new_balance


async def record_purchase(
    db: AsyncSession,
    user_id: uuid.UUID,
    credits: int,
    amount_paid: int,
    session_id: str,
    payment_intent_id: Optional[str] = None,
) -> int:
    """
    Inserts the receipt for a completed checkout and credits the account.

    The receipt is flushed first: a second delivery of the same session hits
    the UNIQUE constraint on `stripe_session_id` and raises `IntegrityError`
    before any credit is applied.
    """
    db.add(CreditPurchase(
        user_id=user_id,
        credits=credits,
        amount_paid=amount_paid,
        stripe_session_id=session_id,
        stripe_payment_intent_id=payment_intent_id,
        status="completed",
    ))
    await db.flush()
    return await credit(db, user_id, credits)


async def purchase_exists(db: AsyncSession, session_id: str) -> bool:
    result = await db.execute(
        select(CreditPurchase.id).where(CreditPurchase.stripe_session_id == session_id)
    )
    return result.scalar_one_or_none() is not None
