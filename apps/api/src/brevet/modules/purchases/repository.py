"""
Purchase Repository

Database operations for purchase orders.

Design Principles:
- Status transitions are single conditional UPDATE statements; the allowed
  source statuses are part of the WHERE clause
- A transition that loses a race affects zero rows and reports False
- Timezone-aware datetime handling (UTC)
"""

from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .models import CONFIRMABLE_STATUSES, PaymentStatus, Purchase


def _stale_pending(now: datetime):
    return (
        Purchase.payment_status == PaymentStatus.PENDING,
        Purchase.expired_at.is_not(None),
        Purchase.expired_at <= now,
    )


async def create(
    db: AsyncSession,
    *,
    user_id: UUID,
    batch_id: UUID,
    expired_at: datetime | None = None,
    payment_status: PaymentStatus = PaymentStatus.PENDING,
) -> Purchase:
    """Create a purchase order."""
    purchase = Purchase(
        user_id=user_id,
        batch_id=batch_id,
        expired_at=expired_at,
        payment_status=payment_status,
    )
    db.add(purchase)
    await db.commit()
    await db.refresh(purchase)
    return purchase


async def get_by_id(db: AsyncSession, id: UUID) -> Purchase | None:
    """Get purchase by ID."""
    return await db.get(Purchase, id)


async def get_stale_pending_ids(db: AsyncSession, now: datetime) -> list[UUID]:
    """IDs of pending purchases whose expiry has passed."""
    result = await db.execute(select(Purchase.id).where(*_stale_pending(now)))
    return list(result.scalars().all())


async def expire_if_stale(db: AsyncSession, id: UUID, now: datetime) -> bool:
    """
    Move one purchase from pending to expired if it is still stale.

    Returns:
        True if the purchase was expired, False if it is no longer pending
        (for example confirmed in the meantime) or not yet due.
    """
    result = await db.execute(
        update(Purchase)
        .where(Purchase.id == id, *_stale_pending(now))
        .values(payment_status=PaymentStatus.EXPIRED, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    return result.rowcount > 0


async def confirm_payment(db: AsyncSession, id: UUID, now: datetime | None = None) -> bool:
    """
    Mark a purchase as paid if it is still awaiting payment.

    Returns:
        True if the purchase was confirmed, False if it had already left the
        pending/waiting_confirmation states (expired, cancelled, ...).
    """
    result = await db.execute(
        update(Purchase)
        .where(Purchase.id == id, Purchase.payment_status.in_(CONFIRMABLE_STATUSES))
        .values(payment_status=PaymentStatus.PAID, updated_at=now or datetime.now(UTC))
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    return result.rowcount > 0
