"""
Purchase Models

Payment orders for course batches. The payment flow is
pending -> waiting_confirmation -> paid | rejected, with cancelled and
expired as terminal exits. Only a pending order can expire.
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, Uuid
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column

from brevet.modules.shared.models import BaseModel


class PaymentStatus(str, enum.Enum):
    """Status of a purchase's payment."""

    PENDING = "pending"
    WAITING_CONFIRMATION = "waiting_confirmation"
    PAID = "paid"
    REJECTED = "rejected"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


# Statuses from which an admin may confirm payment
CONFIRMABLE_STATUSES = (PaymentStatus.PENDING, PaymentStatus.WAITING_CONFIRMATION)


class Purchase(BaseModel):
    """A user's order for one course batch."""

    __tablename__ = "purchases"

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    batch_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)

    payment_status: Mapped[PaymentStatus] = mapped_column(
        SAEnum(
            PaymentStatus,
            name="payment_status",
            values_callable=lambda e: [m.value for m in e],
        ),
        nullable=False,
        default=PaymentStatus.PENDING,
    )

    # Deadline for a pending order; None means the order never expires
    expired_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (Index("ix_purchases_status_expired_at", "payment_status", "expired_at"),)

    def __repr__(self) -> str:
        return f"<Purchase(id={self.id}, status={self.payment_status.value})>"
