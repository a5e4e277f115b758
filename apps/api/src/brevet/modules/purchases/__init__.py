"""
Purchases Module

Payment orders for course batches.

Background Jobs (via APScheduler):
- purchases_expire_pending: Runs every CLEANUP_INTERVAL_HOURS, expires pending
  orders whose payment deadline has passed
"""

from .jobs import PurchaseExpirer, register_purchase_jobs
from .models import PaymentStatus, Purchase

__all__ = ["PaymentStatus", "Purchase", "PurchaseExpirer", "register_purchase_jobs"]
