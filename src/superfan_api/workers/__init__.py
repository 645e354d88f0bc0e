"""Background workers supporting async processing."""

from .hold_expiry import HoldExpiryWorker

__all__ = ["HoldExpiryWorker"]
