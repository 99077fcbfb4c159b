"""Idempotency-key handling for retried client requests."""

from .models import IdempotencyRecord, IdempotencyStatus, IdempotentResponse
from .service import IdempotencyRepository, IdempotencyService

__all__ = [
    "IdempotencyRecord",
    "IdempotencyRepository",
    "IdempotencyService",
    "IdempotencyStatus",
    "IdempotentResponse",
]
