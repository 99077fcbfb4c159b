"""Replays completed responses for repeated client requests."""
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional, Protocol

from ..billing.exceptions import RequestInProgressError
from .models import MAX_IDEMPOTENCY_KEY_LENGTH, IdempotencyRecord, IdempotencyStatus, IdempotentResponse


logger = logging.getLogger(__name__)


class IdempotencyRepository(Protocol):
    """Storage for idempotency keys; ``(user_id, route, key)`` is unique."""

    def get_record(self, user_id: str, route: str, key: str) -> Optional[IdempotencyRecord]:
        ...

    def try_create(self, user_id: str, route: str, key: str) -> bool:
        """Insert an in-progress record, returning ``False`` if one already exists."""

    def reclaim(self, user_id: str, route: str, key: str, *, stale_before: datetime) -> bool:
        """Move a failed or stale in-progress record back to in-progress."""

    def mark_completed(self, user_id: str, route: str, key: str, *, status_code: int, body: Any) -> None:
        ...

    def mark_failed(self, user_id: str, route: str, key: str) -> None:
        ...


class IdempotencyService:
    """Runs an operation at most once per idempotency key and replays its response.

    A key left in progress longer than ``in_progress_ttl_seconds`` is treated
    as abandoned and may be retried.
    """

    def __init__(
        self,
        repository: IdempotencyRepository,
        *,
        in_progress_ttl_seconds: int = 120,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._repository = repository
        self._ttl = timedelta(seconds=in_progress_ttl_seconds)
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def execute(
        self,
        *,
        user_id: str,
        route: str,
        key: str,
        operation: Callable[[], IdempotentResponse],
    ) -> IdempotentResponse:
        key = (key or "").strip()
        if not key:
            raise ValueError("Idempotency-Key must not be empty")
        if len(key) > MAX_IDEMPOTENCY_KEY_LENGTH:
            raise ValueError(f"Idempotency-Key must be at most {MAX_IDEMPOTENCY_KEY_LENGTH} characters")

        existing = self._repository.get_record(user_id, route, key)
        if existing is not None:
            if existing.status == IdempotencyStatus.COMPLETED:
                logger.info("Replaying stored response route=%s user=%s key=%s", route, user_id, key)
                return IdempotentResponse(
                    status_code=existing.response_status or 200,
                    body=existing.response_body,
                    replayed=True,
                )
            stale_before = self._clock() - self._ttl
            if existing.status == IdempotencyStatus.IN_PROGRESS and existing.updated_at > stale_before:
                logger.warning("Duplicate request while in progress route=%s user=%s key=%s", route, user_id, key)
                raise RequestInProgressError()
            if not self._repository.reclaim(user_id, route, key, stale_before=stale_before):
                raise RequestInProgressError()
            logger.info("Retrying request route=%s user=%s key=%s previous=%s", route, user_id, key, existing.status.value)
        elif not self._repository.try_create(user_id, route, key):
            raise RequestInProgressError()

        try:
            response = operation()
        except Exception:
            self._repository.mark_failed(user_id, route, key)
            raise

        self._repository.mark_completed(
            user_id,
            route,
            key,
            status_code=response.status_code,
            body=response.body,
        )
        return response


__all__ = ["IdempotencyRepository", "IdempotencyService"]
