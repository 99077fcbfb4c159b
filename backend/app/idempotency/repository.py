"""PostgreSQL storage for idempotency keys."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

import psycopg2.extras

from ..billing.repository import PostgresRepository
from .models import IdempotencyRecord, IdempotencyStatus


def _row_to_record(row: dict) -> IdempotencyRecord:
    return IdempotencyRecord(
        user_id=str(row["user_id"]),
        route=row["route"],
        key=row["key"],
        status=IdempotencyStatus(row["status"]),
        response_status=row.get("response_status"),
        response_body=row.get("response_body"),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class PostgresIdempotencyRepository(PostgresRepository):
    """Stores idempotency keys in the ``idempotency_keys`` table."""

    def get_record(self, user_id: str, route: str, key: str) -> Optional[IdempotencyRecord]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT *
                FROM idempotency_keys
                WHERE user_id = %s AND route = %s AND key = %s
                LIMIT 1
                """,
                (user_id, route, key),
            )
            row = cursor.fetchone()
            return _row_to_record(row) if row else None

    def try_create(self, user_id: str, route: str, key: str) -> bool:
        with self._cursor() as cursor:
            cursor.execute(
                """
                INSERT INTO idempotency_keys (user_id, route, key, status)
                VALUES (%s, %s, %s, %s)
                ON CONFLICT (user_id, route, key) DO NOTHING
                """,
                (user_id, route, key, IdempotencyStatus.IN_PROGRESS.value),
            )
            return cursor.rowcount > 0

    def reclaim(self, user_id: str, route: str, key: str, *, stale_before: datetime) -> bool:
        with self._cursor() as cursor:
            cursor.execute(
                """
                UPDATE idempotency_keys
                SET status = 'in_progress',
                    response_status = NULL,
                    response_body = NULL,
                    updated_at = NOW()
                WHERE user_id = %(user_id)s AND route = %(route)s AND key = %(key)s
                  AND (status = 'failed' OR (status = 'in_progress' AND updated_at <= %(stale_before)s))
                """,
                {"user_id": user_id, "route": route, "key": key, "stale_before": stale_before},
            )
            return cursor.rowcount > 0

    def mark_completed(self, user_id: str, route: str, key: str, *, status_code: int, body: Any) -> None:
        with self._cursor() as cursor:
            cursor.execute(
                """
                UPDATE idempotency_keys
                SET status = 'completed',
                    response_status = %s,
                    response_body = %s,
                    updated_at = NOW()
                WHERE user_id = %s AND route = %s AND key = %s
                """,
                (status_code, psycopg2.extras.Json(body), user_id, route, key),
            )

    def mark_failed(self, user_id: str, route: str, key: str) -> None:
        with self._cursor() as cursor:
            cursor.execute(
                """
                UPDATE idempotency_keys
                SET status = 'failed', updated_at = NOW()
                WHERE user_id = %s AND route = %s AND key = %s AND status = 'in_progress'
                """,
                (user_id, route, key),
            )
