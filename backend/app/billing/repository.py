"""Persistence layer for billing domain objects."""
from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime
from typing import Iterable, Optional

import psycopg2
import psycopg2.extras
from psycopg2 import errorcodes
from psycopg2.extensions import connection as PgConnection
from psycopg2.extensions import cursor as PgCursor

from .exceptions import DuplicateCreditError
from .models import Credit, CreditStatus, Product, ProductType, Transaction, TransactionStatus
from ..entitlements.models import ClubSubscription, MembershipRole, PlanKey, SubscriptionStatus

try:  # pragma: no cover - resolve connection helper when imported from FastAPI app
    from backend.app_context import get_conn
except ModuleNotFoundError as exc:  # pragma: no cover
    if exc.name != "backend":
        raise
    from ...app_context import get_conn  # type: ignore[no-redef]


@contextmanager
def managed_connection(conn: Optional[PgConnection] = None):
    """Context manager that manages transaction boundaries for optional connections."""

    if conn is not None:
        yield conn, False
        return

    connection = get_conn()
    try:
        yield connection, True
        connection.commit()
    except Exception:
        connection.rollback()
        raise
    finally:
        connection.close()


def is_unique_violation(exc: BaseException) -> bool:
    """Return ``True`` when ``exc`` is a PostgreSQL unique constraint violation."""

    return getattr(exc, "pgcode", None) == errorcodes.UNIQUE_VIOLATION


def _row_to_product(row: dict) -> Product:
    return Product(
        code=row["code"],
        title=row["title"],
        product_type=ProductType(row["product_type"]),
        price=int(row["price"]),
        currency_code=row["currency_code"],
        is_active=bool(row["is_active"]),
        constraints=row.get("constraints") or {},
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_transaction(row: dict) -> Transaction:
    return Transaction(
        id=str(row["id"]),
        user_id=str(row["user_id"]),
        product_code=row["product_code"],
        amount=int(row["amount"]),
        currency_code=row["currency_code"],
        status=TransactionStatus(row["status"]),
        provider=row["provider"],
        provider_payment_id=row.get("provider_payment_id"),
        metadata=row.get("metadata") or {},
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_credit(row: dict) -> Credit:
    consumed_resource_id = row.get("consumed_resource_id")
    return Credit(
        id=str(row["id"]),
        user_id=str(row["user_id"]),
        credit_code=row["credit_code"],
        source_transaction_id=str(row["source_transaction_id"]),
        status=CreditStatus(row["status"]),
        consumed_resource_id=str(consumed_resource_id) if consumed_resource_id is not None else None,
        consumed_at=row.get("consumed_at"),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_club_subscription(row: dict) -> ClubSubscription:
    return ClubSubscription(
        club_id=str(row["club_id"]),
        plan_key=PlanKey(row["plan_id"]),
        status=SubscriptionStatus(row["status"]),
        current_period_start=row.get("current_period_start"),
        current_period_end=row.get("current_period_end"),
        grace_until=row.get("grace_until"),
    )


class PostgresRepository:
    """Base class giving repositories a managed RealDictCursor."""

    def __init__(self, *, conn: Optional[PgConnection] = None) -> None:
        self._conn = conn

    @contextmanager
    def _cursor(self) -> Iterable[PgCursor]:
        with managed_connection(self._conn) as (connection, managed):
            cursor = connection.cursor(cursor_factory=psycopg2.extras.RealDictCursor)
            try:
                yield cursor
                if managed:
                    connection.commit()
            except Exception:
                if managed:
                    connection.rollback()
                raise
            finally:
                cursor.close()


class PostgresBillingRepository(PostgresRepository):
    """Concrete repository persisting products, transactions and credits in PostgreSQL."""

    # Products

    def list_products(self) -> list[Product]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT *
                FROM billing_products
                ORDER BY code
                """
            )
            rows = cursor.fetchall() or []
            return [_row_to_product(row) for row in rows]

    # Transactions

    def create_transaction(self, transaction: Transaction) -> Transaction:
        with self._cursor() as cursor:
            cursor.execute(
                """
                INSERT INTO billing_transactions (
                    id,
                    user_id,
                    product_code,
                    amount,
                    currency_code,
                    status,
                    provider,
                    provider_payment_id,
                    metadata
                )
                VALUES (%(id)s, %(user_id)s, %(product_code)s, %(amount)s, %(currency_code)s,
                        %(status)s, %(provider)s, %(provider_payment_id)s, %(metadata)s)
                RETURNING *
                """,
                {
                    "id": transaction.id,
                    "user_id": transaction.user_id,
                    "product_code": transaction.product_code,
                    "amount": transaction.amount,
                    "currency_code": transaction.currency_code,
                    "status": transaction.status.value,
                    "provider": transaction.provider,
                    "provider_payment_id": transaction.provider_payment_id,
                    "metadata": psycopg2.extras.Json(transaction.metadata),
                },
            )
            row = cursor.fetchone()
            if not row:
                raise RuntimeError("Failed to persist transaction")
            return _row_to_transaction(row)

    def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT *
                FROM billing_transactions
                WHERE id = %s
                LIMIT 1
                """,
                (transaction_id,),
            )
            row = cursor.fetchone()
            return _row_to_transaction(row) if row else None

    def transition_transaction(
        self,
        transaction_id: str,
        *,
        from_status: TransactionStatus,
        to_status: TransactionStatus,
        provider_payment_id: Optional[str] = None,
    ) -> Optional[Transaction]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                UPDATE billing_transactions
                SET status = %(to_status)s,
                    provider_payment_id = COALESCE(%(provider_payment_id)s, provider_payment_id),
                    updated_at = NOW()
                WHERE id = %(id)s AND status = %(from_status)s
                RETURNING *
                """,
                {
                    "id": transaction_id,
                    "from_status": from_status.value,
                    "to_status": to_status.value,
                    "provider_payment_id": provider_payment_id,
                },
            )
            row = cursor.fetchone()
            return _row_to_transaction(row) if row else None

    # Credits

    def insert_credit(self, credit: Credit) -> Credit:
        with self._cursor() as cursor:
            try:
                cursor.execute(
                    """
                    INSERT INTO billing_credits (
                        id,
                        user_id,
                        credit_code,
                        source_transaction_id,
                        status
                    )
                    VALUES (%(id)s, %(user_id)s, %(credit_code)s, %(source_transaction_id)s, %(status)s)
                    RETURNING *
                    """,
                    {
                        "id": credit.id,
                        "user_id": credit.user_id,
                        "credit_code": credit.credit_code,
                        "source_transaction_id": credit.source_transaction_id,
                        "status": credit.status.value,
                    },
                )
            except psycopg2.IntegrityError as exc:
                if is_unique_violation(exc):
                    raise DuplicateCreditError(credit.source_transaction_id) from exc
                raise
            row = cursor.fetchone()
            if not row:
                raise RuntimeError("Failed to persist credit")
            return _row_to_credit(row)

    def get_credit_by_transaction(self, source_transaction_id: str) -> Optional[Credit]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT *
                FROM billing_credits
                WHERE source_transaction_id = %s
                LIMIT 1
                """,
                (source_transaction_id,),
            )
            row = cursor.fetchone()
            return _row_to_credit(row) if row else None

    def list_available_credits(self, user_id: str, credit_code: str) -> list[Credit]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT *
                FROM billing_credits
                WHERE user_id = %s AND credit_code = %s AND status = 'available'
                ORDER BY created_at ASC
                """,
                (user_id, credit_code),
            )
            rows = cursor.fetchall() or []
            return [_row_to_credit(row) for row in rows]

    def has_available_credit(self, user_id: str, credit_code: str) -> bool:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT 1
                FROM billing_credits
                WHERE user_id = %s AND credit_code = %s AND status = 'available'
                LIMIT 1
                """,
                (user_id, credit_code),
            )
            return cursor.fetchone() is not None

    def claim_available_credit(
        self,
        *,
        user_id: str,
        credit_code: str,
        resource_id: str,
        consumed_at: datetime,
    ) -> Optional[Credit]:
        try:
            with self._cursor() as cursor:
                cursor.execute(
                    """
                    UPDATE billing_credits
                    SET status = 'consumed',
                        consumed_resource_id = %(resource_id)s,
                        consumed_at = %(consumed_at)s,
                        updated_at = NOW()
                    WHERE id = (
                        SELECT id
                        FROM billing_credits
                        WHERE user_id = %(user_id)s
                          AND credit_code = %(credit_code)s
                          AND status = 'available'
                        ORDER BY created_at ASC
                        LIMIT 1
                        FOR UPDATE SKIP LOCKED
                    )
                    AND status = 'available'
                    AND NOT EXISTS (
                        SELECT 1
                        FROM billing_credits
                        WHERE consumed_resource_id = %(resource_id)s
                          AND credit_code = %(credit_code)s
                    )
                    RETURNING *
                    """,
                    {
                        "user_id": user_id,
                        "credit_code": credit_code,
                        "resource_id": resource_id,
                        "consumed_at": consumed_at,
                    },
                )
                row = cursor.fetchone()
                return _row_to_credit(row) if row else None
        except psycopg2.IntegrityError as exc:
            # uq_billing_credits_consumed_resource: a concurrent claim bound this resource first.
            if is_unique_violation(exc):
                return None
            raise

    def list_credits_for_resource(
        self,
        resource_id: str,
        credit_code: Optional[str] = None,
    ) -> list[Credit]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT *
                FROM billing_credits
                WHERE consumed_resource_id = %(resource_id)s
                  AND (%(credit_code)s IS NULL OR credit_code = %(credit_code)s)
                ORDER BY consumed_at ASC
                """,
                {"resource_id": resource_id, "credit_code": credit_code},
            )
            rows = cursor.fetchall() or []
            return [_row_to_credit(row) for row in rows]


class PostgresClubDirectory(PostgresRepository):
    """Reads club subscriptions and member roles for entitlement checks."""

    def get_club_subscription(self, club_id: str) -> Optional[ClubSubscription]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT *
                FROM club_subscriptions
                WHERE club_id = %s
                ORDER BY updated_at DESC
                LIMIT 1
                """,
                (club_id,),
            )
            row = cursor.fetchone()
            return _row_to_club_subscription(row) if row else None

    def get_member_role(self, club_id: str, user_id: str) -> Optional[MembershipRole]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT role
                FROM club_members
                WHERE club_id = %s AND user_id = %s
                LIMIT 1
                """,
                (club_id, user_id),
            )
            row = cursor.fetchone()
            return MembershipRole(row["role"]) if row else None


__all__ = [
    "PostgresBillingRepository",
    "PostgresClubDirectory",
    "PostgresRepository",
    "is_unique_violation",
    "managed_connection",
]
