"""Pairs a resource write with credit consumption and undoes the write on failure."""
from __future__ import annotations

import logging
from typing import Any, Callable, Mapping, Optional, TypeVar

from .ledger import CreditLedger
from .models import BillingAuditEvent, BillingAuditEventType
from .service import BillingEventLogger


logger = logging.getLogger("billing")

T = TypeVar("T")


def resource_id_from_result(result: Any) -> str:
    """Read the saved resource id from an object or mapping result."""

    if isinstance(result, Mapping):
        value = result.get("id")
    else:
        value = getattr(result, "id", None)
    return str(value) if value is not None else ""


def with_credit_transaction(
    ledger: CreditLedger,
    *,
    user_id: str,
    credit_code: str,
    operation: Callable[[], T],
    compensate: Callable[[str], None],
    resource_id_of: Callable[[T], str] = resource_id_from_result,
    event_logger: Optional[BillingEventLogger] = None,
) -> T:
    """Run ``operation`` then consume one credit against the resource it saved.

    If consumption fails, ``compensate`` is called with the resource id and
    the consumption error is re-raised unchanged. A failing compensation is
    logged and reported but never replaces that error.
    """

    result = operation()
    resource_id = resource_id_of(result)

    try:
        credit = ledger.consume(user_id, credit_code, resource_id)
    except Exception as exc:
        logger.warning(
            "Credit consumption failed for resource %s user=%s code=%s: %s",
            resource_id,
            user_id,
            credit_code,
            exc,
        )
        if resource_id:
            _run_compensation(
                compensate,
                resource_id=resource_id,
                user_id=user_id,
                credit_code=credit_code,
                event_logger=event_logger,
            )
        raise

    if event_logger is not None:
        event_logger.log(
            BillingAuditEvent(
                event_type=BillingAuditEventType.CREDIT_CONSUMED,
                user_id=user_id,
                actor_id=user_id,
                credit_id=credit.id,
                resource_id=resource_id,
                metadata={"credit_code": credit_code},
            )
        )
    return result


def _run_compensation(
    compensate: Callable[[str], None],
    *,
    resource_id: str,
    user_id: str,
    credit_code: str,
    event_logger: Optional[BillingEventLogger],
) -> None:
    try:
        compensate(resource_id)
    except Exception:
        logger.exception(
            "Compensation failed for resource %s user=%s code=%s; resource left without credit",
            resource_id,
            user_id,
            credit_code,
        )
        if event_logger is not None:
            event_logger.log(
                BillingAuditEvent(
                    event_type=BillingAuditEventType.CREDIT_COMPENSATION_FAILED,
                    user_id=user_id,
                    resource_id=resource_id,
                    metadata={"credit_code": credit_code},
                )
            )
        return
    logger.info("Compensated resource %s after failed credit consumption", resource_id)


__all__ = ["resource_id_from_result", "with_credit_transaction"]
