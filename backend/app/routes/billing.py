"""API routes exposing credits, credit purchases and admin grants."""
from __future__ import annotations

import logging
import os
import secrets
from functools import lru_cache
from typing import Any, Callable, Optional

from fastapi import APIRouter, Cookie, Depends, Header, HTTPException, status

from ..billing import InvalidTransactionStateError
from ..schemas.billing import (
    CompleteTransactionRequest,
    CreditListResponse,
    CreditResponse,
    GrantCreditRequest,
    ProductResponse,
    PurchaseCreditRequest,
    SettlementResponse,
    TransactionResponse,
)
from ..services.billing import get_billing_config, get_billing_service, get_credit_ledger, get_product_catalog


logger = logging.getLogger("billing")


def _resolve_get_current_user() -> Callable[..., Any]:  # pragma: no cover
    try:
        from backend.main import get_current_user as resolved
    except ModuleNotFoundError as exc:
        if exc.name != "backend":
            raise
        from ...main import get_current_user as resolved  # type: ignore[no-redef]
    return resolved


@lru_cache(maxsize=1)
def _get_current_user_callable() -> Callable[..., Any]:
    return _resolve_get_current_user()


_SESSION_COOKIE_NAME = os.getenv("SESSION_COOKIE_NAME", "session")


def _get_current_user(
    session_token: Optional[str] = Cookie(None, alias=_SESSION_COOKIE_NAME),
):
    resolved = _get_current_user_callable()
    return resolved(session_token=session_token)


router = APIRouter(prefix="/api/billing", tags=["billing"])


@router.get("/credits", response_model=CreditListResponse)
def list_credits(*, current_user=Depends(_get_current_user)) -> CreditListResponse:
    config = get_billing_config()
    credits = get_credit_ledger().list_available(str(current_user.id), config.one_off_credit_code)
    return CreditListResponse(
        credits=[CreditResponse.from_credit(credit) for credit in credits],
        available_count=len(credits),
    )


@router.get("/products/{code}", response_model=ProductResponse)
def get_product(code: str) -> ProductResponse:
    try:
        product = get_product_catalog().get_product(code)
    except LookupError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return ProductResponse.from_product(product)


@router.post("/credits/purchase", response_model=TransactionResponse, status_code=status.HTTP_201_CREATED)
def purchase_credit(
    payload: PurchaseCreditRequest,
    *,
    current_user=Depends(_get_current_user),
) -> TransactionResponse:
    service = get_billing_service()
    try:
        transaction = service.create_credit_purchase(
            user_id=str(current_user.id),
            product_code=payload.product_code,
            provider=payload.provider,
        )
    except LookupError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return TransactionResponse.from_transaction(transaction)


@router.get("/transactions/{transaction_id}", response_model=TransactionResponse)
def get_transaction_status(
    transaction_id: str,
    *,
    current_user=Depends(_get_current_user),
) -> TransactionResponse:
    try:
        transaction = get_billing_service().get_user_transaction(transaction_id, user_id=str(current_user.id))
    except LookupError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return TransactionResponse.from_transaction(transaction)


@router.post("/transactions/{transaction_id}/complete", response_model=SettlementResponse)
def complete_transaction(
    transaction_id: str,
    payload: CompleteTransactionRequest,
    system_token: Optional[str] = Header(None, alias="X-Billing-System-Token"),
) -> SettlementResponse:
    expected_token = get_billing_config().system_token
    if not expected_token or not system_token or not secrets.compare_digest(system_token, expected_token):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not allowed to settle transactions")

    service = get_billing_service()
    try:
        result = service.complete_transaction(transaction_id, provider_payment_id=payload.provider_payment_id)
    except LookupError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except InvalidTransactionStateError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    return SettlementResponse.from_result(result)


@router.post(
    "/admin/users/{user_id}/grant-credit",
    response_model=SettlementResponse,
    status_code=status.HTTP_201_CREATED,
)
def grant_credit(
    user_id: str,
    payload: GrantCreditRequest,
    *,
    current_user=Depends(_get_current_user),
) -> SettlementResponse:
    if getattr(current_user, "role", None) != "admin":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")

    service = get_billing_service()
    credit_code = payload.credit_code or get_billing_config().one_off_credit_code
    try:
        result = service.grant_credit(
            admin_id=str(current_user.id),
            user_id=user_id,
            credit_code=credit_code,
            reason=payload.reason,
        )
    except LookupError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    logger.info("Admin %s granted %s to user %s", current_user.id, credit_code, user_id)
    return SettlementResponse.from_result(result)
