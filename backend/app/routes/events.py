"""API routes for creating and updating events behind the entitlement policy."""
from __future__ import annotations

import logging
import os
from functools import lru_cache
from typing import Any, Callable, Optional

from fastapi import APIRouter, Cookie, Depends, Header, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse

from ..billing import CreditConfirmationRequiredError, ProductNotFoundError
from ..idempotency import IdempotentResponse
from ..schemas.billing import EventEntitlementsResponse
from ..schemas.events import EventResponse, EventSaveRequest
from ..services.billing import (
    get_entitlement_policy,
    get_event_publish_service,
    get_idempotency_service,
)


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


router = APIRouter(prefix="/api/events", tags=["events"])


def _confirm_credit_href(request: Request) -> str:
    url = request.url.include_query_params(confirm_credit="1")
    return f"{url.path}?{url.query}"


def _save_event(
    request: Request,
    payload: EventSaveRequest,
    *,
    user_id: str,
    route: str,
    event_id: Optional[str],
    confirm_credit: bool,
    idempotency_key: Optional[str],
    success_status: int,
) -> JSONResponse:
    service = get_event_publish_service()

    def operation() -> IdempotentResponse:
        try:
            record = service.save_event(
                user_id,
                payload.to_draft(),
                event_id=event_id,
                confirm_credit=confirm_credit,
            )
        except CreditConfirmationRequiredError as exc:
            raise exc.with_cta_href(_confirm_credit_href(request)) from exc
        body = {
            "success": True,
            "event": EventResponse.from_record(record).model_dump(mode="json", by_alias=True),
        }
        return IdempotentResponse(status_code=success_status, body=body)

    try:
        if idempotency_key:
            response = get_idempotency_service().execute(
                user_id=user_id,
                route=route,
                key=idempotency_key,
                operation=operation,
            )
        else:
            response = operation()
    except ProductNotFoundError as exc:
        logger.exception("One-off credit product is not configured")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Billing product is not configured",
        ) from exc
    except LookupError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    headers = {"X-Idempotency-Replay": "true"} if response.replayed else None
    return JSONResponse(status_code=response.status_code, content=response.body, headers=headers)


@router.post("", status_code=status.HTTP_201_CREATED)
def create_event(
    payload: EventSaveRequest,
    request: Request,
    confirm_credit: bool = Query(False),
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
    *,
    current_user=Depends(_get_current_user),
) -> JSONResponse:
    return _save_event(
        request,
        payload,
        user_id=str(current_user.id),
        route="POST /api/events",
        event_id=None,
        confirm_credit=confirm_credit,
        idempotency_key=idempotency_key,
        success_status=status.HTTP_201_CREATED,
    )


@router.get("/entitlements", response_model=EventEntitlementsResponse)
def get_event_entitlements(
    event_id: Optional[str] = Query(None, alias="eventId"),
    club_id: Optional[str] = Query(None, alias="clubId"),
    *,
    current_user=Depends(_get_current_user),
) -> EventEntitlementsResponse:
    entitlements = get_entitlement_policy().get_effective_event_entitlements(
        event_id=event_id,
        club_id=club_id,
    )
    return EventEntitlementsResponse.from_entitlements(entitlements)


@router.put("/{event_id}")
def update_event(
    event_id: str,
    payload: EventSaveRequest,
    request: Request,
    confirm_credit: bool = Query(False),
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
    *,
    current_user=Depends(_get_current_user),
) -> JSONResponse:
    return _save_event(
        request,
        payload,
        user_id=str(current_user.id),
        route=f"PUT /api/events/{event_id}",
        event_id=event_id,
        confirm_credit=confirm_credit,
        idempotency_key=idempotency_key,
        success_status=status.HTTP_200_OK,
    )
