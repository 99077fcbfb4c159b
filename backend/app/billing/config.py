"""Billing configuration helpers."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Optional
import os

from .models import CreditCode


@dataclass(frozen=True)
class BillingConfig:
    """Configuration for credit products, caching and request deduplication."""

    one_off_credit_code: str
    default_provider: str
    product_cache_ttl_seconds: int
    idempotency_in_progress_ttl_seconds: int
    system_token: Optional[str]
    pricing_path: str


def _to_int(value: Optional[str], *, default: int) -> int:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Expected integer value, got {value!r}") from exc


def load_billing_config(env: Optional[Mapping[str, str]] = None) -> BillingConfig:
    """Load :class:`BillingConfig` from environment variables."""

    env_mapping = os.environ if env is None else env

    one_off_credit_code = (
        env_mapping.get("BILLING_ONE_OFF_CREDIT_CODE") or CreditCode.EVENT_UPGRADE_500.value
    ).strip()
    default_provider = (env_mapping.get("BILLING_DEFAULT_PROVIDER") or "kaspi").strip().lower()

    product_cache_ttl_seconds = max(0, _to_int(env_mapping.get("BILLING_PRODUCT_CACHE_TTL"), default=300))
    idempotency_ttl = max(1, _to_int(env_mapping.get("IDEMPOTENCY_IN_PROGRESS_TTL"), default=120))

    system_token = (env_mapping.get("BILLING_SYSTEM_TOKEN") or "").strip() or None
    pricing_path = env_mapping.get("BILLING_PRICING_PATH", "/pricing")

    return BillingConfig(
        one_off_credit_code=one_off_credit_code,
        default_provider=default_provider,
        product_cache_ttl_seconds=product_cache_ttl_seconds,
        idempotency_in_progress_ttl_seconds=idempotency_ttl,
        system_token=system_token,
        pricing_path=pricing_path,
    )


__all__ = ["BillingConfig", "load_billing_config"]
