"""Customer info lookup against the customer service."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Protocol

import httpx

from orderflow.core.config import settings
from orderflow.core.errors import CustomerLookupError
from orderflow.services.pricing import normalize_membership_level

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CustomerInfo:
    membership_level: str = "bronze"
    total_spent: int = 0
    loyalty_points: int = 0


BRONZE_DEFAULT = CustomerInfo()


class CustomerDirectory(Protocol):
    def get_customer_info(self, customer_id: str) -> CustomerInfo:
        ...


class HttpCustomerDirectory:
    """Reads membership data from ``GET /api/customers/{id}``."""

    def __init__(self, base_url: str, *, timeout: float | None = None, transport: httpx.BaseTransport | None = None):
        self._client = httpx.Client(
            base_url=base_url,
            timeout=timeout if timeout is not None else settings.http_timeout_seconds,
            transport=transport,
            headers={"Content-Type": "application/json"},
        )

    def get_customer_info(self, customer_id: str) -> CustomerInfo:
        try:
            response = self._client.get(f"/api/customers/{customer_id}")
            response.raise_for_status()
            body: dict[str, Any] = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise CustomerLookupError(f"Failed to fetch customer {customer_id}: {exc}") from exc

        customer = body.get("data", {}).get("customer") if isinstance(body.get("data"), dict) else None
        if customer is None:
            customer = body
        return CustomerInfo(
            membership_level=normalize_membership_level(customer.get("membershipLevel")),
            total_spent=int(customer.get("totalSpent") or 0),
            loyalty_points=int(customer.get("loyaltyPoints") or 0),
        )

    def close(self) -> None:
        self._client.close()


class StaticCustomerDirectory:
    """Directory that answers every lookup with a fixed level."""

    def __init__(self, membership_level: str = "bronze"):
        self._info = CustomerInfo(membership_level=normalize_membership_level(membership_level))

    def get_customer_info(self, customer_id: str) -> CustomerInfo:
        return self._info


def resolve_membership_level(directory: CustomerDirectory, customer_id: str) -> str:
    """Return the customer's tier, or bronze when the lookup fails."""
    try:
        info = directory.get_customer_info(customer_id)
    except CustomerLookupError:
        logger.warning("[CART] Customer lookup failed for %s; pricing as bronze", customer_id, exc_info=True)
        return BRONZE_DEFAULT.membership_level
    return normalize_membership_level(info.membership_level)


def build_customer_directory() -> CustomerDirectory:
    if settings.customer_service_url:
        return HttpCustomerDirectory(settings.customer_service_url)
    return StaticCustomerDirectory()
