"""Payment gateway abstraction for recurring subscriptions.

Razorpay is the only gateway in use. Subscriptions are created against a
gateway plan, and the gateway then charges on its own schedule and reports
progress back through webhooks.
"""

import hashlib
import hmac
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

import httpx

from app.core.config import settings

logger = logging.getLogger(__name__)


class GatewayError(Exception):
    """Raised when the gateway rejects a request or cannot be reached."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class GatewaySubscription:
    """Subscription entity as returned by the gateway."""

    id: str
    status: str | None = None
    plan_id: str | None = None
    total_count: int | None = None
    paid_count: int | None = None
    remaining_count: int | None = None
    short_url: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_entity(cls, entity: dict[str, Any]) -> "GatewaySubscription":
        return cls(
            id=entity["id"],
            status=entity.get("status"),
            plan_id=entity.get("plan_id"),
            total_count=entity.get("total_count"),
            paid_count=entity.get("paid_count"),
            remaining_count=entity.get("remaining_count"),
            short_url=entity.get("short_url"),
            raw=entity,
        )


def generate_hmac_signature(payload_bytes: bytes, secret: str) -> str:
    """Hex-encoded HMAC-SHA256 of ``payload_bytes``."""
    return hmac.new(
        secret.encode("utf-8"),
        payload_bytes,
        hashlib.sha256,
    ).hexdigest()


class PaymentGatewayBase(ABC):
    """Abstract base class for subscription payment gateways."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        pass  # pragma: no cover

    @property
    @abstractmethod
    def public_key(self) -> str:
        """Key handed to the browser checkout widget."""
        pass  # pragma: no cover

    @abstractmethod
    def create_subscription(
        self,
        gateway_plan_id: str,
        total_count: int,
        notes: dict[str, str] | None = None,
    ) -> GatewaySubscription:
        pass  # pragma: no cover

    @abstractmethod
    def cancel_subscription(
        self, gateway_subscription_id: str, at_cycle_end: bool
    ) -> GatewaySubscription:
        pass  # pragma: no cover

    @abstractmethod
    def update_subscription(
        self,
        gateway_subscription_id: str,
        gateway_plan_id: str,
        remaining_count: int,
    ) -> GatewaySubscription:
        pass  # pragma: no cover

    @abstractmethod
    def verify_webhook_signature(self, payload: bytes, signature: str) -> bool:
        pass  # pragma: no cover

    @abstractmethod
    def verify_payment_signature(
        self, gateway_payment_id: str, gateway_subscription_id: str, signature: str
    ) -> bool:
        """Verify the signature the checkout widget returns after payment."""
        pass  # pragma: no cover


class RazorpayGateway(PaymentGatewayBase):
    """Razorpay Subscriptions API client.

    API reference: https://razorpay.com/docs/api/payments/subscriptions/
    """

    def __init__(
        self,
        key_id: str | None = None,
        key_secret: str | None = None,
        webhook_secret: str | None = None,
        base_url: str | None = None,
    ):
        self.key_id = key_id or settings.razorpay_key_id
        self.key_secret = key_secret or settings.razorpay_key_secret
        self.webhook_secret = webhook_secret or settings.razorpay_webhook_secret
        self.base_url = (base_url or settings.razorpay_base_url).rstrip("/")

    @property
    def provider_name(self) -> str:
        return "razorpay"

    @property
    def public_key(self) -> str:
        return self.key_id

    def _make_request(
        self,
        method: str,
        endpoint: str,
        data: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Send an authenticated request and return the decoded JSON body."""
        url = f"{self.base_url}{endpoint}"
        try:
            with httpx.Client(timeout=30.0, auth=(self.key_id, self.key_secret)) as client:
                resp = client.request(method, url, json=data)
        except httpx.HTTPError as exc:
            logger.warning("Razorpay %s %s failed: %s", method, endpoint, exc)
            raise GatewayError(f"Razorpay request failed: {exc}") from exc

        if resp.status_code >= 400:
            description = resp.text[:500] if resp.text else ""
            try:
                description = resp.json().get("error", {}).get("description") or description
            except ValueError:
                pass
            logger.warning(
                "Razorpay %s %s returned %d: %s", method, endpoint, resp.status_code, description
            )
            raise GatewayError(
                f"Razorpay API error ({resp.status_code}): {description}",
                status_code=resp.status_code,
            )

        try:
            body: dict[str, Any] = resp.json()
        except ValueError as exc:
            raise GatewayError("Razorpay returned an invalid JSON response") from exc
        return body

    def create_subscription(
        self,
        gateway_plan_id: str,
        total_count: int,
        notes: dict[str, str] | None = None,
    ) -> GatewaySubscription:
        body = self._make_request(
            "POST",
            "/subscriptions",
            {
                "plan_id": gateway_plan_id,
                "total_count": total_count,
                "customer_notify": 1,
                "notes": notes or {},
            },
        )
        return GatewaySubscription.from_entity(body)

    def cancel_subscription(
        self, gateway_subscription_id: str, at_cycle_end: bool
    ) -> GatewaySubscription:
        body = self._make_request(
            "POST",
            f"/subscriptions/{gateway_subscription_id}/cancel",
            {"cancel_at_cycle_end": 1 if at_cycle_end else 0},
        )
        return GatewaySubscription.from_entity(body)

    def update_subscription(
        self,
        gateway_subscription_id: str,
        gateway_plan_id: str,
        remaining_count: int,
    ) -> GatewaySubscription:
        body = self._make_request(
            "PATCH",
            f"/subscriptions/{gateway_subscription_id}",
            {
                "plan_id": gateway_plan_id,
                "remaining_count": remaining_count,
                "schedule_change_at": "now",
            },
        )
        return GatewaySubscription.from_entity(body)

    def verify_webhook_signature(self, payload: bytes, signature: str) -> bool:
        """Razorpay signs the raw request body with the webhook secret."""
        if not self.webhook_secret or not signature:
            return False
        expected = generate_hmac_signature(payload, self.webhook_secret)
        return hmac.compare_digest(expected, signature)

    def verify_payment_signature(
        self, gateway_payment_id: str, gateway_subscription_id: str, signature: str
    ) -> bool:
        if not self.key_secret or not signature:
            return False
        message = f"{gateway_payment_id}|{gateway_subscription_id}".encode()
        expected = generate_hmac_signature(message, self.key_secret)
        return hmac.compare_digest(expected, signature)


def get_payment_gateway() -> PaymentGatewayBase:
    """Return the configured gateway. Used as a FastAPI dependency."""
    return RazorpayGateway()
