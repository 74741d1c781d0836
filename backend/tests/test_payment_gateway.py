"""Tests for the Razorpay gateway client."""

from unittest.mock import MagicMock, patch

import httpx
import pytest

from app.core.config import settings
from app.services.payment_gateway import (
    GatewayError,
    RazorpayGateway,
    generate_hmac_signature,
    get_payment_gateway,
)
from tests.conftest import sign


@pytest.fixture
def razorpay():
    return RazorpayGateway(
        key_id="rzp_test_key",
        key_secret="test_key_secret",
        webhook_secret="test_webhook_secret",
        base_url="https://api.razorpay.test/v1/",
    )


def _mock_client(mock_client_cls, response=None, error=None):
    client = MagicMock()
    if error is not None:
        client.request.side_effect = error
    else:
        client.request.return_value = response
    mock_client_cls.return_value.__enter__.return_value = client
    return client


class TestRazorpayGatewayInit:
    def test_explicit_credentials(self, razorpay):
        assert razorpay.provider_name == "razorpay"
        assert razorpay.public_key == "rzp_test_key"
        assert razorpay.base_url == "https://api.razorpay.test/v1"

    def test_falls_back_to_settings(self):
        with (
            patch.object(settings, "razorpay_key_id", "rzp_live_abc"),
            patch.object(settings, "razorpay_webhook_secret", "whsec"),
        ):
            gateway = get_payment_gateway()
        assert isinstance(gateway, RazorpayGateway)
        assert gateway.key_id == "rzp_live_abc"
        assert gateway.webhook_secret == "whsec"


class TestCreateSubscription:
    @patch("app.services.payment_gateway.httpx.Client")
    def test_posts_plan_and_count(self, mock_client_cls, razorpay):
        client = _mock_client(
            mock_client_cls,
            httpx.Response(
                200,
                json={
                    "id": "sub_ABC",
                    "status": "created",
                    "plan_id": "plan_X",
                    "total_count": 120,
                    "paid_count": 0,
                    "remaining_count": 120,
                    "short_url": "https://rzp.io/i/abc",
                },
            ),
        )

        result = razorpay.create_subscription("plan_X", 120, notes={"user_id": "u1"})

        assert result.id == "sub_ABC"
        assert result.short_url == "https://rzp.io/i/abc"
        client.request.assert_called_once_with(
            "POST",
            "https://api.razorpay.test/v1/subscriptions",
            json={
                "plan_id": "plan_X",
                "total_count": 120,
                "customer_notify": 1,
                "notes": {"user_id": "u1"},
            },
        )
        mock_client_cls.assert_called_once_with(
            timeout=30.0, auth=("rzp_test_key", "test_key_secret")
        )

    @patch("app.services.payment_gateway.httpx.Client")
    def test_api_error_carries_description(self, mock_client_cls, razorpay):
        _mock_client(
            mock_client_cls,
            httpx.Response(
                400,
                json={"error": {"code": "BAD_REQUEST_ERROR", "description": "Invalid plan_id"}},
            ),
        )

        with pytest.raises(GatewayError, match="Invalid plan_id") as exc_info:
            razorpay.create_subscription("plan_missing", 120)
        assert exc_info.value.status_code == 400

    @patch("app.services.payment_gateway.httpx.Client")
    def test_api_error_with_plain_body(self, mock_client_cls, razorpay):
        _mock_client(mock_client_cls, httpx.Response(502, text="Bad Gateway"))

        with pytest.raises(GatewayError, match="502"):
            razorpay.create_subscription("plan_X", 120)

    @patch("app.services.payment_gateway.httpx.Client")
    def test_network_error(self, mock_client_cls, razorpay):
        _mock_client(mock_client_cls, error=httpx.ConnectError("connection refused"))

        with pytest.raises(GatewayError, match="request failed") as exc_info:
            razorpay.create_subscription("plan_X", 120)
        assert exc_info.value.status_code is None

    @patch("app.services.payment_gateway.httpx.Client")
    def test_invalid_json_response(self, mock_client_cls, razorpay):
        _mock_client(mock_client_cls, httpx.Response(200, text="<html>"))

        with pytest.raises(GatewayError, match="invalid JSON"):
            razorpay.create_subscription("plan_X", 120)


class TestCancelSubscription:
    @pytest.mark.parametrize("at_cycle_end,flag", [(True, 1), (False, 0)])
    @patch("app.services.payment_gateway.httpx.Client")
    def test_cancel_flag(self, mock_client_cls, razorpay, at_cycle_end, flag):
        client = _mock_client(
            mock_client_cls, httpx.Response(200, json={"id": "sub_ABC", "status": "cancelled"})
        )

        result = razorpay.cancel_subscription("sub_ABC", at_cycle_end=at_cycle_end)

        assert result.status == "cancelled"
        client.request.assert_called_once_with(
            "POST",
            "https://api.razorpay.test/v1/subscriptions/sub_ABC/cancel",
            json={"cancel_at_cycle_end": flag},
        )


class TestUpdateSubscription:
    @patch("app.services.payment_gateway.httpx.Client")
    def test_patches_plan_immediately(self, mock_client_cls, razorpay):
        client = _mock_client(
            mock_client_cls,
            httpx.Response(200, json={"id": "sub_ABC", "plan_id": "plan_Y", "remaining_count": 20}),
        )

        result = razorpay.update_subscription("sub_ABC", "plan_Y", 20)

        assert result.plan_id == "plan_Y"
        assert result.remaining_count == 20
        client.request.assert_called_once_with(
            "PATCH",
            "https://api.razorpay.test/v1/subscriptions/sub_ABC",
            json={"plan_id": "plan_Y", "remaining_count": 20, "schedule_change_at": "now"},
        )


class TestSignatures:
    def test_generate_hmac_signature(self):
        assert generate_hmac_signature(b"payload", "secret") == sign(b"payload", "secret")

    def test_webhook_signature_valid(self, razorpay):
        body = b'{"event":"subscription.charged"}'
        assert razorpay.verify_webhook_signature(body, sign(body))

    def test_webhook_signature_tampered(self, razorpay):
        body = b'{"event":"subscription.charged"}'
        assert not razorpay.verify_webhook_signature(body + b" ", sign(body))

    def test_webhook_signature_empty(self, razorpay):
        assert not razorpay.verify_webhook_signature(b"{}", "")

    def test_webhook_signature_without_secret(self):
        gateway = RazorpayGateway(key_id="k", key_secret="s")
        gateway.webhook_secret = ""
        assert not gateway.verify_webhook_signature(b"{}", sign(b"{}"))

    def test_payment_signature(self, razorpay):
        signature = sign(b"pay_1|sub_1", "test_key_secret")
        assert razorpay.verify_payment_signature("pay_1", "sub_1", signature)
        assert not razorpay.verify_payment_signature("pay_2", "sub_1", signature)
        assert not razorpay.verify_payment_signature("pay_1", "sub_1", "")
