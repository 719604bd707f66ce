"""
Tests for Razorpay signature checks and the billing client
"""

import hmac
import hashlib
import pytest
from unittest.mock import patch, MagicMock

import httpx

from debate.tools.billing import (
    BillingError,
    RazorpayClient,
    verify_payment_signature,
    verify_subscription_signature,
)


def _sign(message, secret='secret'):
    return hmac.new(secret.encode(), message.encode(), hashlib.sha256).hexdigest()


def _response(status_code, payload=None, text=''):
    request = httpx.Request('POST', RazorpayClient.BASE_URL)
    if payload is not None:
        return httpx.Response(status_code, json=payload, request=request)
    return httpx.Response(status_code, text=text, request=request)


@pytest.fixture
def http_client():
    with patch('debate.tools.billing.httpx.Client') as client_cls:
        client = MagicMock()
        client_cls.return_value = client
        yield client_cls, client


class TestSignatures:

    def test_payment_signature(self):
        signature = _sign('order_1|pay_1')
        assert verify_payment_signature('order_1', 'pay_1', signature, 'secret')
        assert not verify_payment_signature('order_1', 'pay_2', signature, 'secret')

    def test_subscription_signature_order(self):
        signature = _sign('pay_1|sub_1')
        assert verify_subscription_signature('pay_1', 'sub_1', signature, 'secret')
        assert not verify_subscription_signature('sub_1', 'pay_1', signature, 'secret')

    def test_missing_inputs(self):
        assert not verify_payment_signature('o', 'p', '', 'secret')
        assert not verify_payment_signature('o', 'p', _sign('o|p'), '')


class TestRazorpayClient:

    def test_requires_credentials(self):
        with pytest.raises(BillingError):
            RazorpayClient('', 'secret')

    def test_basic_auth(self, http_client):
        client_cls, _ = http_client
        RazorpayClient('rzp_key', 'rzp_secret')
        assert client_cls.call_args.kwargs['auth'] == ('rzp_key', 'rzp_secret')
        assert client_cls.call_args.kwargs['base_url'] == 'https://api.razorpay.com/v1'

    def test_create_plan_in_paise(self, http_client):
        _, http = http_client
        http.request.return_value = _response(200, {'id': 'plan_1'})

        plan = RazorpayClient('k', 's').create_plan('yearly', 499.99, 'Premium', 'Unlimited agents')

        assert plan == {'id': 'plan_1'}
        method, path = http.request.call_args.args
        body = http.request.call_args.kwargs['json']
        assert (method, path) == ('POST', '/plans')
        assert body['item']['amount'] == 49999
        assert body['item']['currency'] == 'INR'

    def test_create_subscription_defaults(self, http_client):
        _, http = http_client
        http.request.return_value = _response(200, {'id': 'sub_1', 'status': 'created'})

        RazorpayClient('k', 's').create_subscription('plan_1', notes={'userId': 'u1'})

        body = http.request.call_args.kwargs['json']
        assert body == {'plan_id': 'plan_1', 'customer_notify': 1, 'total_count': 12, 'notes': {'userId': 'u1'}}

    def test_cancel_path(self, http_client):
        _, http = http_client
        http.request.return_value = _response(200, {'id': 'sub_1', 'status': 'cancelled'})

        RazorpayClient('k', 's').cancel_subscription('sub_1')
        assert http.request.call_args.args == ('POST', '/subscriptions/sub_1/cancel')

    def test_api_error(self, http_client):
        _, http = http_client
        http.request.return_value = _response(400, text='{"error": "bad"}')

        with pytest.raises(BillingError) as excinfo:
            RazorpayClient('k', 's').fetch_subscription('sub_1')
        assert excinfo.value.status_code == 400

    def test_transport_error(self, http_client):
        _, http = http_client
        http.request.side_effect = httpx.ConnectError('offline')

        with pytest.raises(BillingError):
            RazorpayClient('k', 's').fetch_subscription('sub_1')
