"""
Razorpay billing client and signature checks.
"""

import hmac
import hashlib
import logging
from typing import Dict, Any, Optional

import httpx

from debate.config import get_billing_config

logger = logging.getLogger(__name__)


class BillingError(Exception):
    """Razorpay request failed."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


def verify_signature(message: str, signature: str, secret: str) -> bool:
    if not signature or not secret:
        return False
    expected = hmac.new(secret.encode(), message.encode(), hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, signature)


def verify_payment_signature(order_id: str, payment_id: str, signature: str, secret: str) -> bool:
    return verify_signature(f"{order_id}|{payment_id}", signature, secret)


def verify_subscription_signature(payment_id: str, subscription_id: str, signature: str, secret: str) -> bool:
    return verify_signature(f"{payment_id}|{subscription_id}", signature, secret)


class RazorpayClient:
    """Minimal client for the Razorpay plans and subscriptions API."""

    BASE_URL = "https://api.razorpay.com/v1"

    def __init__(self, key_id: str, key_secret: str, timeout: float = 30.0):
        if not key_id or not key_secret:
            raise BillingError("Razorpay credentials not configured")
        self.key_id = key_id
        self.key_secret = key_secret
        self.config = get_billing_config()
        self.client = httpx.Client(
            base_url=self.BASE_URL,
            timeout=timeout,
            auth=(key_id, key_secret),
            headers={'Content-Type': 'application/json'}
        )

    def _request(self, method: str, path: str, payload: Dict[str, Any] = None) -> Dict[str, Any]:
        try:
            response = self.client.request(method, path, json=payload)
        except httpx.HTTPError as e:
            logger.error(f"Razorpay request error: {e}")
            raise BillingError(f"Razorpay request failed: {e}") from e

        if response.is_error:
            logger.error(f"Razorpay Error Status: {response.status_code}")
            logger.error(f"Razorpay Error Body: {response.text}")
            raise BillingError(f"Razorpay API error {response.status_code}", response.status_code)
        return response.json()

    def create_plan(self, period: str, amount: float, name: str, description: str) -> Dict[str, Any]:
        return self._request('POST', '/plans', {
            'period': period,
            'interval': 1,
            'item': {
                'name': name,
                'amount': int(round(amount * 100)),
                'currency': self.config.get('currency', 'INR'),
                'description': description,
            },
        })

    def create_subscription(
        self,
        plan_id: str,
        total_count: int = None,
        notes: Dict[str, Any] = None
    ) -> Dict[str, Any]:
        return self._request('POST', '/subscriptions', {
            'plan_id': plan_id,
            'customer_notify': 1,
            'total_count': total_count or self.config.get('total_count', 12),
            'notes': notes or {},
        })

    def fetch_subscription(self, subscription_id: str) -> Dict[str, Any]:
        return self._request('GET', f'/subscriptions/{subscription_id}')

    def cancel_subscription(self, subscription_id: str) -> Dict[str, Any]:
        return self._request('POST', f'/subscriptions/{subscription_id}/cancel')

    def close(self):
        self.client.close()
