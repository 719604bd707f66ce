"""
Subscription plans and agent limits.
"""

import math
import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, Any, Optional

from debate.config import get_subscription_config
from debate.models import SubscriptionPlan, SubscriptionStatus

logger = logging.getLogger(__name__)

UNLIMITED = -1


def _parse_time(value: Any) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).replace('Z', '+00:00'))
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _free_info(active: bool = True, status: Optional[str] = None, expires_at: Any = None) -> Dict[str, Any]:
    """Free-plan info; status stays None unless a subscription row exists."""
    return {
        'isActive': active,
        'isPremium': False,
        'plan': SubscriptionPlan.FREE.value,
        'status': status,
        'expiresAt': expires_at,
        'agentLimit': get_subscription_config().get('free_agent_limit', 4),
    }


def format_subscription_status(info: Dict[str, Any]) -> str:
    if not info.get('isActive'):
        return 'Inactive'
    if info.get('isPremium'):
        return 'Premium'
    return 'Free'


def days_until_expiry(expires_at: Any) -> Optional[int]:
    expiry = _parse_time(expires_at)
    if expiry is None:
        return None
    seconds = (expiry - datetime.now(timezone.utc)).total_seconds()
    return math.ceil(seconds / 86400)


class SubscriptionService:
    """Reads and updates a user's plan."""

    def __init__(self, store):
        self.store = store
        self.config = get_subscription_config()

    def _current_row(self, user_id: str) -> Optional[Dict[str, Any]]:
        rows = self.store.select(
            'user_subscriptions',
            {'user_id': user_id},
            order_by='created_at',
            desc=True,
            limit=1
        )
        return rows[0] if rows else None

    def get_user_subscription(self, user_id: str) -> Dict[str, Any]:
        try:
            row = self._current_row(user_id)
        except Exception as e:
            logger.error(f"Error loading subscription for {user_id}: {e}")
            return _free_info(active=False)

        if not row or row.get('status') != SubscriptionStatus.ACTIVE.value:
            return _free_info()

        expiry = _parse_time(row.get('expires_at'))
        if expiry and expiry <= datetime.now(timezone.utc):
            return _free_info(active=False, status=SubscriptionStatus.EXPIRED.value, expires_at=row.get('expires_at'))

        is_premium = row.get('plan') == SubscriptionPlan.PREMIUM.value
        return {
            'isActive': True,
            'isPremium': is_premium,
            'plan': row.get('plan', SubscriptionPlan.FREE.value),
            'status': row.get('status'),
            'expiresAt': row.get('expires_at'),
            'agentLimit': UNLIMITED if is_premium else self.config.get('free_agent_limit', 4),
        }

    def can_create_agent(self, user_id: str) -> Dict[str, Any]:
        info = self.get_user_subscription(user_id)
        current = self.store.count('agents', {'user_id': user_id, 'is_active': True})
        limit = None if info['agentLimit'] == UNLIMITED else info['agentLimit']
        return {
            'canCreate': limit is None or current < limit,
            'currentCount': current,
            'limit': limit,
            'isPremium': info['isPremium'],
        }

    def activate_premium(
        self,
        user_id: str,
        payment_id: Optional[str] = None,
        active: bool = True,
        subscription_id: Optional[str] = None
    ) -> Optional[Dict[str, Any]]:
        expires = datetime.now(timezone.utc) + timedelta(days=self.config.get('premium_days', 365))
        row = {
            'user_id': user_id,
            'plan': SubscriptionPlan.PREMIUM.value,
            'status': (SubscriptionStatus.ACTIVE if active else SubscriptionStatus.EXPIRED).value,
            'expires_at': expires.isoformat(),
        }
        if payment_id:
            row['razorpay_payment_id'] = payment_id
        if subscription_id:
            row['razorpay_subscription_id'] = subscription_id

        saved = self.store.upsert('user_subscriptions', row, on_conflict='user_id')
        if saved:
            self.store.update('users', {'id': user_id}, {
                'subscription_status': 'active' if active else 'inactive'
            })
            logger.info(f"Premium {'activated' if active else 'recorded inactive'} for user {user_id}")
        return saved

    def find_by_razorpay_subscription(self, user_id: str, subscription_id: str) -> Optional[Dict[str, Any]]:
        return self.store.select_one('user_subscriptions', {
            'user_id': user_id,
            'razorpay_subscription_id': subscription_id,
        })

    def cancel(self, subscription_row_id: str) -> bool:
        rows = self.store.update(
            'user_subscriptions',
            {'id': subscription_row_id},
            {'status': SubscriptionStatus.EXPIRED.value}
        )
        if not rows:
            return False
        self.store.update('users', {'id': rows[0]['user_id']}, {'subscription_status': 'cancelled'})
        logger.info(f"Subscription {subscription_row_id} cancelled")
        return True
