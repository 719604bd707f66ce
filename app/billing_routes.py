"""
Billing API - subscription status and Razorpay checkout
"""

import logging
from datetime import datetime, timezone

from flask import Blueprint, jsonify, current_app

from app.auth import require_auth
from app.routes import error_response, json_body, user_or_error
from debate.subscription import days_until_expiry, format_subscription_status
from debate.tools.billing import (
    BillingError,
    RazorpayClient,
    verify_payment_signature,
    verify_subscription_signature,
)

logger = logging.getLogger(__name__)

billing_bp = Blueprint('billing', __name__)

BILLING_NOT_CONFIGURED = 'Razorpay credentials not configured'


def _subscriptions():
    return current_app.orchestrator.repository.subscriptions


def _razorpay() -> RazorpayClient:
    return RazorpayClient(
        current_app.config.get('RAZORPAY_KEY_ID'),
        current_app.config.get('RAZORPAY_KEY_SECRET')
    )


def _billing_configured() -> bool:
    return bool(current_app.config.get('RAZORPAY_KEY_ID') and current_app.config.get('RAZORPAY_KEY_SECRET'))


@billing_bp.route('/subscription', methods=['GET'])
@require_auth
def subscription_info():
    user_id, error = user_or_error()
    if error:
        return error

    info = _subscriptions().get_user_subscription(user_id)
    return jsonify({
        'success': True,
        'data': {
            **info,
            'formattedStatus': format_subscription_status(info),
            'daysUntilExpiry': days_until_expiry(info.get('expiresAt')),
            'limits': _subscriptions().can_create_agent(user_id),
        },
    })


@billing_bp.route('/razorpay/create-subscription', methods=['POST'])
@require_auth
def create_subscription():
    """Create a plan and a pending subscription for checkout."""
    if not _billing_configured():
        return error_response(BILLING_NOT_CONFIGURED, 'CONFIG_ERROR', 500)

    user_id, error = user_or_error()
    if error:
        return error

    data = json_body()
    plan_id = data.get('planId')
    interval = data.get('interval')
    amount = data.get('amount')
    if not plan_id or not interval or not amount:
        return error_response('Missing required fields', 'VALIDATION_ERROR', 400)

    client = _razorpay()
    try:
        plan = client.create_plan(
            period=interval,
            amount=float(amount),
            name=f"{plan_id} Plan",
            description=f"{plan_id} Subscription Plan"
        )
        subscription = client.create_subscription(plan['id'], notes={'userId': user_id, 'planId': plan_id})
    except (BillingError, KeyError, ValueError) as e:
        logger.error(f"Razorpay subscription error: {e}")
        return error_response('Failed to create subscription', 'INTERNAL_ERROR', 500, details=str(e))
    finally:
        client.close()

    logger.info(f"Created Razorpay subscription {subscription.get('id')} for user {user_id}")
    return jsonify({
        'success': True,
        'razorpaySubscription': {
            'id': subscription.get('id'),
            'planId': 'PREMIUM',
            'amount': int(round(float(amount) * 100)),
            'currency': client.config.get('currency', 'INR'),
            'status': subscription.get('status'),
            'userId': user_id,
        },
        'key': current_app.config.get('RAZORPAY_KEY_ID'),
    })


@billing_bp.route('/razorpay/verify-payment', methods=['POST'])
@require_auth
def verify_payment():
    """Check a one-off payment signature and attach the payment id to its order."""
    data = json_body()
    required = ('razorpay_order_id', 'razorpay_payment_id', 'razorpay_signature', 'order_id')
    if any(not data.get(field) for field in required):
        return error_response('Missing required fields', 'VALIDATION_ERROR', 400)

    secret = current_app.config.get('RAZORPAY_KEY_SECRET')
    if not secret:
        return error_response('Payment gateway not configured', 'CONFIG_ERROR', 500)

    if not verify_payment_signature(
        data['razorpay_order_id'], data['razorpay_payment_id'], data['razorpay_signature'], secret
    ):
        logger.warning(f"Payment signature verification failed for order {data['order_id']}")
        return error_response('Invalid signature', 'VALIDATION_ERROR', 400)

    rows = current_app.supabase_auth.update('payments', {'order_id': data['order_id']}, {
        'razorpay_payment_id': data['razorpay_payment_id'],
    })
    if not rows:
        return error_response('Order not found', 'NOT_FOUND', 404)
    return jsonify({'success': True})


@billing_bp.route('/razorpay/verify-subscription', methods=['POST'])
@require_auth
def verify_subscription():
    """Check the checkout signature and upgrade the user to premium."""
    if not _billing_configured():
        return error_response(BILLING_NOT_CONFIGURED, 'CONFIG_ERROR', 500)

    user_id, error = user_or_error()
    if error:
        return error

    data = json_body()
    payment_id = data.get('razorpay_payment_id')
    subscription_id = data.get('razorpay_subscription_id')
    signature = data.get('razorpay_signature')
    if not payment_id or not subscription_id or not signature:
        return error_response('Missing required fields', 'VALIDATION_ERROR', 400)

    if not verify_subscription_signature(
        payment_id, subscription_id, signature, current_app.config['RAZORPAY_KEY_SECRET']
    ):
        return error_response('Invalid signature', 'VALIDATION_ERROR', 400)

    client = _razorpay()
    try:
        status = client.fetch_subscription(subscription_id).get('status', 'active')
    except BillingError as e:
        # the signature already proves payment
        logger.warning(f"Could not fetch subscription {subscription_id}, assuming active: {e}")
        status = 'active'
    finally:
        client.close()

    saved = _subscriptions().activate_premium(
        user_id,
        payment_id=payment_id,
        active=(status == 'active'),
        subscription_id=subscription_id
    )
    if not saved:
        return error_response('Failed to update subscription', 'INTERNAL_ERROR', 500)

    return jsonify({
        'success': True,
        'status': status,
        'message': 'Subscription verified successfully',
        'verifiedAt': datetime.now(timezone.utc).isoformat(),
    })


@billing_bp.route('/razorpay/cancel-subscription', methods=['POST'])
@require_auth
def cancel_subscription():
    if not _billing_configured():
        return error_response(BILLING_NOT_CONFIGURED, 'CONFIG_ERROR', 500)

    user_id, error = user_or_error()
    if error:
        return error

    row_id = json_body().get('subscriptionId')
    if not row_id:
        return error_response('Missing subscription ID', 'VALIDATION_ERROR', 400)

    row = current_app.supabase_auth.select_one('user_subscriptions', {'id': row_id, 'user_id': user_id})
    if not row:
        return error_response('Subscription not found', 'NOT_FOUND', 404)

    razorpay_id = row.get('razorpay_subscription_id')
    if razorpay_id:
        client = _razorpay()
        try:
            client.cancel_subscription(razorpay_id)
        except BillingError as e:
            logger.error(f"Razorpay cancellation error: {e}")
            return error_response('Failed to cancel subscription', 'INTERNAL_ERROR', 500, details=str(e))
        finally:
            client.close()

    if not _subscriptions().cancel(row_id):
        return error_response('Failed to update subscription', 'INTERNAL_ERROR', 500)
    return jsonify({'success': True, 'message': 'Subscription cancelled successfully'})
