"""
Subscription paywall: payment-webhook verification and membership updates.

The payments provider signs each webhook body as
``Payments-Signature: t=<unix time>,v1=<hex HMAC-SHA256 of "<t>.<body>">``
using the shared ``PAYMENTS_WEBHOOK_SECRET``.
"""
import hashlib
import hmac
import logging
import os
import time

import requests
from sqlalchemy.exc import SQLAlchemyError

from models.profile import Profile
from schemas import ActionState

logger = logging.getLogger(__name__)

PAYMENTS_API_URL = os.getenv("PAYMENTS_API_URL", "https://api.stripe.com/v1")
SIGNATURE_TOLERANCE = 300  # seconds
ACTIVE_STATUSES = ("active", "trialing")
PAID_LEVELS = ("intermediate", "advanced")
APP_URL = os.getenv("APP_URL", "http://localhost:3000")

# kind -> (checkout mode, price env var, success path, cancel path)
CHECKOUT_KINDS = {
    "subscription": ("subscription", "PAYMENTS_SUBSCRIPTION_PRICE_ID", "/dashboard?success=true", "/pricing?canceled=true"),
    "tutor": ("payment", "PAYMENTS_TUTOR_PRICE_ID", "/community/tutors?success=true", "/community/tutors?canceled=true"),
}


class SignatureError(Exception):
    pass


def create_checkout_session(user_id: str, kind: str) -> ActionState:
    """Start a hosted checkout for the premium plan or a tutor session; returns its URL."""
    if not user_id:
        return ActionState.fail("User ID is required for checkout")
    if kind not in CHECKOUT_KINDS:
        return ActionState.fail(f"Unknown checkout kind: {kind}")

    mode, price_var, success_path, cancel_path = CHECKOUT_KINDS[kind]
    price_id = os.getenv(price_var)
    if not price_id:
        logger.error("%s is not set", price_var)
        return ActionState.fail("Failed to create checkout session")

    try:
        response = requests.post(
            f"{PAYMENTS_API_URL}/checkout/sessions",
            headers={"Authorization": f"Bearer {os.getenv('PAYMENTS_API_KEY')}"},
            data={
                "mode": mode,
                "payment_method_types[0]": "card",
                "line_items[0][price]": price_id,
                "line_items[0][quantity]": 1,
                "success_url": f"{APP_URL}{success_path}",
                "cancel_url": f"{APP_URL}{cancel_path}",
                "metadata[userId]": user_id,
                "metadata[kind]": kind,
            },
            timeout=10,
        )
        response.raise_for_status()
        url = response.json().get("url")
        if not url:
            raise ValueError("Checkout session has no URL")
    except (requests.exceptions.RequestException, ValueError) as e:
        logger.error("Error creating %s checkout session for %s: %s", kind, user_id, e)
        return ActionState.fail("Failed to create checkout session")

    return ActionState.ok("Checkout session created successfully", {"url": url})


def verify_signature(body: bytes, header: str, secret: str, now=None) -> None:
    if not header or not secret:
        raise SignatureError("Missing webhook signature or secret")

    parts = {}
    for item in header.split(","):
        key, _, value = item.strip().partition("=")
        parts.setdefault(key, []).append(value)

    try:
        timestamp = int(parts["t"][0])
    except (KeyError, ValueError):
        raise SignatureError("Malformed signature header")

    now = time.time() if now is None else now
    if abs(now - timestamp) > SIGNATURE_TOLERANCE:
        raise SignatureError("Signature timestamp outside tolerance")

    signed = f"{timestamp}.".encode() + body
    expected = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    if not any(hmac.compare_digest(expected, candidate) for candidate in parts.get("v1", [])):
        raise SignatureError("Webhook signature verification failed")


def membership_for_status(status: str) -> str:
    return "pro" if status in ACTIVE_STATUSES else "free"


def requires_pro(level: str) -> bool:
    return level in PAID_LEVELS


def fetch_subscription_status(subscription_id: str) -> str:
    api_key = os.getenv("PAYMENTS_API_KEY")
    response = requests.get(
        f"{PAYMENTS_API_URL}/subscriptions/{subscription_id}",
        headers={"Authorization": f"Bearer {api_key}"},
        timeout=10,
    )
    response.raise_for_status()
    return response.json().get("status", "")


def get_or_create_profile(db, user_id: str) -> Profile:
    profile = db.get(Profile, user_id)
    if profile is None:
        profile = Profile(user_id=user_id, membership="free")
        db.add(profile)
        db.commit()
        db.refresh(profile)
    return profile


def update_profile(db, user_id: str, data: dict) -> ActionState:
    try:
        profile = db.get(Profile, user_id)
        if profile is None:
            return ActionState.fail("Profile not found")
        for key, value in data.items():
            setattr(profile, key, value)
        db.commit()
        db.refresh(profile)
    except SQLAlchemyError:
        logger.exception("Error updating profile %s", user_id)
        db.rollback()
        return ActionState.fail("Failed to update profile")
    return ActionState.ok("Profile updated successfully", profile)


def update_profile_by_customer_id(db, customer_id: str, data: dict) -> ActionState:
    try:
        profile = db.query(Profile).filter_by(customer_id=customer_id).first()
        if profile is None:
            return ActionState.fail("Profile not found for customer")
        for key, value in data.items():
            setattr(profile, key, value)
        db.commit()
        db.refresh(profile)
    except SQLAlchemyError:
        logger.exception("Error updating profile by customer id %s", customer_id)
        db.rollback()
        return ActionState.fail("Failed to update profile by customer ID")
    return ActionState.ok("Profile updated successfully by customer ID", profile)


def update_customer(db, user_id: str, customer_id: str, subscription_id=None) -> ActionState:
    try:
        get_or_create_profile(db, user_id)
    except SQLAlchemyError:
        logger.exception("Error creating profile for %s", user_id)
        db.rollback()
        return ActionState.fail("Failed to update customer")
    return update_profile(db, user_id, {"customer_id": customer_id, "subscription_id": subscription_id})


def sync_subscription_status(db, user_id: str, subscription_id: str) -> ActionState:
    """Ask the payments API for the subscription's status and set membership from it."""
    if not subscription_id or not user_id:
        return ActionState.fail("Subscription ID and user ID are required")

    try:
        status = fetch_subscription_status(subscription_id)
    except requests.exceptions.RequestException as e:
        logger.error("Error fetching subscription %s: %s", subscription_id, e)
        return ActionState.fail(f"Payments error: {e}")

    membership = membership_for_status(status)
    result = update_profile(db, user_id, {"membership": membership, "subscription_id": subscription_id})
    if not result.is_success:
        return ActionState.fail("User profile not found or update failed")
    return ActionState.ok(f"Membership updated to {membership} successfully", result.data)


def handle_event(db, event: dict) -> ActionState:
    event_type = event.get("type")
    obj = (event.get("data") or {}).get("object") or {}

    if event_type == "checkout.session.completed":
        metadata = obj.get("metadata") or {}
        user_id = metadata.get("userId")
        customer_id = obj.get("customer")
        subscription_id = obj.get("subscription")

        # One-off tutor payments carry no subscription and leave membership alone
        if metadata.get("kind") == "tutor":
            if not user_id:
                raise ValueError("Missing userId in session metadata")
            logger.info("Tutor session paid by %s (checkout %s)", user_id, obj.get("id"))
            return ActionState.ok("Tutor session booked")

        if not user_id or not customer_id:
            raise ValueError("Missing userId or customerId in session metadata")

        result = update_customer(db, user_id, customer_id, subscription_id)
        if not result.is_success:
            logger.error("Customer update failed: %s", result.message)
            return result
        if subscription_id:
            result = sync_subscription_status(db, user_id, subscription_id)
            if not result.is_success:
                logger.error("Subscription update failed: %s", result.message)
        return result

    if event_type in ("customer.subscription.updated", "customer.subscription.deleted"):
        customer_id = obj.get("customer")
        if not customer_id:
            raise ValueError("Missing customerId in subscription event")
        status = "canceled" if event_type == "customer.subscription.deleted" else obj.get("status", "")
        return update_profile_by_customer_id(db, customer_id, {
            "membership": membership_for_status(status),
            "subscription_id": obj.get("id"),
        })

    logger.info("Unhandled event type %s", event_type)
    return ActionState.ok("Event ignored")
