"""
Source verification for payment-provider callbacks.

Runs before the body is parsed:
    1. HMAC-SHA256 of the raw body against PAYMENT_WEBHOOK_SECRET,
       sent in the X-Hubtel-Signature header (401 on mismatch)
    2. Source IP against PAYMENT_WEBHOOK_ALLOWED_IPS, which may hold
       addresses or CIDR ranges (403 when not listed)
    3. Outside DEBUG at least one of the two must be configured (403)

Configuration:
    - PAYMENT_WEBHOOK_SECRET: Shared HMAC secret
    - PAYMENT_WEBHOOK_ALLOWED_IPS: List of addresses / networks
    - PAYMENT_WEBHOOK_TRUST_FORWARDED_FOR: Read the client IP from the
      first X-Forwarded-For entry (only behind a trusted proxy)
"""

from __future__ import annotations

import hashlib
import hmac
import ipaddress
import logging

from django.conf import settings

from payments.exceptions import WebhookSignatureError, WebhookSourceNotAllowedError

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Hubtel-Signature"


def compute_signature(payload: bytes, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


def verify_signature(payload: bytes, signature: str, secret: str) -> bool:
    """
    Verify HMAC-SHA256 signature.

    Accepts a bare hex digest or one prefixed with "sha256=".
    """
    if not secret or not signature:
        return False
    if signature.startswith("sha256="):
        signature = signature[len("sha256="):]
    return hmac.compare_digest(compute_signature(payload, secret), signature.lower())


def client_ip(request) -> str:
    if getattr(settings, "PAYMENT_WEBHOOK_TRUST_FORWARDED_FOR", False):
        forwarded = request.META.get("HTTP_X_FORWARDED_FOR", "")
        if forwarded:
            return forwarded.split(",")[0].strip()
    return request.META.get("REMOTE_ADDR", "")


def ip_allowed(ip: str, allowed: list[str]) -> bool:
    try:
        address = ipaddress.ip_address(ip)
    except ValueError:
        return False
    for entry in allowed:
        try:
            if address in ipaddress.ip_network(entry, strict=False):
                return True
        except ValueError:
            logger.warning(f"Ignoring invalid webhook allow-list entry: {entry}")
    return False


def verify_webhook_request(request) -> None:
    """
    Raise unless the callback passes the configured checks.

    Raises:
        WebhookSignatureError: Secret configured, signature wrong or missing
        WebhookSourceNotAllowedError: IP not allow-listed, or nothing
            configured outside DEBUG
    """
    secret = getattr(settings, "PAYMENT_WEBHOOK_SECRET", "")
    allowed = list(getattr(settings, "PAYMENT_WEBHOOK_ALLOWED_IPS", []) or [])
    ip = client_ip(request)

    if secret:
        signature = request.headers.get(SIGNATURE_HEADER, "")
        if not verify_signature(request.body, signature, secret):
            logger.warning(
                "Payment webhook signature verification failed",
                extra={"source_ip": ip, "has_signature": bool(signature)},
            )
            raise WebhookSignatureError("Invalid webhook signature")

    if allowed:
        if not ip_allowed(ip, allowed):
            logger.warning(
                "Payment webhook from non allow-listed IP",
                extra={"source_ip": ip},
            )
            raise WebhookSourceNotAllowedError(
                "Unauthorized webhook source", details={"source_ip": ip}
            )

    if not secret and not allowed and not settings.DEBUG:
        logger.error("Payment webhook verification is not configured")
        raise WebhookSourceNotAllowedError("Webhook verification is not configured")
