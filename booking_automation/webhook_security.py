"""
Webhook Security

The booking app signs every lifecycle event it posts:
- X-Webhook-Timestamp: unix seconds at send time
- X-Webhook-Signature: hex HMAC-SHA256 of "{timestamp}.{raw body}"
Events older than MAX_WEBHOOK_AGE_SECONDS are refused so a captured request
cannot be replayed later.
"""

import hashlib
import hmac
import logging
import time
from typing import Optional

from fastapi import HTTPException, Request

logger = logging.getLogger(__name__)

MAX_WEBHOOK_AGE_SECONDS = 300

SIGNATURE_HEADER = "X-Webhook-Signature"
TIMESTAMP_HEADER = "X-Webhook-Timestamp"


def signatures_match(expected: str, received: str) -> bool:
    """Constant-time equality, empty values never match"""
    if not expected or not received:
        return False
    return hmac.compare_digest(expected, received)


def sign_payload(secret: str, timestamp: str, raw_body: bytes) -> str:
    """Signature the sender puts in X-Webhook-Signature"""
    signed = timestamp.encode("utf-8") + b"." + raw_body
    return hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()


def verify_timestamp(timestamp: Optional[str], max_age: int = MAX_WEBHOOK_AGE_SECONDS) -> bool:
    if not timestamp:
        return False

    try:
        sent_at = int(timestamp)
    except (ValueError, TypeError):
        logger.warning(f"🚫 Unparseable webhook timestamp: {timestamp}")
        return False

    drift = abs(int(time.time()) - sent_at)
    if drift > max_age:
        logger.warning(f"🚫 Webhook sent {drift}s ago, limit is {max_age}s")
        return False
    return True


async def verify_appointment_webhook(request: Request, secret: str) -> bytes:
    """
    Check the lifecycle webhook signature and hand back the raw body.
    Raises HTTPException(401) when the request is not trusted.
    """
    # The signature covers the exact bytes, so read them before any JSON parsing
    raw_body = await request.body()

    if not secret:
        logger.warning("⚠️ APPOINTMENT_WEBHOOK_SECRET not configured - signature verification skipped")
        return raw_body

    signature = request.headers.get(SIGNATURE_HEADER, "")
    timestamp = request.headers.get(TIMESTAMP_HEADER, "")

    if not signature:
        logger.error(f"❌ Appointment webhook without {SIGNATURE_HEADER}")
        raise HTTPException(status_code=401, detail="Missing webhook signature")

    if not verify_timestamp(timestamp):
        logger.error("❌ Appointment webhook timestamp missing or too old")
        raise HTTPException(status_code=401, detail="Webhook timestamp expired")

    if not signatures_match(sign_payload(secret, timestamp, raw_body), signature):
        logger.warning(f"⚠️ Appointment webhook signature mismatch: {signature[:12]}...")
        raise HTTPException(status_code=401, detail="Invalid webhook signature")

    return raw_body
