import hashlib
import hmac
import time
from typing import Any, Dict, List, Optional, Tuple
from storefront.common.custom_exceptions import InvalidSignature
from storefront.orders.constants import SIGNATURE_SCHEME, WEBHOOK_TOLERANCE_SECONDS, logger


def compute_signature(payload: bytes, secret: str, timestamp: int) -> str:
    signed = f"{timestamp}.".encode() + payload
    return hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()


def build_signature_header(payload: bytes, secret: str, timestamp: Optional[int] = None) -> str:
    timestamp = int(timestamp if timestamp is not None else time.time())
    return f"t={timestamp},{SIGNATURE_SCHEME}={compute_signature(payload, secret, timestamp)}"


def parse_signature_header(header: str) -> Tuple[Optional[int], List[str]]:
    timestamp = None
    signatures = []
    for part in header.split(","):
        key, sep, value = part.strip().partition("=")
        if not sep:
            continue
        if key == "t":
            try:
                timestamp = int(value)
            except ValueError:
                return None, []
        elif key == SIGNATURE_SCHEME:
            signatures.append(value)
    return timestamp, signatures


def verify_signature(payload: bytes, header: Optional[str], secret: str,
                     tolerance: int = WEBHOOK_TOLERANCE_SECONDS, now_ts: Optional[int] = None) -> int:
    """Check `t=<unix>,v1=<hex>` against the raw body . Returns the signed timestamp."""
    if not secret:
        logger.error("payment_webhook.secret_not_configured")
        raise InvalidSignature("Webhook secret is not configured")
    if not header:
        logger.error("payment_webhook.missing_signature")
        raise InvalidSignature("Missing signature header")

    timestamp, signatures = parse_signature_header(header)
    if timestamp is None or not signatures:
        logger.error("payment_webhook.malformed_signature")
        raise InvalidSignature("Malformed signature header")

    now_ts = int(now_ts if now_ts is not None else time.time())
    if tolerance and abs(now_ts - timestamp) > tolerance:
        logger.error("payment_webhook.stale_signature", extra={"timestamp": timestamp, "now": now_ts})
        raise InvalidSignature("Signature timestamp outside tolerance")

    expected = compute_signature(payload, secret, timestamp)
    if not any(hmac.compare_digest(expected, sig) for sig in signatures):
        logger.error("payment_webhook.invalid_signature")
        raise InvalidSignature("Invalid signature")
    return timestamp


def encode_form(params: Dict[str, Any], prefix: str = "") -> List[Tuple[str, str]]:
    """Flatten nested dicts/lists into the gateway's bracketed form fields , e.g. line_items[0][quantity]."""
    fields: List[Tuple[str, str]] = []
    for key, value in params.items():
        name = f"{prefix}[{key}]" if prefix else str(key)
        if value is None:
            continue
        if isinstance(value, dict):
            fields.extend(encode_form(value, name))
        elif isinstance(value, (list, tuple)):
            for idx, item in enumerate(value):
                item_name = f"{name}[{idx}]"
                if isinstance(item, dict):
                    fields.extend(encode_form(item, item_name))
                else:
                    fields.append((item_name, str(item)))
        elif isinstance(value, bool):
            fields.append((name, "true" if value else "false"))
        else:
            fields.append((name, str(value)))
    return fields
