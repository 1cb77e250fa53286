from dataclasses import dataclass
from typing import Any, Dict, Optional, Union
from storefront.orders.constants import (
    ADDRESS_FIELDS, FAILURE_EVENTS, META_DISCOUNT_CODE, META_EMAIL, META_RESERVATION_REF, META_SHIPPING, META_USER_ID,
    PAID_SESSION_STATUSES, SUCCESS_EVENTS,
)


@dataclass(frozen=True)
class PaymentSucceeded:
    event_id: str
    event_type: str
    session_id: str
    payment_intent_id: Optional[str] = None
    user_id: Optional[str] = None
    email: Optional[str] = None
    discount_code: Optional[str] = None
    reservation_ref: Optional[str] = None
    amount_total: Optional[int] = None
    currency: Optional[str] = None
    shipping_amount: Optional[int] = None
    shipping_address: Optional[Dict[str, Any]] = None
    billing_address: Optional[Dict[str, Any]] = None


@dataclass(frozen=True)
class PaymentFailed:
    event_id: str
    event_type: str
    session_id: Optional[str] = None
    reservation_ref: Optional[str] = None
    reason: Optional[str] = None


@dataclass(frozen=True)
class Ignored:
    event_id: str
    event_type: str
    reason: str


WebhookEvent = Union[PaymentSucceeded, PaymentFailed, Ignored]


def _blank_to_none(value: Any) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _to_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _address(details: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    details = details or {}
    address = details.get("address")
    if not address:
        return None
    out = {"name": details.get("name")}
    out.update({k: address.get(k) for k in ADDRESS_FIELDS})
    return out


def _shipping_amount(obj: Dict[str, Any], metadata: Dict[str, Any]) -> Optional[int]:
    total_details = obj.get("total_details") or {}
    amount = _to_int(total_details.get("amount_shipping"))
    if amount is None:
        amount = _to_int(metadata.get(META_SHIPPING))
    return amount


def parse_event(payload: Dict[str, Any]) -> WebhookEvent:
    """Map a gateway event onto one of the three kinds we act on.

    Anything not listed explicitly comes back as Ignored , new event types never
    fall into the success or failure branch by accident.
    """
    event_id = str(payload.get("id") or "")
    event_type = str(payload.get("type") or "")
    obj = (payload.get("data") or {}).get("object") or {}
    metadata = obj.get("metadata") or {}

    if not event_id:
        return Ignored(event_id=event_id, event_type=event_type, reason="missing event id")

    if event_type in SUCCESS_EVENTS:
        session_id = _blank_to_none(obj.get("id"))
        payment_status = obj.get("payment_status")
        if not session_id:
            return Ignored(event_id=event_id, event_type=event_type, reason="missing session id")
        if payment_status not in PAID_SESSION_STATUSES:
            # completed but the async payment is still pending , a later event settles it
            return Ignored(event_id=event_id, event_type=event_type, reason=f"payment_status={payment_status}")

        customer_details = obj.get("customer_details") or {}
        # newer api versions nest shipping under collected_information
        shipping_details = obj.get("shipping_details") or (obj.get("collected_information") or {}).get("shipping_details")
        amount_total = obj.get("amount_total")
        return PaymentSucceeded(
            event_id=event_id,
            event_type=event_type,
            session_id=session_id,
            payment_intent_id=_blank_to_none(obj.get("payment_intent")),
            user_id=_blank_to_none(metadata.get(META_USER_ID)),
            email=_blank_to_none(metadata.get(META_EMAIL)) or _blank_to_none(obj.get("customer_email")) or _blank_to_none(customer_details.get("email")),
            discount_code=_blank_to_none(metadata.get(META_DISCOUNT_CODE)),
            reservation_ref=_blank_to_none(metadata.get(META_RESERVATION_REF)),
            amount_total=int(amount_total) if amount_total is not None else None,
            currency=_blank_to_none(obj.get("currency")),
            shipping_amount=_shipping_amount(obj, metadata),
            shipping_address=_address(shipping_details),
            billing_address=_address(customer_details),
        )

    if event_type in FAILURE_EVENTS:
        # payment_intent events carry the intent , not the checkout session
        session_id = _blank_to_none(obj.get("id")) if event_type.startswith("checkout.session.") else None
        last_error = obj.get("last_payment_error") or {}
        return PaymentFailed(
            event_id=event_id,
            event_type=event_type,
            session_id=session_id,
            reservation_ref=_blank_to_none(metadata.get(META_RESERVATION_REF)),
            reason=last_error.get("message") or event_type,
        )

    return Ignored(event_id=event_id, event_type=event_type, reason="unhandled event type")
