import pytest
from storefront.common.custom_exceptions import InvalidSignature
from storefront.orders.events import Ignored, PaymentFailed, PaymentSucceeded, parse_event
from storefront.orders.utils import build_signature_header, compute_signature, encode_form, verify_signature
from tests.helpers import checkout_event

SECRET = "whsec_unit"
BODY = b'{"id":"evt_1"}'


def test_verify_accepts_any_matching_v1_signature():
    ts = 1_700_000_000
    good = compute_signature(BODY, SECRET, ts)
    header = f"t={ts},v1=deadbeef,v1={good}"

    assert verify_signature(BODY, header, SECRET, now_ts=ts + 10) == ts


def test_verify_rejects_tampering_and_stale_timestamps():
    ts = 1_700_000_000
    header = build_signature_header(BODY, SECRET, ts)

    with pytest.raises(InvalidSignature):
        verify_signature(BODY + b" ", header, SECRET, now_ts=ts)
    with pytest.raises(InvalidSignature):
        verify_signature(BODY, header, "whsec_other", now_ts=ts)
    with pytest.raises(InvalidSignature):
        verify_signature(BODY, header, SECRET, tolerance=300, now_ts=ts + 301)


@pytest.mark.parametrize("header", [None, "", "v1=abc", "t=notanumber,v1=abc", "t=1700000000"])
def test_verify_rejects_missing_or_malformed_header(header):
    with pytest.raises(InvalidSignature):
        verify_signature(BODY, header, SECRET, now_ts=1_700_000_000)


def test_verify_requires_configured_secret():
    header = build_signature_header(BODY, SECRET, 1_700_000_000)
    with pytest.raises(InvalidSignature):
        verify_signature(BODY, header, "", now_ts=1_700_000_000)


def test_parse_paid_checkout():
    metadata = {"user_id": "user-1", "email": "", "discount_code": "SAVE10", "reservation_ref": "ref-1"}
    payload = checkout_event(
        "checkout.session.completed", "cs_1", "evt_1", metadata=metadata,
        amount_total=9000, payment_intent="pi_1", customer_details={"email": "buyer@example.com"},
    )

    event = parse_event(payload)

    assert event == PaymentSucceeded(
        event_id="evt_1",
        event_type="checkout.session.completed",
        session_id="cs_1",
        payment_intent_id="pi_1",
        user_id="user-1",
        email="buyer@example.com",
        discount_code="SAVE10",
        reservation_ref="ref-1",
        amount_total=9000,
        currency="usd",
    )


def test_parse_failures():
    expired = parse_event(checkout_event("checkout.session.expired", "cs_1", "evt_2", metadata={"reservation_ref": "ref-1"}, payment_status="unpaid"))
    assert isinstance(expired, PaymentFailed)
    assert (expired.session_id, expired.reservation_ref) == ("cs_1", "ref-1")

    intent = parse_event({
        "id": "evt_3",
        "type": "payment_intent.payment_failed",
        "data": {"object": {"id": "pi_1", "metadata": {}, "last_payment_error": {"message": "card declined"}}},
    })
    assert isinstance(intent, PaymentFailed)
    assert intent.session_id is None
    assert intent.reason == "card declined"


def test_parse_ignores_everything_else():
    unpaid = parse_event(checkout_event("checkout.session.completed", "cs_1", "evt_4", payment_status="unpaid"))
    no_session = parse_event({"id": "evt_5", "type": "checkout.session.completed", "data": {"object": {"payment_status": "paid"}}})
    no_id = parse_event({"type": "checkout.session.completed", "data": {"object": {"id": "cs_1", "payment_status": "paid"}}})
    refund = parse_event({"id": "evt_6", "type": "charge.refunded", "data": {"object": {}}})

    assert all(isinstance(e, Ignored) for e in (unpaid, no_session, no_id, refund))
    assert unpaid.reason == "payment_status=unpaid"


def test_encode_form_uses_bracket_notation():
    params = {
        "mode": "payment",
        "line_items": [{"price_data": {"currency": "usd", "unit_amount": 2500}, "quantity": 2}],
        "discounts": None,
        "metadata": {"user_id": "u1"},
        "allow_promotion_codes": False,
        "payment_method_types": ["card"],
    }

    assert encode_form(params) == [
        ("mode", "payment"),
        ("line_items[0][price_data][currency]", "usd"),
        ("line_items[0][price_data][unit_amount]", "2500"),
        ("line_items[0][quantity]", "2"),
        ("metadata[user_id]", "u1"),
        ("allow_promotion_codes", "false"),
        ("payment_method_types[0]", "card"),
    ]


def test_parse_reads_shipping_and_addresses():
    address = {"line1": "1 Main St", "line2": None, "city": "Springfield", "state": "IL", "postal_code": "62701", "country": "US"}
    payload = checkout_event(
        "checkout.session.completed", "cs_1", "evt_7",
        total_details={"amount_discount": 0, "amount_shipping": 700},
        collected_information={"shipping_details": {"name": "Ada Buyer", "address": address}},
        customer_details={"email": "buyer@example.com", "name": "Ada Buyer", "address": {**address, "line1": "9 Bill Rd"}},
    )

    event = parse_event(payload)

    assert event.shipping_amount == 700
    assert event.shipping_address == {"name": "Ada Buyer", **address}
    assert event.billing_address["line1"] == "9 Bill Rd"

    # metadata is the fallback when the session carries no totals
    from_meta = parse_event(checkout_event("checkout.session.completed", "cs_1", "evt_8", metadata={"shipping": "450"}))
    assert from_meta.shipping_amount == 450
    assert from_meta.shipping_address is None
    assert from_meta.billing_address is None
