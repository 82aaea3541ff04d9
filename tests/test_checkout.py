"""
Checkout: order creation against each payment method.
"""
import re
from decimal import Decimal

import pytest
import stripe
from sqlmodel import select

from coursestore.exceptions import ValidationError
from coursestore.models.order import Order
from coursestore.models.order_event import OrderEvent
from coursestore.services import entitlements
from coursestore.services.reconciliation import create_checkout


class TestCheckout:
    """POST /payments/checkout"""

    def test_card_checkout_creates_pending_order(self, client, session, checkout, course, buyer, stripe_client) -> None:
        body = checkout("card")

        order = session.get(Order, body["order_id"])
        assert order.status == "pending"
        assert order.amount == Decimal("49.00")
        assert order.payment_method == "card"
        assert order.payment_id == f"cs_test_{order.id}"
        assert order.user_id == buyer.id
        assert body["handle"]["url"].endswith(order.payment_id)
        stripe_client.checkout.sessions.create.assert_called_once()

    def test_client_amount_is_ignored(self, client, session, checkout, stripe_client) -> None:
        body = checkout("card", amount="0.01")

        order = session.get(Order, body["order_id"])
        assert order.amount == Decimal("49.00")
        params = stripe_client.checkout.sessions.create.call_args.kwargs["params"]
        assert params["line_items"][0]["price_data"]["unit_amount"] == 4900

    def test_bank_transfer_awaits_payment(self, client, session, checkout) -> None:
        body = checkout("bank_transfer")

        order = session.get(Order, body["order_id"])
        assert order.status == "awaiting_payment"
        assert order.payment_id is None
        assert re.fullmatch(r"BT-\d{8}-[0-9A-F]{8}", order.reference)
        assert body["handle"]["reference"] == order.reference
        assert "iban" in body["handle"]

    def test_wallet_checkout_returns_provider_order(self, client, session, checkout, razorpay_api) -> None:
        body = checkout("wallet")

        order = session.get(Order, body["order_id"])
        assert order.status == "pending"
        assert order.payment_id == f"order_rzp_{order.id}"
        assert body["handle"]["razorpay_order_id"] == order.payment_id
        assert body["handle"]["razorpay_key"] == "rzp_test_key"

    def test_order_created_event_logged(self, client, session, checkout) -> None:
        body = checkout("card")

        events = session.exec(select(OrderEvent).where(OrderEvent.order_id == body["order_id"])).all()
        assert [e.event_type for e in events] == ["order_created"]
        assert events[0].meta["amount"] == "49.00"

    def test_already_owned_course_conflicts(self, client, session, course, buyer, buyer_headers) -> None:
        entitlements.grant(session, buyer.id, course.id)
        session.commit()

        response = client.post(
            "/payments/checkout", json={"course_id": course.id, "method": "card"}, headers=buyer_headers
        )

        assert response.status_code == 409
        assert response.json()["status"] == "fail"

    def test_unknown_course(self, client, buyer_headers) -> None:
        response = client.post("/payments/checkout", json={"course_id": 999, "method": "card"}, headers=buyer_headers)

        assert response.status_code == 404
        assert response.json() == {"status": "fail", "message": "Course not found"}

    def test_unpublished_course(self, client, session, course, buyer_headers) -> None:
        course.is_published = False
        session.add(course)
        session.commit()

        response = client.post(
            "/payments/checkout", json={"course_id": course.id, "method": "card"}, headers=buyer_headers
        )

        assert response.status_code == 404

    def test_requires_authentication(self, client, course) -> None:
        response = client.post("/payments/checkout", json={"course_id": course.id, "method": "card"})

        assert response.status_code == 401

    def test_unsupported_method_rejected(self, session, course, buyer, gateways) -> None:
        with pytest.raises(ValidationError, match="Unsupported payment method"):
            create_checkout(session, buyer=buyer, course_id=course.id, method="paypal", gateways=gateways)


class TestCheckoutProviderFailure:
    """Provider failures abort the order."""

    def test_terminal_failure_rolls_back_order(self, client, session, course, buyer_headers, stripe_client) -> None:
        stripe_client.checkout.sessions.create.side_effect = stripe.InvalidRequestError(
            "No such price", param="line_items"
        )

        response = client.post(
            "/payments/checkout", json={"course_id": course.id, "method": "card"}, headers=buyer_headers
        )

        assert response.status_code == 502
        assert response.json()["message"] == "Payment could not be processed"
        assert response.json()["retryable"] is False
        assert session.exec(select(Order)).all() == []
        assert session.exec(select(OrderEvent)).all() == []

    def test_timeout_answers_504(self, client, session, course, buyer_headers, stripe_client) -> None:
        stripe_client.checkout.sessions.create.side_effect = stripe.APIConnectionError("Request timed out")

        response = client.post(
            "/payments/checkout", json={"course_id": course.id, "method": "card"}, headers=buyer_headers
        )

        assert response.status_code == 504
        assert response.json()["retryable"] is True
        assert session.exec(select(Order)).all() == []

    def test_admin_sees_provider_detail(self, client, course, admin_headers, stripe_client) -> None:
        stripe_client.checkout.sessions.create.side_effect = stripe.InvalidRequestError(
            "No such price", param="line_items"
        )

        response = client.post(
            "/payments/checkout", json={"course_id": course.id, "method": "card"}, headers=admin_headers
        )

        assert response.status_code == 502
        assert "No such price" in response.json()["message"]
