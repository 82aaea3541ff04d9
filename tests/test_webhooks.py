"""
Provider webhooks driving the order state machine.
"""
from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError
from sqlmodel import select

from coursestore.exceptions import ConcurrentUpdateError
from coursestore.models.order import Order
from coursestore.models.order_event import OrderEvent
from coursestore.models.user_course import UserCourse
from coursestore.services import entitlements, order_store


def _events(session, order_id):
    return [
        e.event_type
        for e in session.exec(
            select(OrderEvent).where(OrderEvent.order_id == order_id).order_by(OrderEvent.created_at)
        ).all()
    ]


def _entitlements(session, user_id, course_id):
    return session.exec(
        select(UserCourse).where(UserCourse.user_id == user_id).where(UserCourse.course_id == course_id)
    ).all()


@pytest.fixture
def card_order(session, checkout):
    body = checkout("card")
    return session.get(Order, body["order_id"])


@pytest.fixture
def paid_event(stripe_event, card_order):
    return stripe_event(
        "checkout.session.completed",
        card_order.payment_id,
        order_id=card_order.id,
        user_id=card_order.user_id,
        course_id=card_order.course_id,
    )


class TestStripeWebhook:
    """POST /payments/webhook/stripe"""

    def test_success_completes_order_and_grants_course(
        self, session, post_stripe_webhook, paid_event, card_order, buyer, course
    ) -> None:
        response = post_stripe_webhook(paid_event)

        assert response.status_code == 200
        assert response.json() == {"status": "completed"}
        session.refresh(card_order)
        assert card_order.status == "completed"
        assert card_order.amount == Decimal("49.00")
        granted = _entitlements(session, buyer.id, course.id)
        assert len(granted) == 1
        assert granted[0].progress == 0
        assert sorted(_events(session, card_order.id)) == ["course_access_granted", "order_created", "payment_completed"]

    def test_duplicate_delivery_is_acknowledged_without_side_effects(
        self, session, post_stripe_webhook, paid_event, card_order, buyer, course
    ) -> None:
        post_stripe_webhook(paid_event)
        session.refresh(card_order)
        updated_at = card_order.updated_at

        for _ in range(3):
            response = post_stripe_webhook(paid_event)
            assert response.status_code == 200
            assert response.json() == {"status": "duplicate"}

        session.refresh(card_order)
        assert card_order.status == "completed"
        assert card_order.updated_at == updated_at
        assert len(_entitlements(session, buyer.id, course.id)) == 1

    def test_bad_signature_is_rejected_without_state_change(
        self, session, post_stripe_webhook, paid_event, card_order
    ) -> None:
        response = post_stripe_webhook(paid_event, secret="whsec_attacker")

        assert response.status_code == 400
        assert response.json()["status"] == "fail"
        session.refresh(card_order)
        assert card_order.status == "pending"

    def test_missing_signature_is_rejected(self, post_stripe_webhook, paid_event) -> None:
        response = post_stripe_webhook(paid_event, signature="")

        assert response.status_code == 400

    def test_irrelevant_event_is_acknowledged(self, post_stripe_webhook) -> None:
        response = post_stripe_webhook({"id": "evt_1", "type": "invoice.created", "data": {"object": {}}})

        assert response.status_code == 200
        assert response.json() == {"status": "ignored"}

    def test_delayed_payment_goes_through_processing(
        self, session, post_stripe_webhook, stripe_event, card_order
    ) -> None:
        unpaid = stripe_event(
            "checkout.session.completed", card_order.payment_id, order_id=card_order.id, payment_status="unpaid"
        )
        settled = stripe_event("checkout.session.async_payment_succeeded", card_order.payment_id, order_id=card_order.id)

        assert post_stripe_webhook(unpaid).json() == {"status": "processing"}
        session.refresh(card_order)
        assert card_order.status == "processing"

        assert post_stripe_webhook(settled).json() == {"status": "completed"}
        session.refresh(card_order)
        assert card_order.status == "completed"

    def test_failed_payment_is_recorded_only(self, session, post_stripe_webhook, stripe_event, card_order) -> None:
        failed = stripe_event("checkout.session.async_payment_failed", card_order.payment_id, order_id=card_order.id)

        response = post_stripe_webhook(failed)

        assert response.json() == {"status": "failed"}
        session.refresh(card_order)
        assert card_order.status == "pending"
        assert "payment_failed" in _events(session, card_order.id)

    def test_success_for_cancelled_order_is_flagged_not_applied(
        self, session, post_stripe_webhook, paid_event, card_order, buyer, course, caplog
    ) -> None:
        order_store.transition(session, card_order.id, "cancelled")
        session.commit()

        response = post_stripe_webhook(paid_event)

        assert response.json() == {"status": "needs_refund"}
        session.refresh(card_order)
        assert card_order.status == "cancelled"
        assert _entitlements(session, buyer.id, course.id) == []
        assert "payment_after_close" in _events(session, card_order.id)
        assert any(r.levelname == "ERROR" and "refund it manually" in r.getMessage() for r in caplog.records)

    def test_amount_mismatch_is_rejected(self, session, post_stripe_webhook, stripe_event, card_order) -> None:
        underpaid = stripe_event(
            "checkout.session.completed", card_order.payment_id, order_id=card_order.id, amount_total=100
        )

        response = post_stripe_webhook(underpaid)

        assert response.status_code == 200
        assert response.json()["status"] == "rejected"
        session.refresh(card_order)
        assert card_order.status == "pending"
        assert "amount_mismatch" in _events(session, card_order.id)

    def test_unknown_payment_with_metadata_recreates_order(
        self, session, post_stripe_webhook, stripe_event, buyer, course
    ) -> None:
        event = stripe_event("checkout.session.completed", "cs_test_orphan", user_id=buyer.id, course_id=course.id)

        response = post_stripe_webhook(event)

        assert response.json() == {"status": "completed"}
        order = order_store.find_by_payment_id(session, "cs_test_orphan")
        assert order.status == "completed"
        assert order.amount == Decimal("49.00")
        assert order.payment_method == "card"
        assert len(_entitlements(session, buyer.id, course.id)) == 1

        # a second delivery finds the recreated order
        assert post_stripe_webhook(event).json() == {"status": "duplicate"}
        assert len(session.exec(select(Order)).all()) == 1

    def test_unknown_payment_without_metadata_is_acknowledged(self, session, post_stripe_webhook, stripe_event) -> None:
        response = post_stripe_webhook(stripe_event("checkout.session.completed", "cs_test_nobody"))

        assert response.status_code == 200
        assert response.json()["status"] == "rejected"
        assert session.exec(select(Order)).all() == []

    def test_database_fault_asks_for_retry(self, session, post_stripe_webhook, paid_event, card_order, monkeypatch) -> None:
        def broken(*args, **kwargs):
            raise OperationalError("SELECT", {}, Exception("database is locked"))

        monkeypatch.setattr(order_store, "find_by_payment_id", broken)

        response = post_stripe_webhook(paid_event)

        assert response.status_code == 503
        monkeypatch.undo()
        session.refresh(card_order)
        assert card_order.status == "pending"

    def test_losing_the_completion_race_reports_duplicate(
        self, session, post_stripe_webhook, paid_event, card_order, buyer, course, monkeypatch, caplog
    ) -> None:
        real_transition = order_store.transition
        calls = []

        def concurrent_winner(db, order_id, new_status, **kwargs):
            calls.append(new_status)
            if len(calls) == 1:
                # another delivery completes and grants first
                real_transition(db, order_id, new_status, **kwargs)
                entitlements.grant(db, buyer.id, course.id)
                db.commit()
                raise ConcurrentUpdateError(f"Order #{order_id} changed concurrently, now completed")
            return real_transition(db, order_id, new_status, **kwargs)

        monkeypatch.setattr(order_store, "transition", concurrent_winner)

        response = post_stripe_webhook(paid_event)

        assert response.status_code == 200
        assert response.json() == {"status": "duplicate"}
        assert calls == ["completed"]
        session.refresh(card_order)
        assert card_order.status == "completed"
        assert len(_entitlements(session, buyer.id, course.id)) == 1
        assert any("retrying once" in r.getMessage() for r in caplog.records)

    def test_grant_race_rolls_back_and_completes_once(
        self, session, post_stripe_webhook, paid_event, card_order, buyer, course, monkeypatch
    ) -> None:
        real_grant = entitlements.grant
        calls = []

        def contended_grant(db, user_id, course_id):
            calls.append(course_id)
            if len(calls) == 1:
                raise ConcurrentUpdateError(f"Course {course_id} granted concurrently to user {user_id}")
            return real_grant(db, user_id, course_id)

        monkeypatch.setattr(entitlements, "grant", contended_grant)

        response = post_stripe_webhook(paid_event)

        assert response.json() == {"status": "completed"}
        assert len(calls) == 2
        session.refresh(card_order)
        assert card_order.status == "completed"
        assert len(_entitlements(session, buyer.id, course.id)) == 1
        assert _events(session, card_order.id).count("payment_completed") == 1

    def test_event_for_an_order_of_another_method_is_rejected(
        self, session, post_stripe_webhook, stripe_event, checkout, buyer, course
    ) -> None:
        bank_order = session.get(Order, checkout("bank_transfer")["order_id"])
        event = stripe_event(
            "checkout.session.completed",
            "cs_test_elsewhere",
            order_id=bank_order.id,
            user_id=bank_order.user_id,
            course_id=bank_order.course_id,
        )

        response = post_stripe_webhook(event)

        assert response.status_code == 200
        assert response.json()["status"] == "rejected"
        session.refresh(bank_order)
        assert bank_order.status == "awaiting_payment"
        assert bank_order.payment_id != "cs_test_elsewhere"
        assert order_store.find_by_payment_id(session, "cs_test_elsewhere") is None
        assert _entitlements(session, buyer.id, course.id) == []

    def test_unknown_provider(self, client) -> None:
        response = client.post("/payments/webhook/paypal", content=b"{}")

        assert response.status_code == 404


class TestRazorpayWebhook:
    """POST /payments/webhook/razorpay"""

    @pytest.fixture
    def wallet_order(self, session, checkout):
        body = checkout("wallet")
        return session.get(Order, body["order_id"])

    def _captured(self, order, amount=4900):
        return {
            "event": "payment.captured",
            "payload": {
                "payment": {
                    "entity": {
                        "id": "pay_test_1",
                        "order_id": order.payment_id,
                        "amount": amount,
                        "status": "captured",
                        "notes": {"order_id": order.id, "user_id": order.user_id, "course_id": order.course_id},
                    }
                }
            },
        }

    def test_captured_completes_order(self, session, post_razorpay_webhook, wallet_order, buyer, course) -> None:
        response = post_razorpay_webhook(self._captured(wallet_order))

        assert response.json() == {"status": "completed"}
        session.refresh(wallet_order)
        assert wallet_order.status == "completed"
        assert len(_entitlements(session, buyer.id, course.id)) == 1

    def test_order_paid_after_payment_captured_is_duplicate(self, session, post_razorpay_webhook, wallet_order) -> None:
        post_razorpay_webhook(self._captured(wallet_order))
        order_paid = {
            "event": "order.paid",
            "payload": {
                "payment": self._captured(wallet_order)["payload"]["payment"],
                "order": {"entity": {"id": wallet_order.payment_id, "amount_paid": 4900, "notes": []}},
            },
        }

        assert post_razorpay_webhook(order_paid).json() == {"status": "duplicate"}

    def test_bad_signature(self, session, post_razorpay_webhook, wallet_order) -> None:
        response = post_razorpay_webhook(self._captured(wallet_order), secret="wrong")

        assert response.status_code == 400
        session.refresh(wallet_order)
        assert wallet_order.status == "pending"

    def test_database_fault_asks_for_retry(self, post_razorpay_webhook, wallet_order, monkeypatch) -> None:
        def broken(*args, **kwargs):
            raise OperationalError("SELECT", {}, Exception("connection reset"))

        monkeypatch.setattr(order_store, "find_by_payment_id", broken)

        assert post_razorpay_webhook(self._captured(wallet_order)).status_code == 503

    def test_bank_transfer_has_no_webhook(self, client) -> None:
        response = client.post("/payments/webhook/bank_transfer", content=b"{}")

        assert response.status_code == 400
