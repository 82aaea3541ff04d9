"""
Order notifications: in-app rows, emails, failure isolation.
"""
from unittest.mock import patch

from sqlmodel import select

from coursestore.config import settings
from coursestore.models.notifications import Notification
from coursestore.notifications import NotificationEvent, dispatch_order_event
from coursestore.services.email_service import send_email


class TestDispatch:

    def test_payment_success_notifies_buyer_and_admin(
        self, session, checkout, post_stripe_webhook, stripe_event, buyer
    ) -> None:
        body = checkout("card")
        order_id = body["order_id"]
        post_stripe_webhook(
            stripe_event(
                "checkout.session.completed",
                f"cs_test_{order_id}",
                order_id=order_id,
                user_id=buyer.id,
            )
        )

        rows = session.exec(
            select(Notification)
            .where(Notification.related_id == order_id)
            .where(Notification.trigger_source == NotificationEvent.PAYMENT_SUCCESS.value)
        ).all()
        assert {row.recipient_role.value for row in rows} == {"customer", "admin"}
        customer = next(row for row in rows if row.recipient_role.value == "customer")
        assert customer.user_id == buyer.id
        assert customer.title == f"Payment received for order #{order_id}"

    def test_user_email_rendered_from_template(self, session, checkout, buyer) -> None:
        with patch("coursestore.notifications.email_handlers.send_email") as send:
            checkout("bank_transfer")

        send.assert_called_once()
        kwargs = send.call_args.kwargs
        assert kwargs["to"] == buyer.email
        assert kwargs["subject"].startswith("Bank transfer details for order #")
        assert "BT-" in kwargs["html"]

    def test_email_failure_does_not_break_the_order(self, session, checkout) -> None:
        with patch("coursestore.notifications.email_handlers.send_email", side_effect=RuntimeError("smtp down")):
            body = checkout("card")

        assert body["status"] == "pending"

    def test_admin_email_skipped_without_recipients(self, session, buyer, course, monkeypatch) -> None:
        monkeypatch.setattr(settings, "ADMIN_EMAILS", [])
        order = type("OrderStub", (), {"id": 7, "amount": course.price, "status": "completed"})()

        with patch("coursestore.notifications.email_handlers.send_email") as send:
            dispatch_order_event(
                event=NotificationEvent.PAYMENT_SUCCESS,
                order=order,
                user=buyer,
                session=session,
                extra={"course_title": course.title},
            )

        assert [c.kwargs["to"] for c in send.call_args_list] == [buyer.email]


class TestAdminNotificationsApi:
    """GET /admin/notifications"""

    def test_lists_admin_rows(self, client, checkout, admin_headers) -> None:
        body = checkout("card")

        response = client.get(
            "/admin/notifications", params={"trigger_source": "order_placed"}, headers=admin_headers
        )

        assert response.status_code == 200
        results = response.json()["results"]
        assert [row["related_id"] for row in results] == [body["order_id"]]

    def test_buyer_forbidden(self, client, buyer_headers) -> None:
        assert client.get("/admin/notifications", headers=buyer_headers).status_code == 403


class TestSendEmail:

    def test_disabled_without_api_key(self) -> None:
        with patch("coursestore.services.email_service.requests.post") as post:
            assert send_email("buyer@example.com", "Hi", "<p>Hi</p>") is False

        post.assert_not_called()

    def test_invalid_recipients(self, monkeypatch) -> None:
        monkeypatch.setattr(settings, "BREVO_API_KEY", "xkeysib-test")

        assert send_email(["not-an-email", ""], "Hi", "<p>Hi</p>") is False

    def test_posts_to_brevo(self, monkeypatch) -> None:
        monkeypatch.setattr(settings, "BREVO_API_KEY", "xkeysib-test")

        with patch("coursestore.services.email_service.requests.post") as post:
            post.return_value.status_code = 201
            assert send_email(["buyer@example.com", "bad"], "Hi", "<p>Hi</p>", [("a.pdf", b"%PDF", "application/pdf")])

        payload = post.call_args.kwargs["json"]
        assert payload["to"] == [{"email": "buyer@example.com"}]
        assert payload["attachment"][0]["name"] == "a.pdf"
        assert post.call_args.kwargs["headers"]["api-key"] == "xkeysib-test"
