import json

import httpx
import pytest

from app.config import get_settings
from app.services.notifications import (
    NotificationError,
    build_brevo_payload,
    render_access_link_email,
    render_rfq_notification,
    send_email,
)


def _rfq_email():
    return render_rfq_notification(
        product_name="Vitamin C",
        rfq={
            "name": "Ana <script>",
            "email": "ana@buyer.test",
            "company": "Buyer Co",
            "message": "Please quote 500 kg CIF Rotterdam.",
            "quantity": "500 kg",
            "phone": None,
        },
        product_url="http://localhost:3000/products/vitamin-c",
        dashboard_url="http://localhost:3000/dashboard/rfqs/1",
    )


def test_rfq_notification_content_is_escaped():
    email = _rfq_email()
    assert email.subject == "New RFQ: Ana <script> from Buyer Co - Vitamin C"
    assert "&lt;script&gt;" in email.html
    assert "<script>" not in email.html
    assert "Phone" not in email.text
    assert "Quantity: 500 kg" in email.text
    assert "Please quote 500 kg" in email.text


def test_access_link_email_mentions_validity():
    email = render_access_link_email(product_name="Vitamin C", url="http://x/products/v?token=t", expires_in_days=30)
    assert "30 days" in email.text
    assert "http://x/products/v?token=t" in email.text


def test_brevo_payload_shape():
    payload = build_brevo_payload(["a@x.test", "b@x.test"], _rfq_email(), reply_to="ana@buyer.test")
    assert payload["to"] == [{"email": "a@x.test"}, {"email": "b@x.test"}]
    assert payload["replyTo"] == {"email": "ana@buyer.test"}
    assert payload["sender"]["email"] == get_settings().email_sender_address


def test_send_email_without_key_only_logs(monkeypatch):
    monkeypatch.setattr(get_settings(), "brevo_api_key", "")

    def handler(request):  # pragma: no cover - must not be called
        raise AssertionError("no request expected")

    client = httpx.Client(transport=httpx.MockTransport(handler))
    assert send_email("owner@supplier.test", _rfq_email(), client=client) is None


def test_send_email_posts_to_brevo(monkeypatch):
    monkeypatch.setattr(get_settings(), "brevo_api_key", "test-key")
    seen = {}

    def handler(request):
        seen["api_key"] = request.headers["api-key"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(201, json={"messageId": "<abc@brevo>"})

    client = httpx.Client(transport=httpx.MockTransport(handler))
    message_id = send_email("owner@supplier.test", _rfq_email(), reply_to="ana@buyer.test", client=client)
    assert message_id == "<abc@brevo>"
    assert seen["api_key"] == "test-key"
    assert seen["body"]["to"] == [{"email": "owner@supplier.test"}]


def test_send_email_raises_on_http_error(monkeypatch):
    monkeypatch.setattr(get_settings(), "brevo_api_key", "test-key")
    client = httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(400, json={"code": "bad"})))
    with pytest.raises(NotificationError):
        send_email("owner@supplier.test", _rfq_email(), client=client)
