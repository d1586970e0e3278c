"""Transactional email through the Brevo HTTP API."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from html import escape
from typing import Any, Dict, List, Optional, Sequence, Union

import httpx

from app.config import get_settings

logger = logging.getLogger(__name__)


class NotificationError(RuntimeError):
    pass


@dataclass
class RenderedEmail:
    subject: str
    html: str
    text: str


def _layout(title: str, body_html: str, cta_text: Optional[str] = None, cta_url: Optional[str] = None, footer: str = "") -> str:
    cta = ""
    if cta_text and cta_url:
        cta = (
            f'<p style="margin: 24px 0;"><a href="{escape(cta_url, quote=True)}" '
            'style="background-color: #667eea; color: #ffffff; padding: 12px 24px; '
            f'border-radius: 6px; text-decoration: none;">{escape(cta_text)}</a></p>'
        )
    footer_html = f'<p style="font-size: 12px; color: #999999;">{escape(footer)}</p>' if footer else ""
    return (
        '<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; color: #333333;">'
        f"<h1 style=\"font-size: 22px;\">{escape(title)}</h1>{body_html}{cta}{footer_html}</div>"
    )


def render_rfq_notification(
    *,
    product_name: str,
    rfq: Dict[str, Any],
    product_url: str,
    dashboard_url: str,
) -> RenderedEmail:
    """Email to the product owner for a new request for quote."""
    name = str(rfq.get("name") or "")
    company = str(rfq.get("company") or "")
    rows = [
        ("Name", rfq.get("name")),
        ("Email", rfq.get("email")),
        ("Company", rfq.get("company")),
        ("Phone", rfq.get("phone")),
        ("Quantity", rfq.get("quantity")),
        ("Target Date", rfq.get("target_date")),
    ]
    present = [(label, str(value)) for label, value in rows if value]
    details_html = "".join(f"<p><strong>{label}:</strong> {escape(value)}</p>" for label, value in present)
    message = str(rfq.get("message") or "")
    message_html = (
        f'<p><strong>Message:</strong></p><p style="white-space: pre-wrap;">{escape(message)}</p>' if message else ""
    )
    body = (
        "<p>You have received a new request for quote for your product:</p>"
        f"<p><strong>{escape(product_name)}</strong></p>"
        f"<p><strong>Request Details:</strong></p>{details_html}{message_html}"
        "<p>You can view and manage this RFQ in your dashboard, or view the product page directly.</p>"
    )
    text_lines = [
        "New Request for Quote",
        "",
        f"Product: {product_name}",
        *[f"{label}: {value}" for label, value in present],
    ]
    if message:
        text_lines += ["", "Message:", message]
    text_lines += ["", f"Dashboard: {dashboard_url}", f"Product page: {product_url}"]
    return RenderedEmail(
        subject=f"New RFQ: {name} from {company} - {product_name}",
        html=_layout(
            "New Request for Quote",
            body,
            cta_text="View in Dashboard",
            cta_url=dashboard_url,
            footer=f"You can also view the product page: {product_url}",
        ),
        text="\n".join(text_lines),
    )


def render_access_link_email(*, product_name: str, url: str, expires_in_days: Optional[int]) -> RenderedEmail:
    """Email carrying a full-access product link (RFQ upgrade or refresh)."""
    validity = f"This link is valid for {expires_in_days} days." if expires_in_days else ""
    body = (
        f"<p>Here is your full-access link for <strong>{escape(product_name)}</strong>, "
        "including technical data and document downloads.</p>"
        f"<p>{escape(validity)}</p>"
    )
    text = "\n".join(
        line
        for line in [
            f"Your full-access link for {product_name}:",
            url,
            validity,
        ]
        if line
    )
    return RenderedEmail(
        subject=f"Your access link for {product_name}",
        html=_layout("Your product access link", body, cta_text="View Product", cta_url=url),
        text=text,
    )


def build_brevo_payload(
    to: Union[str, Sequence[str]],
    email: RenderedEmail,
    reply_to: Optional[str] = None,
) -> Dict[str, Any]:
    settings = get_settings()
    recipients: List[str] = [to] if isinstance(to, str) else list(to)
    payload: Dict[str, Any] = {
        "sender": {"email": settings.email_sender_address, "name": settings.email_sender_name},
        "to": [{"email": address} for address in recipients],
        "subject": email.subject,
        "htmlContent": email.html,
        "textContent": email.text,
    }
    if reply_to:
        payload["replyTo"] = {"email": reply_to}
    return payload


def send_email(
    to: Union[str, Sequence[str]],
    email: RenderedEmail,
    *,
    reply_to: Optional[str] = None,
    client: Optional[httpx.Client] = None,
) -> Optional[str]:
    """Send through Brevo and return the message id.

    Without an API key the email is logged instead of sent and ``None`` is returned.
    """
    settings = get_settings()
    payload = build_brevo_payload(to, email, reply_to=reply_to)
    if not settings.brevo_api_key:
        logger.info("BREVO_API_KEY not configured; not sending %r to %s", email.subject, payload["to"])
        return None

    headers = {
        "api-key": settings.brevo_api_key,
        "accept": "application/json",
        "content-type": "application/json",
    }
    try:
        if client is not None:
            response = client.post(settings.brevo_api_url, json=payload, headers=headers)
        else:
            with httpx.Client(timeout=15) as http:
                response = http.post(settings.brevo_api_url, json=payload, headers=headers)
        response.raise_for_status()
    except httpx.HTTPError as exc:
        logger.error("Brevo send failed for %r: %s", email.subject, exc)
        raise NotificationError(f"Failed to send email: {exc}") from exc

    body = response.json() if response.content else {}
    message_id = body.get("messageId") if isinstance(body, dict) else None
    logger.info("Sent %r to %s (message_id=%s)", email.subject, payload["to"], message_id)
    return message_id
