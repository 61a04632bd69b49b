"""Webhook and email proxy endpoints used by the dashboard."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, status

from ...schemas.tracking import EmailRequest, WebhookRequest
from ...services.notifications import EmailClient, send_webhook

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.post("/webhook", status_code=status.HTTP_200_OK)
def trigger_webhook(payload: WebhookRequest) -> dict:
    """Forward an event to a user's webhook; delivery failure is reported, not raised."""
    delivered = send_webhook(payload.webhook_url, payload.template_type, payload.data)
    return {"success": True, "delivered": delivered}


@router.post("/email", status_code=status.HTTP_200_OK)
def send_email(payload: EmailRequest) -> dict:
    client = EmailClient()
    if not client.configured:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Email service not configured",
        )
    if not client.send(payload.from_email, payload.to, payload.subject, payload.html):
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Failed to send email",
        )
    return {"success": True}
