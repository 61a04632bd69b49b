"""Notification sinks."""

from .email import EmailClient, render_template
from .webhook import build_webhook_payload, send_webhook

__all__ = ["EmailClient", "render_template", "build_webhook_payload", "send_webhook"]
