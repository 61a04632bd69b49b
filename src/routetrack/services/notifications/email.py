"""Transactional email through the Resend HTTP API."""

from __future__ import annotations

import logging
import re
from string import Template

import httpx

from ...config import settings

logger = logging.getLogger(__name__)

# Default templates store placeholders escaped as \${name}.
_ESCAPED_PLACEHOLDER = re.compile(r"\\\$\{(\w+)\}")


def render_template(text: str | None, context: dict[str, object]) -> str:
    """Substitute ``${placeholder}`` markers; unknown placeholders are left in place."""
    if not text:
        return ""
    values = {key: "" if value is None else str(value) for key, value in context.items()}
    unescaped = _ESCAPED_PLACEHOLDER.sub(r"${\1}", text)
    return Template(unescaped).safe_substitute(values)


class EmailClient:
    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float = 15.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.api_key = api_key or settings.resend_api_key
        self.base_url = (base_url or settings.resend_base_url).rstrip("/")
        self.timeout = timeout
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def send(self, sender: str | None, to: str | list[str], subject: str, html: str) -> bool:
        """Send one message; failures are logged and reported as False."""
        if not self.configured:
            logger.warning("Resend API key not configured - email not sent")
            return False
        if not to or not subject or not html:
            logger.warning("Email missing recipient, subject or body - not sent")
            return False

        payload = {
            "from": sender or settings.default_from_email,
            "to": to if isinstance(to, list) else [to],
            "subject": subject,
            "html": html,
        }
        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                response = client.post(
                    f"{self.base_url}/emails",
                    json=payload,
                    headers={"Authorization": f"Bearer {self.api_key}"},
                )
            if response.is_success:
                logger.info(f"Email '{subject}' sent to {payload['to']}")
                return True
            logger.warning(f"Email '{subject}' rejected: {response.status_code} {response.text[:200]}")
        except httpx.HTTPError as e:
            logger.warning(f"Email '{subject}' could not be sent: {e}")
        return False
