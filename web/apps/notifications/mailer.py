"""Client for the transactional mail API.

Plain messages are posted as JSON (``from``, ``to``, ``subject``, ``html``,
``text``). Messages with attachments are built as MIME with Django's mail
classes and posted base64-encoded to the raw endpoint. When no API key is
configured sends are skipped with a log line and ``None`` is returned.
"""

import base64
import logging
from typing import Iterable, Optional, Tuple

import httpx
from django.conf import settings
from django.core.mail import EmailMultiAlternatives

from apps.orders.http_adapters import request_headers

logger = logging.getLogger(__name__)

Attachment = Tuple[str, bytes, str]


class EmailClient:
    def __init__(self, api_url: str, api_key: str, from_address: str, timeout: float = 5.0):
        self.api_url = api_url.rstrip("/")
        self.api_key = api_key
        self.from_address = from_address
        self.timeout = timeout

    @classmethod
    def from_settings(cls) -> "EmailClient":
        return cls(
            settings.EMAIL_API_URL,
            settings.EMAIL_API_KEY,
            settings.EMAIL_FROM,
            getattr(settings, "NOTIFICATION_TIMEOUT_SECS", 5.0),
        )

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def send(
        self,
        to: str,
        subject: str,
        html: str,
        text: str = "",
        attachments: Iterable[Attachment] = (),
    ) -> Optional[str]:
        """Send one email and return the provider message id.

        Args:
            to: Recipient address.
            subject: Subject line.
            html: HTML body.
            text: Plain-text alternative.
            attachments: ``(filename, content, mimetype)`` tuples; when
                present the message is sent as raw MIME.

        Raises:
            httpx.HTTPError: When the provider rejects the request.
        """
        attachments = list(attachments)
        if not self.configured:
            logger.info("email skipped, provider not configured", extra={"subject": subject})
            return None
        if attachments:
            return self.send_raw(self._mime(to, subject, html, text, attachments))
        return self._post(
            "/emails",
            {"from": self.from_address, "to": [to], "subject": subject, "html": html, "text": text},
        )

    def send_raw(self, mime_bytes: bytes) -> Optional[str]:
        if not self.configured:
            logger.info("raw email skipped, provider not configured")
            return None
        return self._post("/emails/raw", {"raw": base64.b64encode(mime_bytes).decode("ascii")})

    def _mime(self, to, subject, html, text, attachments) -> bytes:
        msg = EmailMultiAlternatives(subject=subject, body=text or "", from_email=self.from_address, to=[to])
        msg.attach_alternative(html, "text/html")
        for filename, content, mimetype in attachments:
            msg.attach(filename, content, mimetype)
        return msg.message().as_bytes()

    def _post(self, path: str, payload: dict) -> Optional[str]:
        headers = request_headers({"Authorization": f"Bearer {self.api_key}"})
        with httpx.Client(timeout=self.timeout) as client:
            resp = client.post(f"{self.api_url}{path}", json=payload, headers=headers)
            resp.raise_for_status()
            data = resp.json()
        message_id = data.get("id") or data.get("message_id")
        logger.info("email sent", extra={"message_id": message_id})
        return message_id
