"""
Outbound HR email via the SendGrid v3 mail-send API.

Only used for the per-cycle processing report, which is best effort: send()
reports failure through its return value and never raises.
"""
import logging
from typing import Optional

import requests
from fastapi.concurrency import run_in_threadpool

from app.core.config import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()

SENDGRID_URL = "https://api.sendgrid.com/v3/mail/send"


class SendGridMailer:

    def __init__(
        self,
        api_key: Optional[str] = None,
        from_email: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self.api_key = settings.SENDGRID_API_KEY if api_key is None else api_key
        self.from_email = from_email or settings.SENDGRID_FROM_EMAIL
        self.timeout = timeout or settings.MAIL_TIMEOUT_SECONDS

    async def send(self, to: str, subject: str, html: str) -> bool:
        if not self.api_key:
            logger.info("mailer: SendGrid API key not configured, skipping '%s'", subject)
            return False
        return await run_in_threadpool(self._send_sync, to, subject, html)

    def _send_sync(self, to: str, subject: str, html: str) -> bool:
        payload = {
            "personalizations": [{"to": [{"email": to}], "subject": subject}],
            "from": {"email": self.from_email},
            "content": [{"type": "text/html", "value": html}],
        }
        try:
            response = requests.post(
                SENDGRID_URL,
                json=payload,
                headers={"Authorization": f"Bearer {self.api_key}"},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error("mailer: sending '%s' to %s failed: %s", subject, to, e)
            return False

        if not response.ok:
            logger.error(
                "mailer: SendGrid rejected '%s' (%d): %s",
                subject, response.status_code, response.text[:300],
            )
            return False
        return True
