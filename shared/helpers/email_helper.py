import logging
import re
from typing import List

from ..utils.email_client import EmailClient
from ..core.config import settings

logger = logging.getLogger(__name__)


class EmailHelper:
    """Sends rendered HTML notifications through EmailClient. Never raises."""

    def __init__(self):
        self.mailer = None
        if settings.SMTP_HOST:
            self.mailer = EmailClient(
                smtp_host=settings.SMTP_HOST,
                smtp_port=settings.SMTP_PORT,
                username=settings.SMTP_USERNAME,
                password=settings.SMTP_PASSWORD,
                use_ssl=settings.SMTP_USE_SSL,
            )

    def send_email(self, recipients: List[str], subject: str, html_body: str) -> bool:
        recipients = [r for r in recipients if r]
        if not recipients:
            return False

        if self.mailer is None:
            logger.info("SMTP not configured, skipping '%s' to %s", subject, ", ".join(recipients))
            return False

        try:
            return self.mailer.send_email(
                sender=settings.EMAIL_SENDER,
                recipients=recipients,
                subject=subject,
                text_body=self._strip_html_tags(html_body),
                html_body=html_body,
            )
        except Exception:
            logger.exception("Email sending failed for '%s'", subject)
            return False

    @staticmethod
    def _strip_html_tags(html: str) -> str:
        """Basic HTML to plain text converter."""
        return re.sub("<.*?>", "", html or "")
