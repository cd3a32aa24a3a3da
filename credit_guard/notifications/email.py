"""Email alert delivery."""
import asyncio
import logging
import smtplib
from email.mime.text import MIMEText

from ..config import EmailConfig
from ..models import Alert
from .formatting import alert_subject, format_alert

logger = logging.getLogger(__name__)


class EmailNotifier:
    """Send alerts over SMTP with STARTTLS."""

    def __init__(self, config: EmailConfig) -> None:
        self._config = config

    def _send(self, alert: Alert) -> None:
        cfg = self._config
        msg = MIMEText(format_alert(alert), "plain")
        msg["From"] = cfg.sender_email
        msg["To"] = cfg.alert_email
        msg["Subject"] = alert_subject(alert)

        server = smtplib.SMTP(cfg.smtp_server, cfg.smtp_port)
        try:
            server.starttls()
            server.login(cfg.sender_email, cfg.sender_password)
            server.send_message(msg)
        finally:
            server.quit()

    async def send_alert(self, alert: Alert) -> bool:
        if not self._config.alert_email:
            logger.debug("No alert email configured, skipping email")
            return False
        if not self._config.sender_email or not self._config.sender_password:
            logger.warning("Email credentials not configured")
            return False

        # smtplib blocks; keep the event loop free
        await asyncio.to_thread(self._send, alert)
        logger.info("Alert email sent to %s", self._config.alert_email)
        return True
