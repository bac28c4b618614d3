"""Transactional email HTTP client.

Sends HTML email through the provider's REST API. Sending is
fire-and-forget from the caller's point of view: ``send`` reports success
as a bool and never raises.
"""

import httpx
import structlog

from bakery_api.infrastructure.config import settings

logger = structlog.get_logger()


class EmailClient:
    """HTTP client for the email provider."""

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        sender: str | None = None,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize email client.

        Args:
            api_key: Provider API key. Sending is skipped when unset.
            base_url: Provider API base URL.
            sender: From address.
            timeout: Request timeout in seconds.
            transport: Optional httpx transport (tests).
        """
        self.api_key = api_key if api_key is not None else settings.email_api_key
        self.base_url = base_url or settings.email_api_base
        self.sender = sender or settings.email_from
        self.timeout = timeout
        self._transport = transport

    async def send(self, to: str, subject: str, html: str) -> bool:
        """Send one email.

        Args:
            to: Recipient address.
            subject: Subject line.
            html: HTML body.

        Returns:
            True if the provider accepted the message.
        """
        if not self.api_key:
            logger.info("Email API key not configured, skipping send", subject=subject)
            return False

        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                headers={"Authorization": f"Bearer {self.api_key}"},
                transport=self._transport,
            ) as client:
                response = await client.post(
                    "/emails",
                    json={
                        "from": self.sender,
                        "to": [to],
                        "subject": subject,
                        "html": html,
                    },
                )
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning("Email send failed", subject=subject, error=str(e))
            return False

        logger.info("Email sent", subject=subject)
        return True


# Global client instance
_email_client: EmailClient | None = None


def get_email_client() -> EmailClient:
    """Get the email client singleton."""
    global _email_client
    if _email_client is None:
        _email_client = EmailClient()
    return _email_client
