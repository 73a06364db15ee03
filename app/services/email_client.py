# app/services/email_client.py
import resend

from app.config import get_settings
from app.core.errors import NotificationError


class EmailClient:
    """
    Thin wrapper around the Resend SDK.

    Keeps the API key and sender in one place and gives tests a single
    seam to replace with a fake.
    """

    def __init__(self, api_key: str, from_address: str):
        resend.api_key = api_key
        self._from_address = from_address

    def send(self, to: str, subject: str, html: str) -> str:
        """Send one message and return the provider's message id."""
        try:
            response = resend.Emails.send(
                {
                    "from": self._from_address,
                    "to": [to],
                    "subject": subject,
                    "html": html,
                }
            )
        except Exception as e:
            raise NotificationError(f"Email to {to} failed: {e}") from e
        return response.get("id", "") if isinstance(response, dict) else str(response)


def get_email_client() -> EmailClient:
    """
    Dependency returning a configured EmailClient.
    Raises RuntimeError if configuration is incomplete.
    """
    settings = get_settings()
    if not settings.RESEND_API_KEY:
        raise RuntimeError("Email not configured, missing: RESEND_API_KEY")
    return EmailClient(
        api_key=settings.RESEND_API_KEY,
        from_address=settings.EMAIL_FROM_ADDRESS,
    )
