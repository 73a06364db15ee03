# app/services/sms_client.py
from twilio.base.exceptions import TwilioException
from twilio.rest import Client as TwilioSDKClient

from app.config import get_settings
from app.core.errors import NotificationError


class SmsClient:
    """
    Thin wrapper around the Twilio messaging API.

    Centralizes account SID, auth token and sender number, and lets tests
    swap in a fake.
    """

    def __init__(self, account_sid: str, auth_token: str, from_number: str):
        self._client = TwilioSDKClient(account_sid, auth_token)
        self._from_number = from_number

    def send_sms(self, to_number: str, body: str) -> str:
        """Send a text message and return the Message SID."""
        try:
            message = self._client.messages.create(
                to=to_number,
                from_=self._from_number,
                body=body,
            )
        except TwilioException as e:
            raise NotificationError(f"SMS to {to_number} failed: {e}") from e
        return message.sid


def get_sms_client() -> SmsClient:
    """
    Dependency returning a configured SmsClient.
    Raises RuntimeError if configuration is incomplete.
    """
    settings = get_settings()

    missing: list[str] = []
    if not settings.TWILIO_ACCOUNT_SID:
        missing.append("TWILIO_ACCOUNT_SID")
    if not settings.TWILIO_AUTH_TOKEN:
        missing.append("TWILIO_AUTH_TOKEN")
    if not settings.TWILIO_PHONE_NUMBER:
        missing.append("TWILIO_PHONE_NUMBER")

    if missing:
        raise RuntimeError(f"Twilio not configured, missing: {', '.join(missing)}")

    return SmsClient(
        account_sid=settings.TWILIO_ACCOUNT_SID,
        auth_token=settings.TWILIO_AUTH_TOKEN,
        from_number=settings.TWILIO_PHONE_NUMBER,
    )
