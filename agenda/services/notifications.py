"""
Twilio SMS / WhatsApp dispatcher for session reminders.
"""
import logging
from typing import Optional

import httpx

from agenda.core import config
from agenda.scheduling.errors import DispatchFailure

logger = logging.getLogger(__name__)


def build_reminder_message(
    patient_name: str,
    session_time: str,
    custom_message: Optional[str] = None,
    payment_reminder: Optional[str] = None,
) -> str:
    parts = [
        f"Hi {patient_name}!",
        f"Reminder: you have a session scheduled for {session_time}.",
        custom_message,
        payment_reminder,
    ]
    return "\n\n".join(part for part in parts if part)


class TwilioNotifier:
    def __init__(
        self,
        account_sid: str = config.TWILIO_ACCOUNT_SID,
        auth_token: str = config.TWILIO_AUTH_TOKEN,
        from_number: str = config.TWILIO_FROM_NUMBER,
        channel: str = config.REMINDER_CHANNEL,
        base_url: str = config.TWILIO_API_URL,
        timeout: float = config.NOTIFICATION_TIMEOUT_SECONDS,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number
        self.channel = channel
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    def _address(self, phone: str) -> str:
        if self.channel == "whatsapp" and not phone.startswith("whatsapp:"):
            return f"whatsapp:{phone}"
        return phone

    def send(self, to_phone: str, message: str) -> str:
        """Send ``message`` and return the Twilio message SID."""
        if not self.account_sid or not self.auth_token or not self.from_number:
            raise DispatchFailure("Twilio credentials are not configured")

        if not to_phone.startswith("+"):
            raise DispatchFailure(f"Phone number must be in E.164 format: {to_phone}")

        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                response = client.post(
                    f"{self.base_url}/Accounts/{self.account_sid}/Messages.json",
                    auth=(self.account_sid, self.auth_token),
                    data={
                        "From": self._address(self.from_number),
                        "To": self._address(to_phone),
                        "Body": message,
                    },
                )
        except httpx.HTTPError as exc:
            raise DispatchFailure(f"Twilio request failed: {exc}") from exc

        if response.status_code not in (200, 201):
            raise DispatchFailure(f"Twilio responded {response.status_code}: {response.text}")

        # The message is queued once Twilio answers 2xx; never report it as failed.
        try:
            payload = response.json()
        except ValueError:
            logger.warning("Twilio accepted a message but returned a non-JSON body")
            return ""

        message_sid = payload.get("sid", "") if isinstance(payload, dict) else ""
        logger.debug("Twilio accepted message %s via %s", message_sid, self.channel)
        return message_sid


def get_notifier() -> TwilioNotifier:
    return TwilioNotifier()
