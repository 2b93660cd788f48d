"""
SMS Notifier - Send SMS alerts and receipts via Twilio

Constructed explicitly from configuration and passed to whoever needs it;
there is no shared module-level instance.
"""

import logging
from typing import Optional

from twilio.base.exceptions import TwilioRestException
from twilio.rest import Client

from channels.messages import sms_outcome_text

logger = logging.getLogger(__name__)


class SMSNotifier:
    """Handles outbound SMS via Twilio."""

    def __init__(
        self,
        account_sid: Optional[str] = None,
        auth_token: Optional[str] = None,
        from_number: Optional[str] = None,
        client: Optional[Client] = None,
    ):
        """
        Initialize SMS notifier.

        Args:
            account_sid: Twilio Account SID
            auth_token: Twilio Auth Token
            from_number: Twilio phone number to send from
            client: Pre-built Twilio client (tests, shared HTTP pools)
        """
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number

        if client is not None:
            self.client = client
        elif all([account_sid, auth_token, from_number]):
            self.client = Client(account_sid, auth_token)
            logger.info(f"SMSNotifier initialized with number: {from_number}")
        else:
            logger.warning("Twilio credentials not fully configured. SMS notifications will be disabled.")
            self.client = None

    @classmethod
    def from_settings(cls, settings) -> "SMSNotifier":
        return cls(
            account_sid=settings.twilio_account_sid,
            auth_token=settings.twilio_auth_token,
            from_number=settings.twilio_phone_number,
        )

    def is_available(self) -> bool:
        """Check if SMS service is available."""
        return self.client is not None

    def send(self, to_number: str, body: str) -> Optional[str]:
        """
        Send one SMS.

        Returns:
            Message SID if sent successfully, None otherwise
        """
        if not self.client:
            logger.warning(f"SMS disabled. Would send to {to_number}: {body[:40]}...")
            return None

        try:
            message = self.client.messages.create(
                body=body,
                from_=self.from_number,
                to=to_number,
            )
            logger.info(f"SMS sent to {to_number}: {message.sid}")
            return message.sid

        except TwilioRestException as e:
            logger.error(f"Twilio error sending SMS to {to_number}: {e}")
            return None

    def send_counterfeit_alert(self, to_number: str, report) -> Optional[str]:
        """Alert an administrator about a new counterfeit report."""
        body = (
            f"Emboditrust ALERT: counterfeit report {report.report_id[:8]}\n"
            f"Product: {report.product_name}\n"
            f"Location: {report.purchase_location}"
        )
        if report.code_id:
            body += f"\nCode: {report.code_id} (flagged)"
        return self.send(to_number, body)

    def send_verification_receipt(self, to_number: str, outcome) -> Optional[str]:
        """Send the verifying phone a copy of the outcome."""
        return self.send(to_number, sms_outcome_text(outcome))
