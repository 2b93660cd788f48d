"""
Verification Attempt Audit Log

Every attempt that reaches a decision (or is rejected structurally) is
appended to verification_attempts for dashboards and reporting. The log is
never consulted to decide an outcome, and a failed append never changes
or fails the verification result returned to the caller.

Attempts from public IPs are geolocated before they are stored. When the
log is given a `defer` callable (FastAPI's BackgroundTasks.add_task in the
service) those appends run after the response has been sent, so the
lookup never delays a verification.
"""

import ipaddress
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from database.connection import get_db
from database.crud import create_attempt
from verification.errors import AuditLogWriteFailed
from verification.geolocation import GeoLocator, is_public_ip

logger = logging.getLogger(__name__)

CHANNELS = ("web", "qr", "ussd", "sms", "api")

# Column widths in verification_attempts / counterfeit_reports
MAX_PHONE_LENGTH = 20
MAX_USER_AGENT_LENGTH = 300
MAX_SCANNED_CODE_LENGTH = 64


def clean_ip_address(value: Optional[str]) -> Optional[str]:
    """
    Canonical form of an IP address, or None if it does not parse.

    Example:
        >>> clean_ip_address(" 2001:DB8::1 ")
        '2001:db8::1'
        >>> clean_ip_address("not-an-ip") is None
        True
    """
    if not value:
        return None
    try:
        return str(ipaddress.ip_address(value.strip()))
    except ValueError:
        return None


def clean_phone_number(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    return value.strip()[:MAX_PHONE_LENGTH] or None


@dataclass(frozen=True)
class AttemptContext:
    """
    Transport details carried with one verification request.

    ip_address and phone_number come from the caller; they are normalised
    here so nothing oversized or malformed reaches storage.
    """

    channel: str = "api"
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    phone_number: Optional[str] = None

    def __post_init__(self):
        if self.channel not in CHANNELS:
            raise ValueError(f"Unknown channel {self.channel!r}; expected one of {CHANNELS}")
        object.__setattr__(self, "ip_address", clean_ip_address(self.ip_address))
        object.__setattr__(self, "phone_number", clean_phone_number(self.phone_number))


class AuditLog:
    """Appends Verification Attempt rows in their own transaction."""

    def __init__(
        self,
        session_factory: sessionmaker,
        geolocator: Optional[GeoLocator] = None,
        defer: Optional[Callable] = None,
    ):
        self.session_factory = session_factory
        self.geolocator = geolocator
        self.defer = defer

    def append(
        self,
        *,
        result: str,
        context: AttemptContext,
        timestamp: datetime,
        scanned_code: Optional[str] = None,
        code_hash: Optional[str] = None,
        code_id: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> int:
        """
        Append one attempt.

        Returns:
            Primary key of the new row

        Raises:
            AuditLogWriteFailed: If the insert could not be committed
        """
        attempt_data = {
            "timestamp": timestamp,
            "scanned_code": (scanned_code or "")[:MAX_SCANNED_CODE_LENGTH] or None,
            "code_hash": code_hash,
            "code_id": code_id,
            "result": result,
            "reason": reason,
            "channel": context.channel,
            "ip_address": context.ip_address,
            "user_agent": (context.user_agent or "")[:MAX_USER_AGENT_LENGTH] or None,
            "phone_number": context.phone_number,
            "location": self._locate(context.ip_address),
        }

        try:
            with get_db(self.session_factory) as db:
                attempt = create_attempt(db, attempt_data)
                attempt_id = attempt.id
        except SQLAlchemyError as e:
            raise AuditLogWriteFailed(f"Could not append verification attempt: {e}") from e

        return attempt_id

    def try_append(self, **kwargs) -> Optional[int]:
        """
        Best-effort append: failures are logged, never raised.

        Appends that need a geolocation lookup are handed to `defer` when one
        is set; they return None because the row does not exist yet.
        """
        context = kwargs.get("context")
        if self.defer is not None and self._needs_lookup(context):
            self.defer(self._append_logged, **kwargs)
            return None
        return self._append_logged(**kwargs)

    def _append_logged(self, **kwargs) -> Optional[int]:
        try:
            return self.append(**kwargs)
        except Exception as e:
            # The verification this attempt describes is already decided
            logger.error(f"Audit log append failed (result={kwargs.get('result')}): {e}", exc_info=True)
            return None

    def _needs_lookup(self, context: Optional[AttemptContext]) -> bool:
        return self.geolocator is not None and context is not None and is_public_ip(context.ip_address)

    def _locate(self, ip_address: Optional[str]):
        if self.geolocator is None:
            return None
        try:
            return self.geolocator.locate(ip_address)
        except Exception as e:
            logger.warning(f"Geolocation skipped for {ip_address}: {e}")
            return None
