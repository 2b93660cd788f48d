"""
Replay window for phone channels.

Subscribers on USSD and SMS often resend the same code when a reply is slow.
A repeat of the same code from the same phone within REPLAY_WINDOW gets the
previously logged result back instead of a fresh verification, so a retry
cannot turn a first verification into already_used.
"""

import logging
import re
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from database.connection import get_db
from database.crud import find_recent_attempt
from database.models import VerificationAttempt
from verification.audit import clean_phone_number
from verification.errors import StorageUnavailable

logger = logging.getLogger(__name__)

REPLAY_WINDOW = timedelta(minutes=5)


def normalize_phone_number(phone_number: str) -> str:
    """
    Normalise a Nigerian MSISDN to international form without the plus.

    Example:
        >>> normalize_phone_number("0803 123 4567")
        '2348031234567'
        >>> normalize_phone_number("+2348031234567")
        '2348031234567'
    """
    digits = re.sub(r"\D", "", phone_number or "")
    if digits.startswith("0") and len(digits) == 11:
        return "234" + digits[1:]
    return digits


def find_replay(
    session_factory: sessionmaker,
    code_hash: str,
    phone_number: str,
    now: datetime,
) -> Optional[VerificationAttempt]:
    """
    Return the attempt to replay for this phone and code, if one is inside the window.

    Raises:
        StorageUnavailable: The attempt log could not be read
    """
    phone_number = clean_phone_number(phone_number)
    if not phone_number:
        return None
    try:
        with get_db(session_factory) as db:
            return find_recent_attempt(db, code_hash, phone_number, now - REPLAY_WINDOW)
    except SQLAlchemyError as e:
        logger.error(f"Replay lookup failed: {e}")
        raise StorageUnavailable("Replay lookup failed") from e
