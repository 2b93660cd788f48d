"""
USSD API - Webhook endpoint for the USSD gateway

The gateway posts the whole session input on every step: `text` holds all
entries so far joined by `*`, the newest entry last. Replies are plain text
beginning with CON (keep the session open) or END (close it).
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Form
from fastapi.responses import PlainTextResponse
from sqlalchemy.orm import sessionmaker

from channels import messages
from channels.sms_notifier import SMSNotifier
from channels.replay import find_replay, normalize_phone_number
from codes.identifiers import hash_code, mask_code
from codes.scratch_codes import ALPHABET, CODE_LENGTH, normalize_code
from service.auth import ussd_key_is_valid
from service.config import Settings, get_settings
from service.deps import get_notifier, get_session_factory, get_verifier
from verification.audit import AttemptContext
from verification.errors import StorageUnavailable
from verification.verifier import CodeVerifier

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["USSD"])

HELP_OPTION = "0"


def latest_input(text: str) -> str:
    """
    The user's newest entry in a `*`-joined USSD input string.

    Example:
        >>> latest_input("1*EMB-7KQ-2XR-9DH")
        'EMB-7KQ-2XR-9DH'
    """
    return (text or "").split("*")[-1].strip()


def _reply(text: str) -> PlainTextResponse:
    return PlainTextResponse(content=text)


@router.post("/ussd", response_class=PlainTextResponse)
def handle_ussd(
    background_tasks: BackgroundTasks,
    session_id: str = Form(...),
    phone_number: str = Form(...),
    service_code: str = Form(""),
    text: str = Form(""),
    network_code: Optional[str] = Form(None),
    key_valid: bool = Depends(ussd_key_is_valid),
    settings: Settings = Depends(get_settings),
    session_factory: sessionmaker = Depends(get_session_factory),
    verifier: CodeVerifier = Depends(get_verifier),
    notifier: SMSNotifier = Depends(get_notifier),
):
    """
    Handle one USSD session step.

    Args:
        session_id: Gateway session identifier
        phone_number: Subscriber MSISDN
        service_code: Dialled short code (e.g. *347*123#)
        text: All inputs so far, joined by `*`
        network_code: Mobile network code, if the gateway sends one
    """
    if not key_valid:
        logger.warning(f"USSD request with invalid API key (session {session_id})")
        return _reply("END Invalid access")

    phone = normalize_phone_number(phone_number)
    logger.info(f"USSD session {session_id} from {phone} on {service_code} (network {network_code})")

    if not text:
        return _reply(messages.ussd_welcome())

    user_input = latest_input(text)
    if user_input == HELP_OPTION:
        return _reply(messages.ussd_help(settings.support_line))

    code = normalize_code(user_input)
    if len(code) != CODE_LENGTH:
        return _reply(messages.ussd_bad_length(len(code)))
    if any(symbol not in ALPHABET for symbol in code):
        return _reply(messages.ussd_bad_characters())

    now = datetime.now(timezone.utc)
    try:
        recent = find_replay(session_factory, hash_code(code, settings.code_hash_pepper), phone, now)
        if recent is not None:
            logger.info(f"USSD replay for {mask_code(code)} from {phone}: {recent.result}")
            return _reply(messages.ussd_replay(recent.result, recent.timestamp, settings.support_line))

        outcome = verifier.verify_scratch_code(code, AttemptContext(channel="ussd", phone_number=phone))
    except StorageUnavailable:
        logger.error(f"USSD verification unavailable for session {session_id}", exc_info=True)
        return _reply(messages.ussd_system_error(settings.support_line))

    if settings.ussd_sms_receipts and phone:
        # USSD screens vanish once the session ends; the SMS copy stays on the phone
        background_tasks.add_task(notifier.send_verification_receipt, f"+{phone}", outcome)

    return _reply(messages.ussd_outcome(outcome, settings.support_line))
