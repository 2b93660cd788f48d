"""
SMS API - Webhook endpoint for inbound Twilio messages

Consumers text `SCRATCH <code>` (or just the code) to the verification
number and get the outcome back as a TwiML <Message> reply.
"""

import logging
from datetime import datetime, timezone
from typing import Optional, Tuple

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import Response
from sqlalchemy.orm import sessionmaker
from starlette.concurrency import run_in_threadpool
from twilio.request_validator import RequestValidator
from twilio.twiml.messaging_response import MessagingResponse

from channels import messages
from channels.replay import find_replay, normalize_phone_number
from codes.identifiers import hash_code, mask_code
from codes.scratch_codes import CODE_LENGTH, normalize_code
from service.config import Settings, get_settings
from service.deps import get_session_factory, get_verifier
from verification.audit import AttemptContext
from verification.errors import StorageUnavailable
from verification.verifier import CodeVerifier

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/sms", tags=["SMS"])

VERIFY_KEYWORD = "SCRATCH"
HELP_KEYWORDS = ("HELP", "?")


def parse_sms_command(body: str) -> Tuple[str, Optional[str]]:
    """
    Split an inbound message into a command and its argument.

    Returns:
        ("help", None), ("verify", code) or ("unknown", None)

    Example:
        >>> parse_sms_command("scratch emb-7kq-2xr-9dh")
        ('verify', 'EMB7KQ2XR9DH')
    """
    text = (body or "").strip().upper()
    if not text or text in HELP_KEYWORDS:
        return "help", None

    if text.startswith(VERIFY_KEYWORD):
        code = normalize_code(text[len(VERIFY_KEYWORD):])
        return ("verify", code) if code else ("unknown", None)

    # Bare code, allowing delimiters but nothing else
    code = normalize_code(text)
    if len(code) == CODE_LENGTH and code.isalnum():
        return "verify", code

    return "unknown", None


def _twiml(text: str) -> Response:
    response = MessagingResponse()
    response.message(text)
    return Response(content=str(response), media_type="application/xml")


def _check_signature(request: Request, params: dict, settings: Settings) -> None:
    if not (settings.sms_validate_signature and settings.twilio_auth_token):
        return

    validator = RequestValidator(settings.twilio_auth_token)
    signature = request.headers.get("X-Twilio-Signature", "")
    if not validator.validate(str(request.url), params, signature):
        logger.warning(f"Rejected SMS webhook with invalid Twilio signature from {params.get('From')}")
        raise HTTPException(status_code=403, detail="Invalid Twilio signature")


def _verify_sms(
    code: str,
    phone: str,
    settings: Settings,
    session_factory: sessionmaker,
    verifier: CodeVerifier,
) -> str:
    now = datetime.now(timezone.utc)
    recent = find_replay(session_factory, hash_code(code, settings.code_hash_pepper), phone, now)
    if recent is not None:
        logger.info(f"SMS replay for {mask_code(code)} from {phone}: {recent.result}")
        return messages.sms_replay(recent.result, recent.timestamp, settings.support_line)

    outcome = verifier.verify_scratch_code(code, AttemptContext(channel="sms", phone_number=phone))
    return messages.sms_outcome_text(outcome, settings.support_line)


@router.post("/inbound")
async def handle_inbound_sms(
    request: Request,
    settings: Settings = Depends(get_settings),
    session_factory: sessionmaker = Depends(get_session_factory),
    verifier: CodeVerifier = Depends(get_verifier),
):
    """
    Handle an inbound SMS from Twilio.

    Twilio posts From, Body and MessageSid (plus routing fields) as form data.
    """
    form_data = await request.form()
    params = dict(form_data)
    _check_signature(request, params, settings)

    phone = normalize_phone_number(params.get("From", ""))
    message_sid = params.get("MessageSid")
    command, code = parse_sms_command(params.get("Body", ""))
    logger.info(f"Inbound SMS {message_sid} from {phone}: command={command}")

    if command == "help":
        return _twiml(messages.sms_help(settings.support_line))
    if command == "unknown":
        return _twiml(messages.sms_usage())
    if len(code) != CODE_LENGTH:
        return _twiml(messages.sms_bad_length(code))

    try:
        reply = await run_in_threadpool(_verify_sms, code, phone, settings, session_factory, verifier)
    except StorageUnavailable:
        logger.error(f"SMS verification unavailable for {message_sid}", exc_info=True)
        reply = messages.sms_system_error()

    return _twiml(reply)
