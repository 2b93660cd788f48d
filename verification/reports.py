"""
Counterfeit Reports

Consumers report suspected fake products from the verification page. A
report that references an issued code flags that code as
suspected_counterfeit, so every later verification short-circuits to a
counterfeit warning.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.orm import sessionmaker

from database.connection import get_db
from database.crud import create_report, get_code_by_code_id, get_code_by_hash, set_code_status
from database.models import CodeStatus, CounterfeitReport, VerificationResult
from codes.identifiers import hash_code, mask_code
from channels.sms_notifier import SMSNotifier
from verification.audit import AttemptContext, AuditLog, clean_phone_number

logger = logging.getLogger(__name__)


def file_counterfeit_report(
    session_factory: sessionmaker,
    *,
    product_name: str,
    purchase_location: str,
    context: AttemptContext,
    purchase_date: Optional[str] = None,
    additional_info: Optional[str] = None,
    reporter_email: Optional[str] = None,
    reporter_phone: Optional[str] = None,
    qr_code_id: Optional[str] = None,
    scratch_code: Optional[str] = None,
    pepper: Optional[str] = None,
    audit_log: Optional[AuditLog] = None,
    notifier: Optional[SMSNotifier] = None,
    alert_number: Optional[str] = None,
) -> CounterfeitReport:
    """
    Persist a counterfeit report and flag the referenced code.

    Args:
        session_factory: Session factory for the primary database
        product_name: Product named by the reporter (required)
        purchase_location: Where it was bought (required)
        context: Transport details of the reporting request
        qr_code_id: QR code id from the scanned label, if any
        scratch_code: Typed scratch code, if any (used when no QR id)
        notifier: SMS notifier used to alert the admin phone

    Returns:
        The stored CounterfeitReport

    Raises:
        ValueError: If product name or purchase location is blank
    """
    if not (product_name or "").strip() or not (purchase_location or "").strip():
        raise ValueError("Product name and purchase location are required")

    now = datetime.now(timezone.utc)
    code_hash = hash_code(scratch_code, pepper) if scratch_code else None

    with get_db(session_factory) as db:
        code = None
        if qr_code_id:
            code = get_code_by_code_id(db, qr_code_id)
        elif code_hash:
            code = get_code_by_hash(db, code_hash)

        if code is not None and code.status != CodeStatus.SUSPECTED_COUNTERFEIT.value:
            set_code_status(db, code.code_id, CodeStatus.SUSPECTED_COUNTERFEIT.value, now)
            logger.warning(f"Code {code.code_id} flagged as suspected counterfeit by consumer report")

        report = create_report(db, {
            "report_id": str(uuid.uuid4()),
            "product_name": product_name.strip(),
            "purchase_location": purchase_location.strip(),
            "purchase_date": purchase_date,
            "additional_info": additional_info,
            "reporter_email": reporter_email,
            "reporter_phone": clean_phone_number(reporter_phone),
            "qr_code_id": qr_code_id,
            "code_id": code.code_id if code is not None else None,
            "status": "open",
            "ip_address": context.ip_address,
            "created_at": now,
        })

    if audit_log is not None and (qr_code_id or scratch_code):
        audit_log.try_append(
            result=VerificationResult.SUSPECTED_COUNTERFEIT.value,
            context=context,
            timestamp=now,
            scanned_code=qr_code_id or mask_code(scratch_code),
            code_hash=code_hash,
            code_id=report.code_id,
            reason="consumer_report",
        )

    if notifier is not None and alert_number:
        notifier.send_counterfeit_alert(alert_number, report)

    logger.info(f"Counterfeit report {report.report_id} stored (code={report.code_id})")
    return report
