"""
Public verification API endpoints.

Anyone holding a product can verify it: by typing the scratch code, by
scanning the QR label, or both. No authentication required; scratch codes
are single-use secrets and every attempt is logged.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from channels.sms_notifier import SMSNotifier
from database.connection import get_db
from database.crud import get_code_by_code_id
from service.config import Settings, get_settings
from service.deps import get_audit_log, get_notifier, get_session_factory, get_verifier
from verification.audit import AttemptContext, AuditLog
from verification.errors import StorageUnavailable
from verification.reports import file_counterfeit_report
from verification.verifier import CodeVerifier, product_info

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["verification"])


class ScratchCodeRequest(BaseModel):
    scratch_code: str = Field(..., min_length=1, max_length=64)


class QRVerifyRequest(BaseModel):
    scratch_code: Optional[str] = Field(None, max_length=64)


class FakeProductReportRequest(BaseModel):
    product_name: str = Field(..., min_length=1, max_length=200)
    purchase_location: str = Field(..., min_length=1, max_length=300)
    purchase_date: Optional[str] = Field(None, max_length=30)
    additional_info: Optional[str] = Field(None, max_length=2000)
    reporter_email: Optional[str] = Field(None, max_length=200)
    reporter_phone: Optional[str] = Field(None, max_length=20)
    qr_code_id: Optional[str] = Field(None, max_length=32)
    scratch_code: Optional[str] = Field(None, max_length=64)


def client_ip(request: Request) -> Optional[str]:
    """Caller IP, preferring the first X-Forwarded-For hop set by the proxy."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    return request.client.host if request.client else None


def attempt_context(request: Request, channel: str) -> AttemptContext:
    return AttemptContext(
        channel=channel,
        ip_address=client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )


@router.get("/verify/health")
def verification_health():
    """Health check for verification service."""
    return {"status": "healthy", "service": "verification-api"}


@router.post("/verify")
def verify_scratch_code(
    payload: ScratchCodeRequest,
    request: Request,
    verifier: CodeVerifier = Depends(get_verifier),
):
    """
    Verify a typed scratch code.

    Example:
        POST /api/verify {"scratch_code": "EMB-7KQ-2XR-9DH"}
    """
    outcome = verifier.verify_scratch_code(payload.scratch_code, attempt_context(request, "web"))
    return outcome.to_dict()


@router.get("/qr/{qr_code_id}/info")
def qr_code_info(
    qr_code_id: str,
    session_factory: sessionmaker = Depends(get_session_factory),
):
    """
    Product details behind a QR label, shown before the scratch code is entered.

    Read-only: does not count as a verification.
    """
    try:
        with get_db(session_factory) as db:
            code = get_code_by_code_id(db, qr_code_id)
            info = None
            if code is not None:
                info = product_info(code)
                info["status"] = code.status
                info["previously_verified"] = code.verification_count > 0
    except SQLAlchemyError as e:
        raise StorageUnavailable("QR lookup failed") from e

    if info is None:
        raise HTTPException(status_code=404, detail=f"No product found for QR code {qr_code_id}")
    return info


@router.post("/verify/qr/{qr_code_id}")
def verify_qr_code(
    qr_code_id: str,
    request: Request,
    payload: Optional[QRVerifyRequest] = None,
    verifier: CodeVerifier = Depends(get_verifier),
):
    """
    Verify by QR label, optionally confirming the scratch code printed with it.
    """
    scratch_code = payload.scratch_code if payload else None
    outcome = verifier.verify_qr_code(qr_code_id, scratch_code, attempt_context(request, "qr"))
    return outcome.to_dict()


@router.post("/reports/fake-product", status_code=201)
def report_fake_product(
    payload: FakeProductReportRequest,
    request: Request,
    settings: Settings = Depends(get_settings),
    session_factory: sessionmaker = Depends(get_session_factory),
    audit_log: AuditLog = Depends(get_audit_log),
    notifier: SMSNotifier = Depends(get_notifier),
):
    """File a consumer report of a suspected counterfeit."""
    try:
        report = file_counterfeit_report(
            session_factory,
            product_name=payload.product_name,
            purchase_location=payload.purchase_location,
            context=attempt_context(request, "web"),
            purchase_date=payload.purchase_date,
            additional_info=payload.additional_info,
            reporter_email=payload.reporter_email,
            reporter_phone=payload.reporter_phone,
            qr_code_id=payload.qr_code_id,
            scratch_code=payload.scratch_code,
            pepper=settings.code_hash_pepper,
            audit_log=audit_log,
            notifier=notifier,
            alert_number=settings.admin_alert_number,
        )
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except SQLAlchemyError as e:
        raise StorageUnavailable("Report could not be stored") from e

    return {
        "report_id": report.report_id,
        "status": report.status,
        "code_flagged": report.code_id is not None,
        "message": "Thank you. Your report has been received and will be investigated.",
    }
