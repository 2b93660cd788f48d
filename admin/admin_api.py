"""
Admin API - Batch generation, code status overrides and attempt analytics

All endpoints require the X-API-Key header (ADMIN_API_KEY).

Endpoints:
- POST  /api/admin/batches                 - Generate a batch (CSV or JSON)
- GET   /api/admin/batches/{batch_id}      - Batch summary with status counts
- PATCH /api/admin/codes/{code_id}/status  - Flag, revoke or expire a code
- GET   /api/admin/attempts                - Paginated attempt log + stats
- GET   /api/admin/codes/status-summary    - Code counts per status
- GET   /api/admin/brands                  - Registered brand prefixes
"""

import logging
from datetime import datetime, timezone
from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel, Field
from sqlalchemy.orm import sessionmaker

from admin.generation import MAX_BATCH_QUANTITY, BatchRequest, codes_to_csv, generate_and_store_batch
from codes.scratch_codes import BRAND_PREFIXES
from database.connection import get_db
from database.crud import (
    attempt_stats,
    code_status_counts,
    get_batch,
    list_attempts,
    set_code_status,
)
from database.models import OVERRIDE_STATUSES
from service.auth import verify_api_key
from service.config import Settings, get_settings
from service.deps import get_session_factory

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["admin"], dependencies=[Depends(verify_api_key)])


class BatchCreateRequest(BaseModel):
    brand_prefix: str = Field("EMB", min_length=3, max_length=3)
    product_name: str = Field(..., min_length=1, max_length=200)
    company_name: str = Field(..., min_length=1, max_length=200)
    manufacturer_id: str = Field(..., min_length=1, max_length=64)
    quantity: int = Field(..., ge=1, le=MAX_BATCH_QUANTITY)
    batch_number: Optional[str] = Field(None, max_length=48)
    created_by: Optional[str] = Field(None, max_length=100)
    include_qr_images: bool = False
    format: Literal["csv", "json"] = "csv"


class StatusUpdateRequest(BaseModel):
    status: str
    reason: Optional[str] = Field(None, max_length=300)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@router.post("/batches")
def create_batch(
    payload: BatchCreateRequest,
    settings: Settings = Depends(get_settings),
    session_factory: sessionmaker = Depends(get_session_factory),
):
    """
    Generate and store a batch of codes.

    The scratch codes are returned in this response only. CSV responses carry
    the batch id in the X-Batch-Id header.
    """
    request = BatchRequest(
        brand_prefix=payload.brand_prefix.upper(),
        product_name=payload.product_name,
        company_name=payload.company_name,
        manufacturer_id=payload.manufacturer_id,
        quantity=payload.quantity,
        batch_number=payload.batch_number,
        created_by=payload.created_by,
        include_qr_images=payload.include_qr_images,
    )

    with get_db(session_factory) as db:
        generated = generate_and_store_batch(
            db,
            request,
            base_url=settings.base_url,
            pepper=settings.code_hash_pepper,
        )

    if payload.format == "csv":
        return PlainTextResponse(
            content=codes_to_csv(generated.codes),
            media_type="text/csv",
            headers={
                "Content-Disposition": f'attachment; filename="{generated.batch_id}.csv"',
                "X-Batch-Id": generated.batch_id,
            },
        )

    return {
        "batch_id": generated.batch_id,
        "brand_prefix": generated.brand_prefix,
        "product_name": generated.product_name,
        "quantity": generated.quantity,
        "created_at": _iso(generated.created_at),
        "codes": [
            {
                "qr_code_id": code.qr_code_id,
                "scratch_code": code.scratch_code,
                "verification_url": code.verification_url,
                "qr_image": code.qr_image,
            }
            for code in generated.codes
        ],
    }


@router.get("/batches/{batch_id}")
def get_batch_summary(
    batch_id: str,
    session_factory: sessionmaker = Depends(get_session_factory),
):
    with get_db(session_factory) as db:
        batch = get_batch(db, batch_id)
        if batch is None:
            raise HTTPException(status_code=404, detail=f"Batch not found: {batch_id}")
        return {
            "batch_id": batch.batch_id,
            "brand_prefix": batch.brand_prefix,
            "brand": BRAND_PREFIXES.get(batch.brand_prefix),
            "product_name": batch.product_name,
            "company_name": batch.company_name,
            "manufacturer_id": batch.manufacturer_id,
            "quantity": batch.quantity,
            "created_by": batch.created_by,
            "created_at": _iso(batch.created_at),
            "status_counts": code_status_counts(db, batch_id),
        }


@router.patch("/codes/{code_id}/status")
def update_code_status(
    code_id: str,
    payload: StatusUpdateRequest,
    session_factory: sessionmaker = Depends(get_session_factory),
):
    """
    Override a code's status.

    Only suspected_counterfeit, revoked and expired can be set; the
    verification state machine alone moves codes to verified, and nothing
    moves a code back to active.
    """
    if payload.status not in OVERRIDE_STATUSES:
        raise HTTPException(
            status_code=400,
            detail=f"Status must be one of {', '.join(OVERRIDE_STATUSES)}",
        )

    with get_db(session_factory) as db:
        code = set_code_status(db, code_id, payload.status, datetime.now(timezone.utc))
        if code is None:
            raise HTTPException(status_code=404, detail=f"Code not found: {code_id}")
        result = {
            "code_id": code.code_id,
            "status": code.status,
            "verification_count": code.verification_count,
            "updated_at": _iso(code.updated_at),
        }

    logger.warning(f"Code {code_id} status set to {payload.status} by admin (reason: {payload.reason})")
    return result


@router.get("/attempts")
def get_attempts(
    page: int = Query(1, ge=1),
    limit: int = Query(100, ge=1, le=1000),
    code_id: Optional[str] = None,
    scanned_code: Optional[str] = None,
    result: Optional[str] = None,
    channel: Optional[str] = None,
    ip_address: Optional[str] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    session_factory: sessionmaker = Depends(get_session_factory),
):
    filters = {
        "code_id": code_id,
        "scanned_code": scanned_code,
        "result": result,
        "channel": channel,
        "ip_address": ip_address,
        "start_date": start_date,
        "end_date": end_date,
    }

    with get_db(session_factory) as db:
        attempts = list_attempts(db, filters, page=page, limit=limit)
        stats = attempt_stats(db, filters)
        rows = [
            {
                "id": attempt.id,
                "timestamp": _iso(attempt.timestamp),
                "scanned_code": attempt.scanned_code,
                "code_id": attempt.code_id,
                "result": attempt.result,
                "reason": attempt.reason,
                "channel": attempt.channel,
                "ip_address": attempt.ip_address,
                "phone_number": attempt.phone_number,
                "location": attempt.location,
            }
            for attempt in attempts
        ]

    return {"page": page, "limit": limit, "attempts": rows, "stats": stats}


@router.get("/codes/status-summary")
def get_status_summary(
    batch_id: Optional[str] = None,
    session_factory: sessionmaker = Depends(get_session_factory),
):
    with get_db(session_factory) as db:
        counts = code_status_counts(db, batch_id)
    return {"batch_id": batch_id, "total": sum(counts.values()), "status_counts": counts}


@router.get("/brands")
def list_brands():
    return {"brands": [{"prefix": prefix, "name": name} for prefix, name in sorted(BRAND_PREFIXES.items())]}
