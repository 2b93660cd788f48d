"""
SQLAlchemy models for Emboditrust product verification
"""

import enum
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CodeStatus(str, enum.Enum):
    ACTIVE = "active"                                # issued, never verified
    VERIFIED = "verified"                            # verified at least once
    SUSPECTED_COUNTERFEIT = "suspected_counterfeit"  # flagged by report or admin
    EXPIRED = "expired"
    REVOKED = "revoked"


# Statuses the verification state machine may move forward
VERIFIABLE_STATUSES = (CodeStatus.ACTIVE.value, CodeStatus.VERIFIED.value)

# Statuses an administrator may set explicitly
OVERRIDE_STATUSES = (
    CodeStatus.SUSPECTED_COUNTERFEIT.value,
    CodeStatus.EXPIRED.value,
    CodeStatus.REVOKED.value,
)


class VerificationResult(str, enum.Enum):
    SCANNED = "scanned"
    VALID = "valid"
    INVALID = "invalid"
    ALREADY_USED = "already_used"
    SUSPECTED_COUNTERFEIT = "suspected_counterfeit"


class Batch(Base):
    """One code generation run for a product"""
    __tablename__ = "batches"

    id = Column(Integer, primary_key=True)
    batch_id = Column(String(64), unique=True, nullable=False, index=True)
    brand_prefix = Column(String(3), nullable=False, index=True)
    product_name = Column(String(200), nullable=False)
    company_name = Column(String(200), nullable=False)
    manufacturer_id = Column(String(64), nullable=False, index=True)
    quantity = Column(Integer, nullable=False)
    created_by = Column(String(100))

    created_at = Column(DateTime(timezone=True), default=utcnow)

    # Relationships
    codes = relationship("ProductCode", back_populates="batch")


class ProductCode(Base):
    """
    Code Record: one per issued product code.

    Mutated only by the verification state machine (count, timestamps,
    active -> verified) and by explicit status overrides. Never deleted.
    """
    __tablename__ = "product_codes"

    id = Column(Integer, primary_key=True)
    code_id = Column(String(32), unique=True, nullable=False, index=True)     # QR code identifier
    code_hash = Column(String(64), unique=True, nullable=False, index=True)   # hash of scratch code
    brand_prefix = Column(String(3), nullable=False, index=True)
    batch_id = Column(String(64), ForeignKey("batches.batch_id"), nullable=False, index=True)

    # Denormalized for the public verification response
    product_name = Column(String(200), nullable=False)
    company_name = Column(String(200), nullable=False)
    manufacturer_id = Column(String(64), nullable=False, index=True)

    status = Column(String(30), nullable=False, default=CodeStatus.ACTIVE.value, index=True)
    verification_count = Column(Integer, nullable=False, default=0)
    first_verified_at = Column(DateTime(timezone=True))
    last_verified_at = Column(DateTime(timezone=True))

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __table_args__ = (
        CheckConstraint("verification_count >= 0", name="ck_product_codes_count_non_negative"),
        CheckConstraint(
            "(verification_count = 0 AND first_verified_at IS NULL) OR "
            "(verification_count >= 1 AND first_verified_at IS NOT NULL)",
            name="ck_product_codes_first_verified",
        ),
        Index("ix_product_codes_batch_status", "batch_id", "status"),
    )

    # Relationships
    batch = relationship("Batch", back_populates="codes")


class VerificationAttempt(Base):
    """Append-only audit log of scans and typed attempts. Never updated."""
    __tablename__ = "verification_attempts"

    id = Column(Integer, primary_key=True)
    timestamp = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
    scanned_code = Column(String(64), index=True)   # QR id or normalised typed input
    code_hash = Column(String(64), index=True)
    code_id = Column(String(32), index=True)
    result = Column(String(30), nullable=False, index=True)
    reason = Column(String(50))
    channel = Column(String(20), nullable=False, default="web", index=True)  # web, qr, ussd, sms, api

    ip_address = Column(String(64), index=True)
    user_agent = Column(String(300))
    phone_number = Column(String(20), index=True)
    location = Column(JSON)  # country, region, city, latitude, longitude, timezone, isp

    __table_args__ = (
        Index("ix_verification_attempts_hash_phone_time", "code_hash", "phone_number", "timestamp"),
        Index("ix_verification_attempts_result_time", "result", "timestamp"),
    )


class CounterfeitReport(Base):
    """Consumer report of a suspected fake product"""
    __tablename__ = "counterfeit_reports"

    id = Column(Integer, primary_key=True)
    report_id = Column(String(36), unique=True, nullable=False, index=True)
    product_name = Column(String(200), nullable=False)
    purchase_location = Column(String(300), nullable=False)
    purchase_date = Column(String(30))
    additional_info = Column(Text)

    reporter_email = Column(String(200))
    reporter_phone = Column(String(20))

    qr_code_id = Column(String(32), index=True)
    code_id = Column(String(32), ForeignKey("product_codes.code_id"), nullable=True, index=True)

    status = Column(String(20), default="open", index=True)  # open, investigating, closed
    ip_address = Column(String(64))

    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)
