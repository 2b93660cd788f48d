"""
FastAPI dependency providers.

Routers never build sessions, verifiers or Twilio clients themselves; they
ask for them here so tests can swap any piece through
app.dependency_overrides.
"""

import logging
from functools import lru_cache

from fastapi import BackgroundTasks, Depends
from sqlalchemy.orm import sessionmaker

from channels.sms_notifier import SMSNotifier
from codes.scratch_codes import BRAND_PREFIXES, register_brand_prefix
from database import connection
from service.config import Settings, get_settings
from verification.audit import AuditLog
from verification.geolocation import GeoLocator
from verification.verifier import CodeVerifier

logger = logging.getLogger(__name__)


def get_session_factory() -> sessionmaker:
    return connection.SessionLocal


def get_audit_log(
    background_tasks: BackgroundTasks,
    settings: Settings = Depends(get_settings),
    session_factory: sessionmaker = Depends(get_session_factory),
) -> AuditLog:
    """Audit log whose geolocated appends run after the response is sent."""
    geolocator = GeoLocator() if settings.geolocation_enabled else None
    return AuditLog(session_factory, geolocator=geolocator, defer=background_tasks.add_task)


def get_verifier(
    settings: Settings = Depends(get_settings),
    session_factory: sessionmaker = Depends(get_session_factory),
    audit_log: AuditLog = Depends(get_audit_log),
) -> CodeVerifier:
    return CodeVerifier(session_factory, audit_log=audit_log, pepper=settings.code_hash_pepper)


@lru_cache()
def _notifier_for(settings: Settings) -> SMSNotifier:
    return SMSNotifier.from_settings(settings)


def get_notifier(settings: Settings = Depends(get_settings)) -> SMSNotifier:
    """One Twilio client per distinct configuration."""
    return _notifier_for(settings)


def register_configured_brands(settings: Settings) -> None:
    """Add EXTRA_BRAND_PREFIXES to the brand registry."""
    for prefix, name in settings.brand_prefixes.items():
        if BRAND_PREFIXES.get(prefix) == name:
            continue
        register_brand_prefix(prefix, name)
        logger.info(f"Registered brand prefix {prefix} ({name})")
