"""
Configuration

All settings come from environment variables (a local .env file is loaded
first via python-dotenv). Settings are read once and cached; tests call
get_settings.cache_clear() after changing the environment.
"""

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Dict, Optional

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def parse_brand_prefixes(value: Optional[str]) -> Dict[str, str]:
    """
    Parse EXTRA_BRAND_PREFIXES.

    Example:
        >>> parse_brand_prefixes("ABC:Brand A, XYZ:Brand B")
        {'ABC': 'Brand A', 'XYZ': 'Brand B'}
    """
    prefixes = {}
    for entry in (value or "").split(","):
        if ":" not in entry:
            continue
        prefix, name = entry.split(":", 1)
        if prefix.strip():
            prefixes[prefix.strip().upper()] = name.strip()
    return prefixes


@dataclass(frozen=True)
class Settings:
    database_url: str = "sqlite:///./emboditrust.db"
    database_timeout_seconds: float = 5.0
    base_url: str = "http://localhost:8000"
    code_hash_pepper: Optional[str] = None

    admin_api_key: str = ""
    ussd_api_key: str = ""

    twilio_account_sid: Optional[str] = None
    twilio_auth_token: Optional[str] = None
    twilio_phone_number: Optional[str] = None
    admin_alert_number: Optional[str] = None
    sms_validate_signature: bool = False
    ussd_sms_receipts: bool = False

    geolocation_enabled: bool = False
    extra_brand_prefixes: str = ""
    support_line: str = "0800-EMBODI"

    @property
    def brand_prefixes(self) -> Dict[str, str]:
        return parse_brand_prefixes(self.extra_brand_prefixes)


@lru_cache()
def get_settings() -> Settings:
    """Settings built from the current environment (cached)."""
    return Settings(
        database_url=os.getenv("DATABASE_URL", "sqlite:///./emboditrust.db"),
        database_timeout_seconds=float(os.getenv("DATABASE_TIMEOUT_SECONDS", "5")),
        base_url=os.getenv("BASE_URL", "http://localhost:8000").rstrip("/"),
        code_hash_pepper=os.getenv("CODE_HASH_PEPPER") or None,
        admin_api_key=os.getenv("ADMIN_API_KEY", ""),
        ussd_api_key=os.getenv("USSD_API_KEY", ""),
        twilio_account_sid=os.getenv("TWILIO_ACCOUNT_SID"),
        twilio_auth_token=os.getenv("TWILIO_AUTH_TOKEN"),
        twilio_phone_number=os.getenv("TWILIO_PHONE_NUMBER"),
        admin_alert_number=os.getenv("ADMIN_ALERT_NUMBER"),
        sms_validate_signature=_env_bool("SMS_VALIDATE_SIGNATURE"),
        ussd_sms_receipts=_env_bool("USSD_SMS_RECEIPTS"),
        geolocation_enabled=_env_bool("GEOLOCATION_ENABLED"),
        extra_brand_prefixes=os.getenv("EXTRA_BRAND_PREFIXES", ""),
        support_line=os.getenv("SUPPORT_LINE", "0800-EMBODI"),
    )
