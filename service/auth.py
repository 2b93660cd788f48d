"""
API Key Authentication Module

Admin endpoints require the X-API-Key header to match ADMIN_API_KEY.
The USSD gateway authenticates with its own key in X-USSD-API-Key.
"""

from fastapi import Depends, HTTPException, Security
from fastapi.security.api_key import APIKeyHeader

from service.config import Settings, get_settings

API_KEY_NAME = "X-API-Key"
USSD_API_KEY_NAME = "X-USSD-API-Key"

_api_key_header = APIKeyHeader(name=API_KEY_NAME, auto_error=False)
_ussd_api_key_header = APIKeyHeader(name=USSD_API_KEY_NAME, auto_error=False)


def verify_api_key(
    api_key: str = Security(_api_key_header),
    settings: Settings = Depends(get_settings),
):
    """
    Verify that the provided API key matches the expected admin key.

    Returns:
        True if valid

    Raises:
        HTTPException: If API key is missing, invalid, or not configured
    """
    expected = settings.admin_api_key
    if not expected:
        # API key not configured, reject requests
        raise HTTPException(status_code=500, detail="API key not configured")
    if api_key != expected:
        raise HTTPException(status_code=401, detail="Invalid API key")
    return True


def ussd_key_is_valid(
    api_key: str = Security(_ussd_api_key_header),
    settings: Settings = Depends(get_settings),
) -> bool:
    """USSD gateways get a protocol reply rather than an HTTP error, so this only reports."""
    return bool(settings.ussd_api_key) and api_key == settings.ussd_api_key
