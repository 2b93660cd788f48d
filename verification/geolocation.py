"""
IP Geolocation for verification attempts

Looks up the approximate location of a public IP address through the
ip-api.com JSON endpoint. Private, loopback and unparseable addresses are
skipped. Lookups are best effort: any failure returns None.
"""

import ipaddress
import logging
from typing import Any, Dict, Optional

import httpx

logger = logging.getLogger(__name__)

IP_API_URL = "http://ip-api.com/json/{ip}"
IP_API_FIELDS = "status,message,country,countryCode,regionName,city,lat,lon,timezone,isp,org"


def is_public_ip(ip_address: Optional[str]) -> bool:
    """True only for globally routable addresses."""
    if not ip_address or ip_address == "unknown":
        return False
    try:
        return ipaddress.ip_address(ip_address.strip()).is_global
    except ValueError:
        return False


class GeoLocator:
    """Resolves IP addresses to coarse locations."""

    def __init__(self, timeout: float = 3.0, client: Optional[httpx.Client] = None):
        self.timeout = timeout
        self.client = client

    def locate(self, ip_address: Optional[str]) -> Optional[Dict[str, Any]]:
        """
        Look up an IP address.

        Returns:
            Dict with country, country_code, region, city, latitude, longitude,
            timezone, isp, organization; None if skipped or the lookup failed
        """
        if not is_public_ip(ip_address):
            return None

        try:
            client = self.client or httpx
            response = client.get(
                IP_API_URL.format(ip=ip_address.strip()),
                params={"fields": IP_API_FIELDS},
                timeout=self.timeout,
            )
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Geolocation lookup failed for {ip_address}: {e}")
            return None

        if not isinstance(data, dict):
            logger.warning(f"Unexpected geolocation payload for {ip_address}: {type(data).__name__}")
            return None

        if data.get("status") != "success":
            logger.warning(f"Geolocation API error for {ip_address}: {data.get('message')}")
            return None

        return {
            "country": data.get("country"),
            "country_code": data.get("countryCode"),
            "region": data.get("regionName"),
            "city": data.get("city"),
            "latitude": data.get("lat"),
            "longitude": data.get("lon"),
            "timezone": data.get("timezone"),
            "isp": data.get("isp"),
            "organization": data.get("org"),
        }
