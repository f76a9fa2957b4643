"""Location checks run before any Sweeps Cash wager.

``LocationGate`` fails closed: any timeout, transport error, non-2xx answer or
unreadable body denies with a reason code. ``DemoLocationGate`` is the
fail-open variant for Gold Coin demo flows and never guards real currency.
"""
import asyncio
import logging

import httpx
from pydantic import BaseModel, ValidationError

from casino_core.exceptions import LocationBlocked
from casino_core.models.dc_models import LocationModel

ALLOWED_COUNTRIES = ("US", "CA")
RESTRICTED_REGIONS = ("WA", "MI", "MT", "CA", "NY", "CT", "NV", "LA", "NJ")
DEFAULT_TIMEOUT = 5.0


class GeoLookupModel(BaseModel):
    country_code: str
    region_code: str | None = None


def judge_jurisdiction(country: str, region: str | None) -> LocationModel:
    if country not in ALLOWED_COUNTRIES:
        return LocationModel(allowed=False, reason="INVALID_JURISDICTION")
    if country == "US" and region in RESTRICTED_REGIONS:
        return LocationModel(allowed=False, reason=f"RESTRICTED_REGION_{region}")
    return LocationModel(allowed=True)


class LocationGate:
    """Geolocation check against an ipapi-style lookup service."""

    def __init__(self, client: httpx.AsyncClient, service_url: str, timeout: float = DEFAULT_TIMEOUT):
        self.client = client
        self.service_url = service_url.rstrip("/")
        self.timeout = timeout

    def lookup_url(self, client_ip: str | None) -> str:
        if client_ip:
            return f"{self.service_url}/{client_ip}/json/"
        return f"{self.service_url}/json/"

    async def verify_location(self, client_ip: str | None = None) -> LocationModel:
        """Resolve the caller's location and judge it.

        Args:
            client_ip (str | None): Address to resolve; None resolves the
                address the lookup service sees

        Returns:
            LocationModel: allowed plus the reason code of a denial
        """
        try:
            # httpx timeouts are per phase; wait_for bounds the whole lookup
            response = await asyncio.wait_for(
                self.client.get(self.lookup_url(client_ip), timeout=self.timeout), self.timeout
            )
        except (httpx.TimeoutException, asyncio.TimeoutError):
            logging.warning("Geolocation lookup timed out")
            return LocationModel(allowed=False, reason="GEO_TIMEOUT")
        except httpx.HTTPError as e:
            logging.error(f"Geolocation lookup failed: {e}")
            return LocationModel(allowed=False, reason="GEO_CHECK_FAILED")

        if not response.is_success:
            logging.warning(f"Geolocation service answered {response.status_code}")
            return LocationModel(allowed=False, reason="GEO_SERVICE_UNAVAILABLE")

        try:
            lookup = GeoLookupModel.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            logging.warning(f"Geolocation response is malformed: {e}")
            return LocationModel(allowed=False, reason="GEO_MALFORMED_RESPONSE")

        return judge_jurisdiction(lookup.country_code, lookup.region_code)

    async def require_allowed(self, client_ip: str | None = None) -> LocationModel:
        result = await self.verify_location(client_ip)
        if not result.allowed:
            raise LocationBlocked(result.reason)
        return result


class DemoLocationGate:
    """Always allows; only for flows that move no redeemable value."""

    async def verify_location(self, client_ip: str | None = None) -> LocationModel:
        return LocationModel(allowed=True, reason="DEMO_MODE")

    async def require_allowed(self, client_ip: str | None = None) -> LocationModel:
        return await self.verify_location(client_ip)
