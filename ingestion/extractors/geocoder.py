"""
County lookup through the US Census reverse geocoder
"""

import httpx
from typing import Optional

from core.config import settings
from ingestion.base import GeoResolver
import logging

logger = logging.getLogger(__name__)


class CensusGeoResolver(GeoResolver):
    """
    Resolve (lat, lon) to a county base name ("San Diego").

    Lookups are best effort: a failed lookup leaves the county unknown and
    the property is still synced.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0
    ):
        self.url = url or settings.GEOCODER_URL
        self._client = client
        self.timeout = timeout

    async def reverse_geocode_county(self, latitude: float, longitude: float) -> Optional[str]:
        params = {
            "x": longitude,
            "y": latitude,
            "benchmark": "Public_AR_Current",
            "vintage": "Current_Current",
            "format": "json",
        }

        try:
            if self._client is not None:
                response = await self._client.get(self.url, params=params)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.get(self.url, params=params)
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"County lookup failed for ({latitude}, {longitude}): {e}")
            return None

        try:
            return data["result"]["geographies"]["Counties"][0]["BASENAME"]
        except (KeyError, IndexError, TypeError):
            logger.debug(f"No county in geocoder response for ({latitude}, {longitude})")
            return None
