from __future__ import annotations

import logging

import httpx

from templebuddy.domain import UNRESOLVED, Coordinates, RequestFailure
from templebuddy.transport import request_json

logger = logging.getLogger(__name__)

GEOCODE_URL = "https://maps.googleapis.com/maps/api/geocode/json"


class GeoResolver:
    """Address -> coordinates through the Google geocoding API."""

    def __init__(self, client: httpx.AsyncClient, api_key: str, *, url: str = GEOCODE_URL):
        self.client = client
        self.api_key = api_key
        self.url = url

    async def resolve(self, address: str) -> Coordinates:
        # httpx url-encodes the query params.
        data = await request_json(self.client, "GET", self.url, params={"address": address, "key": self.api_key})
        if not isinstance(data, dict):
            raise RequestFailure("Geocoding returned an unexpected payload", url=self.url)

        results = data.get("results") or []
        if data.get("status") != "OK" or not results:
            logger.info("Geocoding gave no result for %r (status=%s)", address, data.get("status"))
            return UNRESOLVED

        try:
            location = results[0]["geometry"]["location"]
            return Coordinates(latitude=float(location["lat"]), longitude=float(location["lng"]))
        except (KeyError, TypeError, ValueError) as e:
            raise RequestFailure(f"Geocoding result is malformed: {e}", url=self.url) from e
