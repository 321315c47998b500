from __future__ import annotations

import logging
from typing import Any

import httpx

from templebuddy.domain import (
    DataMismatch,
    FacilityDetail,
    FacilityId,
    RequestFailure,
    same_facility,
)
from templebuddy.transport import request_json

logger = logging.getLogger(__name__)

CURRENT_FACILITY_PATH = "templeInfo"
SET_FACILITY_PATH = "templeInfo/setTemple"
SCHEDULING_STATUSES_PATH = "templeConfig/findAllOnlineSchedulingStatuses"
IMAGE_PATH = "templeInfo/getTempleTitanImage/{facility_id}"


def _detail_from_payload(data: Any, url: str) -> FacilityDetail:
    if not isinstance(data, dict) or "templeOrgId" not in data:
        raise RequestFailure("Facility info payload has no templeOrgId", url=url)
    return FacilityDetail(
        id=data["templeOrgId"],
        name=data.get("templeName"),
        address=data.get("primaryAddress"),
        raw=data,
    )


class FacilityInfoClient:
    """Facility endpoints of the scheduling site.

    The site keeps a "current temple" per session. Reading detail for a
    facility goes through the same endpoint that switches it, so callers that
    only want the data must put the old context back (see
    fetch_current_facility_id / set_current_facility).
    """

    def __init__(self, client: httpx.AsyncClient):
        # Expected to carry base_url, cookies and timeout (see transport.build_upstream_client).
        self.client = client

    async def fetch_schedulable_facility_ids(self) -> list[FacilityId]:
        data = await request_json(self.client, "GET", SCHEDULING_STATUSES_PATH)
        if not isinstance(data, list):
            raise RequestFailure("Scheduling statuses payload is not a list", url=SCHEDULING_STATUSES_PATH)
        return [
            item["templeOrgId"]
            for item in data
            if isinstance(item, dict) and item.get("onlineSchedulingAvailable") and "templeOrgId" in item
        ]

    async def fetch_current_facility(self) -> FacilityDetail:
        data = await request_json(self.client, "GET", CURRENT_FACILITY_PATH)
        return _detail_from_payload(data, CURRENT_FACILITY_PATH)

    async def fetch_current_facility_id(self) -> FacilityId:
        return (await self.fetch_current_facility()).id

    async def fetch_facility_detail(self, facility_id: FacilityId) -> FacilityDetail:
        """Detail of one facility. Switches the session's current facility to it."""
        data = await request_json(self.client, "POST", SET_FACILITY_PATH, json={"orgId": facility_id})
        detail = _detail_from_payload(data, SET_FACILITY_PATH)
        if not same_facility(detail.id, facility_id):
            raise DataMismatch(facility_id, detail.id)
        return detail

    async def set_current_facility(self, facility_id: FacilityId) -> None:
        await request_json(self.client, "POST", SET_FACILITY_PATH, json={"orgId": facility_id})

    async def fetch_facility_image(self, facility_id: FacilityId) -> str | None:
        path = IMAGE_PATH.format(facility_id=facility_id)
        try:
            data = await request_json(self.client, "GET", path)
        except RequestFailure as e:
            logger.info("No image for facility %s (%s)", facility_id, e)
            return None
        if not isinstance(data, dict):
            return None
        return data.get("url") or None
