from __future__ import annotations

import asyncio
import datetime as dt
import logging
from typing import Any

import httpx

from templebuddy.domain import (
    AppointmentCategory,
    AvailabilitySlot,
    FacilityId,
    RequestFailure,
    SeatsByGender,
)
from templebuddy.transport import request_json

logger = logging.getLogger(__name__)

SESSION_INFO_PATH = "templeSchedule/getSessionInfo"


def _seat_count(value: Any) -> float:
    # Anything that isn't a plain number counts as no seats.
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    return value


def _slot_from_session(session: Any, requested: AppointmentCategory) -> AvailabilitySlot | None:
    if not isinstance(session, dict):
        return None
    details = session.get("details") or {}
    if not isinstance(details, dict) or details.get("roomFull"):
        return None

    category = AppointmentCategory.from_wire(session.get("appointmentType")) or requested
    time = str(session.get("sessionTime", ""))

    if category is AppointmentCategory.INITIATORY:
        male = _seat_count(details.get("maleSeatsAvailable"))
        female = _seat_count(details.get("femaleSeatsAvailable"))
        if male > 0 or female > 0:
            return AvailabilitySlot(category=category, time=time, seats_by_gender=SeatsByGender(male=male, female=female))
        return None

    seats = _seat_count(details.get("seatsAvailable"))
    if seats > 0:
        return AvailabilitySlot(category=category, time=time, seats_available=seats)
    return None


def session_request_body(facility_id: FacilityId, day: dt.date, category: AppointmentCategory) -> dict[str, Any]:
    return {
        "sessionYear": day.year,
        # The upstream takes a zero-based month (JavaScript Date.getMonth()).
        "sessionMonth": day.month - 1,
        "sessionDay": day.day,
        "appointmentType": category.value,
        "templeOrgId": facility_id,
        "isGuestConfirmation": False,
    }


class AvailabilityClient:
    def __init__(self, client: httpx.AsyncClient):
        self.client = client

    async def _fetch_category(
        self, facility_id: FacilityId, day: dt.date, category: AppointmentCategory
    ) -> list[AvailabilitySlot]:
        try:
            data = await request_json(
                self.client,
                "POST",
                SESSION_INFO_PATH,
                json=session_request_body(facility_id, day, category),
            )
        except RequestFailure as e:
            # Partial data beats nothing: skip this category only.
            logger.warning("Skipping %s for facility %s on %s (%s)", category.name, facility_id, day, e)
            return []

        sessions = data.get("sessionList") if isinstance(data, dict) else None
        if not sessions:
            return []

        slots = []
        for session in sessions:
            slot = _slot_from_session(session, category)
            if slot is not None:
                slots.append(slot)
        return slots

    async def fetch_availability(self, facility_id: FacilityId, day: dt.date) -> list[AvailabilitySlot]:
        if isinstance(day, dt.datetime):
            day = day.date()

        # gather keeps argument order, so the merge is by category, not by completion.
        per_category = await asyncio.gather(
            *(self._fetch_category(facility_id, day, category) for category in AppointmentCategory)
        )

        results: list[AvailabilitySlot] = []
        for slots in per_category:
            results.extend(slots)
        logger.info("Facility %s on %s: %d open slot(s)", facility_id, day, len(results))
        return results
