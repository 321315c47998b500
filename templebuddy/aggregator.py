from __future__ import annotations

import datetime as dt
import logging
from typing import Iterable, Iterator

from templebuddy.availability import AvailabilityClient
from templebuddy.domain import AvailabilitySlot, FacilityId, facility_key

logger = logging.getLogger(__name__)


def calendar_day(day: dt.date) -> dt.date:
    if isinstance(day, dt.datetime):
        return day.date()
    return day


class SelectionSet:
    """Facilities the user is comparing, in the order they were added.

    The first spelling of an id is kept; "101" and 101 count as the same.
    """

    def __init__(self, facility_ids: Iterable[FacilityId] = ()):
        self._ids: list[FacilityId] = []
        for facility_id in facility_ids:
            self.add(facility_id)

    def add(self, facility_id: FacilityId) -> bool:
        if facility_id in self:
            return False
        self._ids.append(facility_id)
        return True

    def remove(self, facility_id: FacilityId) -> None:
        key = facility_key(facility_id)
        self._ids = [i for i in self._ids if facility_key(i) != key]

    def __contains__(self, facility_id: object) -> bool:
        key = facility_key(facility_id)
        return any(facility_key(i) == key for i in self._ids)

    def __iter__(self) -> Iterator[FacilityId]:
        return iter(list(self._ids))

    def __len__(self) -> int:
        return len(self._ids)

    def __repr__(self) -> str:
        return f"SelectionSet({self._ids!r})"


class AppointmentAggregator:
    """Availability for several facilities, cached per (facility, day).

    Entries live as long as the aggregator; same-day entries are not
    refreshed even though seats may change upstream meanwhile.
    """

    def __init__(self, availability_client: AvailabilityClient):
        self.availability_client = availability_client
        self._cache: dict[tuple[str, dt.date], list[AvailabilitySlot]] = {}

    def cached_keys(self) -> list[tuple[str, dt.date]]:
        return list(self._cache)

    def clear(self) -> None:
        self._cache.clear()

    async def get_or_fetch(self, facility_id: FacilityId, day: dt.date) -> list[AvailabilitySlot]:
        key = (facility_key(facility_id), calendar_day(day))
        if key in self._cache:
            return self._cache[key]

        slots = await self.availability_client.fetch_availability(facility_id, key[1])
        self._cache[key] = slots
        return slots

    async def render_set(self, selection: Iterable[FacilityId], day: dt.date) -> dict[FacilityId, list[AvailabilitySlot]]:
        results: dict[FacilityId, list[AvailabilitySlot]] = {}
        for facility_id in selection:
            try:
                results[facility_id] = await self.get_or_fetch(facility_id, day)
            except Exception as e:
                # Best-effort: one facility must not hide the others.
                logger.warning("Availability for facility %s failed (%s: %s)", facility_id, type(e).__name__, e)
                results[facility_id] = []
        return results
