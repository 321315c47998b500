from __future__ import annotations

import contextlib
import datetime as dt
import logging
from dataclasses import dataclass
from typing import AsyncIterator, Iterable, Sequence

import httpx

from templebuddy.aggregator import AppointmentAggregator, SelectionSet
from templebuddy.availability import AvailabilityClient
from templebuddy.config import Settings
from templebuddy.directory import DirectoryCache, load_directory
from templebuddy.domain import AvailabilitySlot, Directory, Facility, FacilityId
from templebuddy.geocoding import GeoResolver
from templebuddy.preferences import apply_desired_facility, save_desired_facility
from templebuddy.ranking import nearby_with_distance
from templebuddy.scheduling_api import FacilityInfoClient
from templebuddy.store import JsonFileStore
from templebuddy.transport import build_upstream_client

logger = logging.getLogger(__name__)


@dataclass
class Services:
    store: JsonFileStore
    info_client: FacilityInfoClient
    availability_client: AvailabilityClient
    geo_resolver: GeoResolver | None
    directory_cache: DirectoryCache | None
    aggregator: AppointmentAggregator


@contextlib.asynccontextmanager
async def open_services(
    settings: Settings,
    *,
    need_geocoder: bool = False,
    transport: httpx.AsyncBaseTransport | None = None,
) -> AsyncIterator[Services]:
    store = JsonFileStore(settings.store_file)
    async with contextlib.AsyncExitStack() as stack:
        upstream = await stack.enter_async_context(
            build_upstream_client(
                base_url=settings.upstream_base_url,
                session_cookie=settings.upstream_session_cookie,
                timeout_seconds=settings.request_timeout_seconds,
                transport=transport,
            )
        )
        info_client = FacilityInfoClient(upstream)
        availability_client = AvailabilityClient(upstream)

        geo_resolver = None
        directory_cache = None
        if need_geocoder:
            # The geocoder is a third party: no upstream cookies.
            geo_http = await stack.enter_async_context(
                httpx.AsyncClient(timeout=settings.request_timeout_seconds, transport=transport)
            )
            geo_resolver = GeoResolver(geo_http, settings.require_geocode_key())
            directory_cache = DirectoryCache(
                store,
                info_client,
                geo_resolver,
                ttl_seconds=settings.directory_ttl_days * 24 * 60 * 60,
                refresh_attempts=settings.refresh_attempts,
            )

        yield Services(
            store=store,
            info_client=info_client,
            availability_client=availability_client,
            geo_resolver=geo_resolver,
            directory_cache=directory_cache,
            aggregator=AppointmentAggregator(availability_client),
        )


def format_slot(slot: AvailabilitySlot) -> str:
    if slot.seats_by_gender is not None:
        seats = f"male={slot.seats_by_gender.male} female={slot.seats_by_gender.female}"
    else:
        seats = f"seats={slot.seats_available}"
    return f"• {slot.time} {slot.category.name.lower()} ({seats})"


def format_comparison(
    directory: Directory, results: dict[FacilityId, list[AvailabilitySlot]], day: dt.date
) -> str:
    lines = [f"Available appointments on {day.isoformat()}:"]
    for facility_id, slots in results.items():
        facility = directory.get(facility_id)
        title = facility.name if facility is not None and facility.name else f"Facility {facility_id}"
        lines.append("")
        lines.append(f"{title} (id={facility_id})")
        if not slots:
            lines.append("  no open sessions")
            continue
        lines.extend(f"  {format_slot(s)}" for s in slots)
    return "\n".join(lines)


def format_nearby(origin: FacilityId, ranked: Iterable[tuple[Facility, float]]) -> str:
    ranked = list(ranked)
    if not ranked:
        return f"No ranked facilities near {origin} (unknown id or missing coordinates)."
    lines = [f"Closest facilities to {origin}:"]
    for facility, distance in ranked:
        lines.append(f"• {facility.name} (id={facility.id}) {distance:.1f} km")
    return "\n".join(lines)


def resolve_facility_id(directory: Directory, facility_id: FacilityId) -> FacilityId:
    """The upstream's own spelling of a typed id, when the directory knows it."""
    facility = directory.get(facility_id)
    return facility.id if facility is not None else facility_id


async def refresh_directory(
    settings: Settings, *, force: bool = False, transport: httpx.AsyncBaseTransport | None = None
) -> Directory:
    async with open_services(settings, need_geocoder=True, transport=transport) as services:
        directory = await services.directory_cache.ensure_fresh(force_refresh=force)
    print(f"Directory holds {len(directory)} facilities.")
    return directory


def show_nearby(settings: Settings, facility_id: FacilityId, *, count: int | None = None) -> str:
    directory = load_directory(JsonFileStore(settings.store_file))
    facility_id = resolve_facility_id(directory, facility_id)
    text = format_nearby(facility_id, nearby_with_distance(directory, facility_id, count or settings.nearby_count))
    print(text)
    return text


async def compare(
    settings: Settings,
    facility_ids: Sequence[FacilityId],
    *,
    day: dt.date | None = None,
    with_nearby: bool = False,
    transport: httpx.AsyncBaseTransport | None = None,
) -> dict[FacilityId, list[AvailabilitySlot]]:
    day = day or dt.date.today()
    async with open_services(settings, need_geocoder=with_nearby, transport=transport) as services:
        if with_nearby and services.directory_cache is not None:
            directory = await services.directory_cache.ensure_fresh()
        else:
            directory = load_directory(services.store)

        facility_ids = [resolve_facility_id(directory, i) for i in facility_ids]
        selection = SelectionSet(facility_ids)
        if with_nearby and facility_ids:
            for facility, _ in nearby_with_distance(directory, facility_ids[0], settings.nearby_count):
                selection.add(facility.id)

        logger.info("Comparing %d facilities on %s", len(selection), day.isoformat())
        results = await services.aggregator.render_set(selection, day)

    print(format_comparison(directory, results, day))
    return results


def set_default(settings: Settings, facility_id: FacilityId) -> None:
    store = JsonFileStore(settings.store_file)
    facility_id = resolve_facility_id(load_directory(store), facility_id)
    save_desired_facility(store, facility_id)
    print(f"Default facility set to {facility_id}.")


async def apply_default(settings: Settings, *, transport: httpx.AsyncBaseTransport | None = None) -> bool:
    async with open_services(settings, transport=transport) as services:
        switched = await apply_desired_facility(services.store, services.info_client)
    print("Switched to the default facility." if switched else "Nothing to switch.")
    return switched
