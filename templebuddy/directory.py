from __future__ import annotations

import logging
import time
from typing import Any, Callable, Iterable

from tenacity import RetryCallState, retry, retry_if_exception_type, stop_after_attempt, wait_exponential
from tenacity.wait import wait_base

from templebuddy.domain import Directory, Facility, FacilityId, TempleBuddyError, facility_key
from templebuddy.geocoding import GeoResolver
from templebuddy.scheduling_api import FacilityInfoClient
from templebuddy.store import DIRECTORY_KEY, DIRECTORY_TIMESTAMP_KEY, JsonFileStore

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 7 * 24 * 60 * 60


def _short_exc(retry_state: RetryCallState) -> str | None:
    if retry_state.outcome is None or not retry_state.outcome.failed:
        return None
    exc = retry_state.outcome.exception()
    if exc is None:
        return None
    msg = str(exc).strip()
    return f"{type(exc).__name__}: {msg}" if msg else type(exc).__name__


def _facility_arg(retry_state: RetryCallState) -> Any:
    # _build_facility(self, facility_id)
    return retry_state.args[1] if len(retry_state.args) > 1 else None


def _log_after_attempt(retry_state: RetryCallState) -> None:
    if retry_state.outcome is not None and retry_state.outcome.failed:
        logger.warning(
            "Facility %s, attempt %s failed (%s)",
            _facility_arg(retry_state),
            retry_state.attempt_number,
            _short_exc(retry_state),
        )


def _log_before_sleep(retry_state: RetryCallState) -> None:
    sleep_seconds = getattr(retry_state.next_action, "sleep", None)
    if sleep_seconds is None:
        logger.info("Facility %s: retrying", _facility_arg(retry_state))
        return
    logger.info(
        "Facility %s: attempt %s in %.0f sec.",
        _facility_arg(retry_state),
        retry_state.attempt_number + 1,
        sleep_seconds,
    )


def _directory_from_store(raw_facilities: Any, timestamp: Any) -> Directory:
    facilities: list[Facility] = []
    seen: set[str] = set()
    for item in raw_facilities or []:
        try:
            facility = Facility.from_dict(item)
        except (KeyError, TypeError, AttributeError):
            continue
        key = facility_key(facility.id)
        if key in seen:
            continue
        seen.add(key)
        facilities.append(facility)

    try:
        refreshed_at_ms = int(timestamp or 0)
    except (TypeError, ValueError):
        refreshed_at_ms = 0
    return Directory(facilities=tuple(facilities), refreshed_at_ms=refreshed_at_ms)


def load_directory(store: JsonFileStore) -> Directory:
    """The persisted directory as is; no network."""
    raw = store.get_many(DIRECTORY_KEY, DIRECTORY_TIMESTAMP_KEY)
    return _directory_from_store(raw.get(DIRECTORY_KEY), raw.get(DIRECTORY_TIMESTAMP_KEY))


class DirectoryCache:
    """Persisted, geocoded directory of every schedulable facility.

    A refresh cycle rebuilds the directory from the upstream facility list,
    reusing complete cached entries, and writes it back in one go. Reading a
    facility's detail moves the upstream session to that facility, so the
    session's original facility is put back once the cycle is done.
    """

    def __init__(
        self,
        store: JsonFileStore,
        info_client: FacilityInfoClient,
        geo_resolver: GeoResolver,
        *,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        refresh_attempts: int = 1,
        retry_wait: wait_base | None = None,
        clock: Callable[[], float] = time.time,
    ):
        if refresh_attempts < 1:
            raise ValueError("refresh_attempts must be >= 1")
        self.store = store
        self.info_client = info_client
        self.geo_resolver = geo_resolver
        self.ttl_seconds = ttl_seconds
        self.refresh_attempts = refresh_attempts
        self.retry_wait = retry_wait if retry_wait is not None else wait_exponential(multiplier=1, min=1, max=4)
        self.clock = clock

    def load(self) -> Directory:
        return load_directory(self.store)

    def _now_ms(self) -> int:
        return int(self.clock() * 1000)

    def is_fresh(self, directory: Directory) -> bool:
        # An empty directory counts as fresh once it has been refreshed.
        if directory.refreshed_at_ms <= 0 or not directory.is_complete:
            return False
        age_ms = self._now_ms() - directory.refreshed_at_ms
        return age_ms < self.ttl_seconds * 1000

    async def _build_facility(self, facility_id: FacilityId) -> Facility:
        detail = await self.info_client.fetch_facility_detail(facility_id)
        coordinates = await self.geo_resolver.resolve(detail.address or "")
        image_url = await self.info_client.fetch_facility_image(facility_id)
        return Facility(
            id=facility_id,
            name=detail.name,
            address=detail.address,
            coordinates=coordinates,
            image_url=image_url,
        )

    async def _build_facility_with_retry(self, facility_id: FacilityId) -> Facility:
        decorated = retry(
            stop=stop_after_attempt(self.refresh_attempts),
            wait=self.retry_wait,
            retry=retry_if_exception_type(TempleBuddyError),
            after=_log_after_attempt,
            before_sleep=_log_before_sleep,
            reraise=True,
        )(DirectoryCache._build_facility)

        return await decorated(self, facility_id)

    async def _capture_current_facility(self) -> FacilityId | None:
        try:
            return await self.info_client.fetch_current_facility_id()
        except TempleBuddyError as e:
            logger.warning("Could not read the current facility, it will not be restored (%s: %s)", type(e).__name__, e)
            return None

    async def _restore_current_facility(self, facility_id: FacilityId) -> None:
        try:
            await self.info_client.set_current_facility(facility_id)
        except TempleBuddyError as e:
            logger.warning("Failed to restore current facility %s (%s: %s)", facility_id, type(e).__name__, e)

    def _persist(self, facilities: Iterable[Facility]) -> Directory:
        directory = Directory(facilities=tuple(facilities), refreshed_at_ms=self._now_ms())
        self.store.update(
            {
                DIRECTORY_KEY: [f.to_dict() for f in directory.facilities],
                DIRECTORY_TIMESTAMP_KEY: directory.refreshed_at_ms,
            }
        )
        return directory

    async def ensure_fresh(self, force_refresh: bool = False) -> Directory:
        cached = self.load()
        if not force_refresh and self.is_fresh(cached):
            logger.info("Facility directory is fresh (%d facilities)", len(cached))
            return cached

        # Failing here aborts the cycle and leaves the stored directory alone.
        facility_ids = await self.info_client.fetch_schedulable_facility_ids()
        logger.info("Refreshing facility directory: %d schedulable facilities (force=%s)", len(facility_ids), force_refresh)

        original_facility_id = await self._capture_current_facility()

        cached_by_key = {facility_key(f.id): f for f in cached.facilities if f.is_complete}
        facilities: list[Facility] = []
        seen: set[str] = set()
        fetched = skipped = 0
        try:
            for facility_id in facility_ids:
                key = facility_key(facility_id)
                if key in seen:
                    continue
                seen.add(key)

                facility = None if force_refresh else cached_by_key.get(key)
                if facility is None:
                    try:
                        facility = await self._build_facility_with_retry(facility_id)
                    except TempleBuddyError as e:
                        logger.warning("Skipping facility %s this cycle (%s: %s)", facility_id, type(e).__name__, e)
                        skipped += 1
                        continue
                    fetched += 1
                facilities.append(facility)
        finally:
            # Also on unexpected errors; nothing is persisted then.
            if original_facility_id is not None:
                await self._restore_current_facility(original_facility_id)

        directory = self._persist(facilities)
        logger.info(
            "Facility directory saved: %d facilities (fetched=%d reused=%d skipped=%d)",
            len(directory),
            fetched,
            len(directory) - fetched,
            skipped,
        )
        return directory
