from __future__ import annotations

import logging

from templebuddy.domain import FacilityId, TempleBuddyError, same_facility
from templebuddy.scheduling_api import FacilityInfoClient
from templebuddy.store import DESIRED_FACILITY_KEY, JsonFileStore

logger = logging.getLogger(__name__)


def save_desired_facility(store: JsonFileStore, facility_id: FacilityId) -> None:
    store.set(DESIRED_FACILITY_KEY, facility_id)


def load_desired_facility(store: JsonFileStore) -> FacilityId | None:
    raw = store.get(DESIRED_FACILITY_KEY)
    if raw is None or raw == "":
        return None
    return raw


async def apply_desired_facility(store: JsonFileStore, info_client: FacilityInfoClient) -> bool:
    """Switch the session to the remembered facility. True if a switch was made."""
    desired = load_desired_facility(store)
    if desired is None:
        return False

    try:
        current = await info_client.fetch_current_facility_id()
    except TempleBuddyError as e:
        logger.warning("Could not read the current facility (%s: %s)", type(e).__name__, e)
        return False

    if same_facility(current, desired):
        logger.info("Current facility is already %s", desired)
        return False

    logger.info("Switching current facility %s -> %s", current, desired)
    await info_client.set_current_facility(desired)
    return True
