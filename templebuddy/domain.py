from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Union

FacilityId = Union[int, str]


def facility_key(facility_id: object) -> str:
    """Comparison key for a facility id.

    Ids are opaque: the upstream may send 101 or "101". Ids are compared by
    this key and otherwise passed back to the upstream exactly as received.
    """
    return str(facility_id).strip()


def same_facility(a: object, b: object) -> bool:
    return facility_key(a) == facility_key(b)


def normalize_facility_id(raw: FacilityId) -> FacilityId:
    """Turn an id typed by a user into the upstream's usual numeric form."""
    if isinstance(raw, str):
        text = raw.strip()
        try:
            return int(text)
        except ValueError:
            return text
    return raw


@dataclass(frozen=True)
class Coordinates:
    latitude: float | None
    longitude: float | None

    @property
    def is_resolved(self) -> bool:
        return self.latitude is not None and self.longitude is not None


UNRESOLVED = Coordinates(latitude=None, longitude=None)


@dataclass(frozen=True)
class Facility:
    """A schedulable temple as kept in the directory."""

    id: FacilityId
    name: str | None
    address: str | None
    coordinates: Coordinates = UNRESOLVED
    image_url: str | None = None

    @property
    def is_complete(self) -> bool:
        return bool(self.name) and bool(self.address) and self.coordinates.is_resolved

    def to_dict(self) -> dict[str, Any]:
        return {
            "orgId": self.id,
            "name": self.name,
            "address": self.address,
            "lat": self.coordinates.latitude,
            "lng": self.coordinates.longitude,
            "imageUrl": self.image_url,
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "Facility":
        return cls(
            id=raw["orgId"],
            name=raw.get("name"),
            address=raw.get("address"),
            coordinates=Coordinates(latitude=raw.get("lat"), longitude=raw.get("lng")),
            image_url=raw.get("imageUrl"),
        )


@dataclass(frozen=True)
class Directory:
    facilities: tuple[Facility, ...] = ()
    # Epoch milliseconds of the last refresh; 0 means never refreshed.
    refreshed_at_ms: int = 0

    def get(self, facility_id: FacilityId) -> Facility | None:
        wanted = facility_key(facility_id)
        for facility in self.facilities:
            if facility_key(facility.id) == wanted:
                return facility
        return None

    @property
    def is_complete(self) -> bool:
        return all(f.is_complete for f in self.facilities)

    def __len__(self) -> int:
        return len(self.facilities)


@dataclass(frozen=True)
class FacilityDetail:
    """What the upstream says about one facility (also the session context)."""

    id: FacilityId
    name: str | None
    address: str | None
    raw: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)


class AppointmentCategory(enum.Enum):
    # Declaration order is the order results are merged in.
    BAPTISM = "PROXY_BAPTISM"
    INITIATORY = "PROXY_INITIATORY"
    ENDOWMENT = "PROXY_ENDOWMENT"
    SEALING = "PROXY_SEALING"

    @classmethod
    def from_wire(cls, value: object) -> "AppointmentCategory | None":
        for category in cls:
            if category.value == value:
                return category
        return None


@dataclass(frozen=True)
class SeatsByGender:
    male: float
    female: float


@dataclass(frozen=True)
class AvailabilitySlot:
    category: AppointmentCategory
    time: str
    # Only INITIATORY sessions report seats per gender.
    seats_by_gender: SeatsByGender | None = None
    seats_available: float | None = None


class TempleBuddyError(RuntimeError):
    """Base class for errors raised while talking to upstream services."""


class RequestFailure(TempleBuddyError):
    """Transport error, non-OK HTTP status or an undecodable body."""

    def __init__(self, message: str, *, url: str | None = None, status_code: int | None = None):
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class DataMismatch(TempleBuddyError):
    """The upstream answered about a different facility than we asked for.

    Usually means another tab switched the session's current temple in between.
    """

    def __init__(self, expected: FacilityId, actual: object):
        super().__init__(f"Requested facility {expected!r}, upstream returned {actual!r}")
        self.expected = expected
        self.actual = actual
