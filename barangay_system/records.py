"""
Typed household and resident records.

Rows coming back from the record store are plain dicts.  The household
workflows convert them here, at the boundary, so that the rest of the code
works with validated values: a non-empty house number, float coordinates
and real booleans.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Mapping


class RecordValidationError(ValueError):
    """Raised when a row or form submission fails boundary validation."""

    def __init__(self, field: str, message: str):
        super().__init__(f"{field}: {message}")
        self.field = field
        self.message = message


def _clean(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def resolve_coordinates(
    latitude: Any,
    longitude: Any,
    default: tuple[float, float],
) -> tuple[float, float]:
    """Return a valid (latitude, longitude) pair, or `default`.

    The map picker submits both values together; a missing, unparsable or
    out-of-range component means no location was pinned.
    """
    try:
        lat = float(latitude)
        lng = float(longitude)
    except (TypeError, ValueError):
        return default
    if not (-90.0 <= lat <= 90.0 and -180.0 <= lng <= 180.0):
        return default
    return lat, lng


@dataclass(frozen=True)
class HouseholdInput:
    """Household field values as submitted by the Add/Edit forms."""

    house_number: str
    purok: str | None = None
    street_address: str | None = None
    has_electricity: bool = False
    has_water: bool = False
    latitude: float | None = None
    longitude: float | None = None

    @classmethod
    def from_form(
        cls,
        *,
        house_number: Any,
        purok: Any = None,
        street_address: Any = None,
        has_electricity: Any = False,
        has_water: Any = False,
        latitude: Any = None,
        longitude: Any = None,
        default_location: tuple[float, float],
    ) -> "HouseholdInput":
        number = _clean(house_number)
        if not number:
            raise RecordValidationError("house_number", "House number is required.")
        lat, lng = resolve_coordinates(latitude, longitude, default_location)
        return cls(
            house_number=number,
            purok=_clean(purok),
            street_address=_clean(street_address),
            has_electricity=bool(has_electricity),
            has_water=bool(has_water),
            latitude=lat,
            longitude=lng,
        )

    def as_row(self) -> dict:
        return {
            "house_number": self.house_number,
            "purok": self.purok,
            "street_address": self.street_address,
            "has_electricity": self.has_electricity,
            "has_water": self.has_water,
            "latitude": self.latitude,
            "longitude": self.longitude,
        }


@dataclass(frozen=True)
class HouseholdRecord:
    id: str
    house_number: str
    purok: str | None
    street_address: str | None
    has_electricity: bool
    has_water: bool
    latitude: float
    longitude: float
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any], default_location: tuple[float, float]) -> "HouseholdRecord":
        if not row.get("id"):
            raise RecordValidationError("id", "Household row has no identifier.")
        number = _clean(row.get("house_number"))
        if not number:
            raise RecordValidationError("house_number", "Household row has an empty house number.")
        lat, lng = resolve_coordinates(row.get("latitude"), row.get("longitude"), default_location)
        return cls(
            id=str(row["id"]),
            house_number=number,
            purok=_clean(row.get("purok")),
            street_address=_clean(row.get("street_address")),
            has_electricity=bool(row.get("has_electricity")),
            has_water=bool(row.get("has_water")),
            latitude=lat,
            longitude=lng,
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
        )


@dataclass(frozen=True)
class ResidentRecord:
    """The slice of a resident row that household membership cares about."""

    id: str
    first_name: str
    last_name: str
    household_id: str | None = None
    house_number: str | None = None

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "ResidentRecord":
        if not row.get("id"):
            raise RecordValidationError("id", "Resident row has no identifier.")
        household_id = row.get("household_id")
        return cls(
            id=str(row["id"]),
            first_name=_clean(row.get("first_name")) or "",
            last_name=_clean(row.get("last_name")) or "",
            household_id=str(household_id) if household_id else None,
            house_number=_clean(row.get("house_number")),
        )
