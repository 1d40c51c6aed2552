from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from threading import Lock
from typing import Any, Iterable, Iterator
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml

from .booking import Booking, is_available
from .rates import RateTableError, RateTier, validate_rate_table

DEFAULT_FACILITIES: dict[str, dict[str, Any]] = {
    "Clubhouse": {
        "rates": [
            {"start": "10:00", "end": "16:00", "rate": 100},
            {"start": "16:00", "end": "22:00", "rate": 500},
        ],
    },
    "Tennis Court": {
        "rates": [
            {"start": "00:00", "end": "24:00", "rate": 50},
        ],
    },
}


@dataclass(frozen=True)
class Facility:
    name: str
    rates: tuple[RateTier, ...]
    bookings: tuple[Booking, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        name = self.name.strip() if isinstance(self.name, str) else ""
        if not name:
            raise ValueError("Facility name must not be empty.")
        object.__setattr__(self, "name", name)
        object.__setattr__(self, "rates", tuple(self.rates))
        object.__setattr__(self, "bookings", tuple(self.bookings))

    def with_booking(self, booking: Booking) -> "Facility":
        return Facility(name=self.name, rates=self.rates, bookings=self.bookings + (booking,))

    @staticmethod
    def from_dict(name: str, data: dict[str, Any], validate_coverage: bool = True) -> "Facility":
        if not isinstance(data, dict) or not isinstance(data.get("rates"), list):
            raise RateTableError(f"Facility {name!r} must define a list of rates.")

        rates = tuple(RateTier.from_dict(row) for row in data["rates"])
        if validate_coverage:
            try:
                validate_rate_table(rates)
            except RateTableError as error:
                raise RateTableError(f"Facility {name!r}: {error}") from error
        return Facility(name=name, rates=rates)


class FacilityRegistry:
    """In-memory store of facilities, keyed by name.

    Facilities are immutable snapshots; appending a booking swaps in a new
    snapshot. ``locked(name)`` serializes check-then-append per facility.
    """

    def __init__(self, facilities: Iterable[Facility] = (), timezone: ZoneInfo | None = None) -> None:
        self.timezone = timezone
        self._facilities: dict[str, Facility] = {}
        self._locks: dict[str, Lock] = {}
        self._registry_lock = Lock()
        for facility in facilities:
            if facility.name in self._facilities:
                raise ValueError(f"Duplicate facility name: {facility.name!r}")
            self._facilities[facility.name] = facility
            self._locks[facility.name] = Lock()

    def __contains__(self, name: object) -> bool:
        return name in self._facilities

    def __len__(self) -> int:
        return len(self._facilities)

    def names(self) -> list[str]:
        return list(self._facilities)

    def get(self, name: str) -> Facility | None:
        with self._registry_lock:
            return self._facilities.get(name)

    @contextmanager
    def locked(self, name: str) -> Iterator[Facility | None]:
        lock = self._locks.get(name)
        if lock is None:
            yield None
            return
        with lock:
            yield self.get(name)

    def append_booking(self, name: str, booking: Booking) -> Facility:
        with self._registry_lock:
            facility = self._facilities.get(name)
            if facility is None:
                raise KeyError(name)
            if not is_available(facility, booking.start, booking.end):
                raise ValueError("Booking overlaps with an existing booking.")

            updated = facility.with_booking(booking)
            self._facilities[name] = updated
            return updated

    @classmethod
    def from_config(cls, data: dict[str, Any]) -> "FacilityRegistry":
        if not isinstance(data, dict):
            raise ValueError("Facility configuration must be a mapping.")

        facilities_data = data.get("facilities")
        if not isinstance(facilities_data, dict) or not facilities_data:
            raise ValueError("Facility configuration must define at least one facility under 'facilities'.")

        validate_coverage = data.get("validate_coverage", True)
        if not isinstance(validate_coverage, bool):
            raise ValueError("validate_coverage must be true or false.")
        facilities = [
            Facility.from_dict(str(name), payload, validate_coverage=validate_coverage)
            for name, payload in facilities_data.items()
        ]
        return cls(facilities, timezone=_load_timezone(data.get("timezone")))

    @classmethod
    def load_from_yaml(cls, config_path: str | Path) -> "FacilityRegistry":
        path = Path(config_path)
        if not path.exists():
            raise FileNotFoundError(
                f"Facility config not found: {path}\n"
                f"See facilities.example.yaml for the expected format."
            )

        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8"))
        except yaml.YAMLError as error:
            raise ValueError(f"Facility config is not valid YAML: {path}") from error
        return cls.from_config(data)

    @classmethod
    def with_defaults(cls) -> "FacilityRegistry":
        return cls.from_config({"facilities": DEFAULT_FACILITIES, "validate_coverage": False})


def _load_timezone(name: Any) -> ZoneInfo | None:
    if name is None:
        return None
    try:
        return ZoneInfo(str(name))
    except (ZoneInfoNotFoundError, ValueError) as error:
        raise ValueError(f"Unknown timezone: {name!r}") from error
