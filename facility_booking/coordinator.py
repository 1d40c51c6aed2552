from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date, datetime, timedelta, tzinfo
from decimal import Decimal
from typing import Any, Callable
from uuid import uuid4

from .booking import Booking, is_available
from .events import BookingEventLog, EventLogStorageError
from .rates import CostQuote, format_amount, parse_wall_clock, quote_cost
from .registry import Facility, FacilityRegistry

BOOKED = "booked"
AVAILABLE = "available"
QUOTED = "quoted"
INVALID_FACILITY = "invalid_facility"
INVALID_INTERVAL = "invalid_interval"
SLOT_CONFLICT = "slot_conflict"
RATE_GAP = "rate_gap"
AUDIT_FAILED = "audit_failed"


@dataclass(frozen=True)
class BookingRecord:
    booking_id: str
    facility: str
    start: datetime
    end: datetime
    cost: Decimal
    created_at: datetime

    def to_dict(self) -> dict[str, str]:
        return {
            "booking_id": self.booking_id,
            "facility": self.facility,
            "start": self.start.isoformat(timespec="minutes"),
            "end": self.end.isoformat(timespec="minutes"),
            "cost": format_amount(self.cost),
            "created_at": self.created_at.isoformat(timespec="seconds"),
        }


@dataclass(frozen=True)
class BookingResult:
    ok: bool
    condition: str
    message: str
    facility: str
    record: BookingRecord | None = None
    quote: CostQuote | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "condition": self.condition,
            "message": self.message,
            "facility": self.facility,
            "booking": self.record.to_dict() if self.record is not None else None,
            "quote": self.quote.to_dict() if self.quote is not None else None,
        }


def combine_slot(
    day: date | str,
    start_time: str,
    end_time: str,
    tz: tzinfo | None = None,
) -> tuple[datetime, datetime]:
    """Combine a calendar date and two ``HH:MM`` strings into instants.

    ``end_time`` may be ``24:00`` for midnight at the end of ``day``.
    """
    if isinstance(day, str):
        day = date.fromisoformat(day.strip())

    start_minute = parse_wall_clock(start_time)
    end_minute = parse_wall_clock(end_time, allow_end_of_day=True)
    midnight = datetime(day.year, day.month, day.day, tzinfo=tz)
    return midnight + timedelta(minutes=start_minute), midnight + timedelta(minutes=end_minute)


class BookingCoordinator:
    """Validates booking requests, gates them on availability and prices them.

    Every failure comes back as a :class:`BookingResult` with ``ok=False`` and
    one of the condition constants; nothing is raised to the caller.
    """

    def __init__(
        self,
        registry: FacilityRegistry,
        event_log: BookingEventLog | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.registry = registry
        self.event_log = event_log
        self._clock: Callable[[], datetime] = clock or datetime.now

    def slot_interval(self, day: date | str, start_time: str, end_time: str) -> tuple[datetime, datetime]:
        return combine_slot(day, start_time, end_time, tz=self.registry.timezone)

    def localize(self, value: datetime) -> datetime:
        """Attach the configured timezone to a naive timestamp."""
        if value.tzinfo is None and self.registry.timezone is not None:
            return value.replace(tzinfo=self.registry.timezone)
        return value

    def parse_interval(self, start_iso: str, end_iso: str) -> tuple[datetime, datetime]:
        start = datetime.fromisoformat(str(start_iso).strip())
        end = datetime.fromisoformat(str(end_iso).strip())
        return self.localize(start), self.localize(end)

    def bookings_for(self, facility_name: str) -> list[Booking] | None:
        facility = self.registry.get(_normalize_name(facility_name))
        if facility is None:
            return None
        return sorted(facility.bookings, key=lambda booking: booking.start)

    def check_availability(self, facility_name: str, start: datetime, end: datetime) -> BookingResult:
        name = _normalize_name(facility_name)
        facility = self.registry.get(name)
        rejected = _validate_request(name, facility, start, end)
        if rejected is not None:
            return rejected

        rejected = _check_slot(name, facility, start, end)
        if rejected is not None:
            return rejected
        return BookingResult(ok=True, condition=AVAILABLE, message="Time slot is available.", facility=name)

    def quote(self, facility_name: str, start: datetime, end: datetime) -> BookingResult:
        name = _normalize_name(facility_name)
        facility = self.registry.get(name)
        rejected = _validate_request(name, facility, start, end)
        if rejected is not None:
            return rejected

        quote = quote_cost(facility, start, end)
        if not quote.is_complete:
            return _rate_gap(name, quote)
        return BookingResult(
            ok=True,
            condition=QUOTED,
            message=f"Cost: {format_amount(quote.total)}",
            facility=name,
            quote=quote,
        )

    def book(self, facility_name: str, start: datetime, end: datetime) -> BookingResult:
        name = _normalize_name(facility_name)
        with self.registry.locked(name) as facility:
            result = self._prepare_booking(name, facility, start, end)
            if not result.ok:
                return self._log_rejection(result, start, end)

            # Nothing is committed unless the event was written.
            audit_error = self._log_event("BOOKING_CREATED", result.record.to_dict())
            if audit_error is not None:
                return BookingResult(
                    ok=False,
                    condition=AUDIT_FAILED,
                    message=f"Booking not recorded, audit log unavailable: {audit_error}",
                    facility=name,
                    quote=result.quote,
                )
            self.registry.append_booking(name, Booking(start=start, end=end))
        return result

    def book_slot(self, facility_name: str, day: date | str, start_time: str, end_time: str) -> BookingResult:
        name = _normalize_name(facility_name)
        if name not in self.registry:
            return self._log_rejection(_invalid_facility(name), None, None)

        try:
            start, end = self.slot_interval(day, start_time, end_time)
        except (TypeError, ValueError) as error:
            result = BookingResult(ok=False, condition=INVALID_INTERVAL, message=str(error), facility=name)
            return self._log_rejection(result, None, None)
        return self.book(name, start, end)

    def _prepare_booking(self, name: str, facility: Facility | None, start: datetime, end: datetime) -> BookingResult:
        rejected = _validate_request(name, facility, start, end)
        if rejected is not None:
            return rejected

        rejected = _check_slot(name, facility, start, end)
        if rejected is not None:
            return rejected

        quote = quote_cost(facility, start, end)
        if not quote.is_complete:
            return _rate_gap(name, quote)

        record = BookingRecord(
            booking_id=str(uuid4()),
            facility=name,
            start=start,
            end=end,
            cost=quote.total,
            created_at=self._clock(),
        )
        return BookingResult(
            ok=True,
            condition=BOOKED,
            message=f"Booked, Cost: {format_amount(record.cost)}",
            facility=name,
            record=record,
            quote=quote,
        )

    def _log_event(self, event_type: str, payload: dict[str, Any]) -> str | None:
        """Write an audit event; return the storage error message instead of raising."""
        if self.event_log is None:
            return None
        try:
            self.event_log.record(event_type, payload, self._clock())
        except EventLogStorageError as error:
            return str(error)
        return None

    def _log_rejection(self, result: BookingResult, start: datetime | None, end: datetime | None) -> BookingResult:
        payload: dict[str, Any] = {
            "facility": result.facility,
            "condition": result.condition,
            "message": result.message,
        }
        if start is not None and end is not None:
            payload["start"] = start.isoformat(timespec="minutes")
            payload["end"] = end.isoformat(timespec="minutes")

        audit_error = self._log_event("BOOKING_REJECTED", payload)
        if audit_error is None:
            return result
        return replace(result, message=f"{result.message} (audit log unavailable: {audit_error})")


def _normalize_name(facility_name: str | None) -> str:
    return (facility_name or "").strip()


def _validate_request(name: str, facility: Facility | None, start: datetime, end: datetime) -> BookingResult | None:
    if facility is None:
        return _invalid_facility(name)

    try:
        inverted = start >= end
    except TypeError:
        return BookingResult(
            ok=False,
            condition=INVALID_INTERVAL,
            message="Start and end must both be timezone-aware or both naive.",
            facility=name,
        )
    if inverted:
        return BookingResult(
            ok=False,
            condition=INVALID_INTERVAL,
            message="End time must be after start time.",
            facility=name,
        )
    return None


def _check_slot(name: str, facility: Facility, start: datetime, end: datetime) -> BookingResult | None:
    try:
        available = is_available(facility, start, end)
    except TypeError:
        return BookingResult(
            ok=False,
            condition=INVALID_INTERVAL,
            message="Start and end must match the timezone awareness of existing bookings.",
            facility=name,
        )
    if not available:
        return _slot_conflict(name)
    return None


def _invalid_facility(name: str) -> BookingResult:
    return BookingResult(ok=False, condition=INVALID_FACILITY, message="Invalid Facility", facility=name)


def _slot_conflict(name: str) -> BookingResult:
    return BookingResult(
        ok=False,
        condition=SLOT_CONFLICT,
        message="Booking Failed, Time Slot Already Booked",
        facility=name,
    )


def _rate_gap(name: str, quote: CostQuote) -> BookingResult:
    gap_start, gap_end = quote.rate_gap
    return BookingResult(
        ok=False,
        condition=RATE_GAP,
        message=(
            "No rate covers "
            f"{gap_start.isoformat(timespec='minutes')} to {gap_end.isoformat(timespec='minutes')}."
        ),
        facility=name,
        quote=quote,
    )
