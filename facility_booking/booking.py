from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Protocol


@dataclass(frozen=True)
class Booking:
    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        if self.start >= self.end:
            raise ValueError("Booking start time must be earlier than end time.")


class HasBookings(Protocol):
    bookings: tuple[Booking, ...]


def has_time_overlap(new_start: datetime, new_end: datetime, exist_start: datetime, exist_end: datetime) -> bool:
    """Check whether two bookings would share any instant.

    Both ranges exclude their end, so a booking ending at 12:00 leaves room
    for one starting at 12:00.
    """
    if new_start >= new_end:
        raise ValueError("new_start must be earlier than new_end.")
    if exist_start >= exist_end:
        raise ValueError("exist_start must be earlier than exist_end.")

    return new_start < exist_end and new_end > exist_start


def can_reserve(new_start: datetime, new_end: datetime, existing_bookings: Iterable[Booking]) -> bool:
    """Check a candidate interval against every booking already held."""
    if new_start >= new_end:
        raise ValueError("new_start must be earlier than new_end.")

    for booking in existing_bookings:
        if has_time_overlap(new_start, new_end, booking.start, booking.end):
            return False
    return True


def is_available(facility: HasBookings, start: datetime, end: datetime) -> bool:
    """Whether ``facility`` is free for the whole of ``[start, end)``."""
    return can_reserve(start, end, facility.bookings)
