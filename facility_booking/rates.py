"""Time-of-day tiered pricing.

A facility's rate table is an ordered sequence of :class:`RateTier`. Each tier
is a wall-clock window with an hourly rate; a tier whose end is ``24:00`` or
not after its start runs into the next calendar day.

Cost is integrated by walking a cursor from the booking start to its end and,
on every pass, billing the next segment to the first tier (in table order)
that covers the cursor. Tier windows are re-anchored to the cursor's calendar
date on each pass, so bookings that span midnight, or several days, are billed
day by day without pre-splitting the interval.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Iterable, Protocol

MINUTES_PER_DAY = 24 * 60
_SECONDS_PER_HOUR = Decimal(3600)
_CENT = Decimal("0.01")


class RateTableError(ValueError):
    pass


def parse_wall_clock(value: str, allow_end_of_day: bool = False) -> int:
    """Parse ``HH:MM`` into minutes after midnight.

    ``24:00`` is only accepted when ``allow_end_of_day`` is set and maps to 1440.
    """
    text = str(value).strip()
    hour_text, separator, minute_text = text.partition(":")
    if not separator or not hour_text.isdigit() or not minute_text.isdigit() or len(minute_text) != 2:
        raise ValueError(f"Invalid wall-clock time {value!r}. Expected format: HH:MM")

    hour = int(hour_text)
    minute = int(minute_text)
    if minute > 59 or hour > 24:
        raise ValueError(f"Invalid wall-clock time {value!r}.")
    if hour == 24 and (minute != 0 or not allow_end_of_day):
        raise ValueError(f"Invalid wall-clock time {value!r}. 24:00 is only allowed as an end time.")
    return hour * 60 + minute


def format_wall_clock(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def format_amount(value: Decimal) -> str:
    return format(value.quantize(_CENT, rounding=ROUND_HALF_UP), "f")


def _to_rate(value: Any) -> Decimal:
    if isinstance(value, bool):
        raise RateTableError(f"Invalid rate {value!r}.")
    try:
        rate = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except InvalidOperation as error:
        raise RateTableError(f"Invalid rate {value!r}.") from error
    if not rate.is_finite():
        raise RateTableError(f"Invalid rate {value!r}.")
    if rate < 0:
        raise RateTableError(f"Rate must not be negative, got {value!r}.")
    return rate


@dataclass(frozen=True)
class RateTier:
    start: str
    end: str
    rate: Decimal

    def __post_init__(self) -> None:
        try:
            parse_wall_clock(self.start)
            parse_wall_clock(self.end, allow_end_of_day=True)
        except ValueError as error:
            raise RateTableError(str(error)) from error
        object.__setattr__(self, "rate", _to_rate(self.rate))

    @property
    def start_minute(self) -> int:
        return parse_wall_clock(self.start)

    @property
    def end_minute(self) -> int:
        return parse_wall_clock(self.end, allow_end_of_day=True)

    @property
    def wraps_midnight(self) -> bool:
        return self.end_minute <= self.start_minute

    def window_on(self, day_start: datetime) -> tuple[datetime, datetime]:
        """Return the tier's window anchored on the calendar day starting at ``day_start``."""
        tier_start = day_start + timedelta(minutes=self.start_minute)
        tier_end = day_start + timedelta(minutes=self.end_minute)
        if tier_end <= tier_start:
            tier_end += timedelta(days=1)
        return tier_start, tier_end

    def to_dict(self) -> dict[str, str]:
        return {"start": self.start, "end": self.end, "rate": format_amount(self.rate)}

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "RateTier":
        if not isinstance(data, dict):
            raise RateTableError("Rate tier must be a mapping with start, end and rate.")
        try:
            return RateTier(start=str(data["start"]), end=str(data["end"]), rate=data["rate"])
        except KeyError as error:
            raise RateTableError(f"Rate tier is missing {error.args[0]!r}.") from error


class HasRates(Protocol):
    rates: tuple[RateTier, ...]


@dataclass(frozen=True)
class CostSegment:
    start: datetime
    end: datetime
    rate: Decimal

    @property
    def seconds(self) -> Decimal:
        start, end = self.start, self.end
        if start.tzinfo is not None and end.tzinfo is not None:
            # Elapsed time, not wall-clock difference.
            start, end = start.astimezone(timezone.utc), end.astimezone(timezone.utc)
        delta = end - start
        return Decimal(delta.days * 86400 + delta.seconds) + Decimal(delta.microseconds) / Decimal(1_000_000)

    @property
    def hours(self) -> Decimal:
        return self.seconds / _SECONDS_PER_HOUR

    @property
    def amount(self) -> Decimal:
        # Multiply before dividing so whole-minute segments at whole rates stay exact.
        return self.rate * self.seconds / _SECONDS_PER_HOUR

    def to_dict(self) -> dict[str, str]:
        return {
            "start": self.start.isoformat(timespec="minutes"),
            "end": self.end.isoformat(timespec="minutes"),
            "rate": format_amount(self.rate),
            "amount": format_amount(self.amount),
        }


@dataclass(frozen=True)
class CostQuote:
    start: datetime
    end: datetime
    segments: tuple[CostSegment, ...]
    rate_gap: tuple[datetime, datetime] | None = None

    @property
    def total(self) -> Decimal:
        return sum((segment.amount for segment in self.segments), Decimal(0))

    @property
    def is_complete(self) -> bool:
        return self.rate_gap is None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "start": self.start.isoformat(timespec="minutes"),
            "end": self.end.isoformat(timespec="minutes"),
            "total": format_amount(self.total),
            "segments": [segment.to_dict() for segment in self.segments],
            "rate_gap": None,
        }
        if self.rate_gap is not None:
            gap_start, gap_end = self.rate_gap
            payload["rate_gap"] = {
                "start": gap_start.isoformat(timespec="minutes"),
                "end": gap_end.isoformat(timespec="minutes"),
            }
        return payload


def quote_cost(facility: HasRates, start: datetime, end: datetime) -> CostQuote:
    """Price ``[start, end)`` against the facility's rate table.

    When no tier covers the cursor the walk stops and the unbilled remainder
    is returned as ``rate_gap``.
    """
    if start >= end:
        raise ValueError("start must be earlier than end.")

    segments: list[CostSegment] = []
    current = start
    while current < end:
        matched = _match_tier(facility.rates, current, end)
        if matched is None:
            break

        tier, segment_end = matched
        segments.append(CostSegment(start=current, end=segment_end, rate=tier.rate))
        current = segment_end

    rate_gap = (current, end) if current < end else None
    return CostQuote(start=start, end=end, segments=tuple(segments), rate_gap=rate_gap)


def calculate_cost(facility: HasRates, start: datetime, end: datetime) -> Decimal:
    return quote_cost(facility, start, end).total


def _match_tier(rates: Iterable[RateTier], current: datetime, end: datetime) -> tuple[RateTier, datetime] | None:
    tiers = tuple(rates)
    day_start = current.replace(hour=0, minute=0, second=0, microsecond=0)
    for tier in tiers:
        segment_end = _segment_end(tier, day_start, current, end)
        if segment_end is not None:
            return tier, segment_end

    # Overnight tiers that started the previous evening also cover the early morning.
    previous_day = day_start - timedelta(days=1)
    for tier in tiers:
        if not tier.wraps_midnight:
            continue
        segment_end = _segment_end(tier, previous_day, current, end)
        if segment_end is not None:
            return tier, segment_end
    return None


def _segment_end(tier: RateTier, day_start: datetime, current: datetime, end: datetime) -> datetime | None:
    tier_start, tier_end = tier.window_on(day_start)
    if current < tier_start:
        return None
    segment_end = min(end, tier_end)
    if current < segment_end:
        return segment_end
    return None


def validate_rate_table(rates: Iterable[RateTier]) -> tuple[RateTier, ...]:
    """Check that the tiers cover every minute of a day exactly once."""
    tiers = tuple(rates)
    if not tiers:
        raise RateTableError("Rate table must contain at least one tier.")

    spans: list[tuple[int, int, RateTier]] = []
    for tier in tiers:
        start_minute, end_minute = tier.start_minute, tier.end_minute
        if end_minute > start_minute:
            spans.append((start_minute, end_minute, tier))
            continue
        spans.append((start_minute, MINUTES_PER_DAY, tier))
        if end_minute > 0:
            spans.append((0, end_minute, tier))

    spans.sort(key=lambda span: (span[0], span[1]))
    covered_until = 0
    for span_start, span_end, tier in spans:
        if span_start > covered_until:
            raise RateTableError(
                f"Rate table leaves {format_wall_clock(covered_until)}-{format_wall_clock(span_start)} uncovered."
            )
        if span_start < covered_until:
            raise RateTableError(f"Rate tier {tier.start}-{tier.end} overlaps another tier.")
        covered_until = span_end

    if covered_until < MINUTES_PER_DAY:
        raise RateTableError(f"Rate table leaves {format_wall_clock(covered_until)}-24:00 uncovered.")
    return tiers
