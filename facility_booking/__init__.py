from .booking import Booking, can_reserve, has_time_overlap, is_available
from .coordinator import (
	AUDIT_FAILED,
	AVAILABLE,
	BOOKED,
	INVALID_FACILITY,
	INVALID_INTERVAL,
	QUOTED,
	RATE_GAP,
	SLOT_CONFLICT,
	BookingCoordinator,
	BookingRecord,
	BookingResult,
	combine_slot,
)
from .events import BookingEventLog, EventLogStorageError
from .rates import (
	CostQuote,
	CostSegment,
	RateTableError,
	RateTier,
	calculate_cost,
	parse_wall_clock,
	quote_cost,
	validate_rate_table,
)
from .registry import DEFAULT_FACILITIES, Facility, FacilityRegistry

__all__ = [
	"Booking",
	"has_time_overlap",
	"can_reserve",
	"is_available",
	"RateTier",
	"RateTableError",
	"CostSegment",
	"CostQuote",
	"parse_wall_clock",
	"quote_cost",
	"calculate_cost",
	"validate_rate_table",
	"Facility",
	"FacilityRegistry",
	"DEFAULT_FACILITIES",
	"BookingEventLog",
	"EventLogStorageError",
	"BookingCoordinator",
	"BookingRecord",
	"BookingResult",
	"combine_slot",
	"BOOKED",
	"AVAILABLE",
	"QUOTED",
	"INVALID_FACILITY",
	"INVALID_INTERVAL",
	"SLOT_CONFLICT",
	"RATE_GAP",
	"AUDIT_FAILED",
]
