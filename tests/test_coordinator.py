import tempfile
import threading
import unittest
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path

from facility_booking import (
    AUDIT_FAILED,
    AVAILABLE,
    BOOKED,
    INVALID_FACILITY,
    INVALID_INTERVAL,
    QUOTED,
    RATE_GAP,
    SLOT_CONFLICT,
    BookingCoordinator,
    BookingEventLog,
    Facility,
    FacilityRegistry,
    RateTier,
    combine_slot,
)


class TestCombineSlot(unittest.TestCase):
    def test_combines_date_and_wall_clock(self) -> None:
        start, end = combine_slot("2026-02-24", "09:00", "11:30")

        self.assertEqual(start, datetime(2026, 2, 24, 9, 0))
        self.assertEqual(end, datetime(2026, 2, 24, 11, 30))

    def test_end_of_day(self) -> None:
        start, end = combine_slot(date(2026, 2, 24), "22:00", "24:00")
        self.assertEqual(end, datetime(2026, 2, 25, 0, 0))

    def test_applies_timezone(self) -> None:
        ist = timezone(timedelta(hours=5, minutes=30))
        start, _ = combine_slot("2026-02-24", "09:00", "10:00", tz=ist)
        self.assertEqual(start.utcoffset(), timedelta(hours=5, minutes=30))

    def test_rejects_bad_input(self) -> None:
        with self.assertRaises(ValueError):
            combine_slot("24/02/2026", "09:00", "10:00")
        with self.assertRaises(ValueError):
            combine_slot("2026-02-24", "9am", "10:00")


class TestBookingCoordinator(unittest.TestCase):
    def setUp(self) -> None:
        self.now = datetime(2026, 2, 20, 9, 0)
        self.registry = FacilityRegistry.with_defaults()
        self.coordinator = BookingCoordinator(self.registry, clock=lambda: self.now)

    def test_books_and_prices_full_day_tier(self) -> None:
        result = self.coordinator.book("Tennis Court", datetime(2026, 2, 24, 9, 0), datetime(2026, 2, 24, 11, 30))

        self.assertTrue(result.ok)
        self.assertEqual(result.condition, BOOKED)
        self.assertEqual(result.record.cost, Decimal(125))
        self.assertEqual(result.message, "Booked, Cost: 125.00")
        self.assertEqual(result.record.created_at, self.now)
        self.assertEqual(len(self.registry.get("Tennis Court").bookings), 1)

    def test_multi_tier_booking_cost(self) -> None:
        result = self.coordinator.book("Clubhouse", datetime(2026, 2, 24, 10, 0), datetime(2026, 2, 24, 18, 0))

        self.assertTrue(result.ok)
        self.assertEqual(result.record.cost, Decimal(1600))

    def test_back_to_back_bookings_are_accepted(self) -> None:
        first = self.coordinator.book("Clubhouse", datetime(2026, 2, 24, 10, 0), datetime(2026, 2, 24, 12, 0))
        second = self.coordinator.book("Clubhouse", datetime(2026, 2, 24, 12, 0), datetime(2026, 2, 24, 14, 0))

        self.assertTrue(first.ok)
        self.assertTrue(second.ok)
        self.assertEqual(len(self.coordinator.bookings_for("Clubhouse")), 2)

    def test_overlapping_booking_is_rejected_without_mutation(self) -> None:
        self.coordinator.book("Clubhouse", datetime(2026, 2, 24, 10, 0), datetime(2026, 2, 24, 12, 0))
        result = self.coordinator.book("Clubhouse", datetime(2026, 2, 24, 11, 0), datetime(2026, 2, 24, 13, 0))

        self.assertFalse(result.ok)
        self.assertEqual(result.condition, SLOT_CONFLICT)
        self.assertEqual(result.message, "Booking Failed, Time Slot Already Booked")
        self.assertIsNone(result.record)
        self.assertIsNone(result.quote)
        self.assertEqual(len(self.registry.get("Clubhouse").bookings), 1)

    def test_same_slot_on_other_facility_is_independent(self) -> None:
        self.coordinator.book("Clubhouse", datetime(2026, 2, 24, 10, 0), datetime(2026, 2, 24, 12, 0))
        result = self.coordinator.book("Tennis Court", datetime(2026, 2, 24, 10, 0), datetime(2026, 2, 24, 12, 0))
        self.assertTrue(result.ok)

    def test_unknown_facility(self) -> None:
        result = self.coordinator.book("Swimming Pool", datetime(2026, 2, 24, 10, 0), datetime(2026, 2, 24, 12, 0))

        self.assertFalse(result.ok)
        self.assertEqual(result.condition, INVALID_FACILITY)
        self.assertEqual(result.message, "Invalid Facility")

    def test_inverted_interval(self) -> None:
        result = self.coordinator.book("Clubhouse", datetime(2026, 2, 24, 12, 0), datetime(2026, 2, 24, 12, 0))

        self.assertFalse(result.ok)
        self.assertEqual(result.condition, INVALID_INTERVAL)
        self.assertEqual(result.message, "End time must be after start time.")

    def test_mixed_timezone_awareness_is_invalid(self) -> None:
        result = self.coordinator.book(
            "Tennis Court",
            datetime(2026, 2, 24, 10, 0),
            datetime(2026, 2, 24, 12, 0, tzinfo=timezone.utc),
        )
        self.assertEqual(result.condition, INVALID_INTERVAL)

    def test_rate_gap_rejects_booking(self) -> None:
        result = self.coordinator.book("Clubhouse", datetime(2026, 2, 24, 21, 0), datetime(2026, 2, 24, 23, 0))

        self.assertFalse(result.ok)
        self.assertEqual(result.condition, RATE_GAP)
        self.assertEqual(result.quote.rate_gap[0], datetime(2026, 2, 24, 22, 0))
        self.assertEqual(len(self.registry.get("Clubhouse").bookings), 0)

    def test_check_availability_has_no_side_effects(self) -> None:
        self.coordinator.book("Clubhouse", datetime(2026, 2, 24, 10, 0), datetime(2026, 2, 24, 12, 0))

        free = [
            self.coordinator.check_availability("Clubhouse", datetime(2026, 2, 24, 12, 0), datetime(2026, 2, 24, 13, 0))
            for _ in range(2)
        ]
        taken = self.coordinator.check_availability("Clubhouse", datetime(2026, 2, 24, 11, 0), datetime(2026, 2, 24, 13, 0))

        self.assertTrue(all(result.ok and result.condition == AVAILABLE for result in free))
        self.assertEqual(taken.condition, SLOT_CONFLICT)
        self.assertEqual(len(self.registry.get("Clubhouse").bookings), 1)

    def test_quote_does_not_book(self) -> None:
        result = self.coordinator.quote("Clubhouse", datetime(2026, 2, 24, 15, 0), datetime(2026, 2, 24, 17, 0))

        self.assertTrue(result.ok)
        self.assertEqual(result.condition, QUOTED)
        self.assertEqual(result.quote.total, Decimal(600))
        self.assertEqual(len(self.registry.get("Clubhouse").bookings), 0)

    def test_book_slot_from_wall_clock_strings(self) -> None:
        result = self.coordinator.book_slot("Tennis Court", "2026-02-24", "09:00", "11:30")

        self.assertTrue(result.ok)
        self.assertEqual(result.record.start, datetime(2026, 2, 24, 9, 0))
        self.assertEqual(result.to_dict()["booking"]["cost"], "125.00")

    def test_book_slot_rejects_bad_input(self) -> None:
        self.assertEqual(self.coordinator.book_slot("Pool", "2026-02-24", "09:00", "10:00").condition, INVALID_FACILITY)
        self.assertEqual(self.coordinator.book_slot("Tennis Court", "2026-02-24", "11:00", "10:00").condition, INVALID_INTERVAL)
        self.assertEqual(self.coordinator.book_slot("Tennis Court", "someday", "09:00", "10:00").condition, INVALID_INTERVAL)

    def test_facility_name_is_trimmed(self) -> None:
        result = self.coordinator.book(" Tennis Court ", datetime(2026, 2, 24, 9, 0), datetime(2026, 2, 24, 10, 0))
        self.assertTrue(result.ok)
        self.assertEqual(result.facility, "Tennis Court")

    def test_accepted_bookings_never_overlap(self) -> None:
        requests = [(9, 11), (10, 12), (11, 13), (8, 9), (12, 14), (13, 15), (8, 16)]
        for start_hour, end_hour in requests:
            self.coordinator.book(
                "Tennis Court",
                datetime(2026, 2, 24, start_hour, 0),
                datetime(2026, 2, 24, end_hour, 0),
            )

        bookings = self.coordinator.bookings_for("Tennis Court")
        self.assertEqual([(b.start.hour, b.end.hour) for b in bookings], [(8, 9), (9, 11), (11, 13), (13, 15)])
        for earlier, later in zip(bookings, bookings[1:]):
            self.assertLessEqual(earlier.end, later.start)

    def test_concurrent_requests_for_same_slot(self) -> None:
        barrier = threading.Barrier(8)
        results = []
        results_lock = threading.Lock()

        def worker() -> None:
            barrier.wait()
            result = self.coordinator.book("Tennis Court", datetime(2026, 2, 24, 10, 0), datetime(2026, 2, 24, 12, 0))
            with results_lock:
                results.append(result)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(sum(1 for result in results if result.ok), 1)
        self.assertEqual(sum(1 for result in results if result.condition == SLOT_CONFLICT), 7)
        self.assertEqual(len(self.registry.get("Tennis Court").bookings), 1)

    def test_naive_timestamps_use_configured_timezone(self) -> None:
        registry = FacilityRegistry.from_config(
            {
                "timezone": "Asia/Kolkata",
                "facilities": {"Tennis Court": {"rates": [{"start": "00:00", "end": "24:00", "rate": 50}]}},
            }
        )
        coordinator = BookingCoordinator(registry)
        self.assertTrue(coordinator.book_slot("Tennis Court", "2026-02-24", "10:00", "12:00").ok)

        start, end = coordinator.parse_interval("2026-02-24T11:00", "2026-02-24T13:00")
        result = coordinator.check_availability("Tennis Court", start, end)

        self.assertEqual(start.utcoffset(), timedelta(hours=5, minutes=30))
        self.assertEqual(result.condition, SLOT_CONFLICT)

        start, end = coordinator.parse_interval("2026-02-24T12:00", "2026-02-24T13:00")
        self.assertEqual(coordinator.check_availability("Tennis Court", start, end).condition, AVAILABLE)

    def test_unvalidated_overnight_facility(self) -> None:
        registry = FacilityRegistry([Facility("Night Court", [RateTier("22:00", "06:00", 30)])])
        coordinator = BookingCoordinator(registry)

        result = coordinator.book("Night Court", datetime(2026, 2, 24, 23, 0), datetime(2026, 2, 25, 1, 0))

        self.assertTrue(result.ok)
        self.assertEqual(result.record.cost, Decimal(60))


class TestBookingCoordinatorEvents(unittest.TestCase):
    def test_logs_created_and_rejected_bookings(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            event_log = BookingEventLog(Path(temp_dir) / "data")
            coordinator = BookingCoordinator(
                FacilityRegistry.with_defaults(),
                event_log=event_log,
                clock=lambda: datetime(2026, 2, 20, 9, 0),
            )

            coordinator.book("Clubhouse", datetime(2026, 2, 24, 10, 0), datetime(2026, 2, 24, 12, 0))
            coordinator.book("Clubhouse", datetime(2026, 2, 24, 11, 0), datetime(2026, 2, 24, 12, 0))
            coordinator.book_slot("Pool", "2026-02-24", "10:00", "11:00")

            created = event_log.read_events("BOOKING_CREATED")
            rejected = event_log.read_events("BOOKING_REJECTED")

            self.assertEqual(len(created), 1)
            self.assertEqual(created[0]["payload"]["cost"], "200.00")
            self.assertEqual(created[0]["event_time"], "2026-02-20T09:00:00")
            self.assertEqual([event["payload"]["condition"] for event in rejected], [SLOT_CONFLICT, INVALID_FACILITY])
            self.assertEqual(rejected[0]["payload"]["start"], "2026-02-24T11:00")

    def test_unwritable_log_leaves_booking_uncommitted(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            event_log = BookingEventLog(Path(temp_dir) / "data")
            event_log.log_file.unlink()
            event_log.log_file.mkdir()
            registry = FacilityRegistry.with_defaults()
            coordinator = BookingCoordinator(registry, event_log=event_log)

            result = coordinator.book("Tennis Court", datetime(2026, 2, 24, 9, 0), datetime(2026, 2, 24, 10, 0))

            self.assertFalse(result.ok)
            self.assertEqual(result.condition, AUDIT_FAILED)
            self.assertIsNone(result.record)
            self.assertEqual(registry.get("Tennis Court").bookings, ())

            rejected = coordinator.book_slot("Pool", "2026-02-24", "09:00", "10:00")

            self.assertFalse(rejected.ok)
            self.assertEqual(rejected.condition, INVALID_FACILITY)
            self.assertIn("audit log unavailable", rejected.message)

    def test_checks_and_quotes_are_not_logged(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            event_log = BookingEventLog(Path(temp_dir) / "data")
            coordinator = BookingCoordinator(FacilityRegistry.with_defaults(), event_log=event_log)

            coordinator.check_availability("Clubhouse", datetime(2026, 2, 24, 10, 0), datetime(2026, 2, 24, 12, 0))
            coordinator.quote("Clubhouse", datetime(2026, 2, 24, 10, 0), datetime(2026, 2, 24, 12, 0))

            self.assertEqual(event_log.read_events(), [])


if __name__ == "__main__":
    unittest.main()
