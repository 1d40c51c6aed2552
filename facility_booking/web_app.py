from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Any, Callable

from flask import Flask, jsonify, request

from .coordinator import (
    AUDIT_FAILED,
    INVALID_FACILITY,
    INVALID_INTERVAL,
    RATE_GAP,
    SLOT_CONFLICT,
    BookingCoordinator,
    BookingResult,
)
from .events import BookingEventLog
from .registry import FacilityRegistry

CONDITION_STATUS = {
    INVALID_FACILITY: 404,
    INVALID_INTERVAL: 400,
    SLOT_CONFLICT: 409,
    RATE_GAP: 422,
    AUDIT_FAILED: 503,
}


def create_app(
    registry: FacilityRegistry | None = None,
    event_log_dir: str | Path | None = None,
    config_path: str | Path | None = None,
    now_provider: Callable[[], datetime] | None = None,
) -> Flask:
    app = Flask(__name__)
    if registry is None:
        registry = FacilityRegistry.load_from_yaml(config_path) if config_path else FacilityRegistry.with_defaults()
    event_log = BookingEventLog(event_log_dir) if event_log_dir is not None else None
    coordinator = BookingCoordinator(registry, event_log=event_log, clock=now_provider)
    app.extensions["booking_coordinator"] = coordinator

    def _respond(result: BookingResult) -> Any:
        if result.ok:
            return jsonify(result.to_dict())
        return jsonify(result.to_dict()), CONDITION_STATUS.get(result.condition, 400)

    def _interval_from_payload(payload: dict[str, Any]) -> tuple[datetime, datetime]:
        if payload.get("start") is not None or payload.get("end") is not None:
            return coordinator.parse_interval(str(payload.get("start", "")), str(payload.get("end", "")))

        return coordinator.slot_interval(
            str(payload.get("date", "")),
            str(payload.get("start_time", "")),
            str(payload.get("end_time", "")),
        )

    def _handle(action: Callable[[str, datetime, datetime], BookingResult]) -> Any:
        payload = request.get_json(silent=True) or {}
        facility_name = str(payload.get("facility", "")).strip()
        if facility_name not in registry:
            return _respond(
                BookingResult(ok=False, condition=INVALID_FACILITY, message="Invalid Facility", facility=facility_name)
            )

        try:
            start, end = _interval_from_payload(payload)
        except (TypeError, ValueError) as error:
            return _respond(
                BookingResult(ok=False, condition=INVALID_INTERVAL, message=str(error), facility=facility_name)
            )
        return _respond(action(facility_name, start, end))

    @app.get("/api/facilities")
    def list_facilities() -> Any:
        facilities = []
        for name in registry.names():
            facility = registry.get(name)
            facilities.append(
                {
                    "name": name,
                    "rates": [tier.to_dict() for tier in facility.rates],
                    "booking_count": len(facility.bookings),
                }
            )
        return jsonify({"ok": True, "facilities": facilities})

    @app.get("/api/facilities/<name>/bookings")
    def list_bookings(name: str) -> Any:
        bookings = coordinator.bookings_for(name)
        if bookings is None:
            return jsonify({"ok": False, "condition": INVALID_FACILITY, "message": "Invalid Facility"}), 404
        return jsonify(
            {
                "ok": True,
                "facility": name,
                "bookings": [
                    {
                        "start": booking.start.isoformat(timespec="minutes"),
                        "end": booking.end.isoformat(timespec="minutes"),
                    }
                    for booking in bookings
                ],
            }
        )

    @app.post("/api/availability")
    def check_availability() -> Any:
        return _handle(coordinator.check_availability)

    @app.post("/api/quote")
    def quote() -> Any:
        return _handle(coordinator.quote)

    @app.post("/api/bookings")
    def create_booking() -> Any:
        return _handle(coordinator.book)

    return app


if __name__ == "__main__":
    app = create_app(event_log_dir="data")
    app.run(host="127.0.0.1", port=5000, debug=False)
