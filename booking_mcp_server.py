from __future__ import annotations

from pathlib import Path
from typing import Any

from mcp.server.fastmcp import FastMCP

from facility_booking import INVALID_INTERVAL, BookingCoordinator, BookingEventLog, BookingResult, FacilityRegistry

mcp = FastMCP(
    "Facility Booking MCP Server",
    instructions="Check availability, price and book shared facilities.",
    json_response=True,
)

DATA_DIR = Path(__file__).parent / "data"
CONFIG_PATH = Path(__file__).parent / "facilities.yaml"
REGISTRY = FacilityRegistry.load_from_yaml(CONFIG_PATH) if CONFIG_PATH.exists() else FacilityRegistry.with_defaults()
COORDINATOR = BookingCoordinator(REGISTRY, event_log=BookingEventLog(DATA_DIR))


@mcp.resource("booking://facilities")
async def list_facility_names() -> list[str]:
    """List bookable facility names."""
    return REGISTRY.names()


@mcp.tool()
def list_facilities() -> list[dict[str, Any]]:
    """Return every facility with its rate table."""
    facilities = []
    for name in REGISTRY.names():
        facility = REGISTRY.get(name)
        facilities.append({"name": name, "rates": [tier.to_dict() for tier in facility.rates]})
    return facilities


@mcp.tool()
def check_availability(facility: str, start_iso: str, end_iso: str) -> dict[str, Any]:
    """Check whether an interval is free on a facility, using ISO timestamps."""
    try:
        start, end = COORDINATOR.parse_interval(start_iso, end_iso)
    except ValueError as error:
        return _invalid_interval(facility, error)
    return COORDINATOR.check_availability(facility, start, end).to_dict()


@mcp.tool()
def quote_booking(facility: str, start_iso: str, end_iso: str) -> dict[str, Any]:
    """Price an interval on a facility without booking it."""
    try:
        start, end = COORDINATOR.parse_interval(start_iso, end_iso)
    except ValueError as error:
        return _invalid_interval(facility, error)
    return COORDINATOR.quote(facility, start, end).to_dict()


@mcp.tool()
def book_facility(facility: str, date: str, start_time: str, end_time: str) -> dict[str, Any]:
    """Book a facility for a date (YYYY-MM-DD) between two HH:MM wall-clock times."""
    return COORDINATOR.book_slot(facility, date, start_time, end_time).to_dict()


def _invalid_interval(facility: str, error: ValueError) -> dict[str, Any]:
    return BookingResult(ok=False, condition=INVALID_INTERVAL, message=str(error), facility=facility.strip()).to_dict()


def main() -> None:
    mcp.run()


if __name__ == "__main__":
    main()
