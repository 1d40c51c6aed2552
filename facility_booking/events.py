from __future__ import annotations

from datetime import datetime
from pathlib import Path
from threading import Lock
from typing import Any
import shutil
from uuid import uuid4

import yaml


class EventLogStorageError(RuntimeError):
    pass


class BookingEventLog:
    """Append-only YAML audit trail of booking decisions."""

    def __init__(self, base_dir: str | Path = "data") -> None:
        self.base_dir = Path(base_dir)
        self.log_file = self.base_dir / "booking_events.yaml"
        self._lock = Lock()
        self._ensure_file()

    def _ensure_file(self) -> None:
        try:
            self.base_dir.mkdir(parents=True, exist_ok=True)
            if not self.log_file.exists():
                self.log_file.write_text("[]\n", encoding="utf-8")
        except OSError as error:
            raise EventLogStorageError(f"Failed to prepare event log: {self.log_file}") from error

    def _read_yaml_list(self, path: Path) -> list[dict[str, Any]]:
        try:
            payload = yaml.safe_load(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            path.write_text("[]\n", encoding="utf-8")
            return []
        except (OSError, UnicodeDecodeError, yaml.YAMLError) as error:
            return self._recover_corrupted_yaml(path, error)

        if payload is None:
            return []
        if not isinstance(payload, list):
            return self._recover_corrupted_yaml(path, ValueError("top-level YAML is not a list"))

        sanitized: list[dict[str, Any]] = []
        skipped: list[int] = []
        for index, row in enumerate(payload):
            if isinstance(row, dict):
                sanitized.append(row)
            else:
                skipped.append(index)

        if skipped:
            sanitized.append(
                _event_row(
                    "YAML_ROW_SKIPPED",
                    {"file": str(path.name), "indexes": skipped, "reason": "row is not a mapping"},
                    datetime.now(),
                )
            )
            self._write_yaml_list(path, sanitized)
        return sanitized

    def _write_yaml_list(self, path: Path, rows: list[dict[str, Any]]) -> None:
        temp_path = path.with_name(f"{path.name}.{uuid4().hex}.tmp")
        try:
            temp_path.write_text(yaml.safe_dump(rows, allow_unicode=True, sort_keys=False), encoding="utf-8")
            temp_path.replace(path)
        except OSError as error:
            raise EventLogStorageError(f"Failed to write YAML file: {path}") from error
        finally:
            if temp_path.exists():
                temp_path.unlink(missing_ok=True)

    def _recover_corrupted_yaml(self, path: Path, error: Exception) -> list[dict[str, Any]]:
        timestamp = datetime.now().strftime("%Y%m%d%H%M%S")
        backup_path = path.with_name(f"{path.stem}.corrupt.{timestamp}{path.suffix}")
        try:
            if path.exists():
                shutil.copy2(path, backup_path)
        except OSError as copy_error:
            raise EventLogStorageError(f"Failed to back up corrupted YAML file: {path}") from copy_error

        recovered = _event_row(
            "YAML_RECOVERED",
            {"file": str(path.name), "backup": str(backup_path.name), "reason": str(error)},
            datetime.now(),
        )
        self._write_yaml_list(path, [recovered])
        return [recovered]

    def record(self, event_type: str, payload: dict[str, Any], event_time: datetime | None = None) -> None:
        with self._lock:
            events = self._read_yaml_list(self.log_file)
            events.append(_event_row(event_type, payload, event_time or datetime.now()))
            self._write_yaml_list(self.log_file, events)

    def read_events(self, event_type: str | None = None) -> list[dict[str, Any]]:
        with self._lock:
            events = self._read_yaml_list(self.log_file)
        if event_type is None:
            return events
        return [event for event in events if event.get("event_type") == event_type]


def _event_row(event_type: str, payload: dict[str, Any], event_time: datetime) -> dict[str, Any]:
    return {
        "event_time": event_time.isoformat(timespec="seconds"),
        "event_type": event_type,
        "payload": payload,
    }
