"""Attendance domain: employee clock-in records for one branch."""

from invu_sync.attendance.api import (
    AttendanceResult,
    extract_records,
    fetch_attendance,
    flatten_movements,
    resolve_window,
)

__all__ = [
    "AttendanceResult",
    "extract_records",
    "fetch_attendance",
    "flatten_movements",
    "resolve_window",
]
