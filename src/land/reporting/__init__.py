"""Structured event logging."""

from __future__ import annotations

__all__ = ["EventLog", "log_event", "null_log"]

from land.reporting.logging import EventLog, log_event, null_log
