"""Tabular exports of schedules and balances."""

from .export import balances_frame, export_csv, export_json, schedule_frame, vesting_history

__all__ = [
    "balances_frame",
    "export_csv",
    "export_json",
    "schedule_frame",
    "vesting_history",
]
