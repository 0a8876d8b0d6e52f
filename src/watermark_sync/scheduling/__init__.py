"""Cycle scheduling."""

from watermark_sync.scheduling.cycle_scheduler import CycleScheduler, parse_schedule

__all__ = ["CycleScheduler", "parse_schedule"]
