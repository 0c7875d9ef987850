"""Recurring job scheduling."""

from verification_service.scheduling.scheduler import CronScheduler, Scheduler, next_fire_time

__all__ = ["CronScheduler", "Scheduler", "next_fire_time"]
