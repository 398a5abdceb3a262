"""
Business hours sync cadence.

Inside business hours the incremental sync runs every
``business_interval`` minutes, outside them every ``off_hours_interval``
minutes. The scheduler ticks every minute and asks ``should_sync_now``.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from core.config import Settings


@dataclass(frozen=True)
class BusinessHours:
    enabled: bool = True
    timezone: str = "America/Los_Angeles"
    start_hour: int = 9
    end_hour: int = 17
    weekdays_only: bool = True
    business_interval: int = 15
    off_hours_interval: int = 60
    fixed_interval: int = 15

    @classmethod
    def from_settings(cls, settings: Settings) -> "BusinessHours":
        return cls(
            enabled=settings.BUSINESS_HOURS_ENABLED,
            timezone=settings.BUSINESS_HOURS_TIMEZONE,
            start_hour=settings.BUSINESS_HOURS_START,
            end_hour=settings.BUSINESS_HOURS_END,
            weekdays_only=settings.BUSINESS_HOURS_WEEKDAYS_ONLY,
            business_interval=settings.BUSINESS_HOURS_INTERVAL_MINUTES,
            off_hours_interval=settings.OFF_HOURS_INTERVAL_MINUTES,
            fixed_interval=settings.SYNC_INCREMENTAL_INTERVAL_MINUTES,
        )

    def local_time(self, now: Optional[datetime] = None) -> datetime:
        """``now`` in the business timezone. Naive datetimes are taken as UTC."""
        if now is None:
            now = datetime.now(timezone.utc)
        elif now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        return now.astimezone(ZoneInfo(self.timezone))

    def is_business_hours(self, now: Optional[datetime] = None) -> bool:
        if not self.enabled:
            return True

        local = self.local_time(now)
        if self.weekdays_only and local.weekday() >= 5:
            return False
        return self.start_hour <= local.hour < self.end_hour

    def sync_interval(self, now: Optional[datetime] = None) -> int:
        """Minutes between incremental syncs at ``now``."""
        if not self.enabled:
            return self.fixed_interval
        return self.business_interval if self.is_business_hours(now) else self.off_hours_interval

    def should_sync_now(self, now: Optional[datetime] = None) -> bool:
        """True on minutes that fall on the current interval boundary."""
        local = self.local_time(now)
        return local.minute % max(self.sync_interval(now), 1) == 0

    def describe(self, now: Optional[datetime] = None) -> str:
        if not self.enabled:
            return f"Fixed interval: every {self.fixed_interval} minutes"
        if self.is_business_hours(now):
            return (
                f"Business hours mode: every {self.business_interval} minutes "
                f"({self.timezone} {self.start_hour}:00-{self.end_hour}:00)"
            )
        return f"Off-hours mode: every {self.off_hours_interval} minutes"
