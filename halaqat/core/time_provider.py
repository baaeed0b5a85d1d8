from __future__ import annotations

from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

from halaqat.config import settings


APP_TIMEZONE = settings.app_timezone or "Asia/Riyadh"
APP_ZONEINFO = ZoneInfo(APP_TIMEZONE)


class TimeProvider:
    def now(self) -> datetime:
        return datetime.now(APP_ZONEINFO)

    def today(self) -> date:
        return self.now().date()

    def utcnow(self) -> datetime:
        # Naive UTC, matching what DateTime columns store and return.
        return self.now().astimezone(timezone.utc).replace(tzinfo=None)


default_time_provider = TimeProvider()
