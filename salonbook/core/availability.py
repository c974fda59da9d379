from datetime import date

import holidays

from ..config import settings


def weekday_index(day: date) -> int:
    """Weekday number used by stored schedules: 0 = Sunday ... 6 = Saturday."""
    return (day.weekday() + 1) % 7


class HolidayCalendar:
    def __init__(self, country: str = "", subdiv: str = ""):
        self.country = (country or "").strip().upper()
        self.subdiv = (subdiv or "").strip().upper() or None
        self._holidays = None
        if self.country:
            self._holidays = holidays.country_holidays(self.country, subdiv=self.subdiv)

    def is_holiday(self, check_date: date) -> bool:
        if self._holidays is None:
            return False
        return check_date in self._holidays

    def name_of(self, check_date: date) -> str | None:
        if self._holidays is None:
            return None
        return self._holidays.get(check_date)


def get_holiday_calendar() -> HolidayCalendar:
    return HolidayCalendar(settings.HOLIDAYS_COUNTRY, settings.HOLIDAYS_SUBDIV)
