"""
Calendar helpers for the date dimension.

Date keys are integers in YYYYMMDD form; weekdays follow ISO numbering
(Monday = 1 ... Sunday = 7).
"""

import calendar
from datetime import date, datetime
from typing import Any, Dict, Union


def date_key_for(value: Union[date, datetime]) -> int:
    """Surrogate key of a calendar day, e.g. 2024-03-01 -> 20240301"""
    return value.year * 10000 + value.month * 100 + value.day


def date_attributes(value: Union[date, datetime]) -> Dict[str, Any]:
    """
    Build the full date-dimension row for a calendar day.

    Args:
        value: Business date (a datetime is truncated to its day)

    Returns:
        Column values for DimDate
    """
    if isinstance(value, datetime):
        value = value.date()

    iso = value.isocalendar()
    return {
        "date_key": date_key_for(value),
        "full_date": value,
        "day_of_week": iso[2],
        "day_name": calendar.day_name[value.weekday()],
        "day_of_month": value.day,
        "day_of_year": value.timetuple().tm_yday,
        "week_of_year": iso[1],
        "month": value.month,
        "month_name": calendar.month_name[value.month],
        "quarter": (value.month - 1) // 3 + 1,
        "year": value.year,
        "is_weekend": iso[2] >= 6,
    }
