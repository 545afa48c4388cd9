"""
Unit Tests - Date Dimension Calendar
"""
from datetime import date, datetime

import pytest

from erp_etl.warehouse.calendar import date_attributes, date_key_for


class TestCalendar:
    """Tests for date keys and date attributes"""

    @pytest.mark.parametrize("value,expected", [
        (date(2024, 3, 1), 20240301),
        (date(1999, 12, 31), 19991231),
        (datetime(2024, 1, 5, 23, 59), 20240105),
    ])
    def test_date_key(self, value, expected):
        assert date_key_for(value) == expected

    def test_weekday_attributes(self):
        attrs = date_attributes(date(2024, 3, 1))  # Friday

        assert attrs["date_key"] == 20240301
        assert attrs["day_of_week"] == 5
        assert attrs["day_name"] == "Friday"
        assert attrs["month_name"] == "March"
        assert attrs["quarter"] == 1
        assert attrs["day_of_year"] == 61
        assert attrs["is_weekend"] is False

    def test_sunday_is_last_iso_day(self):
        attrs = date_attributes(date(2024, 3, 3))

        assert attrs["day_of_week"] == 7
        assert attrs["is_weekend"] is True

    def test_iso_week_crosses_year(self):
        attrs = date_attributes(date(2021, 1, 1))

        assert attrs["week_of_year"] == 53
        assert attrs["year"] == 2021

    def test_datetime_is_truncated(self):
        attrs = date_attributes(datetime(2024, 12, 31, 18, 0))

        assert attrs["full_date"] == date(2024, 12, 31)
        assert attrs["quarter"] == 4
