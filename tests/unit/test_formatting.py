from datetime import timezone

import pytest

from tracktimer.tools.formatting import format_date, format_distance, format_elapsed, format_speed


@pytest.mark.parametrize(
    ("ms", "expected"),
    [
        (0, "00:00:00"),
        (999, "00:00:00"),
        (1000, "00:00:01"),
        (61_500, "00:01:01"),
        (3_600_000, "01:00:00"),
        (3_600_000 * 27 + 59_999, "27:00:59"),
        (-500, "00:00:00"),
    ],
)
def test_format_elapsed(ms, expected):
    assert format_elapsed(ms) == expected


def test_format_distance_meters():
    assert format_distance(0) == "0 m"
    assert format_distance(450.4) == "450 m"


def test_format_distance_kilometers():
    assert format_distance(1000) == "1.00 km"
    assert format_distance(111_194.9) == "111.19 km"


def test_format_speed():
    assert format_speed(0) == "0.0 km/h"
    assert format_speed(45.26) == "45.3 km/h"
    assert format_speed(200_150.9) == "200150.9 km/h"


def test_format_date_utc():
    # 2024-03-05 14:30:00 UTC
    assert format_date(1_709_649_000_000, tz=timezone.utc) == "Mar 05, 2024 14:30"
