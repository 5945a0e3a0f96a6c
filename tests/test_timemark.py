import pytest

from videomixer.timemark import format_timemark, parse_timemark


def test_parse_timemark_full() -> None:
    assert parse_timemark("01:02:03.500000") == pytest.approx(3723.5)


def test_parse_timemark_short_forms() -> None:
    assert parse_timemark("02:03") == pytest.approx(123.0)
    assert parse_timemark("4.25") == pytest.approx(4.25)


def test_parse_timemark_invalid() -> None:
    with pytest.raises(ValueError):
        parse_timemark("")
    with pytest.raises(ValueError):
        parse_timemark("aa:00:01")
    with pytest.raises(ValueError):
        parse_timemark("00:00:xx")


def test_format_timemark() -> None:
    assert format_timemark(0) == "00:00:00.00"
    assert format_timemark(3723.456) == "01:02:03.46"
    assert format_timemark(-5) == "00:00:00.00"
