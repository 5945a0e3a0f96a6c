from __future__ import annotations

from decimal import Decimal, InvalidOperation


def parse_timemark(token: str) -> float:
    """Parse an ffmpeg time marker such as ``00:01:02.345678`` into seconds."""
    token = token.strip()
    if not token:
        raise ValueError("Empty time marker")
    sign = 1.0
    if token.startswith("-"):
        sign = -1.0
        token = token[1:]

    parts = token.split(":")
    if len(parts) == 3:
        hours_text, minutes_text, seconds_text = parts
    elif len(parts) == 2:
        hours_text = "0"
        minutes_text, seconds_text = parts
    elif len(parts) == 1:
        hours_text = minutes_text = "0"
        seconds_text = parts[0]
    else:
        raise ValueError(f"Invalid time marker: {token}")

    if not (hours_text.isdigit() and minutes_text.isdigit()):
        raise ValueError(f"Invalid time marker: {token}")
    seconds_val = _parse_decimal_seconds(seconds_text)
    return sign * (int(hours_text) * 3600 + int(minutes_text) * 60 + seconds_val)


def format_timemark(seconds: float) -> str:
    if seconds != seconds or seconds < 0:
        seconds = 0.0
    centis = int(round(seconds * 100))
    hours, rem = divmod(centis, 360000)
    minutes, rem = divmod(rem, 6000)
    secs, centis = divmod(rem, 100)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}.{centis:02d}"


def _parse_decimal_seconds(value: str) -> float:
    try:
        return float(Decimal(value))
    except (InvalidOperation, ValueError) as exc:
        raise ValueError(f"Invalid time marker: {value}") from exc
