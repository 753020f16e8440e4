"""Speed and time derivations for options and tolls."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero (2.5 -> 3)."""

    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def calculate_avg_speed(distance_km: float, typical_time_min: float) -> float:
    """Average speed in km/h for ``distance_km`` covered in ``typical_time_min``."""

    return float(round_half_up(distance_km / typical_time_min * 60))


def calculate_pass_time(distance: float | None, avg_speed_kmh: float | None) -> int | None:
    """Minutes needed to reach a toll ``distance`` km away, or None if unknown."""

    if distance is None or not avg_speed_kmh or avg_speed_kmh <= 0:
        return None
    return round_half_up(distance * 60 / avg_speed_kmh)
