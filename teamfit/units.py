METERS_PER_MILE = 1609.344
METERS_PER_KM = 1000.0

DISTANCE_UNITS = {
    "mi": METERS_PER_MILE,
    "mile": METERS_PER_MILE,
    "miles": METERS_PER_MILE,
    "km": METERS_PER_KM,
    "kilometer": METERS_PER_KM,
    "kilometers": METERS_PER_KM,
    "m": 1.0,
    "meter": 1.0,
    "meters": 1.0,
}

def normalize_target(metric_type: str, value: float | None, unit: str | None) -> tuple[float | None, str | None]:
    """
    Distance targets are stored in meters whatever the admin typed.
    Other metrics pass through unchanged.
    """
    if value is None or metric_type != "distance":
        return value, unit
    factor = DISTANCE_UNITS.get((unit or "miles").strip().lower())
    if factor is None:
        raise ValueError(f"unknown distance unit: {unit}")
    return value * factor, "meters"
