"""WMO weather code translation."""

import json
from dataclasses import dataclass
from functools import lru_cache
from importlib import resources

UNKNOWN_CONDITION = "Unknown"
UNKNOWN_ICON = "mdi-weather-alert"
DEFAULT_WEATHER_TYPE = "default"

WEATHER_TYPES = frozenset({"sunny", "cloudy", "rainy", "snowy", "stormy", DEFAULT_WEATHER_TYPE})


@dataclass(frozen=True)
class WeatherDetails:
    """Human-readable description of a weather code."""

    condition: str
    icon: str
    weather_type: str


@dataclass(frozen=True)
class _CodeMapping:
    condition: str
    day_icon: str
    night_icon: str
    weather_type: str


@lru_cache
def load_code_table() -> dict[int, _CodeMapping]:
    """Load the WMO code table shipped with the package."""
    raw = json.loads(
        resources.files("weather_dashboard.data").joinpath("wmo_codes.json").read_text("utf-8")
    )
    return {
        int(code): _CodeMapping(
            condition=entry["condition"],
            day_icon=entry["day"],
            night_icon=entry["night"],
            weather_type=entry["weather_type"],
        )
        for code, entry in raw.items()
    }


def translate(code: int, is_day: bool) -> WeatherDetails:
    """Map a WMO weather code to condition text, icon and weather type.

    Codes missing from the table resolve to an "Unknown" condition with the
    alert icon instead of raising.
    """
    mapping = load_code_table().get(code)
    if mapping is None:
        return WeatherDetails(UNKNOWN_CONDITION, UNKNOWN_ICON, DEFAULT_WEATHER_TYPE)
    return WeatherDetails(
        condition=mapping.condition,
        icon=mapping.day_icon if is_day else mapping.night_icon,
        weather_type=mapping.weather_type,
    )
