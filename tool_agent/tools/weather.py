"""
OpenWeatherMap forecast tool.

Queries the 5-day / 3-hour forecast API and condenses it into one line per
day with average, minimum and maximum temperature.
"""

import functools
import logging
import math
import re
from collections import OrderedDict
from typing import Optional

from pydantic import Field

from ..config import ToolConfig
from ..errors import ToolRuntimeFailure
from .http import http_get
from .registry import ToolInput, ToolSpec

logger = logging.getLogger(__name__)

# The forecast API returns one entry every 3 hours, 40 at most.
INTERVALS_PER_DAY = 8
MAX_INTERVALS = 40


class WeatherInput(ToolInput):
    city: str = Field(min_length=1, description="The name of the city to get the weather for.")
    country: Optional[str] = Field(
        default=None, description="The country code of the city (optional)."
    )
    days: int = Field(
        default=3, ge=1, le=5, description="Number of days for the forecast (1-5 days, default is 3)."
    )


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def clean_api_key(api_key: str) -> str:
    """Strip quotes and semicolons that sneak in from hand-written .env files."""
    return re.sub(r"[\"';]", "", api_key).strip()


def summarize_forecast(entries: list[dict], days: int) -> list[str]:
    """
    Group 3-hour forecast entries by date.

    Args:
        entries: The ``list`` field of the forecast payload.
        days: Number of days to keep, earliest first.

    Returns:
        One formatted line per day.
    """
    by_day: dict[str, dict] = OrderedDict()
    for item in entries:
        date = item["dt_txt"].split(" ")[0]
        main = item["main"]
        day = by_day.setdefault(
            date,
            {
                "temps": [],
                "descriptions": [],
                "min": main["temp_min"],
                "max": main["temp_max"],
            },
        )
        day["temps"].append(main["temp"])
        if item.get("weather"):
            day["descriptions"].append(item["weather"][0]["description"])
        day["min"] = min(day["min"], main["temp_min"])
        day["max"] = max(day["max"], main["temp_max"])

    lines = []
    for date in sorted(by_day)[:days]:
        day = by_day[date]
        avg = _round_half_up(sum(day["temps"]) / len(day["temps"]))
        low = _round_half_up(day["min"])
        high = _round_half_up(day["max"])
        desc = day["descriptions"][0] if day["descriptions"] else "No description"
        lines.append(f"📅 {date} - 🌡️ {avg}°C ({low}°C-{high}°C), 🌥️ {desc}")
    return lines


async def get_forecast(args: WeatherInput, config: ToolConfig) -> str:
    """Fetch and summarize the forecast for a city."""
    if not config.openweathermap_api_key:
        raise ToolRuntimeFailure("OPENWEATHERMAP_API_KEY is not set")
    api_key = clean_api_key(config.openweathermap_api_key)

    location = f"{args.city},{args.country}" if args.country else args.city
    params = {
        "q": location,
        "appid": api_key,
        "units": "metric",
        "cnt": str(min(args.days * INTERVALS_PER_DAY, MAX_INTERVALS)),
    }

    response = await http_get(
        f"{config.openweathermap_base_url}/forecast",
        params=params,
        timeout=config.http_timeout,
    )
    if response.status_code == 404:
        where = f"{args.city}, {args.country}" if args.country else args.city
        raise ToolRuntimeFailure(
            f"Sorry, I couldn't find weather data for {where}. "
            "Please check the city name and try again."
        )
    if response.status_code == 401:
        raise ToolRuntimeFailure("API key error. Please check your OpenWeatherMap API key.")
    if not response.is_success:
        raise ToolRuntimeFailure(f"OpenWeatherMap API error! status: {response.status_code}")

    data = response.json()
    entries = data.get("list") or []
    if not entries:
        logger.info(f"No forecast entries returned for {location}")
        return f"No weather data available for {args.city}."
    logger.debug(f"Found {len(entries)} forecast intervals for {location}")

    city = data.get("city")
    location_name = f"{city['name']}, {city['country']}" if city else location
    lines = summarize_forecast(entries, args.days)
    header = f"🌤️ Weather forecast for {location_name} (next {args.days} days):"
    return "\n".join([header, *lines])


def create_weather_tools(config: ToolConfig) -> list[ToolSpec]:
    return [
        ToolSpec(
            name="openWeatherMap",
            description=(
                "Retrieves weather forecasts for a given city with temperature "
                "ranges and conditions."
            ),
            input_model=WeatherInput,
            implementation=functools.partial(get_forecast, config=config),
        )
    ]
