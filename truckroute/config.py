"""
Configuration for the truck route planner.

Settings are read from the process environment. A local ``.env`` file
is honoured through ``python-dotenv`` so that API keys do not need to
be exported by hand during development.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Tuple

from dotenv import load_dotenv

load_dotenv()

DEFAULT_OSRM_BASE_URL = "https://router.project-osrm.org"
DEFAULT_OSRM_PROFILE = "driving"
DEFAULT_USER_AGENT = "truck-route-calculator"

STARTING_POINT_ID = "starting-point"
STARTING_POINT_LABEL = "Starting point"
STARTING_POINT_TOWN = "Kanjiža"
STARTING_POINT_ADDRESS = "Put narodnih heroja 17, Kanjiža"
# (longitude, latitude)
STARTING_POINT_COORDINATES: Tuple[float, float] = (20.0597, 46.0697)


class ConfigurationError(ValueError):
    """Raised when a mandatory setting is missing."""


def _normalize_base_url(value: str) -> str:
    return value.rstrip("/")


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}")


@dataclass(frozen=True)
class Settings:
    osrm_base_url: str = DEFAULT_OSRM_BASE_URL
    osrm_profile: str = DEFAULT_OSRM_PROFILE
    geoapify_api_key: str = ""
    user_agent: str = DEFAULT_USER_AGENT
    country_code: str = "rs"
    country_name: str = "Serbia"
    import_delay_s: float = 0.3
    request_timeout_s: float = 10.0
    cache_ttl_s: float = 12 * 60 * 60

    def require_geoapify_key(self) -> str:
        if not self.geoapify_api_key:
            raise ConfigurationError("Missing GEOAPIFY_API_KEY")
        return self.geoapify_api_key


def get_settings() -> Settings:
    """Build settings from the environment (and ``.env`` if present)."""
    return Settings(
        osrm_base_url=_normalize_base_url(os.getenv("OSRM_BASE_URL") or DEFAULT_OSRM_BASE_URL),
        osrm_profile=os.getenv("OSRM_PROFILE") or DEFAULT_OSRM_PROFILE,
        geoapify_api_key=os.getenv("GEOAPIFY_API_KEY", ""),
        user_agent=os.getenv("NOMINATIM_USER_AGENT") or DEFAULT_USER_AGENT,
        country_code=os.getenv("GEOCODE_COUNTRY_CODE") or "rs",
        country_name=os.getenv("GEOCODE_COUNTRY_NAME") or "Serbia",
        import_delay_s=_float_env("IMPORT_DELAY_SECONDS", 0.3),
        request_timeout_s=_float_env("REQUEST_TIMEOUT_SECONDS", 10.0),
        cache_ttl_s=_float_env("CACHE_TTL_SECONDS", 12 * 60 * 60),
    )
