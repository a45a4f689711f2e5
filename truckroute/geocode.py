"""
Geocoding utilities for the truck route planner.

This module wraps the `geopy` library to turn free-form delivery
addresses into coordinates using OpenStreetMap's Nominatim service.
Each lookup tries two strategies and returns the first hit:

    1. the text as entered, restricted to the configured country;
    2. the text with the country name appended and no country filter.

A stop is resolved from its street address first and falls back to the
centroid of its town when the street cannot be found. Results are kept
in an injected :class:`~truckroute.cache.TTLCache` so repeated imports
do not hammer the public service.

Example usage:

    from truckroute.geocode import Geocoder
    coords = Geocoder().geocode("Put narodnih heroja 17, Kanjiža")

All functions return ``(longitude, latitude)`` or ``None``.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Optional, Tuple

from geopy.exc import GeocoderServiceError, GeocoderTimedOut
from geopy.geocoders import Nominatim

from truckroute.cache import TTLCache
from truckroute.config import Settings, get_settings

logger = logging.getLogger(__name__)

LonLat = Tuple[float, float]

PHONE_TOKEN_RE = re.compile(r"\+?\b\d[\d\s/-]{6,}\b")
ADDRESS_LETTER_RE = re.compile(r"[A-Za-z\u00C0-\u024F\u0400-\u04FF]")


class GeocodingError(Exception):
    """A geocoding service call failed (as opposed to finding nothing)."""


def sanitize_address(raw: str) -> str:
    """Strip phone numbers and letterless fragments from an address.

    Spreadsheet exports often carry a phone number or a bare postcode in
    the address cell. Comma-separated parts without a single letter are
    dropped; if nothing is left the trimmed input is returned.
    """
    if not raw:
        return ""
    without_phones = re.sub(r"\s+", " ", PHONE_TOKEN_RE.sub(" ", raw)).strip()
    parts = [part.strip() for part in without_phones.split(",") if part.strip()]
    kept = [part for part in parts if ADDRESS_LETTER_RE.search(part)]
    return ", ".join(kept) if kept else raw.strip()


def is_null_island(coords: Optional[LonLat]) -> bool:
    return coords is not None and coords[0] == 0 and coords[1] == 0


@dataclass(frozen=True)
class Resolution:
    """Outcome of resolving a stop: coordinates and how they were found."""

    coordinates: Optional[LonLat]
    source: Optional[str]  # "address", "town" or None

    @property
    def found(self) -> bool:
        return self.coordinates is not None


class Geocoder:
    def __init__(
        self,
        settings: Optional[Settings] = None,
        geocoder: Optional[Any] = None,
        cache: Optional[TTLCache] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self._geocoder = geocoder
        self.cache = cache if cache is not None else TTLCache(self.settings.cache_ttl_s)

    def _get_geocoder(self) -> Any:
        """Return the geopy geocoder, creating a Nominatim client on first use."""
        if self._geocoder is None:
            # Nominatim's usage policy requires an identifying user agent.
            self._geocoder = Nominatim(user_agent=self.settings.user_agent)
        return self._geocoder

    def _lookup(self, query: str, country_codes: Optional[str]) -> Optional[LonLat]:
        geocoder = self._get_geocoder()
        kwargs = {"country_codes": country_codes} if country_codes else {}
        timeout = self.settings.request_timeout_s
        try:
            location = geocoder.geocode(query, timeout=timeout, **kwargs)
        except GeocoderTimedOut:
            # retry once with a longer timeout
            try:
                location = geocoder.geocode(query, timeout=timeout * 2, **kwargs)
            except GeocoderServiceError as exc:
                raise GeocodingError(str(exc)) from exc
        except GeocoderServiceError as exc:
            raise GeocodingError(str(exc)) from exc
        if not location:
            return None
        return float(location.longitude), float(location.latitude)

    def geocode(self, text: str) -> Optional[LonLat]:
        """Resolve free text to coordinates, or ``None`` when not found.

        A ``(0, 0)`` answer is treated as not found. Service errors in
        one strategy are logged and the next strategy is tried.
        """
        text = text.strip()
        if not text:
            return None
        cached = self.cache.get("geocode", text.lower())
        if cached is not None:
            return cached

        strategies = [
            (text, self.settings.country_code),
            (f"{text}, {self.settings.country_name}", None),
        ]
        for number, (query, country_codes) in enumerate(strategies, start=1):
            logger.debug("Geocoding strategy %d: %s", number, query)
            try:
                coords = self._lookup(query, country_codes)
            except GeocodingError as exc:
                logger.warning("Geocoding strategy %d failed for %r: %s", number, query, exc)
                continue
            if coords is None or is_null_island(coords):
                continue
            self.cache.set("geocode", text.lower(), coords)
            return coords
        logger.info("Address not found: %s", text)
        return None

    def geocode_town_centroid(self, town: str) -> Optional[LonLat]:
        town = town.strip()
        if not town:
            return None
        return self.geocode(f"{town}, {self.settings.country_name}")

    def resolve(self, address: str, town: str) -> Resolution:
        """Resolve a stop from its street address, falling back to its town."""
        street = sanitize_address(address)
        if street:
            coords = self.geocode(f"{street}, {town}, {self.settings.country_name}")
            if coords is not None:
                return Resolution(coords, "address")
        logger.info("Falling back to town geocode: %s", town)
        coords = self.geocode_town_centroid(town)
        if coords is not None:
            return Resolution(coords, "town")
        return Resolution(None, None)
