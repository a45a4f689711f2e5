"""
Autocomplete sources for towns and streets.

Towns come from the Geoapify Places API (every city, town and village
inside the country's bounding box) and from a free-text Nominatim
search. Streets for a town come from the Geoapify geocoding API. Both
Geoapify lists are paged through and cached per key with a TTL.

Latin-script names are preferred over Cyrillic ones, since dispatchers
type addresses in Latin script.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

import requests

from truckroute.cache import TTLCache
from truckroute.config import Settings, get_settings

logger = logging.getLogger(__name__)

GEOAPIFY_PLACES_URL = "https://api.geoapify.com/v2/places"
GEOAPIFY_GEOCODE_URL = "https://api.geoapify.com/v1/geocode/search"
NOMINATIM_SEARCH_URL = "https://nominatim.openstreetmap.org/search"

PLACE_CATEGORIES = ("populated_place.city", "populated_place.town", "populated_place.village")
COUNTRY_RECT = "rect:18.8,42.2,23.0,46.2"
PLACES_PAGE_LIMIT = 200
PLACES_MAX_RESULTS = 5000
STREETS_PAGE_LIMIT = 100
STREETS_MAX_RESULTS = 2000
TOWN_SEARCH_LIMIT = 20
TOWN_LIKE_TYPES = ("city", "town", "village", "suburb", "hamlet")

CYRILLIC_RE = re.compile(r"[\u0400-\u04FF]")
PLACE_PREFIX_RE = re.compile(
    r"^(Grad|Op\u0161tina|\u0413\u0440\u0430\u0434|\u041e\u043f\u0448\u0442\u0438\u043d\u0430)\s+",
    re.IGNORECASE,
)

LonLat = Tuple[float, float]


class PlacesError(Exception):
    """An autocomplete source could not be fetched."""


@dataclass(frozen=True)
class TownOption:
    name: str
    coordinates: LonLat
    postcode: Optional[str] = None


@dataclass(frozen=True)
class StreetOption:
    address: str
    coordinates: LonLat
    street: Optional[str] = None
    housenumber: Optional[str] = None
    city: Optional[str] = None
    postcode: Optional[str] = None


def pick_latin_value(props: Dict[str, Any], key: str, reject_cyrillic: bool = False) -> Optional[str]:
    """Return the Latin-script variant of ``props[key]`` if there is one."""
    latin = props.get(f"{key}:sr-Latn") or props.get(f"{key}:latin")
    if isinstance(latin, str) and latin.strip():
        return latin.strip()
    fallback = props.get(key)
    if isinstance(fallback, str) and fallback.strip():
        if reject_cyrillic and CYRILLIC_RE.search(fallback):
            return None
        return fallback.strip()
    return None


def _coordinates(props: Dict[str, Any]) -> Optional[LonLat]:
    try:
        lon, lat = float(props["lon"]), float(props["lat"])
    except (KeyError, TypeError, ValueError):
        return None
    if lon != lon or lat != lat:  # NaN
        return None
    return lon, lat


def _is_populated_place(props: Dict[str, Any]) -> bool:
    categories = props.get("categories") or []
    if not categories:
        return bool(props.get("city") or props.get("town") or props.get("village"))
    return any(category in PLACE_CATEGORIES for category in categories)


def extract_place(feature: Dict[str, Any]) -> Optional[TownOption]:
    props = (feature or {}).get("properties") or {}
    if not _is_populated_place(props):
        return None
    raw_name = (
        pick_latin_value(props, "name")
        or pick_latin_value(props, "city")
        or pick_latin_value(props, "town")
        or pick_latin_value(props, "village")
    )
    if not raw_name:
        return None
    coords = _coordinates(props)
    if coords is None:
        return None
    postcode = props.get("postcode")
    return TownOption(
        name=PLACE_PREFIX_RE.sub("", raw_name).strip(),
        coordinates=coords,
        postcode=str(postcode) if postcode else None,
    )


def build_street_list(features: List[Dict[str, Any]]) -> List[StreetOption]:
    seen = set()
    streets: List[StreetOption] = []
    for feature in features:
        props = (feature or {}).get("properties") or {}
        street = pick_latin_value(props, "street", True) or pick_latin_value(props, "name", True)
        if not street:
            continue
        housenumber = props.get("housenumber")
        address = f"{street} {housenumber}" if housenumber else street
        coords = _coordinates(props)
        if coords is None or address in seen:
            continue
        seen.add(address)
        postcode = props.get("postcode")
        streets.append(
            StreetOption(
                address=address,
                coordinates=coords,
                street=street,
                housenumber=str(housenumber) if housenumber else None,
                city=pick_latin_value(props, "city", True)
                or pick_latin_value(props, "town", True)
                or pick_latin_value(props, "village", True),
                postcode=str(postcode) if postcode else None,
            )
        )
    return streets


def extract_town_name(item: Dict[str, Any]) -> Optional[str]:
    address = item.get("address") or {}
    raw = (
        address.get("city")
        or address.get("town")
        or address.get("village")
        or address.get("hamlet")
        or address.get("suburb")
        or item.get("name")
    )
    if not raw and isinstance(item.get("display_name"), str):
        raw = item["display_name"].split(",")[0].strip()
    if not raw:
        return None
    return PLACE_PREFIX_RE.sub("", raw).strip()


def is_town_like(item: Dict[str, Any]) -> bool:
    kind = item.get("type") or item.get("addresstype")
    return item.get("class") == "place" and kind in TOWN_LIKE_TYPES


class PlacesClient:
    """Town and street suggestions for the stop form."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        session: Optional[requests.Session] = None,
        cache: Optional[TTLCache] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.session = session or requests.Session()
        self.cache = cache if cache is not None else TTLCache(self.settings.cache_ttl_s)

    def _get_features(self, url: str, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        try:
            resp = self.session.get(url, params=params, timeout=self.settings.request_timeout_s)
        except requests.RequestException as exc:
            message = str(exc)
            if self.settings.geoapify_api_key:
                message = message.replace(self.settings.geoapify_api_key, "***")
            raise PlacesError(f"Request to {url} failed: {message}") from exc
        if resp.status_code != 200:
            logger.error("Geoapify returned HTTP %s for %s", resp.status_code, url)
            raise PlacesError(f"Geoapify returned HTTP {resp.status_code}")
        try:
            data = resp.json()
        except ValueError as exc:
            raise PlacesError("Geoapify returned a response that is not JSON") from exc
        features = data.get("features") if isinstance(data, dict) else None
        return features if isinstance(features, list) else []

    def list_towns(self) -> List[TownOption]:
        """Every populated place in the country, sorted by name."""
        cached = self.cache.get("places", "all")
        if cached is not None:
            return cached
        api_key = self.settings.require_geoapify_key()

        towns: List[TownOption] = []
        seen = set()
        offset = 0
        while offset < PLACES_MAX_RESULTS:
            params = {
                "categories": ",".join(PLACE_CATEGORIES),
                "filter": COUNTRY_RECT,
                "limit": PLACES_PAGE_LIMIT,
                "offset": offset,
                "lang": self.settings.country_code,
                "apiKey": api_key,
            }
            logger.debug("Fetching places page at offset %d", offset)
            features = self._get_features(GEOAPIFY_PLACES_URL, params)
            for feature in features:
                place = extract_place(feature)
                if place is None:
                    continue
                if place.postcode:
                    key = f"postcode:{place.postcode}"
                else:
                    key = f"{place.name}:{place.coordinates[0]},{place.coordinates[1]}"
                if key in seen:
                    continue
                seen.add(key)
                towns.append(place)
            if len(features) < PLACES_PAGE_LIMIT:
                break
            offset += PLACES_PAGE_LIMIT

        towns.sort(key=lambda town: town.name.casefold())
        self.cache.set("places", "all", towns)
        logger.info("Loaded %d towns", len(towns))
        return towns

    def list_streets(self, town: str) -> List[StreetOption]:
        """Streets (and house numbers where known) inside ``town``."""
        town = town.strip()
        if not town:
            raise ValueError("Town is required")
        cache_key = town.lower()
        cached = self.cache.get("streets", cache_key)
        if cached is not None:
            return cached
        api_key = self.settings.require_geoapify_key()

        features: List[Dict[str, Any]] = []
        offset = 0
        while offset < STREETS_MAX_RESULTS:
            params = {
                "city": town,
                "type": "street",
                "limit": STREETS_PAGE_LIMIT,
                "offset": offset,
                "lang": self.settings.country_code,
                "apiKey": api_key,
                "filter": f"countrycode:{self.settings.country_code}",
            }
            page = self._get_features(GEOAPIFY_GEOCODE_URL, params)
            features.extend(page)
            if len(page) < STREETS_PAGE_LIMIT:
                break
            offset += STREETS_PAGE_LIMIT

        streets = build_street_list(features)
        self.cache.set("streets", cache_key, streets)
        logger.info("Loaded %d streets for %s", len(streets), town)
        return streets

    def search_towns(self, query: str) -> List[str]:
        """Free-text town name search; fewer than two characters yields nothing."""
        query = query.strip()
        if len(query) < 2:
            return []
        params = {
            "q": query,
            "format": "jsonv2",
            "addressdetails": "1",
            "countrycodes": self.settings.country_code,
            "limit": str(TOWN_SEARCH_LIMIT),
            "accept-language": "sr-Latn",
        }
        try:
            resp = self.session.get(
                NOMINATIM_SEARCH_URL,
                params=params,
                headers={"User-Agent": self.settings.user_agent},
                timeout=self.settings.request_timeout_s,
            )
        except requests.RequestException as exc:
            raise PlacesError(f"Town search failed: {exc}") from exc
        if resp.status_code != 200:
            raise PlacesError(f"Nominatim returned HTTP {resp.status_code}")
        try:
            data = resp.json()
        except ValueError as exc:
            raise PlacesError("Nominatim returned a response that is not JSON") from exc

        towns: List[str] = []
        for item in data if isinstance(data, list) else []:
            if not is_town_like(item):
                continue
            name = extract_town_name(item)
            if name and name not in towns:
                towns.append(name)
        return towns


def find_town(towns: List[TownOption], name: str) -> Optional[TownOption]:
    """Case-insensitive lookup of a town option by name."""
    wanted = name.strip().lower()
    for town in towns:
        if town.name.strip().lower() == wanted:
            return town
    return None
