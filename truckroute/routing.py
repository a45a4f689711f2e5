"""
Routing utilities for the truck route planner.

This module provides the great-circle (Haversine) distance used by the
route optimiser and a thin client for an OSRM (Open Source Routing
Machine) server. The client offers two operations:

    - ``compute_leg``: distance and duration between two points.
    - ``compute_route``: totals and GeoJSON geometry for a whole
      ordered list of waypoints, used for display.

Example usage:

    router = OSRMRouter()
    leg = router.compute_leg((20.0597, 46.0697), (20.10, 46.08))
    print(leg.distance_km, leg.duration_min)

Coordinates are ``(longitude, latitude)`` tuples, which is also the
order OSRM expects in its URLs. The public demo server is rate limited;
point ``OSRM_BASE_URL`` at your own instance in production.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

import requests

from truckroute.config import Settings, get_settings

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371.0

LonLat = Tuple[float, float]


class RoutingError(Exception):
    """The routing service could not be reached or answered with an error."""


class NoRouteError(RoutingError):
    """The routing service answered, but found no route between the points."""


@dataclass(frozen=True)
class Leg:
    distance_km: float
    duration_min: float


@dataclass(frozen=True)
class RouteGeometry:
    distance_km: float
    duration_min: float
    path: List[LonLat] = field(default_factory=list)


def haversine_distance(coord1: LonLat, coord2: LonLat) -> float:
    """Compute the great-circle distance between two coordinates in kilometers."""
    lon1, lat1 = coord1
    lon2, lat2 = coord2
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)
    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def extract_path(geometry: Optional[Dict[str, Any]]) -> List[LonLat]:
    """Flatten a GeoJSON LineString or MultiLineString into a list of points."""
    if not isinstance(geometry, dict) or not geometry.get("coordinates"):
        return []
    kind = geometry.get("type")
    if kind == "LineString":
        return [(float(lon), float(lat)) for lon, lat in geometry["coordinates"]]
    if kind == "MultiLineString":
        return [(float(lon), float(lat)) for line in geometry["coordinates"] for lon, lat in line]
    return []


class OSRMRouter:
    """Client for the OSRM ``/route`` service."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.session = session or requests.Session()

    @staticmethod
    def format_coordinates(coords: Sequence[LonLat]) -> str:
        """Convert ``(lon, lat)`` pairs to OSRM's ``lon,lat;lon,lat`` form."""
        return ";".join(f"{lon},{lat}" for lon, lat in coords)

    def _route(self, coords: Sequence[LonLat], overview: str) -> Dict[str, Any]:
        if len(coords) < 2:
            raise ValueError("At least two coordinates are required to compute a route.")
        url = (
            f"{self.settings.osrm_base_url}/route/v1/{self.settings.osrm_profile}/"
            f"{self.format_coordinates(coords)}"
        )
        params = {"overview": overview, "alternatives": "false"}
        if overview != "false":
            params["geometries"] = "geojson"
        logger.debug("Requesting OSRM route for %d waypoints", len(coords))
        try:
            resp = self.session.get(url, params=params, timeout=self.settings.request_timeout_s)
        except requests.RequestException as exc:
            raise RoutingError(f"OSRM request failed: {exc}") from exc
        try:
            data = resp.json()
        except ValueError:
            raise RoutingError(f"OSRM returned HTTP {resp.status_code} without JSON")
        if not isinstance(data, dict):
            raise RoutingError(f"OSRM returned an unexpected payload: {type(data).__name__}")
        code = data.get("code")
        if code in ("NoRoute", "NoSegment"):
            raise NoRouteError(data.get("message") or code)
        if resp.status_code != 200 or code != "Ok":
            raise RoutingError(f"OSRM error: {data.get('message', code or resp.status_code)}")
        routes = data.get("routes") or []
        if not isinstance(routes, list):
            raise RoutingError("OSRM returned routes in an unexpected format")
        if not routes:
            raise NoRouteError("OSRM returned no routes")
        route = routes[0]
        if not isinstance(route, dict) or not all(
            _is_number(route.get(name)) for name in ("distance", "duration")
        ):
            raise RoutingError("OSRM route is missing its distance or duration")
        return route

    def compute_leg(self, origin: LonLat, destination: LonLat) -> Leg:
        """Distance (km) and duration (min) for a single leg."""
        route = self._route([origin, destination], overview="false")
        # OSRM reports metres and seconds
        return Leg(distance_km=route["distance"] / 1000.0, duration_min=route["duration"] / 60.0)

    def compute_route(self, waypoints: Sequence[LonLat]) -> RouteGeometry:
        """Totals and path geometry through ``waypoints`` in the given order."""
        route = self._route(waypoints, overview="full")
        path = extract_path(route.get("geometry"))
        if not path:
            raise NoRouteError("OSRM route has no geometry")
        return RouteGeometry(
            distance_km=route["distance"] / 1000.0,
            duration_min=route["duration"] / 60.0,
            path=path,
        )
