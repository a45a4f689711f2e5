"""
Distance aggregation for a planned route.

Each stop stores the road distance from the stop before it. This
module fills those leg distances in through the router, one leg at a
time, and adds them up. A leg whose router call fails is left empty
and the rest of the route is still measured, so the total becomes a
lower bound and the summary is flagged as partial.

The whole-route request used for the map is separate: it returns the
path geometry and totals for the located stops, or reports that no
route exists. That condition is never folded into a zero distance.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from truckroute.routing import NoRouteError, OSRMRouter, RouteGeometry, RoutingError, haversine_distance
from truckroute.stops import LonLat, Stop, StopStore

logger = logging.getLogger(__name__)

LEG_OK = "ok"
LEG_FAILED = "failed"
LEG_SKIPPED = "skipped"  # one of the two ends has no coordinates
LEG_ESTIMATED = "estimated"  # straight-line fallback after a router failure


@dataclass(frozen=True)
class LegResult:
    stop_id: str
    status: str
    distance_km: Optional[float] = None
    duration_min: Optional[float] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class RouteSummary:
    total_distance_km: float
    legs: List[LegResult] = field(default_factory=list)

    @property
    def partial(self) -> bool:
        """True when at least one leg is missing or only estimated."""
        return any(leg.status != LEG_OK for leg in self.legs)

    @property
    def total_duration_min(self) -> Optional[float]:
        durations = [leg.duration_min for leg in self.legs if leg.duration_min is not None]
        return sum(durations) if durations else None


@dataclass(frozen=True)
class RouteOverview:
    """Result of a whole-route request.

    ``found`` is False either when there are fewer than two located
    points (``error`` is None) or when the router reported no route.
    """

    found: bool
    waypoints: List[LonLat] = field(default_factory=list)
    geometry: Optional[RouteGeometry] = None
    error: Optional[str] = None

    @property
    def distance_km(self) -> Optional[float]:
        return self.geometry.distance_km if self.geometry else None

    @property
    def duration_min(self) -> Optional[float]:
        return self.geometry.duration_min if self.geometry else None


def total_distance(stops: Sequence[Stop]) -> float:
    """Sum of the stored leg distances; a missing leg counts as zero."""
    return sum(stop.distance_from_previous or 0.0 for stop in stops if not stop.is_starting_point)


def measure_leg(
    router: OSRMRouter,
    previous: Stop,
    stop: Stop,
    fallback: Optional[str] = None,
) -> LegResult:
    """Measure the leg from ``previous`` to ``stop`` without raising."""
    if not (previous.has_coordinates and stop.has_coordinates):
        return LegResult(stop.id, LEG_SKIPPED)
    try:
        leg = router.compute_leg(previous.coordinates, stop.coordinates)
    except RoutingError as exc:
        logger.warning("Leg %s -> %s failed: %s", previous.buyer, stop.buyer, exc)
        if fallback == "haversine":
            estimate = haversine_distance(previous.coordinates, stop.coordinates)
            return LegResult(stop.id, LEG_ESTIMATED, distance_km=estimate, error=str(exc))
        return LegResult(stop.id, LEG_FAILED, error=str(exc))
    return LegResult(stop.id, LEG_OK, distance_km=leg.distance_km, duration_min=leg.duration_min)


def recompute_leg_distances(
    store: StopStore,
    router: OSRMRouter,
    fallback: Optional[str] = None,
) -> RouteSummary:
    """Measure every leg of the current route and store the distances.

    The first stop is measured from the starting point. Legs that cannot
    be measured keep no distance.

    Args:
        store: Route to measure; leg distances are written back to it.
        router: Leg distance provider.
        fallback: ``"haversine"`` to store a straight-line estimate for
            legs the router fails on. ``None`` leaves them empty.

    Returns:
        Per-leg results and the aggregated total distance.
    """
    if fallback not in (None, "haversine"):
        raise ValueError(f"Unknown distance fallback: {fallback!r}")
    legs: List[LegResult] = []
    route = store.route()
    for previous, stop in zip(route, route[1:]):
        result = measure_leg(router, previous, stop, fallback)
        store.set_distance(stop.id, result.distance_km)
        legs.append(result)

    summary = RouteSummary(total_distance_km=total_distance(store.stops()), legs=legs)
    logger.info(
        "Route distance %.1f km over %d legs%s",
        summary.total_distance_km,
        len(legs),
        " (partial)" if summary.partial else "",
    )
    return summary


def route_overview(stops: Sequence[Stop], router: OSRMRouter) -> RouteOverview:
    """Request the drivable path through every located stop in order."""
    waypoints = [stop.coordinates for stop in stops if stop.has_coordinates]
    if len(waypoints) < 2:
        return RouteOverview(found=False, waypoints=waypoints)
    try:
        geometry = router.compute_route(waypoints)
    except NoRouteError as exc:
        logger.warning("No route found through %d waypoints: %s", len(waypoints), exc)
        return RouteOverview(found=False, waypoints=waypoints, error=f"No route found: {exc}")
    except RoutingError as exc:
        logger.error("Route calculation failed: %s", exc)
        return RouteOverview(found=False, waypoints=waypoints, error=str(exc))
    return RouteOverview(found=True, waypoints=waypoints, geometry=geometry)
