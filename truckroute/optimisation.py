"""
Route optimisation heuristics for the truck route planner.

This module orders a batch of delivery stops into a short (but not
necessarily shortest) visiting sequence that starts at the depot:

    - ``nearest_neighbor``: repeatedly visit the closest unvisited stop,
      measured with the Haversine great-circle distance.
    - ``two_opt``: optional improvement pass that reverses segments of
      the path while that shortens it.

It also provides ``offset_duplicate_coordinates``, which nudges stops
sharing identical coordinates apart so that each one can be told apart
on a map and routed to on its own.

Stops without coordinates cannot be measured. They are never chosen
while a located stop remains and end up at the back of the route in
their original relative order.
"""

from __future__ import annotations

import logging
import random
from collections import OrderedDict
from dataclasses import replace
from typing import List, Optional, Sequence, Set

from truckroute.config import STARTING_POINT_COORDINATES
from truckroute.routing import haversine_distance
from truckroute.stops import LonLat, Stop

logger = logging.getLogger(__name__)

# roughly 100-200 m in either axis at mid latitudes
MAX_DUPLICATE_OFFSET_DEG = 0.0015


def _draw_offset(rng: random.Random) -> float:
    offset = (rng.random() - 0.5) * 2 * MAX_DUPLICATE_OFFSET_DEG
    # keep the interval open at the low end too
    while offset <= -MAX_DUPLICATE_OFFSET_DEG:
        offset = (rng.random() - 0.5) * 2 * MAX_DUPLICATE_OFFSET_DEG
    return offset


def offset_duplicate_coordinates(
    stops: Sequence[Stop], rng: Optional[random.Random] = None
) -> List[Stop]:
    """Spread out stops that share exactly the same coordinates.

    The first stop at a given point keeps its coordinates; every later
    one is moved by an independent random offset of less than
    ``MAX_DUPLICATE_OFFSET_DEG`` on each axis. Offset stops are copies,
    the input stops are not modified, and the batch order is preserved.

    Args:
        stops: Newly imported stops.
        rng: Source of randomness, injectable for tests.

    Returns:
        A list of the same length as ``stops``.
    """
    rng = rng or random.Random()
    groups: "OrderedDict[LonLat, List[int]]" = OrderedDict()
    for index, stop in enumerate(stops):
        if stop.has_coordinates:
            groups.setdefault(stop.coordinates, []).append(index)

    result = list(stops)
    taken: Set[LonLat] = {stop.coordinates for stop in stops if stop.has_coordinates}
    for (lon, lat), indices in groups.items():
        if len(indices) < 2:
            continue
        logger.info("Found %d stops at the same coordinates %s,%s", len(indices), lon, lat)
        for index in indices[1:]:
            moved = (lon + _draw_offset(rng), lat + _draw_offset(rng))
            while moved in taken:
                moved = (lon + _draw_offset(rng), lat + _draw_offset(rng))
            taken.add(moved)
            result[index] = replace(stops[index], coordinates=moved, distance_from_previous=None)
            logger.debug(
                "Offset stop %s by [%.4f, %.4f]", stops[index].buyer, moved[0] - lon, moved[1] - lat
            )
    return result


def nearest_neighbor(stops: Sequence[Stop], start: LonLat = STARTING_POINT_COORDINATES) -> List[Stop]:
    """Order stops using the nearest neighbour heuristic.

    Args:
        stops: Stops to visit, in their current order. Ties are broken in
            favour of the stop that comes first here.
        start: Coordinates the vehicle leaves from.

    Returns:
        The same stops in visiting order.
    """
    if len(stops) <= 1:
        return list(stops)

    unvisited = list(stops)
    route: List[Stop] = []
    current = start
    while unvisited:
        nearest_index = 0
        nearest_distance = float("inf")
        for index, stop in enumerate(unvisited):
            if not stop.has_coordinates:
                continue
            distance = haversine_distance(current, stop.coordinates)
            if distance < nearest_distance:
                nearest_distance = distance
                nearest_index = index
        nearest = unvisited.pop(nearest_index)
        route.append(nearest)
        # an unlocated stop leaves the vehicle where it was
        if nearest.has_coordinates:
            current = nearest.coordinates
        logger.debug("Stop %d: %s (%.1f km from previous)", len(route), nearest.buyer, nearest_distance)
    logger.info("Optimised order: %s", " -> ".join(stop.buyer for stop in route))
    return route


def path_length(points: Sequence[LonLat]) -> float:
    return sum(haversine_distance(points[i], points[i + 1]) for i in range(len(points) - 1))


def two_opt(stops: Sequence[Stop], start: LonLat = STARTING_POINT_COORDINATES) -> List[Stop]:
    """Perform 2-opt optimisation on an ordered list of stops.

    The path is open: it starts at ``start`` and ends at the last stop.
    Segments are reversed while that reduces the total Haversine length.
    Unlocated stops are kept at the end in their given order.

    Args:
        stops: Initial visiting order, e.g. from ``nearest_neighbor``.
        start: Coordinates the vehicle leaves from; never moved.

    Returns:
        A visiting order no longer than the initial one.
    """
    located = [stop for stop in stops if stop.has_coordinates]
    unlocated = [stop for stop in stops if not stop.has_coordinates]
    if len(located) < 3:
        return located + unlocated

    def tour_length(route: List[Stop]) -> float:
        return path_length([start] + [stop.coordinates for stop in route])

    improved = True
    best = list(located)
    best_length = tour_length(best)
    n = len(best)
    while improved:
        improved = False
        for i in range(0, n - 1):
            for j in range(i + 2, n + 1):
                new_route = best[:i] + best[i:j][::-1] + best[j:]
                new_length = tour_length(new_route)
                if new_length < best_length - 1e-9:
                    best = new_route
                    best_length = new_length
                    improved = True
                    break
            if improved:
                break
    return best + unlocated


def optimize_route(
    stops: Sequence[Stop],
    start: LonLat = STARTING_POINT_COORDINATES,
    improve: bool = False,
) -> List[Stop]:
    """Visiting order for ``stops``: nearest neighbour, optionally refined by 2-opt."""
    if len(stops) <= 1:
        return list(stops)
    logger.info("Starting route optimisation for %d stops", len(stops))
    route = nearest_neighbor(stops, start)
    if improve:
        route = two_opt(route, start)
    return route

