"""
Stop model and the in-memory stop store.

A route always begins at the fixed starting point (the depot). The
store only holds the delivery stops that follow it; the starting point
is prepended whenever the full route is requested and can never be
moved, edited or removed through the store.

Coordinates are ``(longitude, latitude)`` tuples throughout the
package, matching the order used by OSRM and GeoJSON.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field, replace
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from truckroute.config import (
    STARTING_POINT_ADDRESS,
    STARTING_POINT_COORDINATES,
    STARTING_POINT_ID,
    STARTING_POINT_LABEL,
    STARTING_POINT_TOWN,
)

logger = logging.getLogger(__name__)

LonLat = Tuple[float, float]


def new_stop_id() -> str:
    return uuid.uuid4().hex


@dataclass
class Stop:
    buyer: str
    town: str
    address: str
    coordinates: Optional[LonLat] = None
    distance_from_previous: Optional[float] = None  # km
    id: str = field(default_factory=new_stop_id)

    @property
    def is_starting_point(self) -> bool:
        return self.id == STARTING_POINT_ID

    @property
    def has_coordinates(self) -> bool:
        return self.coordinates is not None


STARTING_POINT = Stop(
    id=STARTING_POINT_ID,
    buyer=STARTING_POINT_LABEL,
    town=STARTING_POINT_TOWN,
    address=STARTING_POINT_ADDRESS,
    coordinates=STARTING_POINT_COORDINATES,
)


class StopStore:
    """Ordered collection of delivery stops anchored to the starting point.

    Insertion order is route order. Positions used by :meth:`move` count
    the starting point as position 0, the same way the route is shown
    to a dispatcher.
    """

    def __init__(self, starting_point: Stop = STARTING_POINT) -> None:
        # private copy so callers cannot mutate the shared depot
        self._starting_point = replace(starting_point)
        self._order: List[str] = []
        self._stops: Dict[str, Stop] = {}

    # ------------------------------------------------------------------
    # read access
    # ------------------------------------------------------------------
    @property
    def starting_point(self) -> Stop:
        return replace(self._starting_point)

    def __len__(self) -> int:
        return len(self._order)

    def __iter__(self) -> Iterator[Stop]:
        return iter(self.stops())

    def __contains__(self, stop_id: object) -> bool:
        return stop_id in self._stops

    def get(self, stop_id: str) -> Optional[Stop]:
        return self._stops.get(stop_id)

    def stops(self) -> List[Stop]:
        """Delivery stops in route order, without the starting point."""
        return [self._stops[stop_id] for stop_id in self._order]

    def route(self) -> List[Stop]:
        """The effective route: starting point followed by every stop."""
        return [self.starting_point] + self.stops()

    # ------------------------------------------------------------------
    # mutation
    # ------------------------------------------------------------------
    def add(self, stop: Stop) -> Stop:
        """Append a stop to the end of the route."""
        if stop.is_starting_point:
            raise ValueError("The starting point is implicit and cannot be added")
        if not (stop.buyer.strip() and stop.town.strip() and stop.address.strip()):
            raise ValueError("A stop requires buyer, town and address")
        if stop.id in self:
            raise ValueError(f"Stop {stop.id} is already in the route")
        self._stops[stop.id] = stop
        self._order.append(stop.id)
        logger.debug("Added stop %s (%s)", stop.id, stop.buyer)
        return stop

    def extend(self, stops: Iterable[Stop]) -> None:
        for stop in stops:
            self.add(stop)

    def remove(self, stop_id: str) -> bool:
        """Remove a stop. Returns ``False`` for the starting point or unknown ids."""
        if stop_id == STARTING_POINT_ID or stop_id not in self:
            return False
        index = self._order.index(stop_id)
        self._order.pop(index)
        del self._stops[stop_id]
        # the next stop now follows a different predecessor
        if index < len(self._order):
            self._stops[self._order[index]].distance_from_previous = None
        logger.debug("Removed stop %s", stop_id)
        return True

    def reorder(self, new_order: Iterable[Stop]) -> bool:
        """Replace the whole sequence of stops.

        ``new_order`` must contain every current stop exactly once. Any
        other input (missing, unknown or repeated stops, or the starting
        point) is rejected and leaves the store untouched. Leg distances
        are cleared because they describe the previous order.
        """
        ids = [stop.id for stop in new_order]
        if len(ids) != len(self._order) or set(ids) != set(self._order) or len(set(ids)) != len(ids):
            logger.warning(
                "Rejected reorder: %d stops given for a route of %d", len(ids), len(self._order)
            )
            return False
        self._order = ids
        for stop in self._stops.values():
            stop.distance_from_previous = None
        return True

    def move(self, from_position: int, to_position: int) -> bool:
        """Move the stop at route position ``from_position`` to ``to_position``.

        Positions count the starting point as 0, so neither may be 0.
        Leg distances are deliberately left as they are until the route
        is recomputed.
        """
        size = len(self._order)
        if not (1 <= from_position <= size and 1 <= to_position <= size):
            return False
        if from_position == to_position:
            return True
        stop_id = self._order.pop(from_position - 1)
        self._order.insert(to_position - 1, stop_id)
        logger.debug("Moved stop %s from %d to %d", stop_id, from_position, to_position)
        return True

    def edit(
        self,
        stop_id: str,
        buyer: Optional[str] = None,
        town: Optional[str] = None,
        address: Optional[str] = None,
    ) -> bool:
        """Update the text fields of a stop.

        Coordinates are cleared until the stop is geocoded again, and so
        is the leg distance that depended on them.
        """
        stop = self._stops.get(stop_id)
        if stop_id == STARTING_POINT_ID or stop is None:
            return False
        if buyer is not None:
            stop.buyer = buyer
        if town is not None:
            stop.town = town
        if address is not None:
            stop.address = address
        stop.coordinates = None
        stop.distance_from_previous = None
        return True

    def set_coordinates(self, stop_id: str, coordinates: Optional[LonLat]) -> bool:
        stop = self._stops.get(stop_id)
        if stop is None:
            return False
        stop.coordinates = coordinates
        stop.distance_from_previous = None
        return True

    def set_distance(self, stop_id: str, distance_km: Optional[float]) -> bool:
        stop = self._stops.get(stop_id)
        if stop is None:
            return False
        if distance_km is not None and distance_km < 0:
            raise ValueError("Leg distance cannot be negative")
        stop.distance_from_previous = distance_km
        return True

    def clear(self) -> None:
        self._order.clear()
        self._stops.clear()
