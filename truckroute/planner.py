"""
Route planning workflow.

:class:`RoutePlanner` ties the stop store to the external services and
implements the dispatcher's actions: adding a stop by hand, importing a
spreadsheet, editing, dragging stops around and recomputing the route.
Service failures are turned into missing coordinates, skipped rows or
unmeasured legs; only attempts to touch the starting point are refused.

Example usage:

    planner = RoutePlanner()
    planner.add_stop("Kafana Tisa", "Senta", "Glavna 1")
    planner.add_stop("Pekara Zora", "Ada", "Lenjinova 12")
    summary = planner.recompute()
    print(summary.total_distance_km, summary.partial)
"""

from __future__ import annotations

import logging
import random
import time
from typing import Callable, Dict, List, Optional

from truckroute.config import ConfigurationError, Settings, get_settings
from truckroute.distance import (
    RouteOverview,
    RouteSummary,
    recompute_leg_distances,
    route_overview,
    total_distance,
)
from truckroute.geocode import Geocoder, is_null_island
from truckroute.importer import (
    ImportReport,
    Source,
    geocode_rows,
    map_rows,
    parse_tabular_import,
)
from truckroute.optimisation import offset_duplicate_coordinates, optimize_route
from truckroute.places import PlacesClient, PlacesError, StreetOption, TownOption, find_town
from truckroute.routing import OSRMRouter
from truckroute.stops import LonLat, Stop, StopStore

logger = logging.getLogger(__name__)

# after a failed town list request, wait this long before asking again
TOWN_LIST_RETRY_S = 300.0


class RoutePlanner:
    def __init__(
        self,
        store: Optional[StopStore] = None,
        geocoder: Optional[Geocoder] = None,
        router: Optional[OSRMRouter] = None,
        places: Optional[PlacesClient] = None,
        settings: Optional[Settings] = None,
        rng: Optional[random.Random] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.settings = settings or get_settings()
        self.store = store if store is not None else StopStore()
        self.geocoder = geocoder or Geocoder(self.settings)
        self.router = router or OSRMRouter(self.settings)
        self.places = places or PlacesClient(self.settings)
        self.rng = rng or random.Random()
        self.sleep = sleep
        self.clock = clock
        self._towns: Optional[List[TownOption]] = None
        self._towns_failed_at: Optional[float] = None

    # ------------------------------------------------------------------
    # suggestions
    # ------------------------------------------------------------------
    def town_options(self) -> List[TownOption]:
        """Known towns; empty when the places service is unavailable."""
        if self._towns is not None:
            return self._towns
        if (
            self._towns_failed_at is not None
            and self.clock() - self._towns_failed_at < TOWN_LIST_RETRY_S
        ):
            return []
        try:
            self._towns = self.places.list_towns()
        except (PlacesError, ConfigurationError) as exc:
            logger.warning("Town list unavailable: %s", exc)
            self._towns_failed_at = self.clock()
            return []
        self._towns_failed_at = None
        return self._towns

    def street_options(self, town: str) -> List[StreetOption]:
        if not town.strip():
            return []
        try:
            return self.places.list_streets(town)
        except (PlacesError, ConfigurationError) as exc:
            logger.warning("Street list for %s unavailable: %s", town, exc)
            return []

    def search_towns(self, query: str) -> List[str]:
        try:
            return self.places.search_towns(query)
        except PlacesError as exc:
            logger.warning("Town search failed: %s", exc)
            return []

    # ------------------------------------------------------------------
    # geocoding
    # ------------------------------------------------------------------
    def resolve(self, address: str, town: str) -> Optional[LonLat]:
        """Coordinates for a stop: street, then town centroid, then known town."""
        resolution = self.geocoder.resolve(address, town)
        if resolution.found:
            return resolution.coordinates
        known = find_town(self.town_options(), town)
        if known is not None and not is_null_island(known.coordinates):
            logger.info("Using town list coordinates for %s", town)
            return known.coordinates
        return None

    # ------------------------------------------------------------------
    # stop list actions
    # ------------------------------------------------------------------
    def add_stop(
        self,
        buyer: str,
        town: str,
        address: str,
        selected: Optional[StreetOption] = None,
    ) -> Stop:
        """Geocode and append a stop entered by hand.

        ``selected`` is the street suggestion the dispatcher picked, if
        any; its coordinates are used as-is when it matches ``address``.
        The leg distance stays empty until the next recompute.
        """
        buyer, town, address = buyer.strip(), town.strip(), address.strip()
        if selected is not None and selected.address == address and selected.coordinates[0] != 0:
            coordinates: Optional[LonLat] = selected.coordinates
        else:
            coordinates = self.resolve(address, town)
        if coordinates is None:
            logger.warning("Adding %s without coordinates", buyer)
        return self.store.add(Stop(buyer=buyer, town=town, address=address, coordinates=coordinates))

    def edit_stop(
        self,
        stop_id: str,
        buyer: Optional[str] = None,
        town: Optional[str] = None,
        address: Optional[str] = None,
    ) -> bool:
        """Change a stop's details and geocode it again."""
        if not self.store.edit(stop_id, buyer, town, address):
            return False
        stop = self.store.get(stop_id)
        self.store.set_coordinates(stop_id, self.resolve(stop.address, stop.town))
        return True

    def remove_stop(self, stop_id: str) -> bool:
        return self.store.remove(stop_id)

    def move_stop(self, from_position: int, to_position: int) -> bool:
        return self.store.move(from_position, to_position)

    def clear(self) -> None:
        self.store.clear()

    # ------------------------------------------------------------------
    # import
    # ------------------------------------------------------------------
    def import_file(
        self,
        source: Source,
        mapping: Dict[str, str],
        filename: Optional[str] = None,
        should_cancel: Optional[Callable[[], bool]] = None,
        progress: Optional[Callable[[int, int], None]] = None,
    ) -> ImportReport:
        """Replace the current stops with the rows of a spreadsheet.

        Rows are geocoded in file order, stops sharing a location are
        spread apart, and the batch is put in nearest-neighbour order
        before it is appended. A cancelled import keeps the stops it had
        already geocoded.
        """
        rows = map_rows(parse_tabular_import(source, filename), mapping)
        if len(self.store):
            logger.info("Clearing %d existing stops before import", len(self.store))
            self.store.clear()

        report = geocode_rows(
            rows,
            self.resolve,
            delay_s=self.settings.import_delay_s,
            sleep=self.sleep,
            should_cancel=should_cancel,
            progress=progress,
        )
        if report.stops:
            spread = offset_duplicate_coordinates(report.stops, self.rng)
            report.stops = optimize_route(spread, self.store.starting_point.coordinates)
            self.store.extend(report.stops)
        return report

    # ------------------------------------------------------------------
    # route
    # ------------------------------------------------------------------
    def optimize(self, improve: bool = False) -> List[Stop]:
        order = optimize_route(self.store.stops(), self.store.starting_point.coordinates, improve)
        self.store.reorder(order)
        return order

    def recompute(self, improve: bool = False, fallback: Optional[str] = None) -> RouteSummary:
        """Re-optimise the order and measure every leg through the router."""
        self.optimize(improve)
        return recompute_leg_distances(self.store, self.router, fallback)

    def total_distance(self) -> float:
        return total_distance(self.store.stops())

    def overview(self) -> RouteOverview:
        return route_overview(self.store.route(), self.router)
