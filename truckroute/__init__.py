"""
Truck route planner package initialization.

This package plans the delivery route of a single vehicle leaving a
fixed depot. Components include stop management, geocoding, town and
street suggestions, route ordering, and leg distance aggregation.

Modules:
    config       – Settings read from the environment / ``.env``.
    stops        – Stop model and the ordered stop store.
    geocode      – Address and town geocoding via Nominatim (geopy).
    places       – Town and street suggestions from Geoapify/Nominatim.
    routing      – Haversine distance and the OSRM route client.
    optimisation – Duplicate-location spreading, nearest neighbour and
                   2‑opt ordering.
    distance     – Leg distance recomputation and route summaries.
    importer     – Spreadsheet import with sequential geocoding.
    planner      – The dispatcher workflow tying everything together.

The route order is a heuristic; it is short but not guaranteed to be
the shortest possible.
"""

__all__ = [
    "config",
    "stops",
    "geocode",
    "places",
    "routing",
    "optimisation",
    "distance",
    "importer",
    "planner",
]
