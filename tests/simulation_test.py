import random
import unittest
from collections import Counter

from truckroute.config import Settings
from truckroute.planner import RoutePlanner
from truckroute.routing import Leg, haversine_distance
from truckroute.stops import Stop


class StraightLineRouter:
    def compute_leg(self, origin, destination):
        distance = haversine_distance(origin, destination)
        # 60 km/h, so minutes equal kilometres
        return Leg(distance_km=distance, duration_min=distance)


class TestSimulation(unittest.TestCase):
    def test_random_cases(self):
        # Run a handful of random routes around Kanjiža through the whole
        # pipeline and check that no stop is lost or duplicated.
        rng = random.Random(2024)
        for _ in range(10):
            planner = RoutePlanner(
                router=StraightLineRouter(),
                settings=Settings(),
                rng=rng,
                geocoder=object(),
                places=object(),
            )
            n = rng.randint(3, 12)
            for i in range(n):
                lon = 19.9 + rng.random() * 0.4
                lat = 45.8 + rng.random() * 0.4
                coords = (lon, lat) if rng.random() > 0.1 else None
                planner.store.add(Stop(buyer=f"stop {i}", town="Kanjiža", address=f"Ulica {i}", coordinates=coords))
            before = Counter(s.id for s in planner.store)
            summary = planner.recompute(improve=rng.random() > 0.5)
            self.assertEqual(Counter(s.id for s in planner.store), before)
            self.assertEqual(len(summary.legs), n)
            self.assertAlmostEqual(summary.total_distance_km, planner.total_distance())
            located = [s.coordinates is not None for s in planner.store]
            # every unlocated stop comes after all located ones
            self.assertEqual(located, sorted(located, reverse=True))


if __name__ == "__main__":
    unittest.main()
