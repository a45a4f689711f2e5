import unittest
from unittest import mock

import requests

from truckroute.cache import TTLCache
from truckroute.config import ConfigurationError, Settings
from truckroute.places import (
    PLACES_PAGE_LIMIT,
    PlacesClient,
    PlacesError,
    TownOption,
    build_street_list,
    extract_place,
    find_town,
)


def fake_response(payload, status_code=200):
    resp = mock.Mock()
    resp.status_code = status_code
    resp.json.return_value = payload
    return resp


def place_feature(name, lon, lat, postcode=None, **extra):
    props = {"name": name, "lon": lon, "lat": lat,
             "categories": ["populated_place.town"], **extra}
    if postcode:
        props["postcode"] = postcode
    return {"properties": props}


class TestExtractors(unittest.TestCase):
    def test_extract_place_prefers_latin_and_strips_prefix(self):
        feature = place_feature("Општина Сента", 20.08, 45.93, "24400", **{"name:sr-Latn": "Opština Senta"})
        self.assertEqual(extract_place(feature), TownOption("Senta", (20.08, 45.93), "24400"))

    def test_extract_place_rejects_other_categories(self):
        feature = {"properties": {"name": "Lake", "lon": 1, "lat": 2, "categories": ["natural.water"]}}
        self.assertIsNone(extract_place(feature))

    def test_extract_place_requires_coordinates(self):
        self.assertIsNone(extract_place({"properties": {"name": "Ada", "town": "Ada"}}))

    def test_street_list(self):
        features = [
            {"properties": {"street": "Glavna", "housenumber": "5", "lon": 20.1, "lat": 45.8, "city": "Ada"}},
            {"properties": {"street": "Glavna", "housenumber": "5", "lon": 20.1, "lat": 45.8}},
            {"properties": {"street": "Главна", "lon": 20.1, "lat": 45.8}},
            {"properties": {"street": "Главна", "street:sr-Latn": "Glavna", "lon": 20.2, "lat": 45.9}},
        ]
        streets = build_street_list(features)
        self.assertEqual([s.address for s in streets], ["Glavna 5", "Glavna"])
        self.assertEqual(streets[0].city, "Ada")
        self.assertEqual(streets[0].coordinates, (20.1, 45.8))

    def test_find_town_case_insensitive(self):
        towns = [TownOption("Senta", (20.08, 45.93)), TownOption("Ada", (20.13, 45.80))]
        self.assertEqual(find_town(towns, "  ada ").coordinates, (20.13, 45.80))
        self.assertIsNone(find_town(towns, "Kikinda"))


class TestPlacesClient(unittest.TestCase):
    def setUp(self):
        self.session = mock.Mock()
        self.settings = Settings(geoapify_api_key="secret")
        self.client = PlacesClient(self.settings, session=self.session, cache=TTLCache(60))

    def test_list_towns_pages_dedups_and_sorts(self):
        first_page = [place_feature(f"Town {i:03d}", 20.0, 45.0 + i / 1000, postcode=str(i))
                      for i in range(PLACES_PAGE_LIMIT)]
        second_page = [place_feature("Ada", 20.13, 45.80, "24430"),
                       place_feature("Ada duplicate", 20.13, 45.80, "24430")]
        self.session.get.side_effect = [
            fake_response({"features": first_page}),
            fake_response({"features": second_page}),
        ]
        towns = self.client.list_towns()
        self.assertEqual(len(towns), PLACES_PAGE_LIMIT + 1)
        self.assertEqual(towns[0].name, "Ada")
        self.assertEqual(self.session.get.call_count, 2)
        self.assertEqual(self.session.get.call_args[1]["params"]["offset"], PLACES_PAGE_LIMIT)

        # second call is served from the cache
        self.client.list_towns()
        self.assertEqual(self.session.get.call_count, 2)

    def test_missing_key(self):
        client = PlacesClient(Settings(), session=self.session)
        with self.assertRaises(ConfigurationError):
            client.list_towns()

    def test_http_error(self):
        self.session.get.return_value = fake_response({}, status_code=500)
        with self.assertRaises(PlacesError):
            self.client.list_streets("Ada")

    def test_body_that_is_not_json(self):
        resp = fake_response(None)
        resp.json.side_effect = ValueError("Expecting value: line 1 column 1 (char 0)")
        self.session.get.return_value = resp
        with self.assertRaises(PlacesError):
            self.client.list_towns()
        with self.assertRaises(PlacesError):
            self.client.list_streets("Ada")
        with self.assertRaises(PlacesError):
            self.client.search_towns("Senta")

    def test_network_error_masks_key(self):
        self.session.get.side_effect = requests.ConnectionError("GET https://x?apiKey=secret failed")
        with self.assertRaises(PlacesError) as ctx:
            self.client.list_streets("Ada")
        self.assertNotIn("secret", str(ctx.exception))

    def test_list_streets_cached_per_town(self):
        self.session.get.return_value = fake_response(
            {"features": [{"properties": {"street": "Glavna", "lon": 20.1, "lat": 45.8}}]}
        )
        self.assertEqual([s.address for s in self.client.list_streets("Ada")], ["Glavna"])
        self.client.list_streets("ADA")
        self.assertEqual(self.session.get.call_count, 1)
        params = self.session.get.call_args[1]["params"]
        self.assertEqual(params["type"], "street")
        self.assertEqual(params["city"], "Ada")

    def test_search_towns(self):
        self.session.get.return_value = fake_response([
            {"class": "place", "type": "town", "address": {"town": "Senta"}},
            {"class": "place", "type": "village", "address": {"village": "Tornjoš"}},
            {"class": "place", "type": "town", "address": {"town": "Senta"}},
            {"class": "highway", "type": "residential", "name": "Glavna"},
        ])
        self.assertEqual(self.client.search_towns("Sen"), ["Senta", "Tornjoš"])

    def test_search_towns_short_query(self):
        self.assertEqual(self.client.search_towns("S"), [])
        self.session.get.assert_not_called()


if __name__ == "__main__":
    unittest.main()
