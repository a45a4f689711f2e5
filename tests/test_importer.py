import io
import unittest

from truckroute.importer import (
    ImportFormatError,
    ImportRow,
    TabularData,
    geocode_rows,
    map_rows,
    parse_tabular_import,
)

CSV = (
    "Kupac,Mesto,Adresa,Napomena\n"
    "Kafana Tisa,Senta,Glavna 1,\n"
    "Pekara Zora,Ada,Lenjinova 12,hitno\n"
    "Market 7,Kanjiža,,\n"
    "Apoteka,Čoka,Potiska 3,\n"
    "Mesara,Mol,Nepoznata 99,\n"
)

MAPPING = {"buyer": "Kupac", "town": "Mesto", "address": "Adresa"}


def csv_source(text=CSV):
    return io.BytesIO(text.encode("utf-8"))


class TestParse(unittest.TestCase):
    def test_parse_csv(self):
        data = parse_tabular_import(csv_source(), filename="stops.csv")
        self.assertEqual(data.columns, ["Kupac", "Mesto", "Adresa", "Napomena"])
        self.assertEqual(len(data.rows), 5)
        self.assertEqual(data.rows[2]["Adresa"], "")
        self.assertEqual(data.rows[1]["Napomena"], "hitno")

    def test_blank_header_named_by_letter(self):
        data = parse_tabular_import(csv_source("Kupac,,Adresa\nA,B,C\n"), filename="x.csv")
        self.assertEqual(data.columns, ["Kupac", "Column B", "Adresa"])

    def test_unreadable_file(self):
        with self.assertRaises(ImportFormatError):
            parse_tabular_import(io.BytesIO(b"not a workbook"), filename="stops.xlsx")


class TestMapRows(unittest.TestCase):
    def test_trims_values(self):
        data = TabularData(columns=["B", "T", "A"], rows=[{"B": " x ", "T": "Ada ", "A": " Glavna 1"}])
        rows = map_rows(data, {"buyer": "B", "town": "T", "address": "A"})
        self.assertEqual(rows, [ImportRow("x", "Ada", "Glavna 1")])

    def test_incomplete_mapping(self):
        data = TabularData(columns=["B"], rows=[])
        with self.assertRaises(ImportFormatError):
            map_rows(data, {"buyer": "B"})
        with self.assertRaises(ImportFormatError):
            map_rows(data, {"buyer": "B", "town": "T", "address": "A"})


class TestGeocodeRows(unittest.TestCase):
    def setUp(self):
        self.rows = map_rows(parse_tabular_import(csv_source(), filename="stops.csv"), MAPPING)
        self.sleeps = []

    def resolve(self, address, town):
        if address == "Nepoznata 99":
            return None
        return (20.0 + len(town) / 100, 45.9)

    def test_counts(self):
        report = geocode_rows(self.rows, self.resolve, delay_s=0.3, sleep=self.sleeps.append)
        self.assertEqual(report.total, 5)
        self.assertEqual(report.processed, 4)
        self.assertEqual(report.skipped, 1)
        self.assertEqual(report.imported, 3)
        self.assertEqual(report.failed, 1)
        self.assertFalse(report.cancelled)
        self.assertEqual([s.buyer for s in report.stops], ["Kafana Tisa", "Pekara Zora", "Apoteka"])
        # one pause between each pair of geocoding requests
        self.assertEqual(self.sleeps, [0.3, 0.3, 0.3])

    def test_resolver_exception_counts_as_failure(self):
        def broken(address, town):
            raise RuntimeError("service down")

        report = geocode_rows(self.rows, broken, delay_s=0, sleep=self.sleeps.append)
        self.assertEqual(report.failed, 4)
        self.assertEqual(report.imported, 0)
        self.assertEqual(self.sleeps, [])

    def test_null_island_counts_as_failure(self):
        report = geocode_rows(self.rows[:1], lambda a, t: (0.0, 0.0), delay_s=0)
        self.assertEqual(report.failed, 1)

    def test_cancel_between_rows(self):
        progress = []
        report = geocode_rows(
            self.rows,
            self.resolve,
            delay_s=0,
            should_cancel=lambda: len(progress) >= 2,
            progress=lambda done, total: progress.append((done, total)),
        )
        self.assertTrue(report.cancelled)
        self.assertEqual(progress, [(1, 5), (2, 5)])
        self.assertEqual(report.imported, 2)


if __name__ == "__main__":
    unittest.main()
