import unittest
from datetime import date

from flight_markup import (
    FlightCard,
    has_search_command,
    parse_flight_search_command,
    parse_results_block,
    render_results_block,
    render_search_command,
    strip_markup,
)
from models import FlightSearchParams


class TestSearchCommand(unittest.TestCase):

    def test_render_minimal(self):
        params = FlightSearchParams("DEL", "BOM", date(2026, 10, 20))
        self.assertEqual(
            render_search_command(params),
            '<flight-search source="DEL" destination="BOM" date="2026-10-20" />',
        )

    def test_round_trip_with_options(self):
        params = FlightSearchParams("BLR", "GOI", date(2026, 12, 25), filter="non-stop", airline="air india", sort="duration")
        text = f"Searching now...\n\n{render_search_command(params)}"
        self.assertTrue(has_search_command(text))
        self.assertEqual(parse_flight_search_command(text), params)

    def test_parse_accepts_timestamp_dates(self):
        text = '<flight-search source="del" destination="bom" date="2026-10-20T00:00:00"></flight-search>'
        params = parse_flight_search_command(text)
        self.assertEqual(params.source, "DEL")
        self.assertEqual(params.destination, "BOM")
        self.assertEqual(params.date, date(2026, 10, 20))
        self.assertIsNone(params.filter)

    def test_parse_rejects_bad_commands(self):
        self.assertIsNone(parse_flight_search_command("no command here"))
        self.assertIsNone(parse_flight_search_command('<flight-search source="DEL" date="2026-10-20" />'))
        self.assertIsNone(
            parse_flight_search_command('<flight-search source="DEL" destination="BOM" date="soon" />')
        )

    def test_strip_markup(self):
        text = 'Looking now!\n\n<flight-search source="DEL" destination="BOM" date="2026-10-20" />'
        self.assertEqual(strip_markup(text), "Looking now!")
        self.assertFalse(has_search_command(strip_markup(text)))


class TestResultsBlock(unittest.TestCase):

    def test_parse_rendered_block(self):
        card = FlightCard("IndiGo", "6E201", "06:10", "08:15", "2026-10-20T06:10:00", "2026-10-20T08:15:00", "2h 5m", "₹4,999")
        text = f"Here you go:\n\n{render_results_block([card])}\n\nAnything else?"
        before, cards, after = parse_results_block(text)
        self.assertEqual(before, "Here you go:")
        self.assertEqual(cards, [card])
        self.assertEqual(after, "Anything else?")

    def test_missing_fields_use_placeholders(self):
        text = "<flight-results><flight><airline>SpiceJet</airline></flight><flight></flight></flight-results>"
        _, cards, _ = parse_results_block(text)
        self.assertEqual(len(cards), 2)
        self.assertEqual(cards[0].airline, "SpiceJet")
        self.assertEqual(cards[0].flight_number, "Unknown")
        self.assertEqual(cards[0].departure_time, "TBD")
        self.assertEqual(cards[0].price, "Unknown")
        self.assertEqual(cards[1].airline, "Unknown Airline")

    def test_no_block(self):
        self.assertIsNone(parse_results_block("just text"))

    def test_strip_results(self):
        text = "Intro\n<flight-results><flight></flight></flight-results>\nOutro"
        self.assertEqual(strip_markup(text, results=True), "Intro\n\nOutro")
        self.assertIn("<flight-results>", strip_markup(text))


if __name__ == "__main__":
    unittest.main(verbosity=2)
