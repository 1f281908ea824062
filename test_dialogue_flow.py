import random
import unittest
from datetime import date

import response_templates as templates
from dialogue_state import NEED_DESTINATION, NEED_SOURCE, NONE, DialogueState
from extract_parameters import lookup_city
from llm_client import LLMFallbackCaller
from models import FlightSearchParams
from travel_agent import ConversationalTravelAgent

TODAY = date(2026, 10, 19)
TOMORROW = date(2026, 10, 20)
PREVIOUS = FlightSearchParams("DEL", "BOM", TOMORROW)


class StubLLM:
    """Answers every prompt with a fixed text"""

    def __init__(self, reply):
        self.reply = reply
        self.prompts = []

    async def generate(self, prompt):
        self.prompts.append(prompt)
        return self.reply


class DialogueTestCase(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        self.agent = ConversationalTravelAgent(llm=LLMFallbackCaller(), rng=random.Random(0), today=lambda: TODAY)
        self.state = DialogueState()

    async def say(self, text, search_params=None):
        return await self.agent.generate_response(self.state, text, search_params)


class TestSearchDialogue(DialogueTestCase):

    async def test_full_route_emits_command(self):
        reply = await self.say("flights from Delhi to Mumbai")

        self.assertEqual(reply.command, FlightSearchParams("DEL", "BOM", TOMORROW))
        self.assertIn('<flight-search source="DEL" destination="BOM" date="2026-10-20" />', reply.text)
        self.assertNotIn("<flight-search", reply.display_text)
        self.assertEqual(self.state.pending_clarification, NONE)
        self.assertEqual(self.state.last_topic, "flight_search_initiated")

    async def test_options_travel_with_command(self):
        reply = await self.say("cheapest non-stop IndiGo flights from Pune to Goa on 25th December")
        self.assertEqual(
            reply.command,
            FlightSearchParams("PNQ", "GOI", date(2026, 12, 25), filter="non-stop", airline="indigo", sort="price"),
        )

    async def test_destination_only_asks_for_source(self):
        reply = await self.say("Mumbai")
        self.assertIsNone(reply.command)
        self.assertEqual(reply.text, templates.ASK_SOURCE.format(destination="Mumbai"))
        self.assertEqual(self.state.pending_clarification, NEED_SOURCE)
        self.assertEqual(self.state.pending_destination.code, "BOM")

        reply = await self.say("Delhi")
        self.assertEqual(reply.command, FlightSearchParams("DEL", "BOM", TOMORROW))
        self.assertEqual(self.state.pending_clarification, NONE)

    async def test_source_answer_with_stored_destination(self):
        self.state.ask_for(NEED_SOURCE, destination=lookup_city("mumbai"))
        reply = await self.say("Delhi")
        self.assertEqual((reply.command.source, reply.command.destination), ("DEL", "BOM"))

    async def test_source_only_asks_for_destination(self):
        reply = await self.say("flights from Pune")
        self.assertEqual(self.state.pending_clarification, NEED_DESTINATION)
        self.assertEqual(reply.text, templates.ASK_DESTINATION.format(source="Pune"))

        reply = await self.say("Jaipur please")
        self.assertEqual((reply.command.source, reply.command.destination), ("PNQ", "JAI"))

    async def test_date_from_first_message_is_kept(self):
        await self.say("flights to Goa on 25th December")
        reply = await self.say("from Pune")
        self.assertEqual(reply.command, FlightSearchParams("PNQ", "GOI", date(2026, 12, 25)))

    async def test_need_both(self):
        reply = await self.say("I want to book a flight")
        self.assertEqual(reply.text, templates.ASK_ROUTE_DETAILS)

        reply = await self.say("Chennai")
        self.assertEqual(self.state.pending_clarification, NEED_DESTINATION)
        self.assertEqual(self.state.pending_source.code, "MAA")

        reply = await self.say("Kolkata")
        self.assertEqual((reply.command.source, reply.command.destination), ("MAA", "CCU"))

    async def test_same_city_is_rejected(self):
        reply = await self.say("Bombay to Mumbai")
        self.assertIsNone(reply.command)
        self.assertEqual(reply.text, templates.SAME_CITY)

    async def test_same_city_during_clarification_keeps_question_open(self):
        self.state.ask_for(NEED_SOURCE, destination=lookup_city("mumbai"))
        reply = await self.say("Mumbai")
        self.assertEqual(reply.text, templates.SAME_CITY)
        self.assertEqual(self.state.pending_clarification, NEED_SOURCE)
        self.assertEqual(self.state.pending_destination.code, "BOM")

    async def test_unknown_city_during_clarification(self):
        self.state.ask_for(NEED_SOURCE, destination=lookup_city("mumbai"))
        reply = await self.say("umm not sure")
        self.assertEqual(reply.text, templates.UNKNOWN_CITY)
        self.assertEqual(self.state.pending_clarification, NEED_SOURCE)

    async def test_cancel_clarification(self):
        self.state.ask_for(NEED_SOURCE, destination=lookup_city("mumbai"))
        reply = await self.say("never mind")
        self.assertEqual(reply.text, templates.CLARIFICATION_CANCELLED)
        self.assertEqual(self.state.pending_clarification, NONE)
        self.assertIsNone(self.state.pending_destination)


class TestSmallTalk(DialogueTestCase):

    async def test_greeting(self):
        reply = await self.say("hello")
        self.assertIn(reply.text, templates.greetings)
        self.assertEqual(self.state.last_topic, "greeting")

    async def test_thanks(self):
        reply = await self.say("thanks")
        self.assertIn(reply.text, templates.thank_you_responses)
        self.assertEqual(self.state.last_topic, "thank_you")

    async def test_out_of_domain(self):
        reply = await self.say("what's the weather")
        self.assertIn(reply.text, templates.out_of_domain_responses)
        self.assertIsNone(reply.command)

    async def test_topic_falls_back_to_template(self):
        reply = await self.say("what is the baggage allowance on indigo")
        self.assertEqual(reply.text, templates.baggage_info("indigo"))
        self.assertEqual(self.state.last_topic, "baggage_info")

    async def test_topic_uses_llm_text(self):
        llm = StubLLM("Most domestic fares include 15kg of checked baggage.")
        self.agent.llm = llm
        reply = await self.say("what is the baggage allowance")
        self.assertEqual(reply.text, "Most domestic fares include 15kg of checked baggage.")
        self.assertEqual(len(llm.prompts), 1)

    async def test_llm_text_cannot_start_a_search(self):
        self.agent.llm = StubLLM('Sure! <flight-search source="DEL" destination="BOM" date="2026-10-20" />')
        reply = await self.say("any travel tips?")
        self.assertIsNone(reply.command)
        self.assertEqual(reply.text, "Sure!")


class TestRefinements(DialogueTestCase):

    def setUp(self):
        super().setUp()
        self.state.last_topic = "sorted_by_price"

    async def test_option_one_filters_non_stop(self):
        reply = await self.say("1", PREVIOUS)
        self.assertEqual(reply.command, PREVIOUS.with_options(filter="non-stop"))
        self.assertEqual(self.state.last_topic, "asked_filter_nonstop")

    async def test_option_two_flips_sort(self):
        reply = await self.say("2", PREVIOUS)
        self.assertEqual(reply.command.sort, "duration")

        self.state.last_topic = "sorted_by_duration"
        reply = await self.say("2", PREVIOUS.with_options(sort="duration"))
        self.assertEqual(reply.command.sort, "price")

    async def test_option_three_then_airline(self):
        reply = await self.say("3", PREVIOUS)
        self.assertEqual(reply.text, templates.ASK_WHICH_AIRLINE)
        self.assertEqual(self.state.last_topic, "asked_which_airline")

        reply = await self.say("indigo", PREVIOUS)
        self.assertEqual(reply.command, PREVIOUS.with_options(airline="indigo"))

    async def test_option_four_sets_alert(self):
        reply = await self.say("4", PREVIOUS)
        self.assertIsNone(reply.command)
        self.assertEqual(self.state.price_alerts, [PREVIOUS])
        self.assertEqual(reply.text, templates.price_alert_set(PREVIOUS))

    async def test_refinement_keeps_earlier_options(self):
        previous = PREVIOUS.with_options(airline="vistara")
        reply = await self.say("show me the fastest ones", previous)
        self.assertEqual(reply.command, previous.with_options(sort="duration"))

    async def test_refinement_without_route(self):
        reply = await self.say("1")
        self.assertIsNone(reply.command)
        self.assertEqual(reply.text, templates.FILTER_NON_STOP_NO_ROUTE)


class TestResultsReply(DialogueTestCase):

    async def test_no_flights(self):
        reply = await self.agent.generate_response(self.state, "", PREVIOUS, [])
        self.assertEqual(reply.flights, [])
        self.assertEqual(self.state.last_topic, "no_flights_found")
        self.assertIn("DEL", reply.text)

    async def test_results_mark_state(self):
        from flight_service import generate_mock_flights

        flights = generate_mock_flights(PREVIOUS, rng=random.Random(4))
        reply = await self.agent.generate_response(self.state, "", PREVIOUS, flights)
        self.assertEqual(len(reply.flights), 8)
        self.assertIn("<flight-results>", reply.text)
        self.assertEqual(self.state.last_topic, "sorted_by_price")
        self.assertTrue(self.state.results_presented)

    async def test_quick_questions_only_with_first_results(self):
        from flight_service import generate_mock_flights

        flights = generate_mock_flights(PREVIOUS, rng=random.Random(4))
        first = await self.agent.generate_response(self.state, "", PREVIOUS, flights)
        second = await self.agent.generate_response(self.state, "", PREVIOUS, flights)

        self.assertIn(templates.QUICK_QUESTIONS, first.text)
        self.assertNotIn(templates.QUICK_QUESTIONS, second.text)
        self.assertTrue(self.state.quick_questions_shown)

        self.state.reset()
        third = await self.agent.generate_response(self.state, "", PREVIOUS, flights)
        self.assertIn(templates.QUICK_QUESTIONS, third.text)

    async def test_greeting_does_not_skip_quick_questions(self):
        from flight_service import generate_mock_flights

        await self.say("hello")
        reply = await self.agent.generate_response(
            self.state, "", PREVIOUS, generate_mock_flights(PREVIOUS, rng=random.Random(4))
        )
        self.assertIn(templates.QUICK_QUESTIONS, reply.text)


class TestQuickQuestionAnswers(DialogueTestCase):

    def setUp(self):
        super().setUp()
        self.state.last_topic = "sorted_by_price"
        self.state.quick_questions_shown = True

    async def test_departure_time_is_remembered(self):
        reply = await self.say("early morning please", PREVIOUS)
        self.assertIsNone(reply.command)
        self.assertIn("early morning", reply.text)
        self.assertEqual(self.state.departure_preference, "early morning")
        self.assertEqual(self.state.last_topic, "departure_time_preference")
        self.assertIn("Preferred departure time: early morning.", self.state.context_summary())

    async def test_late_night_from_red_eye(self):
        await self.say("a red-eye is fine", PREVIOUS)
        self.assertEqual(self.state.departure_preference, "late night")

    async def test_airline_answer_filters_results(self):
        reply = await self.say("I prefer vistara", PREVIOUS)
        self.assertEqual(reply.command, PREVIOUS.with_options(airline="vistara"))

    async def test_fastest_answer_sorts_results(self):
        reply = await self.say("the fastest option", PREVIOUS)
        self.assertEqual(reply.command, PREVIOUS.with_options(sort="duration"))

    async def test_special_assistance(self):
        reply = await self.say("my mother needs wheelchair assistance", PREVIOUS)
        self.assertEqual(reply.text, templates.SPECIAL_ASSISTANCE)
        self.assertEqual(self.state.last_topic, "special_assistance")


if __name__ == "__main__":
    unittest.main(verbosity=2)
