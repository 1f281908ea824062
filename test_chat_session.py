import os
import random
import tempfile
import unittest
from datetime import date

from chat_history import SqliteChatHistoryStore
from chat_session import ChatSession
from flight_markup import render_search_command
from flight_service import FlightProviderChain, MockFlightProvider
from llm_client import LLMFallbackCaller
from models import FlightSearchParams, Message
from travel_agent import ConversationalTravelAgent

TODAY = date(2026, 10, 19)


class CountingProvider(MockFlightProvider):
    name = "counting"

    def __init__(self):
        super().__init__(rng=random.Random(11))
        self.calls = 0

    def search(self, params):
        self.calls += 1
        return super().search(params)


class SessionTestCase(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.store = SqliteChatHistoryStore(os.path.join(self.tmp.name, "history.sqlite3"))
        self.agent = ConversationalTravelAgent(llm=LLMFallbackCaller(), rng=random.Random(0), today=lambda: TODAY)
        self.provider = CountingProvider()

    def tearDown(self):
        self.tmp.cleanup()

    def make_session(self, user_id="traveller-1", store=True):
        return ChatSession(
            user_id=user_id,
            agent=self.agent,
            provider_chain=FlightProviderChain([self.provider]),
            history_store=self.store if store else None,
        )


class TestChatSession(SessionTestCase):

    async def test_starts_with_welcome(self):
        session = self.make_session()
        self.assertEqual(len(session.messages), 1)
        self.assertEqual(session.messages[0].type, "bot")

    async def test_search_turn_produces_results(self):
        session = self.make_session()
        turns = await session.send_message("flights from Delhi to Mumbai")

        self.assertEqual(len(turns), 2)
        self.assertIsNotNone(turns[0].reply.command)
        self.assertEqual(len(turns[1].reply.flights), 8)
        self.assertIn("<flight-results>", turns[1].message.content)
        self.assertEqual([m.type for m in session.messages], ["bot", "user", "bot", "bot"])
        self.assertEqual(session.search_params.source, "DEL")
        self.assertEqual(self.provider.calls, 1)
        self.assertFalse(session.is_loading)

    async def test_search_runs_once_per_message(self):
        session = self.make_session()
        turns = await session.send_message("flights from Delhi to Mumbai")

        self.assertIsNone(await session.trigger_search(turns[0].message))
        self.assertEqual(self.provider.calls, 1)

    async def test_command_parsed_from_message_text(self):
        session = self.make_session(store=False)
        params = FlightSearchParams("BLR", "GOI", date(2026, 11, 2))
        message = Message.create(f"Searching...\n\n{render_search_command(params)}", "bot")

        first = await session.trigger_search(message)
        second = await session.trigger_search(message)

        self.assertIsNotNone(first)
        self.assertIsNone(second)
        self.assertEqual(session.search_params, params)
        self.assertEqual(self.provider.calls, 1)

    async def test_refinement_uses_last_search(self):
        session = self.make_session(store=False)
        await session.send_message("flights from Delhi to Mumbai")
        turns = await session.send_message("2")

        self.assertEqual(turns[0].reply.command.sort, "duration")
        durations = [f.duration for f in session.flights]
        self.assertEqual(durations, sorted(durations))
        self.assertEqual(self.provider.calls, 2)

    async def test_blank_message_is_ignored(self):
        session = self.make_session()
        self.assertEqual(await session.send_message("   "), [])
        self.assertEqual(len(session.messages), 1)

    async def test_new_conversation(self):
        session = self.make_session()
        await session.send_message("flights from Delhi to Mumbai")
        old_id = session.conversation_id

        session.new_conversation()

        self.assertNotEqual(session.conversation_id, old_id)
        self.assertEqual(len(session.messages), 1)
        self.assertIsNone(session.search_params)
        self.assertEqual(session.state.last_topic, "")

    async def test_price_alerts(self):
        session = self.make_session(store=False)
        await session.send_message("flights from Delhi to Mumbai")
        await session.send_message("4")

        deals = session.check_price_alerts(random.Random(1))
        self.assertEqual(len(deals), 1)
        self.assertEqual((deals[0].source, deals[0].destination), ("DEL", "BOM"))


class TestSessionHistory(SessionTestCase):

    async def test_messages_are_saved_without_welcome(self):
        session = self.make_session()
        await session.send_message("flights from Delhi to Mumbai")
        entries = self.store.get_conversation_messages("traveller-1", session.conversation_id)
        self.assertEqual([e.message_type for e in entries], ["user", "bot", "bot"])

    async def test_reload_never_reruns_commands(self):
        session = self.make_session()
        await session.send_message("flights from Delhi to Mumbai")

        restored = self.make_session()
        messages = restored.load_history()

        self.assertEqual(restored.conversation_id, session.conversation_id)
        self.assertEqual(len(messages), 3)
        self.assertEqual(restored.state.last_topic, "")
        self.assertIsNone(await restored.trigger_search(messages[1]))
        self.assertEqual(self.provider.calls, 1)

    async def test_delete_current_conversation_starts_over(self):
        session = self.make_session()
        await session.send_message("flights from Delhi to Mumbai")
        old_id = session.conversation_id

        self.assertTrue(session.delete_conversation(old_id))

        self.assertNotEqual(session.conversation_id, old_id)
        self.assertEqual(session.list_conversations(), [])

    async def test_without_user_nothing_persists(self):
        session = self.make_session(user_id=None)
        await session.send_message("hello")
        self.assertEqual(session.load_history(), [])
        self.assertFalse(session.clear_history())


if __name__ == "__main__":
    unittest.main(verbosity=2)
