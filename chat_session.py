import time
import uuid
from collections import namedtuple
from typing import Dict, List, Optional, Set

from chat_history import SqliteChatHistoryStore, entry_to_message
from dialogue_state import DialogueState
from flight_logger import logger
from flight_markup import parse_flight_search_command
from flight_service import (
    FlightDeal,
    FlightProviderChain,
    apply_search_options,
    build_provider_chain,
    find_flight_deal,
    search_flights,
)
from models import AgentReply, Flight, FlightSearchParams, Message
from travel_agent import ConversationalTravelAgent


# A bot message together with the structured reply it was rendered from
BotTurn = namedtuple("BotTurn", ["message", "reply"])


class ChatSession:
    """
    One conversation: transcript, dialogue state and the last search.

    Messages are appended in the order their replies complete. A search
    command carried by a bot message runs at most once per message id.
    """

    def __init__(
        self,
        user_id: Optional[str] = None,
        agent: Optional[ConversationalTravelAgent] = None,
        provider_chain: Optional[FlightProviderChain] = None,
        history_store: Optional[SqliteChatHistoryStore] = None,
    ):
        self.user_id = user_id
        self.agent = agent or ConversationalTravelAgent()
        self.provider_chain = provider_chain or build_provider_chain()
        self.history_store = history_store

        self.state = DialogueState()
        self.messages: List[Message] = []
        self.search_params: Optional[FlightSearchParams] = None
        self.flights: List[Flight] = []
        self.processed_commands: Set[str] = set()
        self.pending_commands: Dict[str, FlightSearchParams] = {}
        self.conversation_id = str(uuid.uuid4())
        self.last_activity = time.time()
        self.is_loading = False

        self.messages.extend(self.agent.initial_messages())

    # ---- BOOKKEEPING ---- #

    def touch(self):
        self.last_activity = time.time()

    def is_expired(self, timeout) -> bool:
        return time.time() - self.last_activity > timeout

    @property
    def persistent(self) -> bool:
        return bool(self.user_id and self.history_store)

    def _append(self, message: Message, persist=True):
        self.messages.append(message)
        if persist and self.persistent:
            self.history_store.save_message(self.user_id, message, self.conversation_id)

    # ---- CHAT ---- #

    async def send_message(self, text: str) -> List[BotTurn]:
        """Handle one user message; returns the bot turns it produced, in order"""
        text = (text or "").strip()
        if not text:
            return []

        self.touch()
        self.is_loading = True
        try:
            self._append(Message.create(text, "user"))
            reply = await self.agent.generate_response(self.state, text, self.search_params, self.flights)
            bot_message = Message.create(reply.text, "bot")
            self._append(bot_message)
            turns = [BotTurn(bot_message, reply)]

            if reply.command is not None:
                self.pending_commands[bot_message.id] = reply.command
                results = await self.trigger_search(bot_message)
                if results is not None:
                    turns.append(results)
            return turns
        finally:
            self.is_loading = False

    async def trigger_search(self, message: Message) -> Optional[BotTurn]:
        """Run the search a bot message asks for, once per message id"""
        if message.id in self.processed_commands:
            logger.debug(f"Search for message {message.id} already processed")
            return None

        params = self.pending_commands.pop(message.id, None) or parse_flight_search_command(message.content)
        if params is None:
            return None
        self.processed_commands.add(message.id)

        flights = await search_flights(params, self.provider_chain)
        flights = apply_search_options(flights, params)
        self.search_params = params
        self.flights = flights

        reply: AgentReply = await self.agent.generate_response(self.state, "", params, flights)
        results_message = Message.create(reply.text, "bot")
        self._append(results_message)
        return BotTurn(results_message, reply)

    def new_conversation(self):
        """Forget everything and start over with a fresh welcome"""
        self.state.reset()
        self.messages = []
        self.search_params = None
        self.flights = []
        self.processed_commands = set()
        self.pending_commands = {}
        self.conversation_id = str(uuid.uuid4())
        self.messages.extend(self.agent.initial_messages())
        logger.info(f"Started conversation {self.conversation_id} for user {self.user_id or 'anonymous'}")

    def check_price_alerts(self, rng=None) -> List[FlightDeal]:
        """Current deal for every route with a price alert"""
        return [find_flight_deal(params, rng) for params in self.state.price_alerts]

    # ---- HISTORY ---- #

    def _restore(self, entries):
        """Replace the transcript; stored commands are never re-run"""
        messages = [entry_to_message(entry) for entry in entries]
        if messages:
            self.messages = messages
        self.processed_commands.update(message.id for message in messages)
        return messages

    def load_history(self) -> List[Message]:
        """Restore the current (or most recent) conversation's messages, not its dialogue state"""
        if not self.persistent:
            return []
        entries = self.history_store.get_conversation_messages(self.user_id, self.conversation_id)
        if not entries:
            all_history = self.history_store.get_user_chat_history(self.user_id)
            if all_history:
                self.conversation_id = all_history[-1].conversation_id
                entries = self.history_store.get_conversation_messages(self.user_id, self.conversation_id)
        return self._restore(entries)

    def list_conversations(self):
        if not self.persistent:
            return []
        return self.history_store.get_user_conversations(self.user_id)

    def open_conversation(self, conversation_id: str) -> List[Message]:
        if not self.persistent or not conversation_id:
            return []
        self.state.reset()
        self.search_params = None
        self.flights = []
        self.conversation_id = conversation_id
        return self._restore(self.history_store.get_conversation_messages(self.user_id, conversation_id))

    def delete_conversation(self, conversation_id: str) -> bool:
        if not self.persistent:
            return False
        success = self.history_store.delete_conversation(self.user_id, conversation_id)
        if success and conversation_id == self.conversation_id:
            self.new_conversation()
        return success

    def clear_history(self) -> bool:
        if not self.persistent:
            return False
        success = self.history_store.clear_history(self.user_id)
        if success:
            self.new_conversation()
        return success
