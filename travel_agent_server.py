#!/usr/bin/env python3
"""
Flight Friend Server
Serves chat sessions over Ably realtime channels, one ChatSession per user
"""

import asyncio
import json
from datetime import datetime
from typing import Dict, Optional

from ably import AblyRealtime

from chat_history import SqliteChatHistoryStore
from chat_session import BotTurn, ChatSession
from flight_config import ABLY_API_KEY, CHANNEL_NAME, EVENTS, RESULTS_DISPLAY_LIMIT, SESSION_TIMEOUT
from flight_logger import logger
from flight_service import build_provider_chain
from models import Flight, FlightSearchParams
from travel_agent import ConversationalTravelAgent

CLEANUP_INTERVAL = 300  # seconds between inactive-session sweeps


def command_to_dict(params: Optional[FlightSearchParams]):
    if params is None:
        return None
    return {
        "source": params.source,
        "destination": params.destination,
        "date": params.date.isoformat(),
        "filter": params.filter,
        "airline": params.airline,
        "sort": params.sort,
    }


def simplify_flight(flight: Flight) -> dict:
    """Only the fields a client needs to draw a flight card"""
    return {
        "id": flight.id,
        "airline": flight.airline,
        "flight_number": flight.flight_number,
        "origin": flight.departure_airport,
        "destination": flight.arrival_airport,
        "departure_time": flight.departure_time.isoformat(),
        "arrival_time": flight.arrival_time.isoformat(),
        "duration_minutes": flight.duration,
        "price": flight.price,
        "currency": flight.currency,
        "non_stop": flight.non_stop,
    }


def build_response_payload(user_id: str, turn: BotTurn, query_time: Optional[str] = None) -> dict:
    reply = turn.reply
    result = {
        "user_id": user_id,
        "message_id": turn.message.id,
        "type": "results" if reply.flights else ("search" if reply.command else "message"),
        "response": reply.display_text,
        "command": command_to_dict(reply.command),
        "flights": [simplify_flight(f) for f in reply.flights[:RESULTS_DISPLAY_LIMIT]],
        "total_flights": len(reply.flights),
    }
    if query_time:
        try:
            result["turnaround_time"] = (datetime.now() - datetime.fromisoformat(query_time)).total_seconds()
        except (TypeError, ValueError) as e:
            logger.warning(f"Error calculating turnaround time: {e}")
    return result


def calculate_message_size(data) -> int:
    """Approximate message size in bytes"""
    return len(json.dumps(data, default=str).encode("utf-8"))


class FlightFriendServer:
    def __init__(self, agent=None, provider_chain=None, history_store=None):
        self.ably = None
        self.channel = None
        self.active_sessions: Dict[str, ChatSession] = {}
        self.cleanup_task = None
        self.session_timeout = SESSION_TIMEOUT

        # Shared by every session; per-user data lives in the ChatSession
        self.agent = agent or ConversationalTravelAgent()
        self.provider_chain = provider_chain or build_provider_chain()
        self.history_store = history_store

    def get_or_create_session(self, user_id: str) -> ChatSession:
        """Get existing session or create new one for user"""
        if user_id not in self.active_sessions:
            logger.info(f"📝 Creating new session for user {user_id}")
            session = ChatSession(
                user_id=user_id,
                agent=self.agent,
                provider_chain=self.provider_chain,
                history_store=self.history_store,
            )
            session.load_history()
            self.active_sessions[user_id] = session
        return self.active_sessions[user_id]

    def remove_inactive_sessions(self):
        inactive = [uid for uid, s in self.active_sessions.items() if s.is_expired(self.session_timeout)]
        for user_id in inactive:
            logger.info(f"🧹 Cleaning up inactive session for user: {user_id}")
            del self.active_sessions[user_id]
        return inactive

    async def cleanup_inactive_sessions(self):
        """Periodically clean up inactive sessions"""
        while True:
            self.remove_inactive_sessions()
            await asyncio.sleep(CLEANUP_INTERVAL)

    async def publish(self, result: dict):
        try:
            logger.info(f"📤 Sending {result.get('type')} response ({calculate_message_size(result)} bytes)")
            await self.channel.publish(EVENTS["AGENT_RESPONSE"], result)
        except Exception as e:
            logger.error(f"❌ Error sending response: {e}")

    async def handle_user_query(self, message):
        """Run one chat turn and publish every bot message it produced"""
        data = message.data or {}
        user_id = data.get("user_id")
        user_input = data.get("input")
        if not user_id or not user_input:
            return

        session = self.get_or_create_session(user_id)
        try:
            turns = await session.send_message(user_input)
        except Exception:
            logger.exception(f"Chat turn failed for user {user_id}")
            await self.publish({
                "user_id": user_id,
                "type": "error",
                "response": "I'm sorry, something went wrong on my side. Could you try that again?",
            })
            return

        for turn in turns:
            await self.publish(build_response_payload(user_id, turn, data.get("query_time")))

    async def handle_reset_conversation(self, message):
        """Start a new conversation and send the welcome message"""
        data = message.data or {}
        user_id = data.get("user_id")
        if not user_id:
            return

        session = self.get_or_create_session(user_id)
        session.touch()
        session.new_conversation()
        await self.publish({
            "user_id": user_id,
            "type": "welcome",
            "response": session.messages[-1].content,
            "conversation_id": session.conversation_id,
        })

    async def setup(self):
        """Initialize Ably connection and start cleanup task"""
        logger.info("🚀 Starting Flight Friend Server...")
        self.ably = AblyRealtime(ABLY_API_KEY)
        self.channel = self.ably.channels.get(CHANNEL_NAME)

        self.cleanup_task = asyncio.create_task(self.cleanup_inactive_sessions())

        await self.channel.subscribe(EVENTS["USER_QUERY"], self.handle_user_query)
        await self.channel.subscribe(EVENTS["RESET_CONVERSATION"], self.handle_reset_conversation)
        logger.info("✅ Flight Friend Server is ready!")

    async def run(self):
        """Main server loop"""
        await self.setup()
        try:
            while True:
                await asyncio.sleep(1)
        finally:
            logger.info("👋 Shutting down Flight Friend Server...")
            if self.cleanup_task:
                self.cleanup_task.cancel()
            if self.ably:
                await self.ably.close()


def main():
    """Main entry point"""
    server = FlightFriendServer(history_store=SqliteChatHistoryStore())
    try:
        asyncio.run(server.run())
    except KeyboardInterrupt:
        print("\n👋 Flight Friend Server stopped")


if __name__ == "__main__":
    main()
