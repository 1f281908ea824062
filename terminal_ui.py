#!/usr/bin/env python3
"""
Flight Friend terminal chat
A local, chat-based interface for searching flights in India
"""

import asyncio
import sys
import time
from datetime import datetime

from chat_history import SqliteChatHistoryStore
from chat_session import ChatSession
from flight_config import TERMINAL_USER_ID
from flight_logger import logger
from flight_markup import parse_results_block, strip_markup
from response_templates import deal_notification


class Colors:
    """ANSI color codes for terminal output"""
    HEADER = '\033[95m'
    BLUE = '\033[94m'
    CYAN = '\033[96m'
    GREEN = '\033[92m'
    YELLOW = '\033[93m'
    RED = '\033[91m'
    BOLD = '\033[1m'
    END = '\033[0m'

    @classmethod
    def disable(cls):
        """Disable colors for non-color terminals"""
        cls.HEADER = ''
        cls.BLUE = ''
        cls.CYAN = ''
        cls.GREEN = ''
        cls.YELLOW = ''
        cls.RED = ''
        cls.BOLD = ''
        cls.END = ''


HELP_TEXT = """Just tell me where you'd like to fly! For example:
   • "Flights from Delhi to Mumbai tomorrow"
   • "Bangalore to Goa on 25th December, non-stop"
   • "Cheapest IndiGo flights from Chennai to Kolkata next Friday"

After a search you can reply with 1-4 to filter, re-sort, pick an airline or set a price alert.

💡 Commands:
   • /reset - start a new conversation
   • /history - list saved conversations
   • /open <id> - reopen a saved conversation
   • /delete <id> - delete a saved conversation
   • /clear - delete all saved conversations
   • /alerts - check deals for your price alerts
   • /help - show this message
   • /quit - end the chat"""


def format_flight_card(card, index):
    """One result record as a numbered card"""
    return "\n".join([
        f"  ✈️ Flight {index}: {card.airline} {card.flight_number}",
        f"     🕒 {card.departure_time} → {card.arrival_time} ({card.duration})",
        f"     💰 {card.price}",
    ])


def render_message(content):
    """Bot message text with its results block turned into flight cards"""
    parsed = parse_results_block(content)
    if parsed is None:
        return strip_markup(content)
    before, cards, after = parsed
    parts = [before] if before else []
    parts.extend(format_flight_card(card, i) for i, card in enumerate(cards, 1))
    if after:
        parts.append(after)
    return "\n\n".join(parts)


class FlightFriendTerminal:
    """Terminal front end driving a local ChatSession"""

    def __init__(self, user_id=None, history_store=None):
        self.conversation_active = True
        self.session = ChatSession(user_id=user_id, history_store=history_store)

        # Check if terminal supports colors
        if not (hasattr(sys.stdout, "isatty") and sys.stdout.isatty()):
            Colors.disable()

    def print_header(self):
        """Print the application header"""
        print(f"\n{Colors.CYAN}{'='*70}{Colors.END}")
        print(f"{Colors.BOLD}{Colors.BLUE}✈️  FLIGHT FRIEND  ✈️{Colors.END}")
        print(f"{Colors.CYAN}{'='*70}{Colors.END}")
        print(f"{Colors.GREEN}Type /help for examples and commands.{Colors.END}\n")

    def print_chat_message(self, message: str, sender: str = "assistant", turnaround_time: float = None):
        """Print a chat message with proper formatting"""
        timestamp = datetime.now().strftime("%H:%M")

        if sender == "user":
            print(f"\n{Colors.CYAN}[{timestamp}] You:{Colors.END}")
            for line in message.split('\n'):
                print(f"  {line}")
        else:
            time_info = ""
            if turnaround_time is not None:
                time_info = f" (response in {turnaround_time:.2f}s)"
            print(f"\n{Colors.GREEN}[{timestamp}] Flight Friend{time_info}:{Colors.END}")

            for line in render_message(message).split('\n'):
                if line.strip():
                    print(f"  {line}")
                else:
                    print()

    def print_transcript(self):
        for message in self.session.messages:
            self.print_chat_message(message.content, "user" if message.type == "user" else "assistant")

    async def get_user_input(self) -> str:
        """Get user input without blocking the event loop"""
        try:
            return await asyncio.to_thread(lambda: input(f"\n{Colors.YELLOW}➤ {Colors.END}").strip())
        except KeyboardInterrupt:
            print(f"\n{Colors.YELLOW}Chat paused. Type /quit to exit or continue chatting!{Colors.END}")
            return ""
        except EOFError:
            return "/quit"

    def show_history(self):
        conversations = self.session.list_conversations()
        if not conversations:
            self.print_chat_message("You don't have any saved conversations yet.")
            return
        lines = ["Here are your saved conversations:"]
        for conversation in conversations:
            marker = " (current)" if conversation.id == self.session.conversation_id else ""
            lines.append(f"  • {conversation.id[:8]}  {conversation.title}{marker}")
        self.print_chat_message("\n".join(lines))

    def _find_conversation(self, prefix):
        for conversation in self.session.list_conversations():
            if conversation.id.startswith(prefix):
                return conversation.id
        return None

    def show_alerts(self):
        deals = self.session.check_price_alerts()
        if not deals:
            self.print_chat_message("You haven't set any price alerts yet. Search a route and reply 4 to add one.")
            return
        self.print_chat_message("\n".join(deal_notification(deal) for deal in deals))

    def handle_command(self, user_input: str) -> bool:
        """Handle /commands; returns False when the chat should end"""
        command, _, argument = user_input.strip().partition(" ")
        command = command.lower()
        argument = argument.strip()

        if command in ('/quit', '/exit'):
            self.print_chat_message("It was great helping you with your travel plans! Safe travels! ✈️")
            return False
        if command == '/help':
            self.print_chat_message(HELP_TEXT)
        elif command == '/reset':
            self.session.new_conversation()
            self.print_transcript()
        elif command == '/history':
            self.show_history()
        elif command == '/open':
            conversation_id = self._find_conversation(argument) if argument else None
            if conversation_id and self.session.open_conversation(conversation_id):
                self.print_transcript()
            else:
                self.print_chat_message("I couldn't find that conversation. Try /history to see the list.")
        elif command == '/delete':
            conversation_id = self._find_conversation(argument) if argument else None
            if conversation_id and self.session.delete_conversation(conversation_id):
                self.print_chat_message("Conversation deleted.")
            else:
                self.print_chat_message("I couldn't delete that conversation.")
        elif command == '/clear':
            if self.session.clear_history():
                self.print_chat_message("I've cleared your chat history! Let's start fresh.")
            else:
                self.print_chat_message("There was no saved history to clear.")
        elif command == '/alerts':
            self.show_alerts()
        else:
            self.print_chat_message(f"Unknown command {command}. Type /help for the list.")
        return True

    async def process_conversation_turn(self, user_input: str):
        start_time = time.time()
        turns = await self.session.send_message(user_input)
        for turn in turns:
            self.print_chat_message(turn.message.content, "assistant", time.time() - start_time)

    async def run_conversation_loop(self):
        """Main async conversation loop"""
        self.session.load_history()
        self.print_transcript()

        while self.conversation_active:
            user_input = await self.get_user_input()
            if not user_input:
                continue

            if user_input.startswith('/'):
                if not self.handle_command(user_input):
                    break
                continue

            try:
                await self.process_conversation_turn(user_input)
            except Exception as e:
                logger.exception("Conversation turn failed")
                self.print_chat_message(f"I apologize, but I encountered an issue: {e}. Let's continue!")

    async def run(self):
        """Main application entry point"""
        self.print_header()
        try:
            await self.run_conversation_loop()
        finally:
            print(f"\n{Colors.CYAN}Thanks for chatting! Come back soon! ✈️{Colors.END}")


def main():
    """Main entry point"""
    app = FlightFriendTerminal(user_id=TERMINAL_USER_ID, history_store=SqliteChatHistoryStore())
    asyncio.run(app.run())


if __name__ == "__main__":
    main()
