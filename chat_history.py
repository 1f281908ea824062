import os
import sqlite3
import uuid
from collections import namedtuple
from contextlib import contextmanager
from datetime import datetime
from typing import List, Optional

import flight_config
from flight_logger import logger
from models import Message


ChatHistoryEntry = namedtuple(
    "ChatHistoryEntry", ["id", "user_id", "conversation_id", "message_content", "message_type", "created_at"]
)
ConversationSummary = namedtuple("ConversationSummary", ["id", "title", "timestamp", "preview"])

TITLE_LENGTH = 40


def _ensure_parent_dir(path: str) -> None:
    parent = os.path.dirname(path)
    if parent and not os.path.exists(parent):
        os.makedirs(parent, exist_ok=True)


def conversation_title(content: str) -> str:
    return content[:TITLE_LENGTH] + ("..." if len(content) > TITLE_LENGTH else "")


def entry_to_message(entry: ChatHistoryEntry) -> Message:
    return Message(
        id=entry.id,
        content=entry.message_content,
        type=entry.message_type,
        timestamp=datetime.fromisoformat(entry.created_at),
    )


class SqliteChatHistoryStore:
    """
    Append-only chat transcript store keyed by (user, conversation).

    Every public method degrades to an empty result on database errors, so a
    broken history never blocks the chat itself.
    """

    def __init__(self, db_path: Optional[str] = None):
        self.db_path = db_path or flight_config.CHAT_HISTORY_DB
        _ensure_parent_dir(self.db_path)
        self._init_schema()

    @contextmanager
    def _connect(self):
        conn = sqlite3.connect(self.db_path)
        try:
            with conn:
                yield conn
        finally:
            conn.close()

    def _init_schema(self) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS chat_history (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    conversation_id TEXT NOT NULL,
                    message_content TEXT NOT NULL,
                    message_type TEXT NOT NULL,
                    created_at TEXT NOT NULL
                );
                """
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_chat_history_user_conv "
                "ON chat_history(user_id, conversation_id, created_at);"
            )

    def save_message(self, user_id: str, message: Message, conversation_id: str) -> Optional[ChatHistoryEntry]:
        if not user_id:
            return None
        entry = ChatHistoryEntry(
            id=message.id or str(uuid.uuid4()),
            user_id=user_id,
            conversation_id=conversation_id,
            message_content=message.content,
            message_type=message.type,
            created_at=message.timestamp.isoformat(),
        )
        try:
            with self._connect() as conn:
                conn.execute(
                    """
                    INSERT OR REPLACE INTO chat_history
                        (id, user_id, conversation_id, message_content, message_type, created_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    entry,
                )
            return entry
        except sqlite3.Error as e:
            logger.error(f"Error saving message: {e}")
            return None

    def _select(self, where: str, args, order: str = "ASC") -> List[ChatHistoryEntry]:
        query = (
            "SELECT id, user_id, conversation_id, message_content, message_type, created_at "
            f"FROM chat_history WHERE {where} ORDER BY created_at {order}, rowid {order}"
        )
        with self._connect() as conn:
            return [ChatHistoryEntry(*row) for row in conn.execute(query, args).fetchall()]

    def get_user_chat_history(self, user_id: str) -> List[ChatHistoryEntry]:
        """All of a user's messages, oldest first"""
        if not user_id:
            return []
        try:
            return self._select("user_id = ?", (user_id,))
        except sqlite3.Error as e:
            logger.error(f"Error fetching chat history: {e}")
            return []

    def get_conversation_messages(self, user_id: str, conversation_id: str) -> List[ChatHistoryEntry]:
        if not user_id or not conversation_id:
            return []
        try:
            return self._select("user_id = ? AND conversation_id = ?", (user_id, conversation_id))
        except sqlite3.Error as e:
            logger.error(f"Error fetching conversation messages: {e}")
            return []

    def get_user_conversations(self, user_id: str) -> List[ConversationSummary]:
        """Conversations newest first, titled by their first message"""
        if not user_id:
            return []
        try:
            latest = {}
            for entry in self._select("user_id = ?", (user_id,), order="DESC"):
                latest.setdefault(entry.conversation_id, entry.created_at)

            conversations = []
            for conversation_id, timestamp in latest.items():
                first = self._select("user_id = ? AND conversation_id = ?", (user_id, conversation_id))[0]
                conversations.append(
                    ConversationSummary(
                        id=conversation_id,
                        title=conversation_title(first.message_content),
                        timestamp=timestamp,
                        preview=first.message_content,
                    )
                )
            return conversations
        except sqlite3.Error as e:
            logger.error(f"Error getting conversations: {e}")
            return []

    def delete_conversation(self, user_id: str, conversation_id: str) -> bool:
        if not user_id:
            return False
        try:
            with self._connect() as conn:
                conn.execute(
                    "DELETE FROM chat_history WHERE user_id = ? AND conversation_id = ?",
                    (user_id, conversation_id),
                )
            return True
        except sqlite3.Error as e:
            logger.error(f"Error deleting conversation: {e}")
            return False

    def clear_history(self, user_id: str) -> bool:
        if not user_id:
            return False
        try:
            with self._connect() as conn:
                conn.execute("DELETE FROM chat_history WHERE user_id = ?", (user_id,))
            return True
        except sqlite3.Error as e:
            logger.error(f"Error clearing history: {e}")
            return False
