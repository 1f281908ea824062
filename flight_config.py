"""Flight Friend configuration"""
import os

from dotenv import load_dotenv

load_dotenv()  # Load environment variables from .env file

# API keys
GEMINI_API_KEY = os.getenv("GEMINI_API_KEY", "")
GROQ_API_KEY = os.getenv("GROQ_API_KEY", "")
GROQ_MODEL = os.getenv("GROQ_MODEL", "meta-llama/llama-4-scout-17b-16e-instruct")
AVIATIONSTACK_API_KEY = os.getenv("AVIATIONSTACK_API_KEY", "")
ABLY_API_KEY = os.getenv("ABLY_API_KEY", "")

# "true" forces mock flight data and disables LLM calls
ENABLE_MOCKS = os.getenv("ENABLE_MOCKS", "false").strip().lower() == "true"

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
CHAT_HISTORY_DB = os.getenv("CHAT_HISTORY_DB", os.path.join("data", "chat_history.sqlite3"))
TERMINAL_USER_ID = os.getenv("FLIGHT_FRIEND_USER", "local-user")

# API base URLs
GEMINI_API_URL = "https://generativelanguage.googleapis.com/v1beta/models/gemini-2.0-flash:generateContent"
AVIATIONSTACK_BASE_URL = "http://api.aviationstack.com/v1"
HTTP_TIMEOUT = 15  # seconds

# Generation parameters for the language model
GENERATION_CONFIG = {
    "temperature": 0.9,
    "topK": 40,
    "topP": 0.95,
    "maxOutputTokens": 1024,
    "stopSequences": ["\n\n", "END"],
    "candidateCount": 1,
}

SAFETY_SETTINGS = [
    {"category": category, "threshold": "BLOCK_MEDIUM_AND_ABOVE"}
    for category in (
        "HARM_CATEGORY_HARASSMENT",
        "HARM_CATEGORY_HATE_SPEECH",
        "HARM_CATEGORY_SEXUALLY_EXPLICIT",
        "HARM_CATEGORY_DANGEROUS_CONTENT",
    )
]

LLM_CACHE_TTL = 5.0  # seconds an identical prompt is served from cache
LLM_MIN_INTERVAL = 1.0  # seconds between upstream LLM requests
FALLBACK_EVENT_LIMIT = 100  # provider and LLM failures kept for inspection

# Flight search
MOCK_FLIGHT_COUNT = 8
RESULTS_DISPLAY_LIMIT = 5
AVIATIONSTACK_LIMIT = 10

# Ably channel and event names
CHANNEL_NAME = "flight-friend"

EVENTS = {
    "USER_QUERY": "user-query",
    "AGENT_RESPONSE": "agent-response",
    "RESET_CONVERSATION": "reset-conversation",
}

SESSION_TIMEOUT = 1800  # 30 minutes
