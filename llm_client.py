import asyncio
import time
from collections import deque, namedtuple
from datetime import datetime
from typing import Deque, Dict, Optional, Tuple

import requests
from groq import Groq

import flight_config
from flight_logger import logger


class LLMError(Exception):
    """Raised by an LLM client when it cannot produce usable text"""


LLMFallbackEvent = namedtuple("LLMFallbackEvent", ["client", "error", "timestamp"])

PERSONA_PROMPT = """
You are Flight Friend, a warm, friendly, and highly helpful flight assistant. Your goal is to make finding flight information easy and pleasant.
Respond conversationally to the user's message about flights, travel, or related topics. Avoid overly robotic language. Use contractions where appropriate (like "I'm", "you're", "it's").
Keep your responses helpful and relatively concise, but feel free to add a touch of personality.

Current context of our chat: {context}

User's message: "{message}"

Your friendly response:
"""


def build_prompt(user_message, context) -> str:
    return PERSONA_PROMPT.format(context=context, message=user_message)


class GeminiClient:
    name = "gemini"

    def __init__(self, api_key=None, url=None, timeout=None, session=None):
        self.api_key = api_key if api_key is not None else flight_config.GEMINI_API_KEY
        self.url = url or flight_config.GEMINI_API_URL
        self.timeout = timeout or flight_config.HTTP_TIMEOUT
        self.session = session or requests.Session()

    def generate(self, prompt) -> str:
        """First candidate's text, trimmed"""
        if not self.api_key:
            raise LLMError("Gemini API key is not configured")

        body = {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": flight_config.GENERATION_CONFIG,
            "safetySettings": flight_config.SAFETY_SETTINGS,
        }
        try:
            response = self.session.post(
                self.url,
                params={"key": self.api_key},
                headers={"Content-Type": "application/json"},
                json=body,
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            raise LLMError(f"Network error: {e}") from e

        if response.status_code != 200:
            if response.status_code == 401:
                logger.error("Gemini authentication failed, check GEMINI_API_KEY")
            raise LLMError(f"API request failed with status {response.status_code}")

        try:
            text = response.json()["candidates"][0]["content"]["parts"][0]["text"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise LLMError(f"Malformed Gemini response: {e}") from e

        if not isinstance(text, str) or not text.strip():
            raise LLMError("Empty Gemini response")
        return text.strip()


class GroqClient:
    name = "groq"

    def __init__(self, api_key=None, model=None, client=None):
        self.model_name = model or flight_config.GROQ_MODEL
        self.groq_client = client
        if self.groq_client is None:
            api_key = api_key if api_key is not None else flight_config.GROQ_API_KEY
            if api_key:
                self.groq_client = Groq(api_key=api_key)

    def generate(self, prompt) -> str:
        if not self.groq_client:
            raise LLMError("Groq client not initialized")

        config = flight_config.GENERATION_CONFIG
        try:
            chat_completion = self.groq_client.chat.completions.create(
                messages=[{"role": "user", "content": prompt}],
                model=self.model_name,
                temperature=config["temperature"],
                max_tokens=config["maxOutputTokens"],
                top_p=config["topP"],
                stop=config["stopSequences"],
            )
            text = chat_completion.choices[0].message.content
        except Exception as e:
            raise LLMError(f"Groq request failed: {e}") from e

        if not text or not text.strip():
            raise LLMError("Empty Groq response")
        return text.strip()


class LLMFallbackCaller:
    """
    Ordered LLM clients behind a short prompt cache and a request throttle.

    Identical prompts within ``cache_ttl`` seconds are answered from cache;
    stale entries are dropped as new ones arrive.
    Upstream calls are spaced at least ``min_interval`` seconds apart by
    waiting, never by dropping the request. When every client fails the
    caller returns None and records one LLMFallbackEvent per failure.
    """

    def __init__(self, clients=None, cache_ttl=None, min_interval=None, clock=time.monotonic, sleep=asyncio.sleep):
        self.clients = list(clients or [])
        self.cache_ttl = flight_config.LLM_CACHE_TTL if cache_ttl is None else cache_ttl
        self.min_interval = flight_config.LLM_MIN_INTERVAL if min_interval is None else min_interval
        self.clock = clock
        self.sleep = sleep
        self.cache: Dict[str, Tuple[str, float]] = {}
        self.last_request_time: Optional[float] = None
        self.request_count = 0
        self.events: Deque[LLMFallbackEvent] = deque(maxlen=flight_config.FALLBACK_EVENT_LIMIT)

    @property
    def enabled(self) -> bool:
        return bool(self.clients)

    def _cached(self, prompt):
        entry = self.cache.get(prompt)
        if entry is None:
            return None
        if self.clock() - entry[1] < self.cache_ttl:
            return entry[0]
        del self.cache[prompt]
        return None

    def _store(self, prompt, text):
        now = self.clock()
        expired = [key for key, (_, stored) in self.cache.items() if now - stored >= self.cache_ttl]
        for key in expired:
            del self.cache[key]
        self.cache[prompt] = (text, now)

    async def _throttle(self):
        # Claim the next free slot before waiting so concurrent callers queue up
        now = self.clock()
        slot = now
        if self.last_request_time is not None:
            slot = max(now, self.last_request_time + self.min_interval)
        self.last_request_time = slot
        self.request_count += 1
        if slot > now:
            await self.sleep(slot - now)

    async def generate(self, prompt) -> Optional[str]:
        if not self.clients:
            return None

        cached = self._cached(prompt)
        if cached is not None:
            logger.debug("Using cached response for recent query")
            return cached

        for client in self.clients:
            await self._throttle()
            logger.debug(f"LLM request #{self.request_count} via {client.name}")
            try:
                text = await asyncio.to_thread(client.generate, prompt)
            except LLMError as e:
                event = LLMFallbackEvent(client.name, str(e), datetime.now())
                self.events.append(event)
                logger.warning(f"LLM client {client.name} failed, trying next: {e}")
                continue
            self._store(prompt, text)
            return text

        logger.info("All LLM clients failed, using template response")
        return None


def build_llm_caller() -> LLMFallbackCaller:
    """Gemini then Groq, skipping clients without a key; none at all in mock mode"""
    if flight_config.ENABLE_MOCKS:
        return LLMFallbackCaller()
    clients = []
    if flight_config.GEMINI_API_KEY:
        clients.append(GeminiClient())
    if flight_config.GROQ_API_KEY:
        try:
            clients.append(GroqClient())
        except Exception as e:
            logger.warning(f"Failed to initialize Groq client: {e}")
    return LLMFallbackCaller(clients)
