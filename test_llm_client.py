import asyncio
import unittest
from unittest.mock import AsyncMock, MagicMock, patch

import requests

import flight_config
from llm_client import GeminiClient, GroqClient, LLMError, LLMFallbackCaller, build_prompt


class FakeClock:
    def __init__(self, now=100.0):
        self.now = now

    def __call__(self):
        return self.now


class FakeClient:
    def __init__(self, name, reply=None, error=None):
        self.name = name
        self.reply = reply
        self.error = error
        self.prompts = []

    def generate(self, prompt):
        self.prompts.append(prompt)
        if self.error:
            raise LLMError(self.error)
        return self.reply


class TestLLMFallbackCaller(unittest.IsolatedAsyncioTestCase):

    def make_caller(self, *clients):
        self.clock = FakeClock()
        self.sleep = AsyncMock()
        return LLMFallbackCaller(list(clients), cache_ttl=5.0, min_interval=1.0, clock=self.clock, sleep=self.sleep)

    async def test_no_clients(self):
        caller = LLMFallbackCaller()
        self.assertFalse(caller.enabled)
        self.assertIsNone(await caller.generate("hello"))

    async def test_identical_prompt_is_cached(self):
        client = FakeClient("gemini", reply="Happy to help!")
        caller = self.make_caller(client)

        self.assertEqual(await caller.generate("hello"), "Happy to help!")
        self.clock.now += 2
        self.assertEqual(await caller.generate("hello"), "Happy to help!")

        self.assertEqual(len(client.prompts), 1)

    async def test_cache_expires(self):
        client = FakeClient("gemini", reply="Happy to help!")
        caller = self.make_caller(client)

        await caller.generate("hello")
        self.clock.now += 6
        await caller.generate("hello")

        self.assertEqual(len(client.prompts), 2)
        self.sleep.assert_not_awaited()

    async def test_requests_are_spaced(self):
        client = FakeClient("gemini", reply="ok")
        caller = self.make_caller(client)

        await caller.generate("first")
        self.clock.now += 0.25
        await caller.generate("second")

        self.sleep.assert_awaited_once_with(0.75)
        self.assertEqual(len(client.prompts), 2)
        self.assertEqual(caller.request_count, 2)

    async def test_concurrent_requests_take_separate_slots(self):
        client = FakeClient("gemini", reply="ok")
        caller = self.make_caller(client)

        replies = await asyncio.gather(*(caller.generate(f"question {i}") for i in range(3)))

        self.assertEqual(replies, ["ok", "ok", "ok"])
        waits = sorted(call.args[0] for call in self.sleep.await_args_list)
        self.assertEqual(waits, [1.0, 2.0])
        self.assertEqual(caller.last_request_time, 102.0)

    async def test_expired_entries_are_dropped(self):
        client = FakeClient("gemini", reply="ok")
        caller = self.make_caller(client)

        for i in range(200):
            await caller.generate(f"question {i}")
            self.clock.now += 6

        self.assertEqual(len(caller.cache), 1)
        self.assertIsNone(caller._cached("question 199"))
        self.assertEqual(caller.cache, {})

    async def test_fallback_events_are_bounded(self):
        with patch.object(flight_config, "FALLBACK_EVENT_LIMIT", 3):
            caller = self.make_caller(FakeClient("gemini", error="down"))
        for i in range(5):
            await caller.generate(f"question {i}")
            self.clock.now += 6

        self.assertEqual(len(caller.events), 3)
        self.assertEqual(caller.request_count, 5)

    async def test_falls_back_to_next_client(self):
        first = FakeClient("gemini", error="status 429")
        second = FakeClient("groq", reply="From the backup")
        caller = self.make_caller(first, second)

        self.assertEqual(await caller.generate("hello"), "From the backup")
        self.assertEqual(len(caller.events), 1)
        self.assertEqual(caller.events[0].client, "gemini")
        self.assertIn("429", caller.events[0].error)

    async def test_all_clients_fail(self):
        caller = self.make_caller(FakeClient("gemini", error="down"), FakeClient("groq", error="down too"))
        self.assertIsNone(await caller.generate("hello"))
        self.assertEqual([e.client for e in caller.events], ["gemini", "groq"])
        self.assertEqual(caller.cache, {})


class TestGeminiClient(unittest.TestCase):

    def response(self, status=200, payload=None):
        response = MagicMock()
        response.status_code = status
        response.json.return_value = payload
        return response

    def test_parses_first_candidate(self):
        session = MagicMock()
        session.post.return_value = self.response(
            payload={"candidates": [{"content": {"parts": [{"text": "  Sure thing!  "}]}}]}
        )
        client = GeminiClient(api_key="secret", url="http://llm.test", session=session)

        self.assertEqual(client.generate("hi"), "Sure thing!")
        kwargs = session.post.call_args.kwargs
        self.assertEqual(kwargs["params"], {"key": "secret"})
        self.assertEqual(kwargs["json"]["contents"][0]["parts"][0]["text"], "hi")
        self.assertEqual(kwargs["json"]["generationConfig"], flight_config.GENERATION_CONFIG)

    def test_errors_become_llm_errors(self):
        session = MagicMock()
        client = GeminiClient(api_key="secret", session=session)

        session.post.return_value = self.response(status=401)
        with self.assertRaises(LLMError):
            client.generate("hi")

        session.post.return_value = self.response(payload={"candidates": []})
        with self.assertRaises(LLMError):
            client.generate("hi")

        session.post.side_effect = requests.exceptions.Timeout("slow")
        with self.assertRaises(LLMError):
            client.generate("hi")

    def test_missing_key(self):
        with self.assertRaises(LLMError):
            GeminiClient(api_key="", session=MagicMock()).generate("hi")


class TestGroqClient(unittest.TestCase):

    def test_returns_trimmed_content(self):
        completion = MagicMock()
        completion.choices = [MagicMock()]
        completion.choices[0].message.content = " Namaste! "
        groq = MagicMock()
        groq.chat.completions.create.return_value = completion

        client = GroqClient(model="test-model", client=groq)

        self.assertEqual(client.generate("hi"), "Namaste!")
        self.assertEqual(groq.chat.completions.create.call_args.kwargs["model"], "test-model")

    def test_failure_is_llm_error(self):
        groq = MagicMock()
        groq.chat.completions.create.side_effect = RuntimeError("rate limited")
        with self.assertRaises(LLMError):
            GroqClient(client=groq).generate("hi")

    def test_uninitialized(self):
        with self.assertRaises(LLMError):
            GroqClient(api_key="").generate("hi")


class TestPrompt(unittest.TestCase):

    def test_prompt_has_context_and_message(self):
        prompt = build_prompt("any tips?", "Last topic: greeting.")
        self.assertIn("Last topic: greeting.", prompt)
        self.assertIn('"any tips?"', prompt)


if __name__ == "__main__":
    unittest.main(verbosity=2)
