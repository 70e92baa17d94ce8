"""
Tests for the chat turn orchestrator: prompt assembly, readiness gate and
failure classification.
"""

import asyncio

from core.chat import (
    CONNECTION_REFUSED_TEXT,
    ChatOrchestrator,
    EMPTY_REPLY_TEXT,
    GENERIC_ERROR_TEXT,
    NOT_READY_TEXT,
    TIMEOUT_TEXT,
    model_not_found_text,
)
from core.models import ModelManager, ModelStatus
from core.ollama import ErrorKind, InferenceError
from core.persona import DEFAULT_SYSTEM_PROMPT
from core.sessions import SessionStore, Turn

from conftest import FakeChannel, FakeOllama


class TestChatOrchestrator:
    def setup_method(self):
        self.client = FakeOllama(installed=["llama3.2:latest"])
        self.sessions = SessionStore()
        self.models = ModelManager(self.client, "llama3.2")
        self.models.status = ModelStatus.READY
        self.chat = ChatOrchestrator(self.client, self.sessions, self.models)
        self.channel = FakeChannel()

    def _turn(self, text, user_id="u1"):
        asyncio.run(self.chat.run(user_id, text, self.channel.reply, self.channel.send_typing))

    def test_successful_turn(self):
        """Reply is trimmed, sent, and both turns are stored."""
        self.client.replies = ["  Hi there!  \n"]
        self._turn("hello")
        assert self.channel.replies == ["Hi there!"]
        assert self.sessions.get("u1") == [Turn("user", "hello"), Turn("assistant", "Hi there!")]
        assert self.channel.typing == 1

    def test_request_parameters(self):
        self._turn("hello")
        call = self.client.chat_calls[0]
        assert call["model"] == "llama3.2"
        assert call["temperature"] == 0.7
        assert call["max_tokens"] == 300

    def test_prompt_is_system_history_then_new_turn(self):
        self.sessions.append("u1", "user", "q1")
        self.sessions.append("u1", "assistant", "a1")
        self._turn("q2")
        messages = self.client.chat_calls[0]["messages"]
        assert messages == [
            {"role": "system", "content": DEFAULT_SYSTEM_PROMPT},
            {"role": "user", "content": "q1"},
            {"role": "assistant", "content": "a1"},
            {"role": "user", "content": "q2"},
        ]

    def test_not_ready_skips_inference(self):
        self.models.status = ModelStatus.UNAVAILABLE
        self._turn("hello")
        assert self.channel.replies == [NOT_READY_TEXT]
        assert self.client.chat_calls == []
        assert self.channel.typing == 0

    def test_typing_failure_does_not_abort(self):
        self.channel = FakeChannel(fail_typing=True)
        self._turn("hello")
        assert self.channel.replies == ["reply 1"]

    def test_turn_without_typing_callback(self):
        asyncio.run(self.chat.run("u1", "hello", self.channel.reply))
        assert self.channel.replies == ["reply 1"]

    def test_empty_answer_still_stored(self):
        self.client.replies = ["   "]
        self._turn("hello")
        assert self.channel.replies == [EMPTY_REPLY_TEXT]
        assert self.sessions.get("u1")[-1] == Turn("assistant", "")


class TestChatFailures:
    """Each failure category maps to its own reply; history stays untouched."""

    def setup_method(self):
        self.client = FakeOllama(installed=["llama3.2:latest"])
        self.sessions = SessionStore()
        self.sessions.append("u1", "user", "earlier")
        self.sessions.append("u1", "assistant", "reply")
        self.before = list(self.sessions.get("u1"))
        self.models = ModelManager(self.client, "llama3.2")
        self.models.status = ModelStatus.READY
        self.chat = ChatOrchestrator(self.client, self.sessions, self.models)
        self.channel = FakeChannel()

    def _fail_with(self, error):
        self.client.chat_error = error
        asyncio.run(self.chat.run("u1", "hello", self.channel.reply, self.channel.send_typing))

    def test_connection_refused(self):
        self._fail_with(InferenceError(ErrorKind.CONNECTION_REFUSED, "connect ECONNREFUSED"))
        assert self.channel.replies == [CONNECTION_REFUSED_TEXT]
        assert self.sessions.get("u1") == self.before

    def test_timeout(self):
        self._fail_with(InferenceError(ErrorKind.TIMEOUT, "timed out"))
        assert self.channel.replies == [TIMEOUT_TEXT]
        assert self.sessions.get("u1") == self.before

    def test_unclassified(self):
        self._fail_with(InferenceError(ErrorKind.UNCLASSIFIED, "boom"))
        assert self.channel.replies == [GENERIC_ERROR_TEXT]
        assert self.sessions.get("u1") == self.before

    def test_raw_exceptions_are_classified(self):
        self._fail_with(RuntimeError("connect ECONNREFUSED 127.0.0.1:11434"))
        assert self.channel.replies == [CONNECTION_REFUSED_TEXT]

    def test_model_not_found_schedules_recovery(self):
        """The recovery check runs in the background; the turn is not retried."""
        self.client.installed = []
        self.client.chat_error = InferenceError(ErrorKind.MODEL_NOT_FOUND, 'model "llama3.2" not found')

        async def scenario():
            await self.chat.run("u1", "hello", self.channel.reply)
            task = self.models._background
            assert task is not None
            await task

        asyncio.run(scenario())
        assert self.channel.replies == [model_not_found_text("llama3.2")]
        assert self.client.pulled == ["llama3.2"]
        assert len(self.client.chat_calls) == 1
        assert self.sessions.get("u1") == self.before
        assert self.models.ready

