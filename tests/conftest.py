"""
Shared fakes for the relay tests.

The inference service and the messaging transport are replaced with small
in-memory doubles so that the core can be driven without a network.
"""

import copy

import pytest

from core.assistant import Assistant, IncomingMessage
from core.models import ModelStatus


class FakeOllama:
    """Stands in for OllamaClient; records every call."""

    def __init__(self, installed=None, replies=None):
        self.installed = list(installed or [])
        self.replies = list(replies or [])
        self.pulled = []
        self.chat_calls = []
        self.list_calls = 0
        self.list_error = None
        self.pull_error = None
        self.chat_error = None
        self.closed = False

    async def list_models(self):
        self.list_calls += 1
        if self.list_error is not None:
            raise self.list_error
        return list(self.installed)

    async def pull_model(self, model):
        if self.pull_error is not None:
            raise self.pull_error
        self.pulled.append(model)
        self.installed.append(f"{model}:latest")

    async def chat(self, model, messages, *, temperature, max_tokens):
        self.chat_calls.append(
            {
                "model": model,
                "messages": copy.deepcopy(list(messages)),
                "temperature": temperature,
                "max_tokens": max_tokens,
            }
        )
        if self.chat_error is not None:
            raise self.chat_error
        if self.replies:
            return self.replies.pop(0)
        return f"  reply {len(self.chat_calls)}  "

    async def close(self):
        self.closed = True


class FakeChannel:
    """Collects replies the way a transport would send them."""

    def __init__(self, fail_typing=False):
        self.replies = []
        self.typing = 0
        self.fail_typing = fail_typing

    async def reply(self, text):
        self.replies.append(text)

    async def send_typing(self):
        self.typing += 1
        if self.fail_typing:
            raise RuntimeError("typing indicator unavailable")


def make_assistant(client, model="llama3.2", ready=True, **kwargs):
    assistant = Assistant(client=client, model=model, **kwargs)
    if ready:
        assistant.models.status = ModelStatus.READY
    return assistant


def dm(text, user_id="alice", platform="test"):
    return IncomingMessage(platform=platform, user_id=user_id, text=text)


@pytest.fixture
def fake_client():
    return FakeOllama(installed=["llama3.2:latest"])


@pytest.fixture
def channel():
    return FakeChannel()
