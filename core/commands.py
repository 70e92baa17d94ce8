"""Control commands: parsing inbound text and executing the non-chat ones."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Union

from .models import ModelManager, Readiness
from .ollama import ErrorKind
from .sessions import SessionStore

log = logging.getLogger(__name__)

COMMAND_MARKERS = ("!", "/")
MODEL_PREFIX = "model "

Reply = Callable[[str], Awaitable[None]]


@dataclass(frozen=True)
class Help:
    pass


@dataclass(frozen=True)
class Ping:
    pass


@dataclass(frozen=True)
class Reset:
    pass


@dataclass(frozen=True)
class Status:
    pass


@dataclass(frozen=True)
class SwitchModel:
    name: str


@dataclass(frozen=True)
class ChatTurn:
    text: str


Command = Union[Help, Ping, Reset, Status, SwitchModel, ChatTurn]

_SIMPLE_COMMANDS = {
    "help": Help(),
    "ping": Ping(),
    "reset": Reset(),
    "status": Status(),
}

PONG_TEXT = "🏓 Pong! Bot is active and running."
RESET_TEXT = "🔄 Conversation history cleared! Starting fresh."
MODEL_USAGE_TEXT = "Usage: !model <name>  (e.g. !model llama3.1)"
STATUS_NOT_READY_TEXT = (
    "❌ AI model not ready. Make sure Ollama is running:\n\n"
    "1. Install: https://ollama.com\n"
    "2. Run: ollama serve\n"
    "3. Type !status again"
)

# longest error detail echoed into a chat reply
DETAIL_LIMIT = 300


def parse_command(text: str) -> Command:
    """Classify one inbound message.

    ``help``, ``ping``, ``reset`` and ``status`` match as whole words with or
    without a leading ``!``/``/``. Switching models needs the marker and a
    space: ``!model llama3.1``. Everything else is a chat turn.
    """
    stripped = (text or "").strip()
    has_marker = stripped[:1] in COMMAND_MARKERS
    body = stripped[1:] if has_marker else stripped
    lowered = body.lower()
    if lowered in _SIMPLE_COMMANDS:
        return _SIMPLE_COMMANDS[lowered]
    if has_marker:
        if lowered == MODEL_PREFIX.strip():
            return SwitchModel("")
        if lowered.startswith(MODEL_PREFIX):
            return SwitchModel(body[len(MODEL_PREFIX):].strip())
    return ChatTurn(stripped)


def help_text(active_model: str) -> str:
    return (
        "🤖 *AI Chat Bot - Commands:*\n\n"
        "• Just chat naturally - I'll respond with AI!\n"
        "• !help - Show this help message\n"
        "• !reset - Clear conversation history\n"
        "• !status - Check AI status\n"
        "• !model [name] - Change model (e.g., !model llama3.1)\n"
        "• !ping - Check if bot is active\n\n"
        f"_Current model: {active_model}_\n"
        "_Powered by Ollama (local & offline)_"
    )


def status_text(models: ModelManager) -> str:
    if models.ready:
        return f"✅ AI is ready!\n\nModel: {models.active_model}\nStatus: Operational"
    return STATUS_NOT_READY_TEXT


def switch_result_text(result: Readiness) -> str:
    if result:
        return f"✅ Now using {result.model}!"
    if result.error is ErrorKind.MODEL_NOT_FOUND:
        return f"❌ Failed to load {result.model}. The model was not found in the Ollama library."
    if result.error is ErrorKind.CONNECTION_REFUSED:
        return f"❌ Failed to load {result.model}. Check if Ollama is running."
    detail = result.detail or "unknown error"
    if len(detail) > DETAIL_LIMIT:
        detail = detail[: DETAIL_LIMIT - 3].rstrip() + "..."
    return f"❌ Failed to load {result.model}. ({detail})"


class CommandRouter:
    def __init__(self, sessions: SessionStore, models: ModelManager) -> None:
        self.sessions = sessions
        self.models = models

    async def execute(self, command: Command, user_id: str, reply: Reply) -> None:
        if isinstance(command, Help):
            await reply(help_text(self.models.active_model))
        elif isinstance(command, Ping):
            await reply(PONG_TEXT)
        elif isinstance(command, Reset):
            self.sessions.clear(user_id)
            log.info("history cleared for %s", user_id)
            await reply(RESET_TEXT)
        elif isinstance(command, Status):
            await reply(status_text(self.models))
        elif isinstance(command, SwitchModel):
            await self._switch_model(command.name, user_id, reply)
        else:
            raise TypeError(f"not a control command: {command!r}")

    async def _switch_model(self, name: str, user_id: str, reply: Reply) -> None:
        if not name:
            await reply(MODEL_USAGE_TEXT)
            return
        log.info("%s requested model switch to %s", user_id, name)
        await reply(f"🔄 Switching to model: {name}\nChecking availability...")
        result = await self.models.switch_model(name)
        await reply(switch_result_text(result))
