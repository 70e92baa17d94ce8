import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Protocol

from .chat import ChatOrchestrator
from .commands import ChatTurn, CommandRouter, parse_command
from .config import Settings
from .models import ModelManager
from .ollama import OllamaClient
from .persona import PersonaConfig
from .sessions import SessionStore

log = logging.getLogger(__name__)


@dataclass
class IncomingMessage:
    platform: str
    user_id: str
    text: str
    is_group: bool = False

    @property
    def session_key(self) -> str:
        return f"{self.platform}:{self.user_id}" if self.platform else self.user_id


class ReplyChannel(Protocol):
    """Transport side of one inbound message."""

    async def reply(self, text: str) -> None:
        ...

    async def send_typing(self) -> None:
        ...


class Assistant:
    def __init__(
        self,
        *,
        client,
        model: str,
        sessions: Optional[SessionStore] = None,
        persona: Optional[PersonaConfig] = None,
        temperature: float = 0.7,
        max_tokens: int = 300,
    ) -> None:
        self.client = client
        self.sessions = sessions or SessionStore()
        self.models = ModelManager(client, model)
        self.commands = CommandRouter(self.sessions, self.models)
        self.chat = ChatOrchestrator(
            client,
            self.sessions,
            self.models,
            persona,
            temperature=temperature,
            max_tokens=max_tokens,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "Assistant":
        client = OllamaClient(
            settings.ollama_host,
            request_timeout=settings.request_timeout,
            list_timeout=settings.list_timeout,
            pull_timeout=settings.pull_timeout,
        )
        persona_path = Path(settings.persona_file) if settings.persona_file else None
        return cls(
            client=client,
            model=settings.model,
            sessions=SessionStore(settings.history_limit),
            persona=PersonaConfig(persona_path),
            temperature=settings.temperature,
            max_tokens=settings.max_tokens,
        )

    async def start(self) -> None:
        log.info("checking model %s on startup", self.models.active_model)
        self.models.schedule_check()

    async def handle_message(self, message: IncomingMessage, channel: ReplyChannel) -> bool:
        """Route one inbound message and send its replies in order.

        Returns False when the message was ignored (group chats, empty text).
        """
        if message.is_group:
            return False
        text = (message.text or "").strip()
        if not text:
            return False
        user_key = message.session_key
        log.info("message from %s: %s", user_key, text[:200])

        async def send(reply_text: str) -> None:
            try:
                await channel.reply(reply_text)
            except Exception as exc:
                log.warning("failed to send reply to %s: %s", user_key, exc)

        command = parse_command(text)
        async with self.sessions.lock(user_key):
            if isinstance(command, ChatTurn):
                await self.chat.run(user_key, command.text, send, channel.send_typing)
            else:
                await self.commands.execute(command, user_key, send)
        return True

    async def close(self) -> None:
        await self.models.close()
        await self.client.close()
