import logging
from typing import Awaitable, Callable, Dict, List, Optional

from .models import ModelManager
from .ollama import ErrorKind, InferenceError
from .persona import PersonaConfig
from .sessions import SessionStore

log = logging.getLogger(__name__)

NOT_READY_TEXT = (
    "⚠️ AI not ready. Make sure Ollama is installed and running!\n\n"
    "Install: https://ollama.com\n"
    "Run: ollama serve\n\n"
    "Then type !status to check."
)
CONNECTION_REFUSED_TEXT = "❌ Cannot connect to Ollama. Make sure it's running:\n\nRun: ollama serve"
TIMEOUT_TEXT = "⏳ The model took too long to answer. Please try again in a moment."
GENERIC_ERROR_TEXT = (
    "❌ Sorry, I encountered an error. Please try again or type !reset to clear history."
)
EMPTY_REPLY_TEXT = "🤔 I don't have an answer for that."


def model_not_found_text(model: str) -> str:
    return f'❌ Model "{model}" not found. Downloading...\n\nThis may take a few minutes.'


class ChatOrchestrator:
    """Runs one free-form chat turn against the active model."""

    def __init__(
        self,
        client,
        sessions: SessionStore,
        models: ModelManager,
        persona: Optional[PersonaConfig] = None,
        *,
        temperature: float = 0.7,
        max_tokens: int = 300,
    ) -> None:
        self.client = client
        self.sessions = sessions
        self.models = models
        self.persona = persona or PersonaConfig()
        self.temperature = temperature
        self.max_tokens = max_tokens

    def build_messages(self, user_id: str, text: str) -> List[Dict[str, str]]:
        messages = [{"role": "system", "content": self.persona.get_prompt()}]
        messages.extend(turn.to_message() for turn in self.sessions.get(user_id))
        messages.append({"role": "user", "content": text})
        return messages

    async def run(
        self,
        user_id: str,
        text: str,
        reply: Callable[[str], Awaitable[None]],
        typing: Optional[Callable[[], Awaitable[None]]] = None,
    ) -> None:
        if not self.models.ready:
            await reply(NOT_READY_TEXT)
            return
        if typing is not None:
            try:
                await typing()
            except Exception as exc:
                log.debug("typing indicator failed for %s: %s", user_id, exc)
        model = self.models.active_model
        messages = self.build_messages(user_id, text)
        try:
            answer = await self.client.chat(
                model,
                messages,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            )
        except Exception as exc:
            error = InferenceError.from_exception(exc, model=model)
            log.error("error generating AI response for %s: %s", user_id, error)
            await reply(self._failure_text(error, model))
            return
        answer = answer.strip()
        self.sessions.append(user_id, "user", text)
        self.sessions.append(user_id, "assistant", answer)
        await reply(answer or EMPTY_REPLY_TEXT)
        log.info("AI responded to %s", user_id)

    def _failure_text(self, exc: InferenceError, model: str) -> str:
        if exc.kind is ErrorKind.CONNECTION_REFUSED:
            return CONNECTION_REFUSED_TEXT
        if exc.kind is ErrorKind.MODEL_NOT_FOUND:
            # best effort; the original turn is not replayed
            self.models.schedule_check()
            return model_not_found_text(model)
        if exc.kind is ErrorKind.TIMEOUT:
            return TIMEOUT_TEXT
        return GENERIC_ERROR_TEXT
