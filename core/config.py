import logging
import os
from dataclasses import dataclass
from typing import List, Mapping, Optional

log = logging.getLogger(__name__)

DEFAULT_OLLAMA_HOST = "http://127.0.0.1:11434"
DEFAULT_MODEL = "llama3.2"
DEFAULT_HISTORY_LIMIT = 10
DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_TOKENS = 300

VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class Settings:
    telegram_token: Optional[str] = None
    discord_token: Optional[str] = None
    ollama_host: str = DEFAULT_OLLAMA_HOST
    model: str = DEFAULT_MODEL
    history_limit: int = DEFAULT_HISTORY_LIMIT
    temperature: float = DEFAULT_TEMPERATURE
    max_tokens: int = DEFAULT_MAX_TOKENS
    request_timeout: float = 120.0
    list_timeout: float = 10.0
    pull_timeout: float = 1800.0
    persona_file: Optional[str] = None
    log_level: str = "INFO"

    def validate(self) -> None:
        """Raise ``ValueError`` listing every invalid setting."""
        errors: List[str] = []
        if not self.telegram_token and not self.discord_token:
            errors.append("set TELEGRAM_TOKEN and/or DISCORD_TOKEN")
        if not self.model.strip():
            errors.append("OLLAMA_MODEL must not be empty")
        if not self.ollama_host.startswith(("http://", "https://")):
            errors.append(f"OLLAMA_HOST must be an http(s) URL, got {self.ollama_host!r}")
        if self.history_limit < 2 or self.history_limit % 2:
            errors.append(
                f"HISTORY_LIMIT must be a positive even number, got {self.history_limit}"
            )
        if not 0.0 <= self.temperature <= 2.0:
            errors.append(f"TEMPERATURE must be within 0..2, got {self.temperature}")
        if self.max_tokens <= 0:
            errors.append(f"MAX_TOKENS must be > 0, got {self.max_tokens}")
        for name in ("request_timeout", "list_timeout", "pull_timeout"):
            if getattr(self, name) <= 0:
                errors.append(f"{name.upper()} must be > 0, got {getattr(self, name)}")
        if self.log_level not in VALID_LOG_LEVELS:
            errors.append(f"LOG_LEVEL must be one of {', '.join(VALID_LOG_LEVELS)}")
        if errors:
            raise ValueError("invalid configuration:\n" + "\n".join(f"  - {e}" for e in errors))


def _number(env: Mapping[str, str], key: str, default, cast):
    raw = (env.get(key) or "").strip()
    if not raw:
        return default
    try:
        return cast(raw)
    except ValueError:
        raise ValueError(f"{key} must be a number, got {raw!r}") from None


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    """Build validated settings from the environment (``os.environ`` by default)."""
    env = os.environ if env is None else env
    settings = Settings(
        telegram_token=(env.get("TELEGRAM_TOKEN") or "").strip() or None,
        discord_token=(env.get("DISCORD_TOKEN") or "").strip() or None,
        ollama_host=(env.get("OLLAMA_HOST") or DEFAULT_OLLAMA_HOST).strip().rstrip("/"),
        model=(env.get("OLLAMA_MODEL") or env.get("MODEL") or DEFAULT_MODEL).strip(),
        history_limit=_number(env, "HISTORY_LIMIT", DEFAULT_HISTORY_LIMIT, int),
        temperature=_number(env, "TEMPERATURE", DEFAULT_TEMPERATURE, float),
        max_tokens=_number(env, "MAX_TOKENS", DEFAULT_MAX_TOKENS, int),
        request_timeout=_number(env, "REQUEST_TIMEOUT", 120.0, float),
        list_timeout=_number(env, "LIST_TIMEOUT", 10.0, float),
        pull_timeout=_number(env, "PULL_TIMEOUT", 1800.0, float),
        persona_file=(env.get("PERSONA_FILE") or "").strip() or None,
        log_level=(env.get("LOG_LEVEL") or "INFO").strip().upper(),
    )
    settings.validate()
    log.debug("configuration loaded: model=%s host=%s", settings.model, settings.ollama_host)
    return settings
