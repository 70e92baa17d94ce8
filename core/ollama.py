"""Client for a local Ollama server.

Model listing and pulls go through Ollama's native HTTP API with ``aiohttp``;
chat completions use its OpenAI-compatible endpoint through ``AsyncOpenAI``.
Every failure leaves this module as an :class:`InferenceError` carrying an
:class:`ErrorKind`, which is what the rest of the relay branches on.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Dict, List, Optional, Sequence

import aiohttp
import openai
from openai import AsyncOpenAI

log = logging.getLogger(__name__)

DEFAULT_HOST = "http://127.0.0.1:11434"


class ErrorKind(str, Enum):
    CONNECTION_REFUSED = "connection_refused"
    MODEL_NOT_FOUND = "model_not_found"
    TIMEOUT = "timeout"
    UNCLASSIFIED = "unclassified"


class InferenceError(Exception):
    """A failed call to the inference service."""

    def __init__(self, kind: ErrorKind, message: str, *, model: Optional[str] = None) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.model = model

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.message}"

    @classmethod
    def from_exception(cls, exc: BaseException, *, model: Optional[str] = None) -> "InferenceError":
        if isinstance(exc, InferenceError):
            return exc
        message = str(exc) or exc.__class__.__name__
        return cls(classify_error(exc), message, model=model)


def classify_error(exc: BaseException) -> ErrorKind:
    if isinstance(exc, InferenceError):
        return exc.kind
    # APITimeoutError subclasses APIConnectionError, so timeouts are checked first
    if isinstance(exc, (asyncio.TimeoutError, openai.APITimeoutError)):
        return ErrorKind.TIMEOUT
    if isinstance(exc, (aiohttp.ClientConnectorError, openai.APIConnectionError, ConnectionRefusedError)):
        return ErrorKind.CONNECTION_REFUSED
    if isinstance(exc, openai.NotFoundError):
        return ErrorKind.MODEL_NOT_FOUND
    text = str(exc).lower()
    if "econnrefused" in text or "connection refused" in text:
        return ErrorKind.CONNECTION_REFUSED
    if "not found" in text or "does not exist" in text:
        return ErrorKind.MODEL_NOT_FOUND
    return ErrorKind.UNCLASSIFIED


def base_name(model: str) -> str:
    """``llama3.2:latest`` -> ``llama3.2``.

    Only a tag after the last ``/`` is dropped, so a registry port survives.
    """
    model = model.strip()
    slash = model.rfind("/")
    colon = model.rfind(":")
    if colon > slash:
        model = model[:colon]
    return model.strip().lower()


class OllamaClient:
    def __init__(
        self,
        host: str = DEFAULT_HOST,
        *,
        request_timeout: float = 120.0,
        list_timeout: float = 10.0,
        pull_timeout: float = 1800.0,
    ) -> None:
        self.host = host.rstrip("/")
        self.list_timeout = list_timeout
        self.pull_timeout = pull_timeout
        # Ollama ignores the key but the client insists on one
        self.client = AsyncOpenAI(
            base_url=f"{self.host}/v1",
            api_key="ollama",
            timeout=request_timeout,
            max_retries=0,
        )
        self._session: Optional[aiohttp.ClientSession] = None

    def _http(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
        return self._session

    async def _error_from_response(self, resp: aiohttp.ClientResponse, model: Optional[str]) -> InferenceError:
        try:
            payload = await resp.json(content_type=None)
            detail = str(payload.get("error") or payload) if isinstance(payload, dict) else str(payload)
        except (aiohttp.ContentTypeError, ValueError):
            detail = await resp.text()
        detail = detail.strip() or resp.reason or f"HTTP {resp.status}"
        if resp.status == 404:
            kind = ErrorKind.MODEL_NOT_FOUND
        else:
            kind = classify_error(RuntimeError(detail))
        return InferenceError(kind, f"HTTP {resp.status}: {detail}", model=model)

    async def list_models(self) -> List[str]:
        url = f"{self.host}/api/tags"
        try:
            async with self._http().get(
                url, timeout=aiohttp.ClientTimeout(total=self.list_timeout)
            ) as resp:
                if resp.status >= 400:
                    raise await self._error_from_response(resp, None)
                data = await resp.json(content_type=None)
        except InferenceError:
            raise
        except Exception as exc:
            raise InferenceError.from_exception(exc) from exc
        entries = data.get("models", []) if isinstance(data, dict) else None
        if not isinstance(entries, list) or not all(isinstance(m, dict) for m in entries):
            raise InferenceError(ErrorKind.UNCLASSIFIED, f"unexpected model listing: {str(data)[:200]}")
        models = [m.get("name") or m.get("model") for m in entries]
        return [name for name in models if isinstance(name, str) and name]

    async def pull_model(self, model: str) -> None:
        """Download ``model`` and wait until Ollama reports completion."""
        url = f"{self.host}/api/pull"
        payload = {"model": model, "stream": False}
        try:
            async with self._http().post(
                url, json=payload, timeout=aiohttp.ClientTimeout(total=self.pull_timeout)
            ) as resp:
                if resp.status >= 400:
                    raise await self._error_from_response(resp, model)
                data = await resp.json(content_type=None)
        except InferenceError:
            raise
        except Exception as exc:
            raise InferenceError.from_exception(exc, model=model) from exc
        if isinstance(data, dict) and data.get("error"):
            message = str(data["error"])
            raise InferenceError(classify_error(RuntimeError(message)), message, model=model)
        log.info("pull of %s finished: %s", model, (data or {}).get("status", "ok"))

    async def chat(
        self,
        model: str,
        messages: Sequence[Dict[str, str]],
        *,
        temperature: float = 0.7,
        max_tokens: int = 300,
    ) -> str:
        try:
            response = await self.client.chat.completions.create(
                model=model,
                messages=list(messages),
                temperature=temperature,
                max_tokens=max_tokens,
                stream=False,
            )
        except Exception as exc:
            raise InferenceError.from_exception(exc, model=model) from exc
        if not response.choices:
            return ""
        return response.choices[0].message.content or ""

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        await self.client.close()
