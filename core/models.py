import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Set

from .ollama import ErrorKind, InferenceError, base_name

log = logging.getLogger(__name__)


class ModelStatus(str, Enum):
    UNCHECKED = "unchecked"
    CHECKING = "checking"
    READY = "ready"
    UNAVAILABLE = "unavailable"


@dataclass
class Readiness:
    """Outcome of a check/pull. Truthy when the model is usable."""

    model: str
    ok: bool
    error: Optional[ErrorKind] = None
    detail: str = ""
    pulled: bool = False

    def __bool__(self) -> bool:
        return self.ok


class ModelManager:
    """Tracks whether the active model is installed on the inference service.

    All state changes go through ``_lock`` so that overlapping switch
    commands and background checks apply in request order.
    """

    def __init__(self, client, model: str) -> None:
        self.client = client
        self.active_model = model
        self.status = ModelStatus.UNCHECKED
        self.last_error: Optional[Readiness] = None
        self._lock = asyncio.Lock()
        self._background: Optional[asyncio.Task] = None
        self._tasks: Set[asyncio.Task] = set()

    @property
    def ready(self) -> bool:
        return self.status is ModelStatus.READY

    async def ensure_ready(self, model_name: Optional[str] = None) -> Readiness:
        async with self._lock:
            return await self._check(model_name or self.active_model)

    async def switch_model(self, new_name: str) -> Readiness:
        new_name = new_name.strip()
        async with self._lock:
            previous = self.active_model
            self.active_model = new_name
            self.status = ModelStatus.UNCHECKED
            log.info("active model changed: %s -> %s", previous, new_name)
            return await self._check(new_name)

    async def _check(self, model: str) -> Readiness:
        self._set_status(model, ModelStatus.CHECKING)
        log.info("checking if %s is available", model)
        try:
            installed = await self.client.list_models()
            wanted = base_name(model)
            if any(base_name(name) == wanted for name in installed):
                log.info("%s is ready", model)
                return self._finish(Readiness(model, True))
            log.info("%s not installed, pulling it (this may take a few minutes)", model)
            await self.client.pull_model(model)
        except Exception as exc:
            error = InferenceError.from_exception(exc, model=model)
            log.error("model check for %s failed: %s", model, error)
            if error.kind is ErrorKind.CONNECTION_REFUSED:
                log.warning("make sure Ollama is installed and running (ollama serve)")
            return self._finish(Readiness(model, False, error.kind, error.message))
        log.info("%s downloaded", model)
        return self._finish(Readiness(model, True, pulled=True))

    def _finish(self, result: Readiness) -> Readiness:
        if result.ok:
            self._set_status(result.model, ModelStatus.READY)
        else:
            self.last_error = result
            self._set_status(result.model, ModelStatus.UNAVAILABLE)
        return result

    def _set_status(self, model: str, status: ModelStatus) -> None:
        # a check for a name that is no longer active must not touch the flag
        if model == self.active_model:
            self.status = status

    def schedule_check(self) -> asyncio.Task:
        """Run ``ensure_ready`` for the active model in the background.

        Nobody waits on the result; it only moves the readiness flag. A check
        already in flight is reused rather than starting a second pull.
        """
        if self._background is not None and not self._background.done():
            return self._background
        task = asyncio.create_task(self.ensure_ready())
        self._background = task
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def close(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()
        self._background = None
