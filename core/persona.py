"""System preamble sent as the first message of every chat turn."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List, Optional

import yaml

log = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful AI assistant. Be concise, friendly, and helpful. "
    "Keep responses under 200 words unless asked for more detail."
)

SECTION_ORDER = ("tone", "style", "length")


class PersonaConfig:
    """Default preamble with an optional YAML override, reloaded on change."""

    def __init__(self, path: Optional[Path] = None, default: str = DEFAULT_SYSTEM_PROMPT) -> None:
        self.path = Path(path) if path else None
        self.default = default
        self._cached_prompt = default
        self._mtime: Optional[float] = None

    def _read_config(self) -> Dict[str, List[str]]:
        if self.path is None or not self.path.exists():
            return {}
        try:
            raw = yaml.safe_load(self.path.read_text(encoding="utf-8"))
        except (OSError, yaml.YAMLError) as exc:
            log.warning("failed to read persona config %s: %s", self.path, exc)
            return {}
        sections: Dict[str, List[str]] = {}
        if not isinstance(raw, dict):
            return sections
        for key, value in raw.items():
            slug = str(key).strip().lower()
            if isinstance(value, (list, tuple)):
                lines = [" ".join(str(item or "").split()) for item in value if str(item or "").strip()]
            elif isinstance(value, str):
                lines = [" ".join(value.split())]
            else:
                lines = []
            if lines:
                sections[slug] = lines
        return sections

    def _compose_prompt(self, data: Dict[str, List[str]]) -> str:
        if data.get("system_prompt"):
            return " ".join(data["system_prompt"]).strip()
        segments: List[str] = []
        for key in SECTION_ORDER:
            segments.extend(data.get(key) or [])
        return " ".join(segment.strip() for segment in segments if segment.strip())

    def _load(self) -> None:
        prompt = self._compose_prompt(self._read_config())
        prompt = prompt or self.default
        if prompt != self._cached_prompt:
            log.info("persona updated: %s", prompt[:120])
            self._cached_prompt = prompt

    def get_prompt(self) -> str:
        if self.path is None:
            return self._cached_prompt
        try:
            mtime = self.path.stat().st_mtime if self.path.exists() else None
        except OSError:
            mtime = None
        if mtime != self._mtime:
            self._mtime = mtime
            self._load()
        return self._cached_prompt
