"""Short-term, in-memory conversation logs keyed by user id."""

from __future__ import annotations

import asyncio
from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, List

DEFAULT_MAX_TURNS = 10

ROLES = ("user", "assistant")


@dataclass
class Turn:
    role: str
    content: str

    def to_message(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}


class SessionStore:
    """Bounded per-user history.

    Overflow evicts whole exchanges: the two oldest turns go first, so a log
    that only ever receives user/assistant pairs keeps an even length.
    """

    def __init__(self, max_turns: int = DEFAULT_MAX_TURNS) -> None:
        if max_turns < 2 or max_turns % 2:
            raise ValueError("max_turns must be a positive even number")
        self.max_turns = max_turns
        self._sessions: Dict[str, List[Turn]] = {}
        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, user_id: str) -> bool:
        return user_id in self._sessions

    def user_ids(self) -> List[str]:
        return list(self._sessions)

    def get(self, user_id: str) -> List[Turn]:
        return self._sessions.setdefault(user_id, [])

    def append(self, user_id: str, role: str, content: str) -> None:
        if role not in ROLES:
            raise ValueError(f"unknown role: {role!r}")
        history = self.get(user_id)
        history.append(Turn(role, content))
        while len(history) > self.max_turns:
            del history[:2]

    def clear(self, user_id: str) -> None:
        self._sessions.pop(user_id, None)

    def lock(self, user_id: str) -> asyncio.Lock:
        # one lock per user id ever seen, kept for the process lifetime like
        # the sessions themselves; clear() leaves it since reset runs under it
        return self._locks[user_id]
