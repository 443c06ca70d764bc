from __future__ import annotations

import asyncio
import copy
from functools import lru_cache
from typing import Any, Dict, List, Optional, Tuple

from pydantic_settings import BaseSettings, SettingsConfigDict
from pymongo import ReturnDocument


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    ADMIN_KEY: str = "change-me"
    CORS_ORIGINS: str = "http://localhost:5173,http://localhost:8080"
    CORS_ORIGIN_REGEX: Optional[str] = None

    # Question generation
    OPENAI_API_KEY: Optional[str] = None
    AI_MODEL: str = "gpt-4o-mini"

    # Timers (seconds)
    TIMER_DURATION_SEC: int = 15
    TICK_INTERVAL_SEC: float = 1.0
    BOT_JOIN_INTERVAL_SEC: float = 3.0
    MIN_LOBBY_PLAYERS: int = 3

    LOG_LEVEL: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()


class InMemoryCollection:
    """Process-local stand-in for a pymongo collection.

    Only the calls the session and event stores make are supported. Documents
    are deep-copied on the way in and out so callers never share state with
    the store.
    """

    def __init__(self):
        self._docs: List[Dict[str, Any]] = []
        self._lock = asyncio.Lock()

    async def find_one(self, query: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        async with self._lock:
            doc = self._first(query)
            return copy.deepcopy(doc[1]) if doc else None

    async def find(
        self,
        query: Dict[str, Any],
        *,
        sort: Optional[Tuple[str, int]] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        async with self._lock:
            docs = [copy.deepcopy(d) for d in self._docs if self._matches(d, query)]
        if sort is not None:
            key, direction = sort
            docs.sort(key=lambda d: d.get(key), reverse=direction < 0)
        return docs if limit is None else docs[:limit]

    async def update_one(self, query: Dict[str, Any], update: Dict[str, Any], upsert: bool = False):
        await self.find_one_and_update(query, update, upsert=upsert)

    async def insert_one(self, document: Dict[str, Any]):
        async with self._lock:
            self._docs.append(copy.deepcopy(document))

    async def delete_many(self, query: Dict[str, Any]):
        async with self._lock:
            self._docs = [d for d in self._docs if not self._matches(d, query)]

    async def find_one_and_update(
        self,
        query: Dict[str, Any],
        update: Dict[str, Any],
        *,
        upsert: bool = False,
        return_document: bool = ReturnDocument.BEFORE,
    ) -> Optional[Dict[str, Any]]:
        async with self._lock:
            found = self._first(query)
            if found is None:
                if not upsert:
                    return None
                created = self._apply(copy.deepcopy(query), update)
                self._docs.append(created)
                return copy.deepcopy(created) if return_document == ReturnDocument.AFTER else None

            idx, before = found
            after = self._apply(copy.deepcopy(before), update)
            self._docs[idx] = after
            return copy.deepcopy(after if return_document == ReturnDocument.AFTER else before)

    def _first(self, query: Dict[str, Any]) -> Optional[Tuple[int, Dict[str, Any]]]:
        for idx, doc in enumerate(self._docs):
            if self._matches(doc, query):
                return idx, doc
        return None

    @staticmethod
    def _apply(doc: Dict[str, Any], update: Dict[str, Any]) -> Dict[str, Any]:
        for op, payload in update.items():
            if op == "$set":
                doc.update(copy.deepcopy(payload))
            elif op == "$inc":
                for key, value in payload.items():
                    doc[key] = doc.get(key, 0) + value
            else:  # pragma: no cover - only the above operators are used today
                raise ValueError(f"Unsupported update operator: {op}")
        return doc

    @staticmethod
    def _matches(doc: Dict[str, Any], query: Dict[str, Any]) -> bool:
        for key, expected in (query or {}).items():
            actual = doc.get(key)
            if isinstance(expected, dict):
                if set(expected) != {"$gt"}:  # pragma: no cover
                    raise ValueError(f"Unsupported query operator(s): {expected}")
                if actual is None or actual <= expected["$gt"]:
                    return False
            elif actual != expected:
                return False
        return True


class InMemoryDatabase:
    def __init__(self):
        self.sessions = InMemoryCollection()
        self.session_event_counters = InMemoryCollection()
        self.session_events = InMemoryCollection()


db: Any = InMemoryDatabase()
