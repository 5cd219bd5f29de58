#!/usr/bin/env python3
"""
Session management module for the supermarket chatbot.

This module keeps the per-user conversation history that gets embedded into
prompts. The default store lives in process memory and expires idle sessions
after ``max_age`` seconds; a Redis-backed store with the same contract can be
selected through ``Config.SESSION_BACKEND``.
"""

import json
import math
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

import redis

from .config import Config
from ..utils.logger import get_logger

logger = get_logger()

USER = "user"
ASSISTANT = "assistant"
ROLES = (USER, ASSISTANT)

ROLE_LABELS = {USER: "Customer", ASSISTANT: "Assistant"}


@dataclass(frozen=True)
class Turn:
    """One message in a conversation. Never modified once appended."""

    role: str
    content: str
    timestamp: float

    def to_dict(self) -> Dict[str, object]:
        return {"role": self.role, "content": self.content, "timestamp": self.timestamp}

    @classmethod
    def from_dict(cls, data: Dict[str, object]) -> "Turn":
        return cls(role=data["role"], content=data["content"], timestamp=float(data["timestamp"]))


@dataclass
class Session:
    id: str
    created_at: float
    last_activity_at: float
    turns: List[Turn] = field(default_factory=list)
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def is_expired(self, now: float, max_age: float) -> bool:
        return now - self.last_activity_at > max_age


def _average(total: int, count: int) -> int:
    # round half up, so 2.5 -> 3
    return int(math.floor(total / count + 0.5)) if count else 0


def _format_turns(turns: List[Turn], limit: int) -> str:
    if not turns or limit <= 0:
        return ""
    lines = [f"{ROLE_LABELS.get(t.role, t.role)}: {t.content}" for t in turns[-limit:]]
    return "\n".join(lines)


class SessionStore:
    """In-memory per-user conversation store with TTL expiry and bounded length."""

    def __init__(
        self,
        max_turns: int = Config.SESSION_MAX_TURNS,
        max_age: float = Config.SESSION_MAX_AGE,
        sweep_interval: float = Config.SESSION_SWEEP_INTERVAL,
        context_turns: int = Config.SESSION_CONTEXT_TURNS,
        clock: Callable[[], float] = time.time,
    ):
        self.max_turns = max_turns
        self.max_age = max_age
        self.sweep_interval = sweep_interval
        self.context_turns = context_turns
        self._clock = clock
        self._sessions: Dict[str, Session] = {}
        # held only for single map operations, never across sessions
        self._map_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._sweeper: Optional[threading.Thread] = None

    @property
    def backend(self) -> str:
        return "memory"

    def _get_live(self, user_id: str) -> Optional[Session]:
        """Return the session if present and not expired; drop it if expired."""
        with self._map_lock:
            session = self._sessions.get(user_id)
        if session is None:
            return None
        if self._discard_if_expired(user_id, session):
            logger.info(f"Expired session removed: {user_id}")
            return None
        return session

    def _discard_if_expired(self, user_id: str, session: Session) -> bool:
        with session.lock:
            if not session.is_expired(self._clock(), self.max_age):
                return False
            return self._discard(user_id, session)

    def _discard(self, user_id: str, session: Session) -> bool:
        with self._map_lock:
            if self._sessions.get(user_id) is session:
                del self._sessions[user_id]
                return True
        return False

    def append(self, user_id: str, role: str, content: str) -> Turn:
        """
        Append a turn to the user's session, creating the session if needed.

        Args:
            user_id: Session key
            role: "user" or "assistant"
            content: Message text

        Returns:
            The appended turn
        """
        if role not in ROLES:
            raise ValueError(f"Unknown role: {role}")

        now = self._clock()
        while True:
            session = self._get_live(user_id)
            if session is None:
                with self._map_lock:
                    session = self._sessions.get(user_id)
                    if session is None:
                        session = Session(id=user_id, created_at=now, last_activity_at=now)
                        self._sessions[user_id] = session
                        logger.info(f"New session created: {user_id}")
            with session.lock:
                # a sweep may have dropped this session between lookup and lock
                with self._map_lock:
                    current = self._sessions.get(user_id)
                if current is not session:
                    continue
                turn = Turn(role=role, content=content, timestamp=now)
                session.turns.append(turn)
                session.last_activity_at = now
                overflow = len(session.turns) - self.max_turns
                if overflow > 0:
                    del session.turns[:overflow]
                    logger.debug(f"Dropped {overflow} old turns from session {user_id}")
                return turn

    def history(self, user_id: str) -> List[Turn]:
        session = self._get_live(user_id)
        if session is None:
            return []
        with session.lock:
            return list(session.turns)

    def format_context(self, user_id: str, limit: Optional[int] = None) -> str:
        """Render the last turns as "Customer: ..." / "Assistant: ..." lines."""
        return _format_turns(self.history(user_id), self.context_turns if limit is None else limit)

    def clear(self, user_id: str) -> bool:
        with self._map_lock:
            removed = self._sessions.pop(user_id, None)
        if removed is not None:
            logger.info(f"Session cleared: {user_id}")
        return removed is not None

    def stats(self) -> Dict[str, int]:
        now = self._clock()
        with self._map_lock:
            snapshot = list(self._sessions.values())
        active = [s for s in snapshot if not s.is_expired(now, self.max_age)]
        total_messages = sum(len(s.turns) for s in active)
        return {
            "activeSessions": len(active),
            "totalSessions": len(snapshot),
            "totalMessages": total_messages,
            "averageMessagesPerSession": _average(total_messages, len(active)),
        }

    def sweep(self) -> int:
        """Remove every expired session. Returns the number removed."""
        now = self._clock()
        with self._map_lock:
            snapshot = list(self._sessions.items())
        removed = 0
        for user_id, session in snapshot:
            if session.is_expired(now, self.max_age) and self._discard_if_expired(user_id, session):
                removed += 1
        if removed:
            logger.info(f"Expired sessions swept: {removed}")
        return removed

    def _sweep_loop(self):
        while not self._stop_event.wait(self.sweep_interval):
            try:
                self.sweep()
            except Exception as e:
                logger.error(f"Session sweep failed: {e}")

    def start(self):
        """Start the periodic background sweep."""
        if self._sweeper is not None and self._sweeper.is_alive():
            return
        self._stop_event.clear()
        self._sweeper = threading.Thread(target=self._sweep_loop, name="session-sweeper", daemon=True)
        self._sweeper.start()
        logger.info(f"Session sweeper started (every {self.sweep_interval}s)")

    def stop(self):
        """Stop the background sweep and drop every session."""
        self._stop_event.set()
        if self._sweeper is not None:
            self._sweeper.join(timeout=5)
            self._sweeper = None
        with self._map_lock:
            self._sessions.clear()
        logger.info("Session store stopped")


class RedisSessionStore:
    """Redis-backed store with the same contract; expiry is handled by key TTLs."""

    def __init__(
        self,
        client: "redis.Redis",
        max_turns: int = Config.SESSION_MAX_TURNS,
        max_age: float = Config.SESSION_MAX_AGE,
        context_turns: int = Config.SESSION_CONTEXT_TURNS,
        clock: Callable[[], float] = time.time,
    ):
        self.redis_client = client
        self.max_turns = max_turns
        self.max_age = max_age
        self.context_turns = context_turns
        self._clock = clock

    @property
    def backend(self) -> str:
        return "redis"

    def _get_session_key(self, user_id: str) -> str:
        return f"session:{user_id}"

    def _decode(self, raw, now: float) -> Optional[Dict[str, object]]:
        if not raw:
            return None
        data = json.loads(raw)
        if now - float(data["last_activity_at"]) > self.max_age:
            return None
        return data

    def _load(self, user_id: str) -> Optional[Dict[str, object]]:
        key = self._get_session_key(user_id)
        raw = self.redis_client.get(key)
        data = self._decode(raw, self._clock())
        if raw and data is None:
            self.redis_client.delete(key)
        return data

    def append(self, user_id: str, role: str, content: str) -> Turn:
        """
        Append a turn inside a WATCH/MULTI transaction.

        A concurrent write to the same session makes redis-py retry the
        whole read-modify-write, so same-user appends are never lost.
        """
        if role not in ROLES:
            raise ValueError(f"Unknown role: {role}")
        key = self._get_session_key(user_id)
        now = self._clock()
        turn = Turn(role=role, content=content, timestamp=now)

        def write(pipe):
            data = self._decode(pipe.get(key), now) or {"id": user_id, "created_at": now, "turns": []}
            data["turns"] = (data["turns"] + [turn.to_dict()])[-self.max_turns:]
            data["last_activity_at"] = now
            pipe.multi()
            pipe.set(key, json.dumps(data), ex=int(math.ceil(self.max_age)))

        self.redis_client.transaction(write, key)
        return turn

    def history(self, user_id: str) -> List[Turn]:
        data = self._load(user_id)
        if not data:
            return []
        return [Turn.from_dict(t) for t in data["turns"]]

    def format_context(self, user_id: str, limit: Optional[int] = None) -> str:
        return _format_turns(self.history(user_id), self.context_turns if limit is None else limit)

    def clear(self, user_id: str) -> bool:
        return bool(self.redis_client.delete(self._get_session_key(user_id)))

    def stats(self) -> Dict[str, int]:
        active = 0
        total_messages = 0
        now = self._clock()
        keys = list(self.redis_client.scan_iter(match="session:*"))
        for key in keys:
            data = self._decode(self.redis_client.get(key), now)
            if data is not None:
                active += 1
                total_messages += len(data["turns"])
        return {
            "activeSessions": active,
            "totalSessions": len(keys),
            "totalMessages": total_messages,
            "averageMessagesPerSession": _average(total_messages, active),
        }

    def sweep(self) -> int:
        # keys expire on their own
        return 0

    def start(self):
        pass

    def stop(self):
        self.redis_client.close()


def create_session_store(backend: str = None):
    """Build the configured session store, falling back to memory if Redis is down."""
    backend = (backend or Config.SESSION_BACKEND).lower()
    if backend == "redis":
        try:
            client = redis.Redis(
                host=Config.REDIS_HOST,
                port=Config.REDIS_PORT,
                db=Config.REDIS_DB,
                decode_responses=True,
            )
            client.ping()
            logger.info("Using Redis for session storage")
            return RedisSessionStore(client)
        except redis.RedisError as e:
            logger.warning(f"Redis not available ({e}), using in-memory session storage")
    return SessionStore()
