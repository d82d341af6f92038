#!/usr/bin/env python3
"""
Bounded Conversation Memory

Per-session message history with FIFO eviction.

LIMITS: max_messages and max_characters (0 = default, <0 = unlimited)
EVICTION: oldest first, by message count and then by characters
GUARANTEE: the newest message is never evicted, even when it alone exceeds
the character limit
"""

from __future__ import annotations

import logging
import threading

from mcp_chat.config import DEFAULT_MAX_CHARACTERS, DEFAULT_MAX_MESSAGES, MemoryConfig

from .models import MemoryStats, Message, Role

logger = logging.getLogger(__name__)


class ConversationMemory:
    """Ordered messages plus a running character total for one session."""

    def __init__(self, config: MemoryConfig | None = None):
        config = config or MemoryConfig()
        self.max_messages = config.max_messages or DEFAULT_MAX_MESSAGES
        self.max_characters = config.max_characters or DEFAULT_MAX_CHARACTERS

        self._messages: list[Message] = []
        self._total_chars = 0
        self._lock = threading.Lock()

    def append(self, role: Role, content: str) -> None:
        message = Message(role=role, content=content)

        with self._lock:
            self._messages.append(message)
            self._total_chars += len(content)
            evicted = self._trim_to_message_limit() + self._trim_to_character_limit()

        if evicted:
            logger.debug("Evicted %d oldest messages from conversation memory", evicted)

    def _trim_to_message_limit(self) -> int:
        # caller holds the lock
        if self.max_messages < 0:
            return 0

        evicted = 0
        while len(self._messages) > self.max_messages:
            removed = self._messages.pop(0)
            self._total_chars -= len(removed.content)
            evicted += 1
        return evicted

    def _trim_to_character_limit(self) -> int:
        # caller holds the lock
        if self.max_characters < 0:
            return 0

        evicted = 0
        while self._total_chars > self.max_characters and len(self._messages) > 1:
            removed = self._messages.pop(0)
            self._total_chars -= len(removed.content)
            evicted += 1
        return evicted

    def snapshot(self) -> list[Message]:
        """Independent copy of the current messages, oldest first."""
        with self._lock:
            return list(self._messages)

    def clear(self) -> None:
        with self._lock:
            self._messages = []
            self._total_chars = 0

    def stats(self) -> MemoryStats:
        with self._lock:
            return MemoryStats(
                message_count=len(self._messages),
                total_chars=self._total_chars,
                max_messages=self.max_messages,
                max_characters=self.max_characters,
            )
