#!/usr/bin/env python3
"""
Conversation History Module

Bounded per-session conversation memory.
"""

from __future__ import annotations

from .conversation_memory import ConversationMemory
from .models import MemoryStats, Message

__all__ = [
    "ConversationMemory",
    "MemoryStats",
    "Message",
]
