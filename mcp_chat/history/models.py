#!/usr/bin/env python3
"""
Conversation Memory Data Models

Pydantic models for per-session conversation memory.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict

# ---------- Type definitions ----------

Role = Literal["user", "assistant"]


# ---------- Memory models ----------


class Message(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: Role
    content: str

    def to_openai(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


class MemoryStats(BaseModel):
    message_count: int
    total_chars: int
    max_messages: int
    max_characters: int
