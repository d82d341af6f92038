"""
Chat Service Module

Modular chat service implementation with clear separation of concerns.
"""

from .chat_orchestrator import ChatOrchestrator
from .models import ChatRequest, ChatResponse, DashboardContext, StreamChunk

__all__ = ["ChatOrchestrator", "ChatRequest", "ChatResponse", "DashboardContext", "StreamChunk"]
