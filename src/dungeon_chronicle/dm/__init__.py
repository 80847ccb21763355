"""Dungeon Master module for Dungeon Chronicle.

This module provides the AI Dungeon Master functionality:
- The tool-execution loop (orchestrator)
- The narrating-agent boundary (OpenAI-compatible client)
- Bounded context assembly and running summaries
- Story memory of entities, facts and relationships

NEURO-SYMBOLIC PRINCIPLE:
The DM module uses an LLM for narrative, but all game mechanics are
executed by Python. Dice rolls use the d20 library - the LLM NEVER
generates random numbers or edits state directly.
"""

from __future__ import annotations

from .agent import AgentReply, NarratorAgent, OpenAINarrator, ToolCall
from .context import (
    ContextManager,
    ContextPayload,
    ConversationState,
    ExtractiveSummarizer,
    LLMSummarizer,
)
from .memory import Consequence, StoryMemory, StoryMemoryState
from .orchestrator import DMOrchestrator, TurnResult
from .tools import DMTool, DMToolbox, ToolResult

__all__ = [
    "DMOrchestrator",
    "TurnResult",
    "AgentReply",
    "NarratorAgent",
    "OpenAINarrator",
    "ToolCall",
    "ContextManager",
    "ContextPayload",
    "ConversationState",
    "ExtractiveSummarizer",
    "LLMSummarizer",
    "StoryMemory",
    "StoryMemoryState",
    "Consequence",
    "DMTool",
    "DMToolbox",
    "ToolResult",
]
