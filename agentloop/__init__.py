"""
agentloop - Agent Orchestration Runtime
=======================================

Drives conversations with a language model, lets the model call named
tools mid-conversation, and refines generated answers against an
evaluator.

This package provides:
- Context: conversation history, tool registration and the tool-calling loop
- ToolRegistry / Tool / ToolResult: the tool capability contract
- EvaluatorOptimizer: iterative generate -> score -> refine workflow
- OpenAIModelClient: a model client backed by the OpenAI API
"""

from agentloop.agent import Context
from agentloop.errors import (
    AgentError,
    DuplicateToolError,
    InvalidMediaError,
    LoopExceededError,
    MalformedEvaluationError,
    ProviderError,
    ToolNotFoundError,
    TransportError,
)
from agentloop.tools import Tool, ToolRegistry, ToolResult
from agentloop.types import LLMResponse, Message, ToolCall
from agentloop.workflows import EvaluatorOptimizer, RefinementResult

__version__ = "0.1.0"

__all__ = [
    "Context",
    "Tool",
    "ToolRegistry",
    "ToolResult",
    "Message",
    "ToolCall",
    "LLMResponse",
    "EvaluatorOptimizer",
    "RefinementResult",
    "AgentError",
    "TransportError",
    "ProviderError",
    "ToolNotFoundError",
    "DuplicateToolError",
    "LoopExceededError",
    "MalformedEvaluationError",
    "InvalidMediaError",
]
