"""
Agent System
============

The Context is the conversational core: it keeps the history, holds the
tools, and runs the tool-calling loop against a model client.
"""

from agentloop.agent.context import Context

__all__ = ["Context"]
