"""
Error Types
===========

Every failure the runtime reports to a caller has its own type, so
callers can tell a network problem from a protocol problem:

    AgentError
    ├── TransportError            model or remote tool unreachable
    ├── ProviderError             model API returned a structured failure
    ├── ToolNotFoundError         model asked for a tool that isn't registered
    ├── DuplicateToolError        registry name clash (also a ValueError)
    ├── LoopExceededError         tool-calling loop hit its turn cap
    ├── MalformedEvaluationError  evaluator output has no usable score
    └── InvalidMediaError         media string is neither a URI nor inline data

Tool execution failures are NOT exceptions at this level: they are turned
into failed ToolResults and handed back to the model.
"""


class AgentError(Exception):
    """Base class for all runtime errors."""


class TransportError(AgentError):
    """The model (or a remote tool) could not be reached."""


class ProviderError(AgentError):
    """The model API reported a non-recoverable error."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class ToolNotFoundError(AgentError):
    """A tool was requested by a name that is not registered."""

    def __init__(self, tool_name: str):
        super().__init__(f"Tool '{tool_name}' not found")
        self.tool_name = tool_name


class DuplicateToolError(AgentError, ValueError):
    """A tool with the same name is already registered."""

    def __init__(self, tool_name: str):
        super().__init__(f"Tool '{tool_name}' is already registered")
        self.tool_name = tool_name


class LoopExceededError(AgentError):
    """The tool-calling loop ran out of turns without a final answer."""

    def __init__(self, turns: int):
        super().__init__(f"Tool-calling loop exceeded {turns} turn(s) without a final answer")
        self.turns = turns


class MalformedEvaluationError(AgentError):
    """Evaluator output could not be parsed into a score."""

    def __init__(self, message: str, raw: str = ""):
        super().__init__(message)
        self.raw = raw


class InvalidMediaError(AgentError, ValueError):
    """A media string is neither a valid URI nor decodable inline data."""
