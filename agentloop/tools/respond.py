"""
Respond Tool
============

Lets the model hand back a final answer through a tool call. Useful
with models that are forced to call a tool every turn: the result is
simply the text the model passed in.
"""

from agentloop.tools import Tool, ToolResult

PARAMETERS = {
    "type": "object",
    "properties": {
        "response": {
            "type": "string",
            "description": "The response to give the user"
        }
    },
    "required": ["response"]
}


def _respond(params: dict) -> ToolResult:
    response = params.get("response")
    if not isinstance(response, str) or not response:
        return ToolResult(success=False, error="Response text is required")
    return ToolResult(success=True, data=response)


def create_respond_tool() -> Tool:
    """Build the respond tool."""
    return Tool(
        name="respond",
        description="Reply to the user with the given text.",
        parameters=PARAMETERS,
        execute=_respond
    )
