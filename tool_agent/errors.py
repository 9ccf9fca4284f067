"""
Error taxonomy for the tool agent.

Tool and provider errors are recovered inside the orchestration loop and
turned into conversation data. Only ``StoreFailure`` (and misuse of the
approval flow) reaches the caller of a turn.
"""

from typing import Optional


class ToolAgentError(Exception):
    """Base class for all tool agent errors."""


class ProviderFailure(ToolAgentError):
    """The language-model provider was unreachable, errored, or returned garbage."""


class ToolError(ToolAgentError):
    """Base class for failures reported back to the model as tool messages."""

    def __init__(self, tool_name: str, message: str):
        super().__init__(message)
        self.tool_name = tool_name
        self.message = message


class UnknownTool(ToolError):
    """The requested tool name is not in the registry."""

    def __init__(self, tool_name: str):
        super().__init__(tool_name, f"Error: Unknown tool '{tool_name}'")


class SchemaViolation(ToolError):
    """Tool arguments do not conform to the tool's declared input schema."""

    def __init__(self, tool_name: str, problems: list[str]):
        self.problems = problems
        detail = "; ".join(problems) if problems else "invalid arguments"
        super().__init__(
            tool_name, f"Error: Invalid arguments for tool '{tool_name}': {detail}"
        )


class ToolRuntimeFailure(ToolError):
    """The tool implementation failed while handling a well-formed request.

    Tool bodies may raise this directly with a user-facing message; any
    other exception is wrapped into one by the executor.
    """

    def __init__(self, message: str, tool_name: str = ""):
        super().__init__(tool_name, message)


class StoreFailure(ToolAgentError):
    """The session state backend could not load or persist a session."""

    def __init__(self, message: str, session_id: Optional[str] = None):
        super().__init__(message)
        self.session_id = session_id


class ApprovalStateError(ToolAgentError):
    """An approval signal arrived for a session that is not awaiting one."""
