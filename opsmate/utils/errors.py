"""
Error taxonomy for opsmate.

Nonzero command exits are not errors: they are carried as data in
ExecutionResult. These exceptions cover caller mistakes and collaborator
failures only.
"""


class OpsmateError(Exception):
    """Base class for all opsmate errors."""


class UnknownTool(OpsmateError):
    """A tool name did not resolve in the registry."""

    def __init__(self, tool_name: str):
        self.tool_name = tool_name
        super().__init__(f"Unknown tool: {tool_name}")


class AmbiguousIntent(OpsmateError):
    """No adapter scored the input above zero."""

    def __init__(self, user_input: str):
        self.user_input = user_input
        super().__init__(
            "Cannot detect tool. Please be more specific "
            "(e.g., 'kubectl get pods', 'docker ps', 'show databases')"
        )


class InferenceFailure(OpsmateError):
    """The inference oracle was unreachable or returned an unusable response."""


class ExecutionError(OpsmateError):
    """The execution collaborator could not produce a result at all."""
