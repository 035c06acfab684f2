"""Exceptions shared across the assembler."""


class WorkflowValidationError(ValueError):
    """Raised when a workflow or stack definition is invalid at build time."""
