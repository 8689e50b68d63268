import click


class InputNotFound(click.ClickException):
    """The claims source file or directory does not exist."""


class SchemaViolation(click.ClickException):
    """A claims row is missing a required field or fails type coercion."""

    def __init__(self, message: str, line_number: int | None = None):
        if line_number is not None:
            message = f"line {line_number}: {message}"
        super().__init__(message)
        self.line_number = line_number


class UpstreamServiceError(Exception):
    """A narrative enrichment service failed, timed out or returned garbage."""
