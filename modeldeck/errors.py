"""
Exceptions raised by modeldeck.

Every error carries a machine-readable code and the HTTP status the API
reports it with.
"""

from typing import List, Optional


class ModelDeckError(Exception):
    """Base exception for modeldeck errors."""

    status_code = 500

    def __init__(self, message: str, code: str = "MODELDECK_ERROR"):
        super().__init__(message)
        self.message = message
        self.code = code


class ValidationError(ModelDeckError):
    """Raised when model text is rejected before deployment."""

    status_code = 400

    def __init__(self, message: str, code: str = "VALIDATION_ERROR"):
        super().__init__(message, code=code)


class InvalidSyntaxError(ValidationError):
    """Model text lacks a required marker."""

    def __init__(self, message: str):
        super().__init__(message, code="INVALID_SYNTAX")


class ModelSyntaxError(ValidationError):
    """Model text does not tokenize as well-formed source."""

    def __init__(self, message: str, line: Optional[int] = None):
        super().__init__(message, code="SYNTAX_ERROR")
        self.line = line


class InvalidModelNameError(ModelDeckError):
    """Model name cannot be used as a ConfigMap key."""

    status_code = 400

    def __init__(self, name: str):
        super().__init__(
            f"Invalid model name '{name}': use letters, digits, '_' or '-', "
            f"starting with a letter or '_'",
            code="INVALID_NAME",
        )
        self.name = name


class ModelNotFoundError(ModelDeckError):
    """Raised when a model is not in the model set."""

    status_code = 404

    def __init__(self, name: str):
        super().__init__(f"Model {name} not found", code="NOT_FOUND")
        self.name = name


class ExternalCommandError(ModelDeckError):
    """An external command exited non-zero or timed out."""

    def __init__(
        self,
        argv: List[str],
        returncode: Optional[int],
        stderr: str = "",
        timed_out: bool = False,
    ):
        if timed_out:
            message = f"Command timed out: {' '.join(argv)}"
        else:
            message = stderr.strip() or f"Command failed with exit code {returncode}: {' '.join(argv)}"
        super().__init__(message, code="EXTERNAL_COMMAND_FAILED")
        self.argv = argv
        self.returncode = returncode
        self.stderr = stderr
        self.timed_out = timed_out


class PendingOperationError(ModelDeckError):
    """Another deploy or delete stopped part way and must be resumed first."""

    status_code = 409

    def __init__(self, operation: str, model_name: str):
        super().__init__(
            f"Unfinished {operation} of {model_name} is pending; finish it with "
            f"POST /api/deploy/resume or 'modeldeck resume'",
            code="PENDING_OPERATION",
        )
        self.operation = operation
        self.model_name = model_name
