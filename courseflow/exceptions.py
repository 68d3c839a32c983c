"""
Custom exceptions for the CourseFlow application.
"""

from typing import Any, NoReturn, Optional, Type, TypeVar

from pydantic import BaseModel  # Need BaseModel for TypeVar constraint
from pydantic import ValidationError

from courseflow.logger import logger

T = TypeVar("T", bound=BaseModel)


class InternalDataValidationError(Exception):
    """
    Raised when data from an internal source (the tree store, the assistant API)
    fails Pydantic validation.

    This helps distinguish internal data integrity issues from client-side
    request validation errors.
    """

    def __init__(self, message: str, original_exception: ValidationError | None = None):
        """
        Initializes the exception.

        Args:
            message: A descriptive error message.
            original_exception: The original Pydantic ValidationError, if available.
        """
        super().__init__(message)
        self.original_exception = original_exception
        self.message = message

    def __str__(self) -> str:
        if self.original_exception:
            return f"{self.message}: {self.original_exception}"
        return self.message


# --- Domain lookups ---


class CourseNotFoundError(LookupError):
    """Raised when a course id does not exist in the course tree."""


class LessonNotFoundError(LookupError):
    """Raised when a lesson id does not exist in a course."""


class InvalidUnlockCodeError(ValueError):
    """Raised when a manually entered unlock code is not accepted."""


class PermissionDeniedError(Exception):
    """Raised when the caller's role does not allow an operation."""


# --- Chat submission errors ---


class ChatError(Exception):
    """
    Base class for errors that end a chat submission.

    Every chat error is terminal for the current submission. Where a thread
    was already resolved its id is kept on the exception so the caller can
    retry on the same thread.
    """

    status_code: int = 500

    def __init__(self, message: str, thread_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.thread_id = thread_id


class EmptyMessageError(ChatError):
    """The message was empty after trimming. Raised before any network call."""

    status_code = 400


class MissingAssistantConfigurationError(ChatError):
    """No assistant id could be resolved for the lesson/course."""

    status_code = 400


class RunTimeoutError(ChatError):
    """The run did not reach a terminal state within the polling budget."""

    status_code = 504

    def __init__(
        self, message: str, thread_id: Optional[str] = None, attempts: int = 0
    ):
        super().__init__(message, thread_id=thread_id)
        self.attempts = attempts


class RunFailedError(ChatError):
    """The run reached a terminal state other than 'completed'."""

    status_code = 502

    def __init__(self, message: str, status: str, thread_id: Optional[str] = None):
        super().__init__(message, thread_id=thread_id)
        self.status = status


class UpstreamUnavailableError(ChatError):
    """Transport or API failure talking to the hosted assistant service."""

    status_code = 503


# --- Validation Helper ---


def validate_internal_model(
    model_cls: Type[T],
    data: Any,
    context_message: str = "Internal data validation failed",
) -> T:
    """
    Validates data against a Pydantic model, raising InternalDataValidationError on failure.

    Args:
        model_cls: The Pydantic model class to validate against.
        data: The data to validate.
        context_message: A descriptive message for the context of the validation.

    Returns:
        The validated Pydantic model instance.

    Raises:
        InternalDataValidationError: If Pydantic validation fails.
    """
    try:
        return model_cls.model_validate(data)
    except ValidationError as e:
        raise InternalDataValidationError(
            f"{context_message} for model {model_cls.__name__}", original_exception=e
        ) from e


def log_and_propagate(
    new_exception_type: Type[Exception],
    new_exception_message: str,
    original_exception: Exception,
    exc_info: bool = True,
    **log_extras: Any,
) -> NoReturn:
    """
    Logs an error message and then raises a specified exception, ensuring the
    original exception is chained (using 'from original_exception').

    Args:
        new_exception_type: The type of exception to raise.
        new_exception_message: The message for the new exception.
        original_exception: The exception that triggered this call, to be chained.
        exc_info: Whether to include exception info (stack trace) in the log.
        **log_extras: Additional key-value pairs to include in the log record.

    Raises:
        new_exception_type: Always raises an exception of this type.
    """
    log_message = f"{new_exception_message}: {original_exception}"
    logger.error(log_message, exc_info=exc_info, **log_extras)
    raise new_exception_type(new_exception_message) from original_exception
