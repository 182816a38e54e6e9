"""Error taxonomy and reporting helpers for the form memory engine."""

import logging
import traceback
from typing import Dict, Any, Optional
from enum import Enum

logger = logging.getLogger(__name__)

class ErrorCategory(Enum):
    """Categories of failures the engine recovers from locally."""
    RESOLUTION = "resolution"      # stored selector no longer matches
    FILL = "fill"                  # value could not be applied to a field
    CHANNEL = "channel"            # cross-process message could not be sent
    PERSISTENCE = "persistence"    # key-value store read/write failed
    UNKNOWN = "unknown"

class FormationError(Exception):
    """
    Base exception carrying the failure category and context.
    """

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.UNKNOWN,
        context: Optional[Dict[str, Any]] = None,
        recoverable: bool = True
    ):
        """
        Initialize a formation error.

        Args:
            message: Error message
            category: Error category
            context: Additional context information
            recoverable: Whether the caller can continue after this error
        """
        self.message = message
        self.category = category
        self.context = context or {}
        self.recoverable = recoverable
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert the error to a dictionary.

        Returns:
            Dictionary representation of the error
        """
        return {
            "message": self.message,
            "category": self.category.value,
            "context": self.context,
            "recoverable": self.recoverable,
        }

def categorize_error(error: BaseException) -> ErrorCategory:
    """Return the category of an error, UNKNOWN for foreign exceptions."""
    if isinstance(error, FormationError):
        return error.category
    return ErrorCategory.UNKNOWN

def describe_error(error: BaseException, include_traceback: bool = False) -> Dict[str, Any]:
    """
    Build a loggable/serializable description of any exception.

    Args:
        error: The exception to describe
        include_traceback: Whether to attach the formatted traceback

    Returns:
        Dictionary with message, category and optional traceback
    """
    if isinstance(error, FormationError):
        details = error.to_dict()
    else:
        details = {
            "message": str(error) or error.__class__.__name__,
            "category": categorize_error(error).value,
            "context": {},
            "recoverable": True,
        }
    details["type"] = error.__class__.__name__
    if include_traceback:
        details["traceback"] = "".join(
            traceback.format_exception(type(error), error, error.__traceback__)
        )
    return details
