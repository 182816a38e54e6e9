"""Custom exceptions for the form memory engine."""

from formation_agent.utils.error_handling import ErrorCategory, FormationError

class ElementNotFoundError(FormationError):
    """Raised when a stored selector resolves to no element."""

    def __init__(self, selector: str):
        super().__init__(
            f"No element matches selector '{selector}'",
            category=ErrorCategory.RESOLUTION,
            context={"selector": selector},
        )
        self.selector = selector


class FillError(FormationError):
    """Raised when a value cannot be applied to a resolved field."""

    def __init__(self, selector: str, reason: str):
        super().__init__(
            f"Could not fill '{selector}': {reason}",
            category=ErrorCategory.FILL,
            context={"selector": selector, "reason": reason},
        )
        self.selector = selector
        self.reason = reason


class ChannelError(FormationError):
    """Raised when a message cannot be delivered to the other context."""

    def __init__(self, message: str, context=None):
        super().__init__(message, category=ErrorCategory.CHANNEL, context=context)


class ConfirmationAbandonedError(FormationError):
    """Raised into a pending confirmation when its bridge is torn down."""

    def __init__(self, request_id: str):
        super().__init__(
            f"Confirmation {request_id} abandoned before an answer arrived",
            category=ErrorCategory.CHANNEL,
            context={"request_id": request_id},
        )
        self.request_id = request_id


class StorageError(FormationError):
    """Raised when the key-value store fails to read or write."""

    def __init__(self, message: str, context=None):
        super().__init__(message, category=ErrorCategory.PERSISTENCE, context=context)
