"""Domain errors raised by the notification engine and transfer workflow."""
from __future__ import annotations


class NotificationError(RuntimeError):
    pass


class TemplateValidationError(NotificationError):
    pass


class RuleValidationError(NotificationError):
    pass


class RecipientLookupError(NotificationError):
    """A directory query failed while resolving one recipient source."""

    def __init__(self, source: str, message: str) -> None:
        super().__init__(f"{source}: {message}")
        self.source = source


class SendError(NotificationError):
    pass


class EmailSendError(SendError):
    pass


class SMSSendError(SendError):
    pass


class InvalidTransitionError(ValueError):
    def __init__(self, current: str, target: str) -> None:
        super().__init__(f"Cannot transition from {current} to {target}")
        self.current = current
        self.target = target
