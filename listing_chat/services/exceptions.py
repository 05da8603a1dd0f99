import logging

logger = logging.getLogger(__name__)


class ServiceError(Exception):
    """Base class for service layer errors."""

    def __init__(self, message="An internal service error occurred.", status_code=500):
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


class ConversationNotFoundError(ServiceError):
    def __init__(self, message="Conversation not found."):
        super().__init__(message, status_code=404)


class NotAuthorizedError(ServiceError):
    def __init__(self, message="User not authorized for this action."):
        super().__init__(message, status_code=403)


class NotAParticipantError(NotAuthorizedError):
    """The acting identity occupies neither slot of the conversation."""

    def __init__(self, message="Not a participant in this conversation."):
        super().__init__(message)


class BusinessRuleError(ServiceError):
    """For violations of specific business rules. Never retried."""

    def __init__(self, message="Action violates business rules."):
        super().__init__(message, status_code=400)


class InvalidParticipantsError(BusinessRuleError):
    def __init__(
        self, message="Exactly one of dealership_id or seller_user_id is required."
    ):
        super().__init__(message)


class SelfChatRejectedError(BusinessRuleError):
    def __init__(self, message="Cannot start a conversation with yourself."):
        super().__init__(message)


class EmptyMessageError(BusinessRuleError):
    def __init__(self, message="Message must include text or media."):
        super().__init__(message)


class InvalidCursorError(BusinessRuleError):
    def __init__(self, message="Invalid pagination cursor."):
        super().__init__(message)


class ConflictError(ServiceError):
    """For conflicts with existing state."""

    def __init__(self, message="Operation conflicts with existing state."):
        super().__init__(message, status_code=409)


class ConflictRetryExhaustedError(ConflictError):
    """The dedup insert race did not settle within the allowed attempts."""

    def __init__(self, message="Could not resolve the conversation after retrying."):
        super().__init__(message)


class DatabaseError(ServiceError):
    """For general database errors during service operations."""

    def __init__(self, message="A database error occurred."):
        super().__init__(message, status_code=500)


class TransientStoreError(DatabaseError):
    """Retryable store failure: connection loss, lock timeout, busy database."""

    def __init__(self, message="The data store is temporarily unavailable."):
        super().__init__(message)
        self.status_code = 503
