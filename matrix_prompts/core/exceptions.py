"""
Exception hierarchy for reaction prompts.

Decode errors describe annotations that cannot be used. Transport errors
describe Matrix requests that failed and are raised from the prompt lifecycle
operations so callers get an explicit failure.
"""

from typing import Any, List, Optional, Sequence


class ReactionPromptError(Exception):
    """Base exception for all reaction prompt errors."""

    pass


# Annotation Exceptions


class AnnotationDecodeError(ReactionPromptError):
    """Raised when event content does not carry a usable reaction annotation."""

    def __init__(self, detail: str, annotation_key: str):
        self.annotation_key = annotation_key
        super().__init__(detail)


class NotAnnotatedError(AnnotationDecodeError):
    """Raised when the reserved annotation key is absent from the content.

    This is the expected outcome for most events and is not a fault.
    """

    def __init__(self, annotation_key: str):
        super().__init__(f"Content has no '{annotation_key}' annotation", annotation_key)


class MalformedAnnotationError(AnnotationDecodeError):
    """Raised when the annotation key is present but its value has the wrong shape."""

    def __init__(self, annotation_key: str, errors: Optional[Sequence[Any]] = None):
        self.errors = list(errors or [])
        detail = f"Malformed '{annotation_key}' annotation"
        if self.errors:
            detail += f" ({len(self.errors)} validation errors)"
        super().__init__(detail, annotation_key)


# Transport Exceptions


class MatrixTransportError(ReactionPromptError):
    """Raised when a request to the Matrix homeserver fails."""

    operation = "request"

    def __init__(
        self,
        room_id: str,
        event_id: Optional[str] = None,
        detail: str = "",
        status_code: Optional[str] = None,
    ):
        self.room_id = room_id
        self.event_id = event_id
        self.detail = detail
        self.status_code = status_code
        target = f"{event_id} in {room_id}" if event_id else room_id
        message = f"Matrix {self.operation} failed for {target}"
        if status_code:
            message += f" [{status_code}]"
        if detail:
            message += f": {detail}"
        super().__init__(message)


class EventFetchError(MatrixTransportError):
    """Raised when an event cannot be fetched."""

    operation = "get_event"


class ReactionSendError(MatrixTransportError):
    """Raised when a reaction cannot be sent.

    ``sent_keys`` lists the reaction keys that were already sent by the
    operation that failed, since those are not rolled back.
    """

    operation = "send_reaction"

    def __init__(
        self,
        room_id: str,
        event_id: Optional[str] = None,
        detail: str = "",
        status_code: Optional[str] = None,
        sent_keys: Optional[List[str]] = None,
    ):
        super().__init__(room_id, event_id, detail, status_code)
        self.sent_keys = list(sent_keys or [])


class RedactionError(MatrixTransportError):
    """Raised when an event cannot be redacted."""

    operation = "redact_event"


class RelationsFetchError(MatrixTransportError):
    """Raised when the relations of an event cannot be enumerated."""

    operation = "relations"


class MessageSendError(MatrixTransportError):
    """Raised when a room message cannot be sent."""

    operation = "send_message"


# Authentication Exceptions


class MatrixAuthenticationError(ReactionPromptError):
    """Raised when Matrix authentication fails."""

    pass
