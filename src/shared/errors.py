"""Error taxonomy shared by the ordering, drivers and fulfillment contexts.

Builds on Protean's exceptions so domain code, repositories and the HTTP
layer agree on one vocabulary. Every error carries a ``messages`` mapping of
field -> list of messages. None of these errors is fatal: each one describes
a condition the caller can recover from.

    ValidationError        malformed input (protean)
    InvalidTransitionError a state machine rejected from -> to
    ObjectNotFoundError    unknown order, delivery or driver id (protean)
    IllegalStateError      the entity's state forbids the operation
    AlreadyTerminalError   the delivery is already delivered or failed
    NoCapacityError        no eligible driver could be found or claimed
    ConflictError          a compare-and-set write lost a race
"""

from protean.exceptions import ExpectedVersionError, InvalidOperationError, ObjectNotFoundError, ValidationError

__all__ = [
    "RECOVERABLE_ERRORS",
    "AlreadyTerminalError",
    "ConflictError",
    "IllegalStateError",
    "InvalidTransitionError",
    "NoCapacityError",
    "ObjectNotFoundError",
    "ValidationError",
    "error_payload",
    "from_pydantic",
]


def _as_messages(messages) -> dict:
    if messages is None:
        return {}
    if isinstance(messages, str):
        return {"_entity": [messages]}
    return messages


class IllegalStateError(InvalidOperationError):
    """The entity is not in a state that permits the requested operation."""

    def __init__(self, messages=None):
        messages = _as_messages(messages)
        super().__init__(messages)
        self.messages = messages


class AlreadyTerminalError(IllegalStateError):
    """The delivery already reached ``delivered`` or ``failed``."""


class NoCapacityError(InvalidOperationError):
    """No eligible driver could be found or claimed."""

    def __init__(self, messages=None):
        messages = _as_messages(messages)
        super().__init__(messages)
        self.messages = messages


class ConflictError(ExpectedVersionError):
    """A compare-and-set write lost the race against a concurrent writer."""

    def __init__(self, messages=None):
        messages = _as_messages(messages)
        super().__init__(messages)
        self.messages = messages


class InvalidTransitionError(ValidationError):
    """A state machine rejected the ``from_status -> to_status`` pair."""

    def __init__(self, from_status: str, to_status: str, entity: str = "status"):
        self.from_status = from_status
        self.to_status = to_status
        messages = {entity: [f"Cannot transition from {from_status} to {to_status}"]}
        super().__init__(messages)
        self.messages = messages


# Everything a caller is expected to handle; anything else is a bug
RECOVERABLE_ERRORS = (ValidationError, ObjectNotFoundError, InvalidOperationError, ExpectedVersionError)


def from_pydantic(exc) -> ValidationError:
    """Translate a ``pydantic.ValidationError`` into field messages."""
    messages: dict[str, list[str]] = {}
    for error in exc.errors():
        field = ".".join(str(part) for part in error["loc"]) or "_entity"
        messages.setdefault(field, []).append(error["msg"])
    return ValidationError(messages)


def error_payload(exc) -> dict:
    messages = getattr(exc, "messages", None)
    if not isinstance(messages, dict):
        messages = {"_entity": [str(exc)]}
    return {"error": type(exc).__name__, "messages": messages}
