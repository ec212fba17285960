"""
Error taxonomy for stack-console.

Every error raised on purpose by this package is one of a closed set of
kinds. Errors that travel over the wire (inside an invocation envelope) are
serialized as ``{"kind": ..., "message": ..., **metadata}`` and rebuilt with
:func:`error_from_dict`, which only ever maps a kind onto a class from
``ERROR_KINDS``.
"""

import json
from typing import Any, ClassVar, Dict, Optional, Type

import jsonschema

SERIALIZED_ERROR_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "kind": {"type": "string"},
        "name": {"type": "string"},
        "message": {"type": "string"},
    },
    "anyOf": [{"required": ["kind"]}, {"required": ["name"]}, {"required": ["message"]}],
}


class ConsoleError(Exception):
    """Base class for all stack-console errors."""

    kind: ClassVar[str] = "ConsoleError"

    def __init__(self, message: str = "", **metadata: Any):
        super().__init__(message)
        self.message = message
        self.metadata: Dict[str, Any] = metadata

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the wire shape."""
        return {**self.metadata, "kind": self.kind, "message": self.message}

    def __str__(self) -> str:
        return self.message or self.kind


class InvalidInput(ConsoleError):
    """Bad or missing arguments, or a violated precondition."""

    kind = "InvalidInput"


class InvalidEnvironment(ConsoleError):
    """A required external executable or permission is missing."""

    kind = "InvalidEnvironment"


class ServerError(ConsoleError):
    """A remote operation or a completion wait failed."""

    kind = "ServerError"


class NotFound(ConsoleError):
    """The requested entity does not exist."""

    kind = "NotFound"


class UserAborted(ConsoleError):
    """The user declined a confirmation prompt."""

    kind = "UserAborted"

    def __init__(self, message: str = "Aborted", **metadata: Any):
        super().__init__(message, **metadata)


ERROR_KINDS: Dict[str, Type[ConsoleError]] = {
    cls.kind: cls
    for cls in (InvalidInput, InvalidEnvironment, ServerError, NotFound, UserAborted)
}


def error_from_dict(data: Any) -> ConsoleError:
    """
    Rebuild a typed error from its serialized form.

    The ``kind`` field is matched against ``ERROR_KINDS``; remote runtimes
    that only emit ``name`` are matched on that instead. Anything that does
    not resolve becomes a ``ServerError`` so the failure is never dropped.

    Args:
        data: Serialized error (usually a dict decoded from JSON)

    Returns:
        ConsoleError instance
    """
    if isinstance(data, ConsoleError):
        return data

    if isinstance(data, str):
        return ServerError(data)

    try:
        jsonschema.validate(instance=data, schema=SERIALIZED_ERROR_SCHEMA)
    except jsonschema.ValidationError:
        return ServerError(json.dumps(data, default=str), raw=data)

    fields = dict(data)
    kind: Optional[str] = fields.pop("kind", None)
    name: Optional[str] = fields.pop("name", None)
    message = fields.pop("message", None) or "unspecified"
    fields.pop("stack", None)

    cls = ERROR_KINDS.get(kind or "") or ERROR_KINDS.get(name or "")
    if cls is None:
        if name or kind:
            fields["name"] = name or kind
        return ServerError(message, **fields)

    return cls(message, **fields)


def normalize_error(error: Any) -> Exception:
    """Return ``error`` as an exception instance."""
    if isinstance(error, Exception):
        return error
    return error_from_dict(error)
