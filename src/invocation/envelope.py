"""
Result-or-error envelopes returned by invocations.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from errors import normalize_error


@dataclass
class InvokeResult:
    """Outcome of an invocation: exactly one of ``error`` or ``result``."""

    error: Optional[Exception] = None
    result: Any = None

    def __post_init__(self) -> None:
        if self.error is not None and self.result is not None:
            raise ValueError("InvokeResult can't hold both an error and a result")

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> Any:
        """Return the result, or raise the error."""
        if self.error is not None:
            raise self.error
        return self.result


def _is_envelope(value: Any) -> bool:
    return isinstance(value, dict) and bool(value.get("error") or value.get("result"))


def unwrap_return_value(envelope: Dict[str, Any]) -> InvokeResult:
    """
    Unwrap a payload shaped ``{"error": ...}`` or ``{"result": ...}``.

    Functions like ``cli`` wrap their own outcome in the same shape, so a
    ``result`` that is itself an envelope is unwrapped too. Serialized errors
    are rebuilt into typed errors.
    """
    error = envelope.get("error")
    if error:
        return InvokeResult(error=normalize_error(error))

    result = envelope.get("result")
    if _is_envelope(result):
        return unwrap_return_value(result)

    return InvokeResult(result=result)


def unwrap_nested(result: InvokeResult) -> Any:
    """
    Unwrap an invocation whose payload is itself an envelope.

    Raises:
        ConsoleError: The outer or inner error, typed
    """
    if result.error is not None:
        raise normalize_error(result.error)

    payload = result.result
    if not isinstance(payload, dict) or not ("error" in payload or "result" in payload):
        return payload

    return unwrap_return_value(payload).unwrap()
