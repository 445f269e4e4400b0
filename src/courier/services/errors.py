"""Domain errors raised by the relay core.

Every error carries a stable ``code`` for realtime error frames and the HTTP
status the REST surface maps it to.
"""

from __future__ import annotations


class RelayError(RuntimeError):
    """Base exception for relay failures."""

    code = "relay_error"
    status_code = 500

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason

    def to_event(self) -> dict[str, str]:
        """Return the payload of an ``error`` frame describing this failure."""
        return {"code": self.code, "reason": self.reason}


class Unauthorized(RelayError):
    """Raised when a credential is missing, malformed, expired or forged."""

    code = "unauthorized"
    status_code = 401


class MessageValidationError(RelayError):
    """Raised when a send request violates a message constraint.

    ``field`` names the offending input so clients can show the specific
    violated constraint.
    """

    code = "validation"
    status_code = 400

    def __init__(self, reason: str, field: str | None = None) -> None:
        super().__init__(reason)
        self.field = field

    def to_event(self) -> dict[str, str]:
        payload = super().to_event()
        if self.field is not None:
            payload["field"] = self.field
        return payload


class PersistenceError(RelayError):
    """Raised when the message store fails to read or durably write.

    A message that produced this error must be treated as not sent.
    """

    code = "persistence"
    status_code = 500


# Leading ``loc`` entries FastAPI adds to say where a request value came from.
_REQUEST_SOURCES = frozenset({"body", "query", "path", "header", "cookie"})


def validation_error_from(errors: list[dict]) -> MessageValidationError:
    """Collapse Pydantic error details into the first violated input."""
    first = errors[0] if errors else {}
    location = list(first.get("loc") or ())
    if location and location[0] in _REQUEST_SOURCES:
        location = location[1:]
    field = str(location[0]) if location else None
    message = str(first.get("msg", "Invalid input"))
    return MessageValidationError(f"{field}: {message}" if field else message, field=field)
