"""Business logic services for the Courier relay.

Import components from their modules (``courier.services.relay``,
``courier.services.message_store``...); only the error types are re-exported
here because ``courier.core.security`` depends on them.
"""

from .errors import MessageValidationError, PersistenceError, RelayError, Unauthorized

__all__ = [
    "MessageValidationError",
    "PersistenceError",
    "RelayError",
    "Unauthorized",
]
