"""
chatrelay - API Dependencies

Shared dependencies for FastAPI routes.
"""

from typing import Callable, Optional

from ..core.errors import RelayError, UnexpectedError
from ..streaming.relay import Relay


# Set by server.py to avoid circular imports
_relay_instance_getter: Optional[Callable[[], Optional[Relay]]] = None


def set_relay_getter(getter: Callable[[], Optional[Relay]]):
    """Set the function that returns the relay instance."""
    global _relay_instance_getter
    _relay_instance_getter = getter


def get_relay() -> Relay:
    """
    Get the relay instance.

    Raises RelayError (unexpected_error) while the server is still
    starting up.
    """
    relay = _relay_instance_getter() if _relay_instance_getter else None
    if relay is None:
        raise RelayError(UnexpectedError())
    return relay
