"""Route modules exposed by the API package."""

from . import messages, ping, tickets

__all__ = ["messages", "ping", "tickets"]
