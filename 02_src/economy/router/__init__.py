"""Message router module."""

from .router import IMessageRouter, MessageRouter

__all__ = ["IMessageRouter", "MessageRouter"]
