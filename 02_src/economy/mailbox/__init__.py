"""Mailbox module."""

from .mailbox import MOCK_SIGNATURE, IMailbox, Mailbox

__all__ = ["MOCK_SIGNATURE", "IMailbox", "Mailbox"]
