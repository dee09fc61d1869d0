from typing import Any


class TaskbarError(Exception):
    """Base class for every error raised by niritaskbar."""


class ConfigError(TaskbarError):
    """The configuration file contains a value that cannot be used."""


class TransportError(TaskbarError):
    """
    A socket or bus connection could not be established or was lost.

    Fatal to the worker that owns the connection; there is no reconnect.
    """


class ProtocolError(TaskbarError):
    """The compositor answered a request with an error reply."""


class UnexpectedReply(ProtocolError):
    """The compositor answered a request with the wrong reply variant."""

    def __init__(self, expected: str, reply: Any):
        super().__init__(f"unexpected compositor reply; expected {expected}: {reply!r}")
        self.expected = expected
        self.reply = reply


class DeliveryError(TaskbarError):
    """The receiving side of an internal queue has gone away."""
