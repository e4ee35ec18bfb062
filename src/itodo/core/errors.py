# src/itodo/core/errors.py

from __future__ import annotations


class GatewayError(Exception):
    """A backend command failed (transport, HTTP status or contract violation)."""

    def __init__(self, message: str, *, command: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.command = command

    def __str__(self) -> str:
        if self.command:
            return f"{self.command}: {self.message}"
        return self.message


def friendly_gateway_error_message(exc: BaseException) -> str:
    """One-line message suitable for the console."""
    if isinstance(exc, GatewayError):
        return exc.message
    text = str(exc).strip()
    return text or exc.__class__.__name__
