from __future__ import annotations


class FrameworkError(Exception):
    """Base class for every failure the harness reports to the user."""


class ScriptParseError(FrameworkError):
    def __init__(self, line: int | None, message: str):
        self.line = line
        self.message = message
        if line is None:
            super().__init__(message)
        else:
            super().__init__(f"line {line}: {message}")


class ClientConnectionError(FrameworkError):
    """Establishing or using a client connection failed."""


class ReadTimeoutError(ClientConnectionError):
    """A read did not complete within the configured read timeout."""


class ProtocolFramingError(FrameworkError):
    def __init__(self, line: str, reason: str):
        self.line = line
        self.reason = reason
        super().__init__(f"{reason}: [{line}]")


class ConfigError(FrameworkError):
    """The settings file is missing, malformed or inconsistent."""
