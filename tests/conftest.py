from __future__ import annotations

from collections import deque
from typing import Callable

import pytest

from ircfw.core.errors import ClientConnectionError, ReadTimeoutError
from ircfw.core.ircmsg import make_line, parse_line
from ircfw.core.logger import configure_structlog

Responder = Callable[[str], list[str]]


def irc_server_responder(server: str = "srv", extra: dict[str, list[str]] | None = None) -> Responder:
    """Answer like a minimal, well-behaved IRC server.

    PINGs are answered with ``PONG <server> :<token>``; any other sent line
    whose command appears in ``extra`` gets those canned replies.
    """
    extra = {key.upper(): value for key, value in (extra or {}).items()}

    def respond(line: str) -> list[str]:
        message = parse_line(line)
        command = message.command.upper()
        if command == "PING":
            return [f":{server} PONG {server} :{message.param(0)}"]
        return list(extra.get(command, []))

    return respond


class FakeConnection:
    """In-memory line connection driven by a responder function."""

    def __init__(self, name: str = "", responder: Responder | None = None, initial: list[str] | None = None):
        self.name = name
        self.responder = responder or (lambda line: [])
        self.incoming: deque[str] = deque(initial or [])
        self.sent: list[str] = []
        self.reads = 0
        self.connected = True
        self.events: list[str] | None = None

    def feed(self, *lines: str) -> None:
        self.incoming.extend(lines)

    async def get_line(self, timeout: float | None = None) -> str:
        if not self.connected:
            raise ClientConnectionError("socket is disconnected")
        if not self.incoming:
            # a real server would leave us blocked here forever
            if timeout is not None:
                raise ReadTimeoutError(f"no line received from {self.name} within {timeout}s")
            raise ClientConnectionError(f"{self.name}: nothing left to read")
        self.reads += 1
        return self.incoming.popleft()

    async def send_line(self, line: str) -> None:
        if not self.connected:
            raise ClientConnectionError("socket is disconnected")
        line = line.rstrip("\r\n")
        self.sent.append(line)
        if self.events is not None:
            self.events.append(f"{self.name} send {line}")
        self.incoming.extend(self.responder(line))

    async def send(self, command: str, *params: str, tags=None, prefix=None) -> None:
        await self.send_line(make_line(command, *params, prefix=prefix, tags=tags))

    async def disconnect(self) -> None:
        self.connected = False
        if self.events is not None:
            self.events.append(f"{self.name} disconnect")


@pytest.fixture(autouse=True, scope="session")
def _structlog_through_stdlib():
    # route structlog through stdlib logging so records stay off stdout
    configure_structlog()
