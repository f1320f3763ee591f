from __future__ import annotations

import sys
from typing import TextIO

from ircfw.core.ircmsg import display_text
from ircfw.state.script import ActionSyncLine, DisconnectedLine, IRCMessageLine, ResultLine

RESET = "\x1b[0m"

# (sent, received) per client, handed out in sorted client order
COLOUR_SCHEMES: list[tuple[str, str]] = [
    ("\x1b[1;31m", "\x1b[31m"),
    ("\x1b[1;36m", "\x1b[36m"),
    ("\x1b[1;32m", "\x1b[32m"),
    ("\x1b[1;35m", "\x1b[35m"),
    ("\x1b[1;34m", "\x1b[34m"),
    ("\x1b[1;33m", "\x1b[33m"),
]


def assign_colours(clients: list[str] | frozenset[str]) -> dict[str, tuple[str, str]]:
    return {client: COLOUR_SCHEMES[idx % len(COLOUR_SCHEMES)] for idx, client in enumerate(sorted(clients))}


def format_result_line(line: ResultLine) -> str | None:
    match line:
        case ActionSyncLine(client=client, raw_line=raw):
            return f"{client}  -> {display_text(raw)}" if raw else None
        case IRCMessageLine(client=client, raw_line=raw):
            return f"{client} <-  {display_text(raw)}"
        case DisconnectedLine(client=client):
            return f"{client} disconnected"
    raise TypeError(f"unknown result line: {line!r}")


class ConsoleTranscript:
    """Streams a run to the terminal as it happens."""

    def __init__(self, clients: frozenset[str], use_colours: bool = True, stream: TextIO | None = None):
        self.stream = stream or sys.stdout
        self.colours = assign_colours(clients) if use_colours else {}

    def __call__(self, line: ResultLine) -> None:
        text = format_result_line(line)
        if text is None:
            return
        scheme = self.colours.get(line.client)
        if scheme is not None:
            colour = scheme[0] if isinstance(line, ActionSyncLine) else scheme[1]
            text = f"{colour}{text}{RESET}"
        print(text, file=self.stream, flush=True)
